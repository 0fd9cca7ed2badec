"""Pydantic models for on-demand video summaries."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SummaryRequest(BaseModel):
    url: str = Field(min_length=1, description="YouTube video URL or bare video id")
    title: str | None = None


class SummaryResponse(BaseModel):
    video_id: str
    language: str | None
    generated_captions: bool
    transcript: str
    summary: str
