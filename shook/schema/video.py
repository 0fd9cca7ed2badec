"""Pydantic models for video status endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class VideoStatus(BaseModel):
    video_id: str
    title: str
    channel_id: str
    channel: str | None
    published_at: datetime | None
    status: str
    summary: str | None
    error: str | None
    attempt_count: int
    created_at: datetime
    processed_at: datetime | None


class VideoDetail(VideoStatus):
    transcript: str | None
    transcript_language: str | None


class DeliveryStatus(BaseModel):
    user_id: int
    status: str
    retry_count: int
    last_error: str | None
    delivered_at: datetime | None


class ResendResponse(BaseModel):
    video_id: str
    deliveries: list[DeliveryStatus]
