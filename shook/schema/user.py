"""Pydantic schemas for user registration."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class UserCreateRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None


class SlackDestinationRequest(BaseModel):
    """Set or clear (with null) where summaries are posted."""

    slack_channel_id: str | None = Field(default=None, max_length=64)
    slack_user_id: str | None = Field(default=None, max_length=64)


class UserResponse(BaseModel):
    id: int
    username: str
    email: EmailStr | None
    slack_channel_id: str | None
    slack_user_id: str | None
    created_at: datetime
