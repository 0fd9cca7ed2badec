"""Pydantic models for channel management API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ChannelCreateRequest(BaseModel):
    """Inbound payload to subscribe a user to a channel."""

    identifier: str = Field(..., min_length=1, description="YouTube channel handle, URL, or UC id")


class ChannelResponse(BaseModel):
    """Representation of a monitored channel."""

    channel_id: str
    title: str
    handle: str = ""
    thumbnail: str | None = None
    subscriber_count: int | None = None
    recent_video_id: str | None = None
    is_active: bool = True
    last_checked_at: datetime | None = None
    last_error: str | None = None


class ChannelListResponse(BaseModel):
    """Wrapper containing a user's subscribed channels."""

    channels: list[ChannelResponse]


class ChannelSearchResult(BaseModel):
    channel_id: str
    title: str
    handle: str = ""
    description: str = ""
    thumbnail: str | None = None


class ChannelSearchResponse(BaseModel):
    results: list[ChannelSearchResult]
