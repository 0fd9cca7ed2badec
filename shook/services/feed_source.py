"""Latest-upload lookup through the public channel RSS feed."""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from typing import Protocol
from urllib.parse import urlencode

import feedparser
import httpx

from shook.core.errors import ChannelNotFoundError, UpstreamApiError
from shook.services.youtube_api import LatestUpload

logger = logging.getLogger(__name__)

YOUTUBE_FEED_BASE = "https://www.youtube.com/feeds/videos.xml"


class LatestUploadSource(Protocol):
    async def latest_upload(self, channel_id: str) -> LatestUpload | None:
        """Return the channel's most recent regular upload, or None."""


def channel_feed_url(channel_id: str) -> str:
    return f"{YOUTUBE_FEED_BASE}?{urlencode({'channel_id': channel_id})}"


def parse_published(entry: feedparser.FeedParserDict) -> datetime | None:
    """Convert feed published timestamp to timezone-aware datetime."""

    struct_time = entry.get("published_parsed") or entry.get("updated_parsed")
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)


def video_identity(entry: feedparser.FeedParserDict) -> tuple[str | None, str | None]:
    """Return (video_id, title) from a feed entry."""

    video_id = entry.get("yt_videoid") or entry.get("id")
    title = entry.get("title")
    if video_id and video_id.startswith("yt:video:"):
        video_id = video_id.split(":")[-1]
    return video_id, title


def is_short(entry: feedparser.FeedParserDict) -> bool:
    links = [entry.get("link") or ""]
    links.extend(link.get("href", "") for link in entry.get("links") or [])
    return any("/shorts/" in link for link in links)


def latest_from_feed(
    feed: feedparser.FeedParserDict, channel_id: str, *, skip_shorts: bool = True
) -> LatestUpload | None:
    """Pick the newest entry of a parsed feed, ignoring Shorts when requested."""

    for entry in feed.entries:
        video_id, title = video_identity(entry)
        if not video_id or not title:
            continue
        if skip_shorts and is_short(entry):
            logger.info("Skipping Shorts entry", extra={"channel_id": channel_id, "video_id": video_id})
            continue
        return LatestUpload(
            video_id=video_id,
            channel_id=channel_id,
            title=html.unescape(title),
            published_at=parse_published(entry),
        )
    return None


class FeedLatestUploadSource:
    """Reads the channel RSS feed; used when no Data API key is configured."""

    def __init__(
        self,
        *,
        skip_shorts: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 15,
    ) -> None:
        self._skip_shorts = skip_shorts
        self._transport = transport
        self._timeout = timeout

    async def latest_upload(self, channel_id: str) -> LatestUpload | None:
        url = channel_feed_url(channel_id)
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout,
                headers={"User-Agent": "shook/0.1"},
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamApiError(f"Failed to download feed {url}: {exc}") from exc

        if response.status_code == 404:
            raise ChannelNotFoundError(f"RSS feed not found for channel {channel_id}", status=404)
        if response.status_code >= 400:
            raise UpstreamApiError(f"RSS fetch failed: {response.status_code}", status=response.status_code)

        feed = feedparser.parse(response.content)
        return latest_from_feed(feed, channel_id, skip_shorts=self._skip_shorts)
