"""Async client for the quota-limited YouTube Data API v3."""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

from shook.core.config import settings
from shook.core.errors import ChannelNotFoundError, QUOTA_REASONS, QuotaExceededError, UpstreamApiError

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
SHORTS_LOOKAHEAD = 5

_DURATION_RE = re.compile(r"P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?")


@dataclass(slots=True)
class LatestUpload:
    """The most recent upload of a channel."""

    video_id: str
    channel_id: str
    title: str
    published_at: datetime | None


@dataclass(slots=True)
class ChannelInfo:
    """Channel metadata used when a user registers a channel."""

    channel_id: str
    handle: str
    title: str
    description: str
    thumbnail: str | None
    subscriber_count: int | None
    video_count: int | None


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Failed to parse timestamp", extra={"value": value})
        return None


def uploads_playlist_id(channel_id: str) -> str:
    """Every ``UC…`` channel has an uploads playlist ``UU…`` with the same suffix."""

    if channel_id.startswith("UC"):
        return "UU" + channel_id[2:]
    return channel_id


def parse_duration(value: str | None) -> int:
    """Seconds in an ISO 8601 duration such as ``PT1H2M3S``; 0 when absent."""

    match = _DURATION_RE.fullmatch(value or "")
    if not match:
        return 0
    days, hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return ((days * 24 + hours) * 60 + minutes) * 60 + seconds


def _playlist_upload(item: dict[str, Any], channel_id: str) -> LatestUpload | None:
    snippet = item.get("snippet") or {}
    details = item.get("contentDetails") or {}
    video_id = details.get("videoId") or (snippet.get("resourceId") or {}).get("videoId")
    if not video_id:
        return None
    return LatestUpload(
        video_id=video_id,
        channel_id=channel_id,
        title=html.unescape(snippet.get("title") or video_id),
        published_at=parse_timestamp(details.get("videoPublishedAt") or snippet.get("publishedAt")),
    )


def _error_reason(response: httpx.Response) -> tuple[str | None, str]:
    try:
        payload = response.json()
    except ValueError:
        return None, response.text[:200]
    error = payload.get("error") or {}
    message = error.get("message") or response.reason_phrase
    errors = error.get("errors") or []
    reason = errors[0].get("reason") if errors else None
    return reason, message


def _to_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _channel_info(item: dict[str, Any]) -> ChannelInfo:
    snippet = item.get("snippet") or {}
    statistics = item.get("statistics") or {}
    thumbnails = snippet.get("thumbnails") or {}
    thumbnail = (thumbnails.get("default") or {}).get("url")
    channel_id = item.get("id")
    if isinstance(channel_id, dict):
        channel_id = channel_id.get("channelId")
    return ChannelInfo(
        channel_id=channel_id or snippet.get("channelId", ""),
        handle=snippet.get("customUrl") or "",
        title=html.unescape(snippet.get("title") or ""),
        description=html.unescape(snippet.get("description") or ""),
        thumbnail=thumbnail,
        subscriber_count=_to_int(statistics.get("subscriberCount")),
        video_count=_to_int(statistics.get("videoCount")),
    )


class YouTubeDataClient:
    """Thin wrapper around the Data API endpoints the monitor needs."""

    def __init__(
        self,
        api_key: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10,
        skip_shorts: bool = False,
        shorts_max_seconds: int = 60,
    ) -> None:
        self._api_key = api_key
        self._transport = transport
        self._timeout = timeout
        self._skip_shorts = skip_shorts
        self._shorts_max_seconds = shorts_max_seconds

    async def _get(self, resource: str, params: dict[str, Any]) -> dict[str, Any]:
        query = {**params, "key": self._api_key}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
                response = await client.get(f"{YOUTUBE_API_BASE}/{resource}", params=query)
        except httpx.HTTPError as exc:
            raise UpstreamApiError(f"Unable to contact YouTube Data API: {exc}") from exc

        if response.status_code >= 400:
            reason, message = _error_reason(response)
            status = response.status_code
            if status == 429 or (status == 403 and reason in QUOTA_REASONS):
                raise QuotaExceededError(f"YouTube API quota exceeded: {message}", status=status, reason=reason)
            if status == 404:
                raise ChannelNotFoundError(f"YouTube resource not found: {message}", status=status, reason=reason)
            raise UpstreamApiError(f"YouTube API error {status}: {message}", status=status, reason=reason)

        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamApiError("Invalid response from YouTube Data API") from exc

    async def latest_upload(self, channel_id: str) -> LatestUpload | None:
        """Return the newest upload in the channel's uploads playlist, skipping Shorts when configured."""

        payload = await self._get(
            "playlistItems",
            {
                "part": "snippet,contentDetails",
                "playlistId": uploads_playlist_id(channel_id),
                "maxResults": SHORTS_LOOKAHEAD if self._skip_shorts else 1,
            },
        )
        uploads = [upload for item in payload.get("items") or [] if (upload := _playlist_upload(item, channel_id))]
        if not uploads:
            return None
        if not self._skip_shorts:
            return uploads[0]

        durations = await self.video_durations([upload.video_id for upload in uploads])
        for upload in uploads:
            seconds = durations.get(upload.video_id)
            # live and upcoming broadcasts report no duration yet
            if seconds and seconds <= self._shorts_max_seconds:
                logger.info("Skipping Shorts upload", extra={"channel_id": channel_id, "video_id": upload.video_id})
                continue
            return upload
        return None

    async def video_durations(self, video_ids: list[str]) -> dict[str, int]:
        """Map video ids to their length in seconds."""

        payload = await self._get("videos", {"part": "contentDetails", "id": ",".join(video_ids)})
        return {
            item["id"]: parse_duration((item.get("contentDetails") or {}).get("duration"))
            for item in payload.get("items") or []
            if item.get("id")
        }

    async def broadcast_content(self, video_id: str) -> str | None:
        """Return ``snippet.liveBroadcastContent`` or None when the video is unknown."""

        try:
            payload = await self._get("videos", {"part": "snippet", "id": video_id})
        except ChannelNotFoundError:
            return None
        items = payload.get("items") or []
        if not items:
            return None
        return (items[0].get("snippet") or {}).get("liveBroadcastContent") or "none"

    async def channel_details(self, channel_id: str) -> ChannelInfo | None:
        payload = await self._get("channels", {"part": "snippet,statistics", "id": channel_id})
        items = payload.get("items") or []
        if not items:
            return None
        return _channel_info(items[0])

    async def resolve_handle(self, handle: str) -> str | None:
        payload = await self._get("channels", {"part": "id", "forHandle": handle.lstrip("@").strip()})
        for item in payload.get("items") or []:
            if item.get("id"):
                return item["id"]
        return None

    async def search_channels(self, query: str, max_results: int = 5) -> list[ChannelInfo]:
        """Search channels and enrich the hits with statistics."""

        payload = await self._get(
            "search",
            {"part": "snippet", "q": query, "type": "channel", "maxResults": min(max_results, 5)},
        )
        hits = [item for item in payload.get("items") or [] if (item.get("id") or {}).get("channelId")]
        if not hits:
            return []

        ids = [hit["id"]["channelId"] for hit in hits]
        details = await self._get("channels", {"part": "snippet,statistics", "id": ",".join(ids)})
        by_id = {item.get("id"): _channel_info(item) for item in details.get("items") or []}

        results: list[ChannelInfo] = []
        for hit in hits:
            channel_id = hit["id"]["channelId"]
            results.append(by_id.get(channel_id) or _channel_info(hit))
        return results


def get_youtube_client() -> YouTubeDataClient | None:
    """FastAPI dependency; None when no API key is configured."""

    if not settings.youtube_api_key:
        return None
    return YouTubeDataClient(
        settings.youtube_api_key,
        skip_shorts=settings.skip_shorts,
        shorts_max_seconds=settings.shorts_max_seconds,
    )
