"""Utilities for normalising YouTube channel identifiers."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

from shook.core.errors import ChannelResolutionError, UpstreamApiError
from shook.services.youtube_api import YouTubeDataClient

CHANNEL_ID_REGEX = re.compile(r"^UC[0-9A-Za-z_-]{22}$")


async def _fetch_channel_id_for_handle(handle: str, youtube: YouTubeDataClient | None) -> str:
    """Resolve a YouTube `@handle` into a canonical channel ID via the Data API."""

    if youtube is None:
        raise ChannelResolutionError("Channel handle resolution requires SHOOK_YOUTUBE_API_KEY")

    normalised_handle = handle.lstrip("@").strip()
    if not normalised_handle:
        raise ChannelResolutionError("Invalid YouTube channel handle")

    try:
        channel_id = await youtube.resolve_handle(normalised_handle)
    except UpstreamApiError as exc:
        raise ChannelResolutionError("Unable to contact YouTube Data API") from exc

    if channel_id and CHANNEL_ID_REGEX.match(channel_id):
        return channel_id
    raise ChannelResolutionError("Channel handle not found")


async def extract_channel_id(raw: str, *, youtube: YouTubeDataClient | None = None) -> str:
    """Normalise user-supplied channel identifiers into canonical YouTube channel IDs.

    Supports:
      * Raw channel IDs (starting with UC)
      * YouTube feed URLs containing `channel_id`
      * Standard channel URLs (`/channel/UC...`)
      * Handle URLs (`/@name`) and bare handles (`@name`) via the YouTube Data API

    """

    identifier = raw.strip()
    if not identifier:
        raise ChannelResolutionError("Empty channel identifier")

    if CHANNEL_ID_REGEX.match(identifier):
        return identifier

    if identifier.startswith("@"):
        return await _fetch_channel_id_for_handle(identifier, youtube)

    if identifier.startswith("http://") or identifier.startswith("https://"):
        parsed = urlparse(identifier)
        # Check query param first (feed URLs)
        channel_ids = parse_qs(parsed.query).get("channel_id")
        if channel_ids:
            candidate = channel_ids[-1]
            if CHANNEL_ID_REGEX.match(candidate):
                return candidate

        parts = [part for part in parsed.path.split("/") if part]
        if len(parts) >= 2 and parts[-2] == "channel" and CHANNEL_ID_REGEX.match(parts[-1]):
            return parts[-1]
        if parts and parts[0].startswith("@"):
            return await _fetch_channel_id_for_handle(parts[0], youtube)

        raise ChannelResolutionError("Unsupported YouTube URL format")

    raise ChannelResolutionError("Unsupported channel identifier format")
