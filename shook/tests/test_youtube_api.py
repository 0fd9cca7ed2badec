"""Tests for the YouTube Data API client using a mocked transport."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from shook.core.errors import ChannelNotFoundError, QuotaExceededError, UpstreamApiError
from shook.services.youtube_api import YouTubeDataClient, parse_duration, parse_timestamp, uploads_playlist_id

pytest_plugins = ("pytest_asyncio",)

CHANNEL_ID = "UC" + "A" * 22


def _client(handler, **options) -> YouTubeDataClient:
    return YouTubeDataClient("dummy-key", transport=httpx.MockTransport(handler), **options)


def _error(status: int, reason: str, message: str = "boom") -> httpx.Response:
    return httpx.Response(status, json={"error": {"message": message, "errors": [{"reason": reason}]}})


def test_uploads_playlist_id_swaps_prefix() -> None:
    assert uploads_playlist_id(CHANNEL_ID) == "UU" + "A" * 22
    assert uploads_playlist_id("PL123") == "PL123"


def test_parse_timestamp_handles_zulu_and_garbage() -> None:
    assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


@pytest.mark.asyncio
async def test_latest_upload_reads_uploads_playlist() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "snippet": {"title": "Tom &amp; Jerry", "publishedAt": "2024-05-01T09:00:00Z"},
                        "contentDetails": {"videoId": "abcdefghijk", "videoPublishedAt": "2024-05-01T10:00:00Z"},
                    }
                ]
            },
        )

    latest = await _client(handler).latest_upload(CHANNEL_ID)

    assert seen["path"].endswith("/playlistItems")
    assert seen["playlistId"] == "UU" + "A" * 22
    assert seen["maxResults"] == "1"
    assert seen["key"] == "dummy-key"
    assert latest.video_id == "abcdefghijk"
    assert latest.channel_id == CHANNEL_ID
    assert latest.title == "Tom & Jerry"
    assert latest.published_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_latest_upload_empty_playlist() -> None:
    latest = await _client(lambda request: httpx.Response(200, json={"items": []})).latest_upload(CHANNEL_ID)
    assert latest is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("response", "expected", "kind"),
    [
        (_error(403, "quotaExceeded"), QuotaExceededError, "quota_exceeded"),
        (_error(429, "rateLimitExceeded"), QuotaExceededError, "quota_exceeded"),
        (_error(404, "playlistNotFound"), ChannelNotFoundError, "not_found"),
        (_error(403, "forbidden"), UpstreamApiError, "upstream_error"),
        (httpx.Response(500, text="oops"), UpstreamApiError, "upstream_error"),
    ],
)
async def test_errors_are_classified(response: httpx.Response, expected: type, kind: str) -> None:
    with pytest.raises(expected) as excinfo:
        await _client(lambda request: response).latest_upload(CHANNEL_ID)
    assert excinfo.value.kind == kind
    assert excinfo.value.status == response.status_code


@pytest.mark.asyncio
async def test_network_failure_is_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(UpstreamApiError, match="Unable to contact"):
        await _client(handler).latest_upload(CHANNEL_ID)


@pytest.mark.asyncio
async def test_broadcast_content_values() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        video_id = request.url.params["id"]
        if video_id == "missing0000":
            return httpx.Response(200, json={"items": []})
        return httpx.Response(200, json={"items": [{"snippet": {"liveBroadcastContent": "upcoming"}}]})

    client = _client(handler)
    assert await client.broadcast_content("abcdefghijk") == "upcoming"
    assert await client.broadcast_content("missing0000") is None


@pytest.mark.asyncio
async def test_resolve_handle_and_channel_details() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if params.get("forHandle"):
            assert params["forHandle"] == "demo"
            return httpx.Response(200, json={"items": [{"id": CHANNEL_ID}]})
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "id": CHANNEL_ID,
                        "snippet": {
                            "title": "Demo",
                            "customUrl": "@demo",
                            "description": "About",
                            "thumbnails": {"default": {"url": "https://img/demo.jpg"}},
                        },
                        "statistics": {"subscriberCount": "1200", "videoCount": "42"},
                    }
                ]
            },
        )

    client = _client(handler)
    assert await client.resolve_handle("@demo") == CHANNEL_ID
    info = await client.channel_details(CHANNEL_ID)
    assert info.title == "Demo"
    assert info.handle == "@demo"
    assert info.thumbnail == "https://img/demo.jpg"
    assert info.subscriber_count == 1200
    assert info.video_count == 42


@pytest.mark.asyncio
async def test_search_channels_enriches_hits() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            return httpx.Response(
                200,
                json={"items": [{"id": {"channelId": CHANNEL_ID}, "snippet": {"title": "Hit"}}]},
            )
        return httpx.Response(
            200,
            json={"items": [{"id": CHANNEL_ID, "snippet": {"title": "Full"}, "statistics": {"subscriberCount": "5"}}]},
        )

    results = await _client(handler).search_channels("demo")

    assert [(result.channel_id, result.title, result.subscriber_count) for result in results] == [
        (CHANNEL_ID, "Full", 5)
    ]


def test_parse_duration() -> None:
    assert parse_duration("PT45S") == 45
    assert parse_duration("PT1H2M3S") == 3723
    assert parse_duration("P1DT1M") == 86460
    assert parse_duration("P0D") == 0
    assert parse_duration(None) == 0
    assert parse_duration("garbage") == 0


def _uploads_handler(durations: dict[str, str], seen: list[dict[str, str]]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append({"path": request.url.path, **request.url.params})
        if request.url.path.endswith("/playlistItems"):
            items = [
                {"snippet": {"title": f"Title {video_id}"}, "contentDetails": {"videoId": video_id}}
                for video_id in durations
            ]
            return httpx.Response(200, json={"items": items})
        items = [{"id": video_id, "contentDetails": {"duration": value}} for video_id, value in durations.items()]
        return httpx.Response(200, json={"items": items})

    return handler


@pytest.mark.asyncio
async def test_latest_upload_skips_shorts_by_duration() -> None:
    seen: list[dict[str, str]] = []
    handler = _uploads_handler({"short000001": "PT45S", "long0000001": "PT12M30S"}, seen)

    latest = await _client(handler, skip_shorts=True, shorts_max_seconds=60).latest_upload(CHANNEL_ID)

    assert latest.video_id == "long0000001"
    assert latest.title == "Title long0000001"
    playlist, videos = seen
    assert playlist["maxResults"] == "5"
    assert videos["path"].endswith("/videos")
    assert videos["id"] == "short000001,long0000001"
    assert videos["part"] == "contentDetails"


@pytest.mark.asyncio
async def test_latest_upload_keeps_broadcasts_without_duration() -> None:
    handler = _uploads_handler({"upcoming001": "P0D", "long0000001": "PT12M"}, [])

    latest = await _client(handler, skip_shorts=True).latest_upload(CHANNEL_ID)

    assert latest.video_id == "upcoming001"


@pytest.mark.asyncio
async def test_latest_upload_with_only_shorts() -> None:
    handler = _uploads_handler({"short000001": "PT30S", "short000002": "PT59S"}, [])

    assert await _client(handler, skip_shorts=True).latest_upload(CHANNEL_ID) is None
