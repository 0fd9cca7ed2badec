"""Tests for the RSS latest-upload fallback."""

from __future__ import annotations

from datetime import datetime, timezone

import feedparser
import httpx
import pytest

from shook.core.errors import ChannelNotFoundError, UpstreamApiError
from shook.services.feed_source import FeedLatestUploadSource, channel_feed_url, latest_from_feed

pytest_plugins = ("pytest_asyncio",)

CHANNEL_ID = "UC" + "A" * 22

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015" xmlns="http://www.w3.org/2005/Atom">
  <title>Demo Channel</title>
  <entry>
    <id>yt:video:shortvideo1</id>
    <yt:videoId>shortvideo1</yt:videoId>
    <title>A short</title>
    <link rel="alternate" href="https://www.youtube.com/shorts/shortvideo1"/>
    <published>2024-05-02T10:00:00+00:00</published>
  </entry>
  <entry>
    <id>yt:video:regular0001</id>
    <yt:videoId>regular0001</yt:videoId>
    <title>Tips &amp; tricks</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=regular0001"/>
    <published>2024-05-01T10:00:00+00:00</published>
  </entry>
</feed>
"""


def test_channel_feed_url() -> None:
    assert channel_feed_url(CHANNEL_ID) == f"https://www.youtube.com/feeds/videos.xml?channel_id={CHANNEL_ID}"


def test_latest_from_feed_skips_shorts() -> None:
    feed = feedparser.parse(FEED)

    latest = latest_from_feed(feed, CHANNEL_ID, skip_shorts=True)

    assert latest.video_id == "regular0001"
    assert latest.title == "Tips & tricks"
    assert latest.published_at == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)


def test_latest_from_feed_keeps_shorts_when_allowed() -> None:
    latest = latest_from_feed(feedparser.parse(FEED), CHANNEL_ID, skip_shorts=False)
    assert latest.video_id == "shortvideo1"


@pytest.mark.asyncio
async def test_feed_source_fetches_and_parses() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["channel_id"] == CHANNEL_ID
        return httpx.Response(200, content=FEED.encode())

    source = FeedLatestUploadSource(transport=httpx.MockTransport(handler))
    latest = await source.latest_upload(CHANNEL_ID)

    assert latest.video_id == "regular0001"


@pytest.mark.asyncio
async def test_feed_source_maps_http_errors() -> None:
    missing = FeedLatestUploadSource(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    broken = FeedLatestUploadSource(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

    with pytest.raises(ChannelNotFoundError):
        await missing.latest_upload(CHANNEL_ID)
    with pytest.raises(UpstreamApiError) as excinfo:
        await broken.latest_upload(CHANNEL_ID)
    assert excinfo.value.status == 500
