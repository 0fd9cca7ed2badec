"""Tests for caption track selection and transcript extraction."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import pytest
from youtube_transcript_api import TranscriptsDisabled
from youtube_transcript_api import VideoUnavailable as UpstreamVideoUnavailable

from shook.core.errors import NoCaptionsAvailable, TranscriptError, VideoUnavailable
from shook.services.transcript_extractor import (
    TranscriptExtractor,
    format_offset,
    normalise_segments,
    parse_video_id,
    select_transcript,
)

pytest_plugins = ("pytest_asyncio",)

VIDEO_ID = "abcdefghijk"


@dataclass
class FakeTrack:
    language_code: str
    is_generated: bool
    segments: list[dict] = field(default_factory=list)

    def fetch(self) -> list[dict]:
        return self.segments


class FakeApi:
    def __init__(self, tracks: list[FakeTrack] | None = None, error: Exception | None = None) -> None:
        self.tracks = tracks or []
        self.error = error
        self.calls: list[str] = []

    def list(self, video_id: str) -> list[FakeTrack]:
        self.calls.append(video_id)
        if self.error is not None:
            raise self.error
        return self.tracks


def _extractor(api: FakeApi, **kwargs) -> TranscriptExtractor:
    options = {"languages": ["ko", "en"], "max_concurrency": 1, "min_interval_ms": 0, **kwargs}
    return TranscriptExtractor(api=api, **options)


@pytest.mark.parametrize(
    "value",
    [
        VIDEO_ID,
        f"https://www.youtube.com/watch?v={VIDEO_ID}",
        f"https://www.youtube.com/watch?feature=share&v={VIDEO_ID}",
        f"https://youtu.be/{VIDEO_ID}",
        f"https://www.youtube.com/shorts/{VIDEO_ID}",
        f"https://www.youtube.com/live/{VIDEO_ID}?si=x",
    ],
)
def test_parse_video_id_accepts_common_forms(value: str) -> None:
    assert parse_video_id(value) == VIDEO_ID


def test_parse_video_id_rejects_garbage() -> None:
    with pytest.raises(VideoUnavailable):
        parse_video_id("https://example.com/nothing")


def test_select_transcript_prefers_manual_in_preferred_language() -> None:
    ko_auto = FakeTrack("ko", True)
    ko_manual = FakeTrack("ko", False)
    en_manual = FakeTrack("en", False)

    assert select_transcript([ko_auto, en_manual, ko_manual], ["ko", "en"]) is ko_manual
    assert select_transcript([ko_auto, en_manual], ["ko", "en"]) is ko_auto
    assert select_transcript([en_manual], ["ko"]) is en_manual
    assert select_transcript([], ["ko"]) is None


def test_normalise_segments_strips_markup_and_empties() -> None:
    segments = normalise_segments(
        [
            {"text": "<i>Hello</i>\n world", "start": 1.5, "duration": 2},
            {"text": "   ", "start": 3, "duration": 1},
        ]
    )
    assert [(segment.text, segment.start) for segment in segments] == [("Hello world", 1.5)]


def test_format_offset() -> None:
    assert format_offset(0) == "00:00"
    assert format_offset(125.9) == "02:05"


@pytest.mark.asyncio
async def test_extract_returns_ordered_segments_and_full_text() -> None:
    track = FakeTrack(
        "ko",
        False,
        [
            {"text": "안녕하세요", "start": 0.0, "duration": 1.0},
            {"text": "반갑습니다", "start": 61.0, "duration": 1.0},
        ],
    )
    api = FakeApi([FakeTrack("en", False, [{"text": "hi", "start": 0, "duration": 1}]), track])

    transcript = await _extractor(api).extract(f"https://youtu.be/{VIDEO_ID}")

    assert api.calls == [VIDEO_ID]
    assert transcript.language_code == "ko"
    assert transcript.is_generated is False
    assert transcript.full_text == "안녕하세요 반갑습니다"
    assert transcript.as_timed_text() == "[00:00] 안녕하세요\n[01:01] 반갑습니다"


@pytest.mark.asyncio
async def test_extract_maps_disabled_captions() -> None:
    api = FakeApi(error=TranscriptsDisabled(VIDEO_ID))

    with pytest.raises(NoCaptionsAvailable, match="captions"):
        await _extractor(api).extract(VIDEO_ID)


@pytest.mark.asyncio
async def test_extract_maps_unavailable_video() -> None:
    api = FakeApi(error=UpstreamVideoUnavailable(VIDEO_ID))

    with pytest.raises(VideoUnavailable):
        await _extractor(api).extract(VIDEO_ID)


@pytest.mark.asyncio
async def test_extract_rejects_empty_tracks() -> None:
    api = FakeApi([FakeTrack("ko", True, [{"text": "", "start": 0, "duration": 1}])])

    with pytest.raises(NoCaptionsAvailable):
        await _extractor(api).extract(VIDEO_ID)


@pytest.mark.asyncio
async def test_extract_without_tracks() -> None:
    with pytest.raises(NoCaptionsAvailable):
        await _extractor(FakeApi([])).extract(VIDEO_ID)


@pytest.mark.asyncio
async def test_requests_are_spaced_by_min_interval() -> None:
    api = FakeApi([FakeTrack("ko", False, [{"text": "hi", "start": 0, "duration": 1}])])
    extractor = _extractor(api, min_interval_ms=100)

    started = time.monotonic()
    await extractor.extract(VIDEO_ID)
    await extractor.extract(VIDEO_ID)

    assert time.monotonic() - started >= 0.09
    assert len(api.calls) == 2


@pytest.mark.asyncio
async def test_extract_wraps_network_errors() -> None:
    api = FakeApi(error=ConnectionError("Connection reset by peer"))

    with pytest.raises(TranscriptError, match="Network error.*Connection reset by peer"):
        await _extractor(api).extract(VIDEO_ID)


@pytest.mark.asyncio
async def test_extract_falls_back_to_other_language_untranslated() -> None:
    generated = FakeTrack("ja", True, [{"text": "auto", "start": 0, "duration": 1}])
    manual = FakeTrack("fr", False, [{"text": "bonjour", "start": 0, "duration": 1}])

    transcript = await _extractor(FakeApi([generated, manual])).extract(VIDEO_ID)

    assert transcript.language_code == "fr"
    assert transcript.is_generated is False
    assert transcript.full_text == "bonjour"
