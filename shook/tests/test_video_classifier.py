"""Tests for live/upcoming classification and its fail-open behaviour."""

from __future__ import annotations

import pytest

from shook.core.errors import QuotaExceededError, UpstreamApiError
from shook.services.video_classifier import BroadcastKind, VideoClassifier
from shook.tests.fakes import RecordingReporter

pytest_plugins = ("pytest_asyncio",)


class StubYouTube:
    def __init__(self, answer: str | None | Exception) -> None:
        self.answer = answer

    async def broadcast_content(self, video_id: str) -> str | None:
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("raw", "expected"),
    [("live", BroadcastKind.LIVE), ("upcoming", BroadcastKind.UPCOMING), ("none", BroadcastKind.NONE)],
)
async def test_classify_maps_broadcast_content(raw: str, expected: BroadcastKind) -> None:
    reporter = RecordingReporter()
    classifier = VideoClassifier(StubYouTube(raw), reporter)

    assert await classifier.classify("abcdefghijk") is expected
    assert reporter.reports == []


@pytest.mark.asyncio
async def test_unknown_value_defaults_to_regular() -> None:
    classifier = VideoClassifier(StubYouTube("completed"), RecordingReporter())
    assert await classifier.classify("abcdefghijk") is BroadcastKind.NONE


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("answer", "kind"),
    [
        (None, "not_found"),
        (QuotaExceededError("quota", status=403, reason="quotaExceeded"), "quota_exceeded"),
        (UpstreamApiError("server error", status=500), "upstream_error"),
    ],
)
async def test_failures_fail_open_and_are_reported_distinctly(answer, kind: str) -> None:
    reporter = RecordingReporter()
    classifier = VideoClassifier(StubYouTube(answer), reporter)

    assert await classifier.classify("abcdefghijk") is BroadcastKind.NONE

    [(_, context)] = reporter.reports
    assert context.video_id == "abcdefghijk"
    assert context.extra == {"kind": kind, "defaulted_to": "none"}


@pytest.mark.asyncio
async def test_without_client_every_video_is_regular() -> None:
    reporter = RecordingReporter()
    assert await VideoClassifier(None, reporter).classify("abcdefghijk") is BroadcastKind.NONE
    assert reporter.reports == []
