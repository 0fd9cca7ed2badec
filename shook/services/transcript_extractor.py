"""Caption retrieval and transcript normalisation."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol

from youtube_transcript_api import (  # type: ignore[import-not-found]
    CouldNotRetrieveTranscript,
    InvalidVideoId,
    NoTranscriptFound,
    TranscriptsDisabled,
    YouTubeTranscriptApi,
)
from youtube_transcript_api import VideoUnavailable as _UpstreamVideoUnavailable  # type: ignore[import-not-found]

from shook.core.config import settings
from shook.core.errors import NoCaptionsAvailable, TranscriptError, VideoUnavailable

logger = logging.getLogger(__name__)

_VIDEO_ID_RE = re.compile(r"^[0-9A-Za-z_-]{11}$")
_URL_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/(?:embed|v|shorts|live)/)([0-9A-Za-z_-]{11})"),
)
_TAG_RE = re.compile(r"<[^>]+>")


@dataclass(slots=True)
class CaptionSegment:
    start: float
    duration: float
    text: str


@dataclass(slots=True)
class Transcript:
    """Ordered caption segments for one video."""

    video_id: str
    language_code: str | None
    is_generated: bool
    segments: list[CaptionSegment] = field(default_factory=list)

    @property
    def full_text(self) -> str:
        return " ".join(segment.text for segment in self.segments)

    def as_timed_text(self) -> str:
        return "\n".join(f"[{format_offset(segment.start)}] {segment.text}" for segment in self.segments)


class TranscriptTrack(Protocol):
    language_code: str
    is_generated: bool

    def fetch(self) -> Iterable[Any]: ...


def format_offset(seconds: float) -> str:
    minutes, remainder = divmod(int(seconds), 60)
    return f"{minutes:02d}:{remainder:02d}"


def parse_video_id(value: str) -> str:
    """Accept a bare video id or any common YouTube video URL."""

    candidate = value.strip()
    if _VIDEO_ID_RE.match(candidate):
        return candidate
    for pattern in _URL_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    raise VideoUnavailable(f"Not a valid YouTube video reference: {value!r}")


def select_transcript(available: Iterable[TranscriptTrack], languages: Sequence[str]) -> TranscriptTrack | None:
    """Pick a track: per preferred language manual then generated, then anything."""

    tracks = list(available)
    for language in languages:
        for generated in (False, True):
            for track in tracks:
                if track.language_code == language and track.is_generated is generated:
                    return track
    for generated in (False, True):
        for track in tracks:
            if track.is_generated is generated:
                return track
    return None


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def normalise_segments(raw_segments: Iterable[Any]) -> list[CaptionSegment]:
    """Strip markup from caption text and drop empty segments."""

    segments: list[CaptionSegment] = []
    for raw in raw_segments:
        text = _TAG_RE.sub("", _field(raw, "text") or "")
        text = " ".join(text.split())
        if not text:
            continue
        segments.append(
            CaptionSegment(
                start=float(_field(raw, "start", 0) or 0),
                duration=float(_field(raw, "duration", 0) or 0),
                text=text,
            )
        )
    return segments


class TranscriptExtractor:
    """Fetches captions through youtube-transcript-api with bounded concurrency."""

    def __init__(
        self,
        *,
        languages: Sequence[str] | None = None,
        max_concurrency: int | None = None,
        min_interval_ms: int | None = None,
        api: YouTubeTranscriptApi | None = None,
    ) -> None:
        self._languages = list(languages or settings.transcript_languages)
        concurrency = settings.transcript_max_concurrency if max_concurrency is None else max_concurrency
        self._semaphore = asyncio.Semaphore(max(concurrency, 1))
        interval = settings.transcript_min_interval_ms if min_interval_ms is None else min_interval_ms
        self._min_interval = max(interval, 0) / 1000.0
        self._rate_lock = asyncio.Lock()
        self._last_fetch_monotonic = 0.0
        self._api = api

    async def _throttle_requests(self) -> None:
        """Ensure a minimum delay between outbound caption requests."""

        if self._min_interval <= 0:
            return

        async with self._rate_lock:
            now = time.monotonic()
            sleep_for = (self._last_fetch_monotonic + self._min_interval) - now
            if sleep_for > 0:
                await asyncio.sleep(sleep_for)
                now = time.monotonic()
            self._last_fetch_monotonic = now

    def _blocking_fetch(self, video_id: str) -> Transcript:
        api = self._api or YouTubeTranscriptApi()
        try:
            track = select_transcript(api.list(video_id), self._languages)
            if track is None:
                raise NoCaptionsAvailable(f"No captions available for video {video_id}")
            segments = normalise_segments(track.fetch())
        except (TranscriptsDisabled, NoTranscriptFound) as exc:
            raise NoCaptionsAvailable(f"No captions available for video {video_id}") from exc
        except (_UpstreamVideoUnavailable, InvalidVideoId) as exc:
            raise VideoUnavailable(f"Video {video_id} is unavailable") from exc
        except CouldNotRetrieveTranscript as exc:
            raise TranscriptError(f"Could not retrieve captions for video {video_id}: {exc}") from exc
        except OSError as exc:
            # requests' ConnectionError and Timeout are OSError subclasses
            raise TranscriptError(f"Network error fetching captions for video {video_id}: {exc}") from exc

        if not segments:
            raise NoCaptionsAvailable(f"Captions for video {video_id} are empty")

        return Transcript(
            video_id=video_id,
            language_code=track.language_code,
            is_generated=track.is_generated,
            segments=segments,
        )

    async def extract(self, video: str) -> Transcript:
        """Fetch and normalise the transcript for a video id or URL."""

        video_id = parse_video_id(video)
        loop = asyncio.get_running_loop()
        async with self._semaphore:
            await self._throttle_requests()
            transcript = await loop.run_in_executor(None, self._blocking_fetch, video_id)

        logger.info(
            "Transcript extracted",
            extra={
                "video_id": video_id,
                "language": transcript.language_code,
                "generated": transcript.is_generated,
                "segments": len(transcript.segments),
            },
        )
        return transcript


@lru_cache
def get_transcript_extractor() -> TranscriptExtractor:
    """Process-wide extractor; the monitor and the summary endpoint share its throttle."""

    return TranscriptExtractor()
