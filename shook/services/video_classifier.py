"""Classify uploads as regular, live or upcoming broadcasts."""

from __future__ import annotations

import enum
import logging

from shook.core.errors import QuotaExceededError, UpstreamApiError
from shook.services.error_reporter import ErrorContext, ErrorReporter
from shook.services.youtube_api import YouTubeDataClient

logger = logging.getLogger(__name__)


class BroadcastKind(str, enum.Enum):
    LIVE = "live"
    UPCOMING = "upcoming"
    NONE = "none"

    @property
    def is_regular(self) -> bool:
        return self is BroadcastKind.NONE


class VideoClassifier:
    """Looks up ``liveBroadcastContent``; any doubt resolves to a regular video."""

    def __init__(self, youtube: YouTubeDataClient | None, reporter: ErrorReporter) -> None:
        self._youtube = youtube
        self._reporter = reporter

    async def classify(self, video_id: str) -> BroadcastKind:
        if self._youtube is None:
            logger.debug("No Data API client; treating video as regular", extra={"video_id": video_id})
            return BroadcastKind.NONE

        try:
            raw = await self._youtube.broadcast_content(video_id)
        except QuotaExceededError as exc:
            logger.warning(
                "Quota exhausted while classifying video; treating as regular",
                extra={"video_id": video_id, "reason": exc.reason},
            )
            await self._report(exc, video_id, kind=exc.kind)
            return BroadcastKind.NONE
        except UpstreamApiError as exc:
            logger.warning(
                "Classification lookup failed; treating as regular",
                extra={"video_id": video_id, "status": exc.status, "reason": exc.reason},
            )
            await self._report(exc, video_id, kind=exc.kind)
            return BroadcastKind.NONE

        if raw is None:
            logger.warning("Video not found during classification; treating as regular", extra={"video_id": video_id})
            await self._report(LookupError(f"Video {video_id} not found"), video_id, kind="not_found")
            return BroadcastKind.NONE

        try:
            kind = BroadcastKind(raw)
        except ValueError:
            logger.info("Unknown broadcast content %r; treating as regular", raw, extra={"video_id": video_id})
            return BroadcastKind.NONE

        if not kind.is_regular:
            logger.info("Video is a %s broadcast", kind.value, extra={"video_id": video_id})
        return kind

    async def _report(self, error: BaseException, video_id: str, *, kind: str) -> None:
        await self._reporter.report(
            error,
            ErrorContext(
                service="VideoClassifier",
                operation="classify",
                video_id=video_id,
                extra={"kind": kind, "defaulted_to": BroadcastKind.NONE.value},
            ),
        )
