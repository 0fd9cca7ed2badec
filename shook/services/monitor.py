"""Periodic sweep over subscribed channels."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shook.core.config import settings
from shook.core.errors import ChannelNotFoundError, UpstreamApiError
from shook.db.models import VIDEO_PROCESSED, YoutubeChannel
from shook.db.session import SessionLocal
from shook.services import channel_repository as repo
from shook.services.error_reporter import ErrorContext, ErrorReporter, build_error_reporter
from shook.services.feed_source import FeedLatestUploadSource, LatestUploadSource
from shook.services.slack_delivery import build_delivery_sink
from shook.services.summariser import get_summariser
from shook.services.transcript_extractor import get_transcript_extractor
from shook.services.video_classifier import VideoClassifier
from shook.services.video_pipeline import VideoOutcomeStatus, VideoPipeline
from shook.services.youtube_api import get_youtube_client

logger = logging.getLogger(__name__)


class MonitorState(str, enum.Enum):
    STOPPED = "stopped"
    IDLE = "idle"
    RUNNING = "running"


class ChannelOutcome(str, enum.Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    UNCHANGED = "unchanged"
    SKIPPED_LIVE = "skipped_live"
    NO_VIDEOS = "no_videos"
    API_ERROR = "api_error"
    ERROR = "error"
    MISSING = "missing"


@dataclass(slots=True)
class SweepReport:
    started_at: datetime
    finished_at: datetime | None = None
    channels: int = 0
    processed: int = 0
    failed: int = 0
    unchanged: int = 0
    skipped_live: int = 0
    api_errors: int = 0
    errors: int = 0
    deliveries_retried: int = 0

    def record(self, outcome: ChannelOutcome) -> None:
        if outcome is ChannelOutcome.PROCESSED:
            self.processed += 1
        elif outcome is ChannelOutcome.FAILED:
            self.failed += 1
        elif outcome in (ChannelOutcome.UNCHANGED, ChannelOutcome.NO_VIDEOS):
            self.unchanged += 1
        elif outcome is ChannelOutcome.SKIPPED_LIVE:
            self.skipped_live += 1
        elif outcome is ChannelOutcome.API_ERROR:
            self.api_errors += 1
        elif outcome is ChannelOutcome.ERROR:
            self.errors += 1

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class MonitorStatus:
    state: MonitorState
    active: bool
    sweep_in_progress: bool
    interval_minutes: int
    last_sweep_started_at: datetime | None = None
    last_sweep_finished_at: datetime | None = None
    last_report: SweepReport | None = None


class ChannelMonitor:
    """Checks every subscribed channel for a new upload on a fixed interval.

    A sweep that is still running when the next tick fires causes that tick
    to be skipped. Manual sweeps obey the same rule. Channel checks take a
    per-channel lock so a sweep and an immediate check after subscribing never
    work on the same channel at once.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: LatestUploadSource,
        classifier: VideoClassifier,
        pipeline: VideoPipeline,
        reporter: ErrorReporter,
        *,
        interval_minutes: int = 5,
        max_concurrency: int = 1,
        run_on_start: bool = True,
        max_attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self._source = source
        self._classifier = classifier
        self._pipeline = pipeline
        self._reporter = reporter
        self._interval_minutes = interval_minutes
        self._max_concurrency = max(max_concurrency, 1)
        self._run_on_start = run_on_start
        self._max_attempts = max(max_attempts, 1)

        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._sweep_idle = asyncio.Event()
        self._sweep_idle.set()
        self._sweep_in_progress = False
        self._channel_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._state = MonitorState.STOPPED
        self._last_sweep_started_at: datetime | None = None
        self._last_sweep_finished_at: datetime | None = None
        self._last_report: SweepReport | None = None

    @property
    def sweep_in_progress(self) -> bool:
        return self._sweep_in_progress

    @property
    def pipeline(self) -> VideoPipeline:
        return self._pipeline

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop_event.clear()
        self._state = MonitorState.IDLE
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Channel monitor started",
            extra={"interval_minutes": self._interval_minutes, "run_on_start": self._run_on_start},
        )

    async def stop(self) -> None:
        """Disarm the timer and wait for an in-progress sweep to finish."""

        self._stop_event.set()
        if self._task is not None:
            try:
                await self._task
            finally:
                self._task = None
        await self._sweep_idle.wait()
        self._state = MonitorState.STOPPED
        logger.info("Channel monitor stopped")

    def status(self) -> MonitorStatus:
        return MonitorStatus(
            state=self._state,
            active=self._task is not None and not self._task.done(),
            sweep_in_progress=self._sweep_in_progress,
            interval_minutes=self._interval_minutes,
            last_sweep_started_at=self._last_sweep_started_at,
            last_sweep_finished_at=self._last_sweep_finished_at,
            last_report=self._last_report,
        )

    async def _run(self) -> None:
        if not self._run_on_start and await self._wait_interval():
            return

        while not self._stop_event.is_set():
            await self._tick()
            if await self._wait_interval():
                return

    async def _wait_interval(self) -> bool:
        """Sleep one interval; True when stop was requested meanwhile."""

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_minutes * 60)
        except asyncio.TimeoutError:
            return False
        return True

    async def _tick(self) -> None:
        try:
            report = await self.monitor_all_channels()
        except Exception as exc:
            logger.exception("Channel sweep failed")
            await self._reporter.report(exc, ErrorContext(service="ChannelMonitor", operation="monitor_all_channels"))
            return
        if report is None:
            logger.info("Previous sweep still running; tick skipped")

    async def monitor_all_channels(self) -> SweepReport | None:
        """Run one sweep. Returns None when another sweep is already running."""

        if self._sweep_in_progress:
            return None

        self._sweep_in_progress = True
        self._sweep_idle.clear()
        self._state = MonitorState.RUNNING
        report = SweepReport(started_at=datetime.now(timezone.utc))
        self._last_sweep_started_at = report.started_at
        logger.info("Channel sweep started")

        try:
            async with self._session_factory() as session:
                channel_ids = [channel.channel_id for channel in await repo.list_monitored_channels(session)]
            report.channels = len(channel_ids)

            if self._max_concurrency == 1:
                for channel_id in channel_ids:
                    report.record(await self.safe_check_channel(channel_id))
            else:
                semaphore = asyncio.Semaphore(self._max_concurrency)

                async def _bounded(channel_id: str) -> ChannelOutcome:
                    async with semaphore:
                        return await self.safe_check_channel(channel_id)

                for outcome in await asyncio.gather(*(_bounded(channel_id) for channel_id in channel_ids)):
                    report.record(outcome)

            report.deliveries_retried = await self._retry_deliveries(report)
        finally:
            report.finished_at = datetime.now(timezone.utc)
            self._last_sweep_finished_at = report.finished_at
            self._sweep_in_progress = False
            self._sweep_idle.set()
            armed = self._task is not None and not self._stop_event.is_set()
            self._state = MonitorState.IDLE if armed else MonitorState.STOPPED

        self._last_report = report
        logger.info("Channel sweep finished", extra={"report": report.as_dict()})
        return report

    async def _retry_deliveries(self, report: SweepReport) -> int:
        try:
            async with self._session_factory() as session:
                retried = await self._pipeline.retry_pending_deliveries(session)
                await session.commit()
        except Exception as exc:
            logger.exception("Delivery retry pass failed")
            report.errors += 1
            await self._reporter.report(exc, ErrorContext(service="ChannelMonitor", operation="retry_pending_deliveries"))
            return 0
        return retried

    async def safe_check_channel(self, channel_id: str) -> ChannelOutcome:
        """``check_channel`` with every error caught at the channel boundary."""

        try:
            return await self.check_channel(channel_id)
        except Exception as exc:
            logger.exception("Channel check failed", extra={"channel_id": channel_id})
            await self._reporter.report(
                exc,
                ErrorContext(service="ChannelMonitor", operation="check_channel", channel_id=channel_id),
            )
            return ChannelOutcome.ERROR

    async def check_channel(self, channel_id: str) -> ChannelOutcome:
        async with self._channel_lock(channel_id):
            async with self._session_factory() as session:
                outcome = await self._check_locked(session, channel_id)
        logger.info("Channel checked", extra={"channel_id": channel_id, "outcome": outcome.value})
        return outcome

    @asynccontextmanager
    async def _channel_lock(self, channel_id: str) -> AsyncIterator[None]:
        """Per-channel mutex, dropped once no check holds or awaits it."""

        lock = self._channel_locks.setdefault(channel_id, asyncio.Lock())
        self._lock_users[channel_id] = self._lock_users.get(channel_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[channel_id] -= 1
            if not self._lock_users[channel_id]:
                del self._lock_users[channel_id]
                del self._channel_locks[channel_id]

    async def _check_locked(self, session: AsyncSession, channel_id: str) -> ChannelOutcome:
        channel = await repo.get_channel(session, channel_id)
        if channel is None:
            logger.warning("Channel no longer monitored", extra={"channel_id": channel_id})
            return ChannelOutcome.MISSING

        try:
            upload = await self._source.latest_upload(channel_id)
        except UpstreamApiError as exc:
            not_found = isinstance(exc, ChannelNotFoundError)
            await repo.mark_channel_error(session, channel, str(exc), deactivate=not_found)
            await session.commit()
            logger.warning(
                "Latest upload lookup failed",
                extra={"channel_id": channel_id, "kind": exc.kind, "status": exc.status},
            )
            await self._reporter.report(
                exc,
                ErrorContext(
                    service="ChannelMonitor",
                    operation="latest_upload",
                    channel_id=channel_id,
                    extra={"kind": exc.kind, "deactivated": not_found},
                ),
            )
            return ChannelOutcome.API_ERROR

        await repo.mark_channel_checked(session, channel)
        await session.commit()

        if upload is None:
            return ChannelOutcome.NO_VIDEOS
        if upload.video_id == channel.recent_video_id:
            return ChannelOutcome.UNCHANGED

        existing = await repo.get_video(session, upload.video_id)
        if existing is not None and existing.status == VIDEO_PROCESSED:
            await self._advance(session, channel, upload.video_id)
            return ChannelOutcome.UNCHANGED

        kind = await self._classifier.classify(upload.video_id)
        if not kind.is_regular:
            logger.info(
                "Skipping broadcast",
                extra={"channel_id": channel_id, "video_id": upload.video_id, "broadcast": kind.value},
            )
            await self._advance(session, channel, upload.video_id)
            return ChannelOutcome.SKIPPED_LIVE

        outcome = await self._pipeline.process_video(session, channel, upload)
        if outcome.status is VideoOutcomeStatus.PROCESSED:
            await self._advance(session, channel, upload.video_id)
            return ChannelOutcome.PROCESSED
        if outcome.status is VideoOutcomeStatus.ALREADY_PROCESSED:
            await self._advance(session, channel, upload.video_id)
            return ChannelOutcome.UNCHANGED

        video = outcome.video
        if video is not None and video.attempt_count >= self._max_attempts:
            logger.warning(
                "Giving up on video after repeated failures",
                extra={"channel_id": channel_id, "video_id": video.video_id, "attempts": video.attempt_count},
            )
            await self._advance(session, channel, upload.video_id)
        return ChannelOutcome.FAILED

    async def _advance(self, session: AsyncSession, channel: YoutubeChannel, video_id: str) -> None:
        await repo.update_recent_video(session, channel, video_id)
        await session.commit()


_monitor: ChannelMonitor | None = None


def build_channel_monitor() -> ChannelMonitor:
    """Wire the production collaborators from settings."""

    reporter = build_error_reporter()
    youtube = get_youtube_client()
    source: LatestUploadSource = youtube or FeedLatestUploadSource(skip_shorts=settings.skip_shorts)
    if youtube is None:
        logger.info("No YouTube API key configured; monitoring through RSS feeds")

    pipeline = VideoPipeline(get_transcript_extractor(), get_summariser(), build_delivery_sink(), reporter)
    return ChannelMonitor(
        SessionLocal,
        source,
        VideoClassifier(youtube, reporter),
        pipeline,
        reporter,
        interval_minutes=settings.monitor_interval_minutes,
        max_concurrency=settings.monitor_max_concurrency,
        run_on_start=settings.monitor_run_on_start,
        max_attempts=settings.video_max_attempts,
    )


def get_channel_monitor() -> ChannelMonitor:
    global _monitor
    if _monitor is None:
        _monitor = build_channel_monitor()
    return _monitor


def start_channel_monitor() -> None:
    """Start the channel monitor."""

    get_channel_monitor().start()


async def stop_channel_monitor() -> None:
    """Stop the channel monitor."""

    if _monitor is not None:
        await _monitor.stop()
