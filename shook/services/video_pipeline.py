"""Per-video processing: captions, summary, persistence and fan-out delivery."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from shook.core.errors import DeliveryFailed, SummarizationFailed, TranscriptError
from shook.db.models import (
    DELIVERY_PENDING,
    DELIVERY_SKIPPED,
    VIDEO_PROCESSED,
    Delivery,
    User,
    Video,
    YoutubeChannel,
)
from shook.services import channel_repository as repo
from shook.services.error_reporter import ErrorContext, ErrorReporter
from shook.services.slack_delivery import DeliveryRetryPolicy, DeliverySink, record_delivery_success
from shook.services.summariser import Summariser
from shook.services.transcript_extractor import TranscriptExtractor
from shook.services.youtube_api import LatestUpload

logger = logging.getLogger(__name__)

NO_DESTINATION = "User has no Slack destination configured"


class VideoOutcomeStatus(str, enum.Enum):
    PROCESSED = "processed"
    FAILED = "failed"
    ALREADY_PROCESSED = "already_processed"


@dataclass(slots=True)
class VideoOutcome:
    status: VideoOutcomeStatus
    video: Video | None
    error: str | None = None


class VideoNotFound(LookupError):
    pass


class VideoNotProcessed(ValueError):
    pass


class VideoPipeline:
    """Turns a newly seen upload into a stored summary and Slack messages."""

    def __init__(
        self,
        extractor: TranscriptExtractor,
        summariser: Summariser,
        sink: DeliverySink,
        reporter: ErrorReporter,
        *,
        retry_policy: DeliveryRetryPolicy | None = None,
    ) -> None:
        self._extractor = extractor
        self._summariser = summariser
        self._sink = sink
        self._reporter = reporter
        self._retry_policy = retry_policy or DeliveryRetryPolicy.from_settings()

    async def process_video(self, session: AsyncSession, channel: YoutubeChannel, upload: LatestUpload) -> VideoOutcome:
        video = await repo.begin_video(session, upload)
        await session.commit()
        if video is None:
            logger.info("Video already processed", extra={"video_id": upload.video_id})
            return VideoOutcome(VideoOutcomeStatus.ALREADY_PROCESSED, await repo.get_video(session, upload.video_id))

        logger.info(
            "Processing video",
            extra={"video_id": video.video_id, "channel_id": channel.channel_id, "attempt": video.attempt_count},
        )

        try:
            transcript = await self._extractor.extract(video.video_id)
            summary = await self._summariser.summarise(transcript.full_text, title=video.title)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            await repo.fail_video(session, video, reason)
            await session.commit()
            extra = {"video_id": video.video_id, "attempt": video.attempt_count, "error": reason}
            if isinstance(exc, (TranscriptError, SummarizationFailed)):
                logger.warning("Video processing failed", extra=extra)
            else:
                logger.exception("Unexpected error while processing video", extra=extra)
            await self._reporter.report(
                exc,
                ErrorContext(
                    service="VideoPipeline",
                    operation="process_video",
                    channel_id=channel.channel_id,
                    video_id=video.video_id,
                    extra={"attempt": video.attempt_count, "error_type": type(exc).__name__},
                ),
            )
            return VideoOutcome(VideoOutcomeStatus.FAILED, video, reason)

        completed = await repo.complete_video(
            session,
            video,
            summary=summary,
            transcript=transcript.as_timed_text(),
            transcript_language=transcript.language_code,
        )
        await session.commit()
        if not completed:
            logger.warning("Video changed state during processing", extra={"video_id": video.video_id})
            if video.status == VIDEO_PROCESSED:
                return VideoOutcome(VideoOutcomeStatus.ALREADY_PROCESSED, video)
            return VideoOutcome(VideoOutcomeStatus.FAILED, video, video.error_message)

        video_id, channel_id = video.video_id, channel.channel_id
        try:
            await self.deliver_to_subscribers(session, channel, video)
            await session.commit()
        except Exception as exc:
            # Send errors are recorded per user in _attempt; only storage errors reach here.
            await session.rollback()
            logger.exception("Delivery fan-out failed", extra={"video_id": video_id})
            await self._reporter.report(
                exc,
                ErrorContext(
                    service="VideoPipeline",
                    operation="deliver_to_subscribers",
                    channel_id=channel_id,
                    video_id=video_id,
                ),
            )
            await session.refresh(channel)
            await session.refresh(video)

        return VideoOutcome(VideoOutcomeStatus.PROCESSED, video)

    async def deliver_to_subscribers(
        self, session: AsyncSession, channel: YoutubeChannel, video: Video
    ) -> list[Delivery]:
        """Deliver a processed summary to every subscriber not yet served."""

        deliveries: list[Delivery] = []
        for user in await repo.find_subscribers(session, channel.channel_id):
            delivery = await repo.get_or_create_delivery(session, video_id=video.video_id, user_id=user.id)
            if delivery.status != DELIVERY_PENDING:
                continue
            await self._attempt(delivery, user, video, channel_title=channel.title)
            deliveries.append(delivery)

        await session.flush()
        return deliveries

    async def retry_pending_deliveries(self, session: AsyncSession) -> int:
        """Retry deliveries whose backoff has elapsed; returns the number attempted."""

        attempted = 0
        for delivery in await repo.list_due_deliveries(session, now=datetime.now(timezone.utc)):
            video = delivery.video
            if video is None or video.status != VIDEO_PROCESSED or delivery.user is None:
                continue
            channel_title = video.channel.title if video.channel else None
            await self._attempt(delivery, delivery.user, video, channel_title=channel_title)
            attempted += 1

        await session.flush()
        if attempted:
            logger.info("Retried pending deliveries", extra={"count": attempted})
        return attempted

    async def resend_video(self, session: AsyncSession, video_id: str) -> list[Delivery]:
        """Send a processed summary again to all current subscribers."""

        video = await repo.get_video(session, video_id)
        if video is None:
            raise VideoNotFound(f"Video {video_id} not found")
        if video.status != VIDEO_PROCESSED:
            raise VideoNotProcessed(f"Video {video_id} has not been processed (status={video.status})")

        channel = await repo.get_channel(session, video.channel_id)
        channel_title = channel.title if channel else None

        deliveries: list[Delivery] = []
        for user in await repo.find_subscribers(session, video.channel_id):
            delivery = await repo.get_or_create_delivery(session, video_id=video.video_id, user_id=user.id)
            delivery.status = DELIVERY_PENDING
            delivery.retry_count = 0
            delivery.next_retry_at = None
            await self._attempt(delivery, user, video, channel_title=channel_title)
            deliveries.append(delivery)

        await session.flush()
        logger.info("Video resent", extra={"video_id": video_id, "deliveries": len(deliveries)})
        return deliveries

    async def _attempt(self, delivery: Delivery, user: User, video: Video, *, channel_title: str | None) -> None:
        if not user.slack_channel_id:
            delivery.status = DELIVERY_SKIPPED
            delivery.last_error = NO_DESTINATION
            logger.info(
                "Skipping delivery; no Slack destination",
                extra={"video_id": video.video_id, "user_id": user.id},
            )
            return

        try:
            await self._sink.deliver(user.slack_channel_id, video, video.summary or "", channel_title=channel_title)
        except Exception as exc:
            self._retry_policy.record_failure(delivery, exc)
            extra = {"video_id": video.video_id, "user_id": user.id, "retry_count": delivery.retry_count}
            if isinstance(exc, DeliveryFailed):
                logger.warning("Delivery failed", extra=extra)
            else:
                logger.exception("Unexpected error while delivering summary", extra=extra)
            await self._reporter.report(
                exc,
                ErrorContext(
                    service="VideoPipeline",
                    operation="deliver",
                    channel_id=video.channel_id,
                    video_id=video.video_id,
                    user_id=user.id,
                    extra={"retry_count": delivery.retry_count, "status": delivery.status},
                ),
            )
            return

        record_delivery_success(delivery)
        logger.info("Delivered summary", extra={"video_id": video.video_id, "user_id": user.id})
