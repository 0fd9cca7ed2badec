"""Slack delivery of video summaries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Protocol

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from shook.core.config import settings
from shook.core.errors import DeliveryFailed
from shook.db.models import DELIVERY_DELIVERED, DELIVERY_FAILED, DELIVERY_PENDING, Delivery, Video
from shook.services.template_renderer import render_summary_message

logger = logging.getLogger(__name__)


class DeliverySink(Protocol):
    async def deliver(
        self,
        destination: str,
        video: Video,
        summary: str,
        *,
        channel_title: str | None = None,
    ) -> None:
        """Post the summary to ``destination``; raise DeliveryFailed on failure."""


@lru_cache
def get_slack_client() -> WebClient:
    if not settings.slack_bot_token:
        raise ValueError("Slack bot token is not configured")
    return WebClient(token=settings.slack_bot_token)


class SlackDeliverySink:
    """Posts summaries with ``chat.postMessage``."""

    def __init__(self, client: WebClient) -> None:
        self._client = client

    async def deliver(
        self,
        destination: str,
        video: Video,
        summary: str,
        *,
        channel_title: str | None = None,
    ) -> None:
        message = render_summary_message(video=video, summary=summary, channel_title=channel_title)

        def _send() -> None:
            self._client.chat_postMessage(channel=destination, text=message.text, blocks=message.blocks)

        try:
            await asyncio.to_thread(_send)
        except SlackApiError as exc:
            error = exc.response.get("error") if exc.response is not None else None
            raise DeliveryFailed(f"Slack rejected message for {destination}: {error or exc}") from exc
        except Exception as exc:  # network errors surface from the SDK as plain exceptions
            raise DeliveryFailed(f"Slack delivery to {destination} failed: {exc}") from exc

        logger.info(
            "Summary delivered to Slack",
            extra={"destination": destination, "video_id": video.video_id},
        )


class LoggingDeliverySink:
    """Placeholder sink that just logs the message."""

    async def deliver(
        self,
        destination: str,
        video: Video,
        summary: str,
        *,
        channel_title: str | None = None,
    ) -> None:
        message = render_summary_message(video=video, summary=summary, channel_title=channel_title)
        logger.info(
            "Delivering summary (dummy)",
            extra={"destination": destination, "video_id": video.video_id, "length": len(message.text)},
        )


def build_delivery_sink() -> DeliverySink:
    if settings.slack_bot_token:
        return SlackDeliverySink(get_slack_client())
    logger.info("No Slack bot token configured; using logging delivery sink")
    return LoggingDeliverySink()


@dataclass(frozen=True, slots=True)
class DeliveryRetryPolicy:
    """How often and how far apart a failed Slack post is retried."""

    max_retry: int = 4
    backoff_minutes: int = 5

    @classmethod
    def from_settings(cls) -> DeliveryRetryPolicy:
        return cls(max_retry=settings.delivery_max_retry, backoff_minutes=settings.delivery_backoff_minutes)

    def delay(self, retry_count: int) -> timedelta:
        """Backoff doubling from ``backoff_minutes`` on the first retry."""

        exponent = max(retry_count - 1, 0)
        return timedelta(minutes=max(self.backoff_minutes, 1) * (2**exponent))

    def record_failure(self, delivery: Delivery, error: Exception, *, now: datetime | None = None) -> None:
        delivery.retry_count += 1
        delivery.last_error = str(error) or type(error).__name__
        if delivery.retry_count >= self.max_retry:
            delivery.status = DELIVERY_FAILED
            delivery.next_retry_at = None
            return

        delivery.status = DELIVERY_PENDING
        delivery.next_retry_at = (now or datetime.now(timezone.utc)) + self.delay(delivery.retry_count)


def record_delivery_success(delivery: Delivery, *, now: datetime | None = None) -> None:
    delivery.status = DELIVERY_DELIVERED
    delivery.retry_count = 0
    delivery.next_retry_at = None
    delivery.last_error = None
    delivery.delivered_at = now or datetime.now(timezone.utc)
