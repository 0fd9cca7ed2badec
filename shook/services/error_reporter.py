"""Operational error reporting for the monitoring pipeline."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from slack_sdk import WebClient

from shook.core.config import settings
from shook.services.slack_delivery import get_slack_client
from shook.services.template_renderer import render_error_report

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ErrorContext:
    """Structured context attached to every reported failure."""

    service: str
    operation: str
    channel_id: str | None = None
    video_id: str | None = None
    user_id: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class ErrorReporter(Protocol):
    async def report(self, error: BaseException, context: ErrorContext) -> None:
        """Forward a caught failure. Implementations never raise."""


class LoggingErrorReporter:
    """Reporter that only writes to the application log."""

    async def report(self, error: BaseException, context: ErrorContext) -> None:
        logger.error(
            "%s.%s failed: %s",
            context.service,
            context.operation,
            error,
            extra={"error_context": context.as_dict(), "error_type": type(error).__name__},
        )


class SlackErrorReporter(LoggingErrorReporter):
    """Logs the failure and posts an alert to the operations Slack channel."""

    def __init__(self, client: WebClient, channel_id: str) -> None:
        self._client = client
        self._channel_id = channel_id

    async def report(self, error: BaseException, context: ErrorContext) -> None:
        await super().report(error, context)
        text = render_error_report(error=error, context=context.as_dict())
        try:
            await asyncio.to_thread(self._client.chat_postMessage, channel=self._channel_id, text=text)
        except Exception:  # noqa: BLE001 - alerting must never break the pipeline
            logger.exception("Failed to post error report to Slack", extra={"channel": self._channel_id})


def build_error_reporter() -> ErrorReporter:
    if settings.slack_bot_token and settings.slack_error_channel_id:
        return SlackErrorReporter(get_slack_client(), settings.slack_error_channel_id)
    return LoggingErrorReporter()
