"""Exception taxonomy shared by the monitoring pipeline."""

from __future__ import annotations

QUOTA_REASONS = frozenset(
    {"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded", "userRateLimitExceeded"}
)


class ShookError(Exception):
    """Base class for pipeline errors."""


class UpstreamApiError(ShookError):
    """Raised when the video metadata API (or feed) cannot answer."""

    def __init__(self, message: str, *, status: int | None = None, reason: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason

    @property
    def kind(self) -> str:
        return "upstream_error"


class QuotaExceededError(UpstreamApiError):
    """The API key ran out of quota or hit a rate limit."""

    @property
    def kind(self) -> str:
        return "quota_exceeded"


class ChannelNotFoundError(UpstreamApiError):
    """The channel (or its uploads playlist/feed) no longer exists."""

    @property
    def kind(self) -> str:
        return "not_found"


class TranscriptError(ShookError):
    """Caption retrieval failed."""


class NoCaptionsAvailable(TranscriptError):
    """The video has no usable caption track."""


class VideoUnavailable(TranscriptError):
    """The video is private, deleted or otherwise not retrievable."""


class SummarizationFailed(ShookError):
    """The summariser could not produce text for a transcript."""


class DeliveryFailed(ShookError):
    """A summary could not be posted to a delivery destination."""


class ChannelResolutionError(ValueError):
    """Raised when a channel identifier cannot be normalised."""
