"""Error taxonomy for the Prompt Optimiser service.

Every failure the service surfaces derives from ``OptimiserError`` and
carries a failure category, an HTTP status and a message that is safe to
show to the end user. Internal detail (upstream bodies, raw model text) is
never placed in ``public_message``.

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

from enum import Enum


class FailureCategory(str, Enum):
    """Failure categories reported to callers."""

    RATE_LIMITED = "rate-limited"
    INVALID_REQUEST = "invalid-request"
    UPSTREAM_FAILURE = "upstream-failure"
    SERVER_MISCONFIGURATION = "server-misconfiguration"
    PARSE_FAILURE = "parse-failure"


GENERIC_SERVER_ERROR = "Server configuration error. Please try again later."
GENERIC_RETRY_ERROR = "Failed to process request. Please try again."


class OptimiserError(Exception):
    """Base class for all service errors."""

    category: FailureCategory = FailureCategory.UPSTREAM_FAILURE
    status_code: int = 500
    default_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: str | None = None):
        self.public_message = message or self.default_message
        super().__init__(self.public_message)

    def to_dict(self) -> dict[str, str]:
        """Convert to the wire error object."""
        return {"error": self.public_message, "category": self.category.value}


class ValidationError(OptimiserError, ValueError):
    """Bad, missing or oversized input. Never retried automatically."""

    category = FailureCategory.INVALID_REQUEST
    status_code = 400
    default_message = "Please provide more detail."


class InvalidRequestError(ValidationError):
    """Raised by the orchestrator when an inbound request is malformed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class RateLimitedError(OptimiserError):
    """Raised when a client identity exceeds its request budget."""

    category = FailureCategory.RATE_LIMITED
    status_code = 429
    default_message = "Too many requests. Please wait a moment and try again."

    def __init__(self, identity: str, retry_after: float = 0):
        self.identity = identity
        self.retry_after = retry_after
        super().__init__()


class ServerMisconfigurationError(OptimiserError):
    """Raised when the service cannot reach the model provider at all."""

    category = FailureCategory.SERVER_MISCONFIGURATION
    status_code = 500
    default_message = GENERIC_SERVER_ERROR


class UpstreamAuthError(ServerMisconfigurationError):
    """The model provider rejected our credentials."""


class UpstreamFailure(OptimiserError):
    """Transient failure talking to the model provider.

    Eligible for user-triggered retry. ``status`` is the provider's HTTP
    status when one was received, or None for transport errors and timeouts.
    """

    category = FailureCategory.UPSTREAM_FAILURE
    default_message = GENERIC_RETRY_ERROR

    def __init__(self, status: int | None = None, message: str | None = None):
        self.status = status
        if status == 429 and message is None:
            message = "API rate limit exceeded. Please try again in a few minutes."
        super().__init__(message)

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if self.status is not None and 400 <= self.status < 600:
            return self.status
        return 502


class ExtractionError(OptimiserError):
    """The model produced output that could not be turned into a JSON object.

    ``reason`` is a short failure category ("no JSON found", "parse failed");
    the raw content is never attached.
    """

    category = FailureCategory.PARSE_FAILURE
    status_code = 500
    default_message = "Failed to parse response. Please try again."

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__()

    def __str__(self) -> str:
        return self.reason


__all__ = [
    "FailureCategory",
    "OptimiserError",
    "ValidationError",
    "InvalidRequestError",
    "RateLimitedError",
    "ServerMisconfigurationError",
    "UpstreamAuthError",
    "UpstreamFailure",
    "ExtractionError",
]
