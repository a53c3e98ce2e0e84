from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    INVALID_REQUEST = "INVALID_REQUEST"
    URL_NOT_ALLOWED = "URL_NOT_ALLOWED"
    RATE_LIMITED = "RATE_LIMITED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TrackerError(Exception):
    """Raised by request handlers for all expected failure conditions.

    Caught by server.py and serialised into the ``{error, message}`` JSON
    body. Never catch this inside business logic; let it propagate to the
    HTTP layer so the client receives a structured error with the right status.
    """

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def headers(self) -> dict[str, str]:
        return {}

    def to_dict(self) -> dict:
        return {"error": self.kind.value, "message": self.message}


class ValidationError(TrackerError):
    """Missing or malformed request parameters."""

    kind = ErrorKind.INVALID_REQUEST
    status_code = 400


class UrlNotAllowedError(ValidationError):
    """Target URL is outside the upstream allow-list."""

    kind = ErrorKind.URL_NOT_ALLOWED


class RateLimitError(TrackerError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429
    retryable = True

    def __init__(self, message: str = "Too many requests", *, retry_after: float = 0) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(max(1, round(self.retry_after)))}


class UpstreamError(TrackerError):
    """Non-2xx status or transport failure from the upstream feed host."""

    kind = ErrorKind.UPSTREAM_ERROR
    status_code = 500
    retryable = True


class UpstreamTimeoutError(UpstreamError):
    kind = ErrorKind.UPSTREAM_TIMEOUT


class StoreUnavailableError(Exception):
    """The shared key-value store could not be reached.

    Internal only: the rate limiter and proxy cache each decide how to
    degrade, so this never reaches a client directly.
    """


class FeedError(Exception):
    """Base class for feed client failures."""


class FeedParseError(FeedError):
    """The feed document is not well-formed XML."""


class FeedUnavailableError(FeedError):
    """The feed could not be fetched after all retries were exhausted."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.message = message
        self.attempts = attempts
