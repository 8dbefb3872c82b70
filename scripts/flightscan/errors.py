"""
Error taxonomy for fare searches.

Task-level errors are caught by the engine and turned into TaskFailure
entries; only InvalidSearchRequest ever reaches the caller as an exception.
"""

from __future__ import annotations

from .schema import FailureKind


class FlightScanError(Exception):
    """Base class for every error raised by this package."""


class InvalidSearchRequest(FlightScanError, ValueError):
    """The caller submitted a malformed SearchRequest."""


class FareTaskError(FlightScanError):
    kind: FailureKind = FailureKind.UNEXPECTED
    retryable: bool = False

    def __init__(self, message: str, airline: str = ""):
        self.message = message
        self.airline = airline
        super().__init__(message)


class PoolExhausted(FareTaskError):
    kind = FailureKind.POOL_EXHAUSTED


class NavigationTimeout(FareTaskError):
    kind = FailureKind.NAVIGATION_TIMEOUT
    retryable = True


class LayoutChanged(FareTaskError):
    """Expected page structure is missing; the adapter needs maintenance."""

    kind = FailureKind.LAYOUT_CHANGED


class AuthenticationFailed(FareTaskError):
    kind = FailureKind.AUTHENTICATION_FAILED


class SourceUnavailable(FareTaskError):
    kind = FailureKind.SOURCE_UNAVAILABLE

    def __init__(self, message: str, airline: str = "", status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, airline)


class RateLimited(FareTaskError):
    kind = FailureKind.RATE_LIMITED

    def __init__(self, service: str):
        self.service = service
        super().__init__(f"Rate limit exceeded for {service}")


class DeadlineExceeded(FareTaskError):
    kind = FailureKind.DEADLINE_EXCEEDED
