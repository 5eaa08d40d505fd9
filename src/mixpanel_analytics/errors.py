"""Error types for the Mixpanel analytics client.

Only InvalidArgumentError is raised to callers. Every other error is built
and handed to the error reporter (the ``on_error`` callback, or the package
logger when no callback is configured) and never escapes a background flush.
"""

from typing import Callable, Optional


class AnalyticsError(Exception):
    """Base exception for analytics delivery errors."""

    pass


class InvalidArgumentError(AnalyticsError, ValueError):
    """Raised when a required argument for building an event is missing."""

    @classmethod
    def not_null(cls, name: str) -> "InvalidArgumentError":
        return cls(f"Must not be null: {name}")


class TransportError(AnalyticsError):
    """Network failure or non-200 response from the analytics endpoint."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ResponseValidationError(AnalyticsError):
    """HTTP 200 response whose body reports an API-level failure."""

    def __init__(self, message: str, url: str, body: Optional[str] = None):
        super().__init__(message)
        self.url = url
        self.body = body


class StorageError(AnalyticsError):
    """Reading or writing the persisted queue failed."""

    pass


class FlushError(AnalyticsError):
    """Unexpected exception raised by a scheduled flush cycle."""

    pass


ErrorCallback = Callable[[AnalyticsError], None]
