"""Error types raised across the notification server."""

from __future__ import annotations

from typing import Any


class NotificationServerError(RuntimeError):
    """Base exception for notification server failures."""


class AuthenticationError(NotificationServerError):
    """Raised when a credential is missing, malformed or expired.

    The connection is refused and the server never retries on its own.
    """


class RateLimitExceeded(NotificationServerError):
    """Raised when a caller exhausted its window.

    Attributes:
        retry_after: Seconds until the current window closes.
    """

    def __init__(self, retry_after: float, message: str = "Too many requests, please try again later") -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ValidationError(NotificationServerError):
    """Raised when request fields are missing or malformed.

    Surfaced to the immediate caller; never logged as a system fault.
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [{"loc": [], "msg": message, "type": "value_error"}]


class StorageError(NotificationServerError):
    """Raised when the delivery ledger cannot read or write."""


class BusUnavailable(NotificationServerError):
    """Raised when the shared broadcast bus cannot be reached."""
