"""Fixed-window rate limiting for HTTP origins and socket identities."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from threading import Lock

from notification_server.core.settings import Settings


class RateLimitScope(str, Enum):
    """Independent keyspaces tracked by the limiters."""

    HTTP_ORIGIN = "http-origin"
    SOCKET_IDENTITY = "socket-identity"


@dataclass(frozen=True)
class Admitted:
    """The request fits in the current window."""


@dataclass(frozen=True)
class Denied:
    """The window is exhausted; `retry_after` seconds remain until it closes."""

    retry_after: float


RateLimitDecision = Admitted | Denied


@dataclass
class RateLimitWindow:
    """Counter state for one key."""

    window_start: float
    count: int


class RateLimiter:
    """Fixed-window counter keyed by (scope, key).

    The first request for a key opens a window. Requests inside the window
    increment the counter until it reaches `ceiling`; the next one is denied
    with the time left in the window. Once more than `window_seconds` have
    elapsed since the window opened, the next request starts a fresh window.

    State lives in a single dict guarded by a lock so the limiter can be
    shared by every connection in the process.
    """

    def __init__(
        self,
        scope: RateLimitScope,
        ceiling: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ceiling <= 0:
            raise ValueError("ceiling must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.scope = scope
        self.ceiling = ceiling
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._windows: dict[tuple[str, str], RateLimitWindow] = {}
        self._lock = Lock()

    def admit(self, key: str, now: float | None = None) -> RateLimitDecision:
        """Count one request for `key` and decide whether it may proceed."""
        current = self._clock() if now is None else now
        bucket = (self.scope.value, key)
        with self._lock:
            window = self._windows.get(bucket)
            if window is None or current - window.window_start > self.window_seconds:
                self._windows[bucket] = RateLimitWindow(window_start=current, count=1)
                return Admitted()

            if window.count >= self.ceiling:
                remaining = window.window_start + self.window_seconds - current
                return Denied(retry_after=max(0.0, remaining))

            window.count += 1
            return Admitted()

    def evict(self, key: str) -> None:
        """Forget the window held for `key`."""
        with self._lock:
            self._windows.pop((self.scope.value, key), None)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return (self.scope.value, key) in self._windows

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


def socket_rate_limit_key(user_id: str | None, connection_id: str) -> str:
    """Return the socket-scope key, falling back to the connection itself.

    Unauthenticated lookups must never share a counter, so each connection
    without an identity gets its own key.
    """
    if user_id:
        return user_id
    return f"conn:{connection_id}"


def build_http_limiter(settings: Settings, clock: Callable[[], float] = time.monotonic) -> RateLimiter:
    """Return the limiter gating inbound HTTP requests by origin address."""
    return RateLimiter(
        RateLimitScope.HTTP_ORIGIN,
        ceiling=settings.http_rate_limit_max,
        window_seconds=settings.http_rate_limit_window_seconds,
        clock=clock,
    )


def build_socket_limiter(settings: Settings, clock: Callable[[], float] = time.monotonic) -> RateLimiter:
    """Return the limiter gating socket admission and events by identity."""
    return RateLimiter(
        RateLimitScope.SOCKET_IDENTITY,
        ceiling=settings.socket_rate_limit_points,
        window_seconds=float(settings.socket_rate_limit_duration),
        clock=clock,
    )
