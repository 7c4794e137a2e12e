"""API-key checks and the per-client request rate limiter."""

from __future__ import annotations

import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass

from .errors import RateLimitExceeded, Unauthorized

RATE_WINDOW_S = 60.0


def extract_api_key(authorization: str | None, x_api_key: str | None) -> str | None:
    if authorization:
        return authorization.removeprefix("Bearer ").strip() or None
    return x_api_key


def check_api_key(presented: str | None, expected: str) -> None:
    if not presented or not expected or not hmac.compare_digest(presented, expected):
        raise Unauthorized()


@dataclass(slots=True)
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed one-minute window per client key, kept in memory."""

    def __init__(
        self, limit_per_minute: int, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.limit_per_minute = limit_per_minute
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def hit(self, client_key: str) -> None:
        if self.limit_per_minute <= 0:
            return
        now = self._clock()
        window = self._windows.get(client_key)
        if window is None or now > window.reset_at:
            self._windows[client_key] = _Window(count=1, reset_at=now + RATE_WINDOW_S)
            self._prune(now)
            return
        if window.count >= self.limit_per_minute:
            raise RateLimitExceeded(
                "Rate limit exceeded",
                details={
                    "limit": self.limit_per_minute,
                    "windowSeconds": int(RATE_WINDOW_S),
                    "retryAfterSeconds": max(0, round(window.reset_at - now)),
                },
            )
        window.count += 1

    def _prune(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now > window.reset_at]
        for key in expired:
            del self._windows[key]
