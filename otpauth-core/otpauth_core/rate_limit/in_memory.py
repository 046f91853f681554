"""
In-Memory Sliding Window Guard
==============================
Per-identifier request throttling kept in process memory.

State is process-local: with several instances each one counts on its own.
Use RedisSlidingWindowGuard when the guard must be shared.
"""

import time
from typing import Callable, Dict, List

import structlog

from otpauth_core.errors import RateLimitError
from .models import RateLimitInfo, seconds_until_free

logger = structlog.get_logger(__name__)


class SlidingWindowGuard:
    """
    Admit at most ``max_requests`` per key inside any ``window_seconds`` span.

    A denied request is not recorded, so it does not push the window out.
    """

    def __init__(
        self,
        max_requests: int = 3,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            max_requests: Requests admitted per window
            window_seconds: Window size in seconds
            clock: Returns the current Unix time in seconds
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, List[float]] = {}

    def __len__(self) -> int:
        return len(self._requests)

    def _live(self, key: str, now: float) -> List[float]:
        return [t for t in self._requests.get(key, []) if now - t < self.window_seconds]

    def _retry_after(self, timestamps: List[float], now: float) -> int:
        if not timestamps:
            return 0
        return seconds_until_free(self.window_seconds, now - min(timestamps))

    def check(self, key: str) -> RateLimitInfo:
        """
        Decide on one request and record it if admitted.

        Args:
            key: Identifier being throttled

        Returns:
            RateLimitInfo with decision and quota
        """
        now = self._clock()
        timestamps = self._live(key, now)

        if len(timestamps) >= self.max_requests:
            self._requests[key] = timestamps
            return RateLimitInfo.denied(
                self.max_requests, now, self._retry_after(timestamps, now)
            )

        timestamps.append(now)
        self._requests[key] = timestamps
        return RateLimitInfo.admitted(
            self.max_requests,
            remaining=self.max_requests - len(timestamps),
            reset_at=min(timestamps) + self.window_seconds,
        )

    async def hit(self, key: str) -> RateLimitInfo:
        """Like ``check`` but raises RateLimitError when denied."""
        info = self.check(key)
        if not info.allowed:
            raise RateLimitError(retry_after=info.retry_after)
        return info

    def retry_after(self, key: str) -> int:
        """Seconds until ``key`` gets a free slot; 0 if it has one now."""
        now = self._clock()
        timestamps = self._live(key, now)
        if len(timestamps) < self.max_requests:
            return 0
        return self._retry_after(timestamps, now)

    def reset(self, key: str) -> None:
        self._requests.pop(key, None)

    def cleanup(self) -> int:
        """Drop expired timestamps and empty keys. Returns keys removed."""
        now = self._clock()
        removed = 0
        for key in list(self._requests):
            live = self._live(key, now)
            if live:
                self._requests[key] = live
            else:
                del self._requests[key]
                removed += 1
        if removed:
            logger.debug("rate_guard.cleanup", removed=removed, tracked=len(self._requests))
        return removed
