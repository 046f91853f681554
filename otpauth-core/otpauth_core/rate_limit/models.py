"""
Rate Guard Models
=================
Decision objects shared by the in-memory and Redis guards.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RateLimitResult(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    DEGRADED = "degraded"  # Backend unavailable, request let through


def seconds_until_free(window_seconds: float, age_of_oldest: float) -> int:
    """Whole seconds until the oldest admitted request leaves the window, at least 1."""
    return max(1, math.ceil(window_seconds - age_of_oldest))


@dataclass(frozen=True)
class RateLimitInfo:
    """One guard decision for one identifier."""
    allowed: bool
    remaining: int
    limit: int
    reset_at: int  # Unix timestamp when a slot frees up
    retry_after: Optional[int] = None
    degraded: bool = False

    @classmethod
    def admitted(cls, limit: int, remaining: int, reset_at: float) -> "RateLimitInfo":
        return cls(allowed=True, remaining=remaining, limit=limit, reset_at=int(reset_at))

    @classmethod
    def denied(cls, limit: int, now: float, retry_after: int) -> "RateLimitInfo":
        return cls(
            allowed=False,
            remaining=0,
            limit=limit,
            reset_at=int(now + retry_after),
            retry_after=retry_after,
        )

    @classmethod
    def fail_open(cls, limit: int, now: float, window_seconds: float) -> "RateLimitInfo":
        return cls(
            allowed=True,
            remaining=limit,
            limit=limit,
            reset_at=int(now + window_seconds),
            degraded=True,
        )

    @property
    def result(self) -> RateLimitResult:
        if self.degraded:
            return RateLimitResult.DEGRADED
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED
