"""
Rate Guard
==========
Per-identifier sliding window request throttling, in memory or on Redis.
"""

# Re-export all public APIs
from .models import RateLimitResult, RateLimitInfo
from .in_memory import SlidingWindowGuard
from .redis_limiter import RedisSlidingWindowGuard, SLIDING_WINDOW_SCRIPT

__all__ = [
    # Models
    "RateLimitResult",
    "RateLimitInfo",
    # Guards
    "SlidingWindowGuard",
    "RedisSlidingWindowGuard",
    # Scripts
    "SLIDING_WINDOW_SCRIPT",
]
