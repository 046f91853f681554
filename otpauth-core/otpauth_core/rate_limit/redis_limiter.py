"""
Redis Sliding Window Guard
==========================
Sliding window guard on Redis sorted sets, for deployments that run more
than one instance. A Lua script keeps prune/count/add atomic.
"""

import math
import time
import uuid
from typing import Callable, Optional

import structlog
from redis.exceptions import RedisError

from otpauth_core.errors import RateLimitError
from .models import RateLimitInfo

logger = structlog.get_logger(__name__)

# Returns {allowed, remaining, score}; score is the oldest admitted timestamp
# when admitted and the retry-after seconds when denied. Floats travel as
# strings since Redis truncates Lua numbers to integers.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local count = redis.call('ZCARD', key)

if count >= limit then
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local retry_after = window
    if #oldest > 0 then
        retry_after = tonumber(oldest[2]) + window - now
    end
    return {0, 0, tostring(retry_after)}
end

redis.call('ZADD', key, now, member)
redis.call('EXPIRE', key, math.ceil(window) * 2)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {1, limit - count - 1, oldest[2]}
"""


class RedisSlidingWindowGuard:
    """
    Redis-backed counterpart of SlidingWindowGuard.

    Fails open: if Redis is unreachable the request is admitted and the
    decision is marked degraded. The store-backed cooldown still applies.
    """

    def __init__(
        self,
        redis_client,
        max_requests: int = 3,
        window_seconds: float = 60,
        prefix: str = "otpauth:ratelimit",
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            redis_client: Async Redis client
            max_requests: Requests admitted per window
            window_seconds: Window size in seconds
            prefix: Key namespace
        """
        self.redis = redis_client
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.prefix = prefix
        self._clock = clock
        self._script_sha: Optional[str] = None

    def get_key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    async def _ensure_script(self) -> str:
        """Load Lua script into Redis if needed."""
        if self._script_sha is None:
            self._script_sha = await self.redis.script_load(SLIDING_WINDOW_SCRIPT)
        return self._script_sha

    async def check(self, key: str) -> RateLimitInfo:
        """Decide on one request and record it if admitted."""
        now = self._clock()
        try:
            script_sha = await self._ensure_script()
            allowed, remaining, score = await self.redis.evalsha(
                script_sha,
                1,
                self.get_key(key),
                self.max_requests,
                self.window_seconds,
                now,
                f"{now}:{uuid.uuid4().hex[:8]}",
            )
        except RedisError as e:
            # Script cache may have been flushed; reload on next call
            self._script_sha = None
            logger.error("rate_guard.redis_failed", error=str(e))
            return RateLimitInfo.fail_open(self.max_requests, now, self.window_seconds)

        if not int(allowed):
            retry_after = max(1, math.ceil(float(score)))
            return RateLimitInfo.denied(self.max_requests, now, retry_after)

        return RateLimitInfo.admitted(
            self.max_requests,
            remaining=int(remaining),
            reset_at=float(score) + self.window_seconds,
        )

    async def hit(self, key: str) -> RateLimitInfo:
        """Like ``check`` but raises RateLimitError when denied."""
        info = await self.check(key)
        if not info.allowed:
            raise RateLimitError(retry_after=info.retry_after)
        return info

    async def reset(self, key: str) -> None:
        await self.redis.delete(self.get_key(key))

    async def cleanup(self) -> int:
        # Keys expire on their own
        return 0
