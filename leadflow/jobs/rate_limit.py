"""
Rate limiting for worker pools.

Sliding-window limiters shared by all slots of one pool, e.g. the email pool's
"at most 10 jobs per second" on top of its concurrency of 5.

- `RedisRateLimiter` keeps the window on the broker, so every process
  consuming the queue draws from the same budget.
- `SlidingWindowRateLimiter` keeps it in process memory, for the in-memory
  job store where only one process can consume anyway.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from typing import Callable, NamedTuple, Protocol

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger()


class RateLimitResult(NamedTuple):
    """Result of a rate limit check."""

    allowed: bool
    remaining: int
    retry_after: float  # Seconds until a slot frees up (0 when allowed)
    limit: int


class RateLimiter(Protocol):
    max_calls: int
    period_seconds: float

    async def acquire(self) -> None: ...


def _validate_limits(max_calls: int, period_seconds: float) -> None:
    if max_calls < 1:
        raise ValueError("max_calls must be >= 1")
    if period_seconds <= 0:
        raise ValueError("period_seconds must be > 0")


class SlidingWindowRateLimiter:
    """
    In-process sliding window limiter.

    Keeps the start times of the last `max_calls` acquisitions; a new
    acquisition is allowed once the oldest of them falls out of the window.
    """

    def __init__(
        self,
        max_calls: int,
        period_seconds: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        _validate_limits(max_calls, period_seconds)
        self.max_calls = max_calls
        self.period_seconds = period_seconds
        self._clock = clock
        self._calls: deque[float] = deque()
        self._lock = asyncio.Lock()

    def check(self) -> RateLimitResult:
        """Try to take a slot without waiting."""
        now = self._clock()
        window_start = now - self.period_seconds
        while self._calls and self._calls[0] <= window_start:
            self._calls.popleft()

        if len(self._calls) < self.max_calls:
            self._calls.append(now)
            return RateLimitResult(
                allowed=True,
                remaining=self.max_calls - len(self._calls),
                retry_after=0.0,
                limit=self.max_calls,
            )

        return RateLimitResult(
            allowed=False,
            remaining=0,
            retry_after=max(0.0, self._calls[0] + self.period_seconds - now),
            limit=self.max_calls,
        )

    async def acquire(self) -> None:
        """Wait until a slot is available, then take it."""
        async with self._lock:
            while True:
                result = self.check()
                if result.allowed:
                    return
                await asyncio.sleep(result.retry_after or 0.001)


class RedisRateLimiter:
    """
    Sliding window limiter stored in a Redis sorted set.

    Each acquisition is a member scored by its timestamp. Entries older than
    the window are trimmed, the remainder counted and the new entry added in
    one MULTI/EXEC; a denied entry is removed again.

    If Redis is unavailable, allows the call (fail open).
    """

    def __init__(
        self,
        redis: Redis,
        key: str,
        max_calls: int,
        period_seconds: float = 1.0,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        _validate_limits(max_calls, period_seconds)
        self._redis = redis
        self.key = key
        self.max_calls = max_calls
        self.period_seconds = period_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

    async def check(self) -> RateLimitResult:
        """Try to take a slot without waiting."""
        now = self._clock()
        member = f"{now}:{uuid.uuid4().hex}"
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zremrangebyscore(self.key, 0, now - self.period_seconds)
                pipe.zcard(self.key)
                pipe.zadd(self.key, {member: now})
                pipe.pexpire(self.key, max(1, int(self.period_seconds * 2000)))
                results = await pipe.execute()

            current = int(results[1])
            if current < self.max_calls:
                return RateLimitResult(
                    allowed=True,
                    remaining=self.max_calls - current - 1,
                    retry_after=0.0,
                    limit=self.max_calls,
                )

            await self._redis.zrem(self.key, member)
            oldest = await self._redis.zrange(self.key, 0, 0, withscores=True)
        except Exception as exc:
            logger.error("Rate limit check failed", key=self.key, error=str(exc))
            return RateLimitResult(
                allowed=True,
                remaining=self.max_calls,
                retry_after=0.0,
                limit=self.max_calls,
            )

        retry_after = self.period_seconds
        if oldest:
            retry_after = max(0.0, float(oldest[0][1]) + self.period_seconds - now)
        return RateLimitResult(
            allowed=False,
            remaining=0,
            retry_after=retry_after,
            limit=self.max_calls,
        )

    async def acquire(self) -> None:
        """Wait until the shared window has room, then take a slot."""
        async with self._lock:
            while True:
                result = await self.check()
                if result.allowed:
                    return
                await asyncio.sleep(result.retry_after or 0.001)
