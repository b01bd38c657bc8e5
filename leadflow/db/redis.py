"""Redis client helpers (async).

Used for:
- the durable job queues (`leadflow.jobs.redis_store`)
- queue health checks

One long-lived client per process; the connection pool inside it is shared
by every queue, producer and worker pool. Transient connection errors are
retried at the transport level with exponential backoff.
"""

from __future__ import annotations

import time
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from leadflow.config import Settings, get_settings

logger = structlog.get_logger()

_redis: Redis | None = None


def create_redis(settings: Settings | None = None) -> Redis:
    settings = settings or get_settings()
    return Redis.from_url(
        settings.redis_connection_url(),
        decode_responses=True,
        retry=Retry(ExponentialBackoff(cap=2.0, base=0.05), settings.redis_max_retries),
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
        health_check_interval=30,
    )


async def get_redis() -> Redis:
    """
    Return a singleton Redis client.

    Raises if a connection cannot be established.
    """
    global _redis
    if _redis is not None:
        return _redis

    client = create_redis()
    try:
        await client.ping()
    except Exception as exc:
        try:
            await client.aclose()
        except Exception:
            pass
        logger.warning("Failed to connect to Redis", error=str(exc))
        raise

    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the singleton Redis client (best-effort)."""
    global _redis
    if _redis is None:
        return
    try:
        await _redis.aclose()
    finally:
        _redis = None


async def redis_healthcheck(client: Redis | None = None) -> dict[str, Any]:
    """
    Ping the broker.

    Checks `client` when given, otherwise the process-wide client. Never
    raises: an unreachable broker is reported as `{"ok": False, "error": ...}`.
    """
    start = time.perf_counter()
    try:
        if client is None:
            client = await get_redis()
        await client.ping()
    except Exception as exc:
        logger.warning("Redis health check failed", error=str(exc))
        return {"ok": False, "error": str(exc)}
    return {"ok": True, "latency_ms": round((time.perf_counter() - start) * 1000, 2)}
