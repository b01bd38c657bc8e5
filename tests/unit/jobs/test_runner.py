from __future__ import annotations

import fakeredis
import pytest

from leadflow.config import Settings
from leadflow.jobs.memory_store import MemoryJobStore
from leadflow.jobs.rate_limit import RedisRateLimiter, SlidingWindowRateLimiter
from leadflow.jobs.runner import build_job_store, build_worker_pools
from leadflow.jobs.queues import EmailJobType, LeadJobType, NotificationJobType
from leadflow.services import Services


@pytest.mark.asyncio
async def test_build_worker_pools_sizes_pools_from_queue_config(job_queues, settings):
    pools = build_worker_pools(job_queues, Services(), settings)
    by_queue = {pool.queue.name: pool for pool in pools}

    assert by_queue["email"].concurrency == 5
    assert by_queue["email"].rate_limiter is not None
    assert by_queue["email"].rate_limiter.max_calls == 10
    assert by_queue["email"].rate_limiter.period_seconds == 1.0
    assert by_queue["notification"].concurrency == 10
    assert by_queue["notification"].rate_limiter is None
    assert by_queue["lead"].concurrency == 3

    assert set(by_queue["email"].handlers) == {t.value for t in EmailJobType}
    assert set(by_queue["notification"].handlers) == {t.value for t in NotificationJobType}
    assert set(by_queue["lead"].handlers) == {t.value for t in LeadJobType}


@pytest.mark.asyncio
async def test_lease_covers_job_timeout_plus_grace(job_queues):
    settings = Settings(_env_file=None, job_worker_lease_grace_seconds=15)
    pools = build_worker_pools(job_queues, Services(), settings)
    assert all(pool.lease_seconds == 300 + 15 for pool in pools)


@pytest.mark.asyncio
async def test_memory_job_store_backend():
    store = await build_job_store(Settings(_env_file=None, job_store="memory"))
    assert isinstance(store, MemoryJobStore)


@pytest.mark.asyncio
async def test_redis_backed_pools_share_rate_limit_on_the_broker(job_queues, settings):
    redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    pools = build_worker_pools(job_queues, Services(), settings, redis=redis)
    email = next(pool for pool in pools if pool.queue.name == "email")

    assert isinstance(email.rate_limiter, RedisRateLimiter)
    assert email.rate_limiter.key == f"{settings.queue_prefix}:email:limiter"
    assert email.rate_limiter.max_calls == 10


@pytest.mark.asyncio
async def test_memory_backed_pools_limit_in_process(job_queues, settings):
    pools = build_worker_pools(job_queues, Services(), settings)
    email = next(pool for pool in pools if pool.queue.name == "email")

    assert isinstance(email.rate_limiter, SlidingWindowRateLimiter)
