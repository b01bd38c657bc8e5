"""
Worker process entrypoint.

Runs one worker pool per queue (email, notification, lead) against the shared
job store until SIGINT/SIGTERM, then drains in-flight jobs and exits.
"""

from __future__ import annotations

import asyncio
import signal

import structlog
from redis.asyncio import Redis

from leadflow.config import QueueConfig, Settings, get_settings
from leadflow.db.redis import close_redis, get_redis
from leadflow.jobs.handlers import EmailJobHandlers, LeadJobHandlers, NotificationJobHandlers
from leadflow.jobs.memory_store import MemoryJobStore
from leadflow.jobs.queue import JobQueue
from leadflow.jobs.queues import JobQueues, build_job_queues
from leadflow.jobs.rate_limit import RateLimiter, RedisRateLimiter, SlidingWindowRateLimiter
from leadflow.jobs.redis_store import RedisJobStore
from leadflow.jobs.store import JobStore
from leadflow.jobs.worker import JobHandler, WorkerPool
from leadflow.logging_config import configure_logging
from leadflow.monitoring.prometheus_server import maybe_start_prometheus_http_server
from leadflow.services import Services

logger = structlog.get_logger()


def _build_pool(
    queue: JobQueue,
    handlers: dict[str, JobHandler],
    config: QueueConfig,
    settings: Settings,
    redis: Redis | None,
) -> WorkerPool:
    rate_limiter: RateLimiter | None = None
    if config.rate_limit_max and redis is not None:
        rate_limiter = RedisRateLimiter(
            redis,
            f"{settings.queue_prefix}:{queue.name}:limiter",
            config.rate_limit_max,
            config.rate_limit_duration_seconds,
        )
    elif config.rate_limit_max:
        rate_limiter = SlidingWindowRateLimiter(
            config.rate_limit_max, config.rate_limit_duration_seconds
        )
    return WorkerPool(
        queue,
        handlers,
        concurrency=config.concurrency,
        rate_limiter=rate_limiter,
        poll_interval=settings.job_worker_poll_interval_seconds,
        job_timeout=config.job_timeout_seconds,
        lease_grace=settings.job_worker_lease_grace_seconds,
        reaper_interval=settings.job_worker_reaper_interval_seconds,
    )


def build_worker_pools(
    queues: JobQueues,
    services: Services,
    settings: Settings | None = None,
    *,
    redis: Redis | None = None,
) -> list[WorkerPool]:
    """
    One pool per queue, sized from the queue's config.

    With a `redis` client, rate limits are kept on the broker and shared by
    every worker process; without one they are per process.
    """
    settings = settings or get_settings()
    email = EmailJobHandlers(services.email)
    notification = NotificationJobHandlers(services.notifications, services.push, services.sms)
    lead = LeadJobHandlers(
        services.leads,
        services.enrichment,
        services.crm,
        services.email,
        services.directory,
    )
    return [
        _build_pool(queues.email, email.handlers(), settings.email_queue, settings, redis),
        _build_pool(
            queues.notification,
            notification.handlers(),
            settings.notification_queue,
            settings,
            redis,
        ),
        _build_pool(queues.lead, lead.handlers(), settings.lead_queue, settings, redis),
    ]


async def build_job_store(settings: Settings) -> JobStore:
    if settings.job_store == "memory":
        return MemoryJobStore()
    return RedisJobStore(await get_redis(), prefix=settings.queue_prefix)


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings)
    maybe_start_prometheus_http_server(settings.metrics_port, component="workers")

    store = await build_job_store(settings)
    redis = await get_redis() if settings.job_store == "redis" else None
    queues = build_job_queues(store, settings)
    pools = build_worker_pools(queues, Services(), settings, redis=redis)

    def _shutdown() -> None:
        logger.info("Shutdown requested, draining worker pools")
        for pool in pools:
            pool.request_shutdown()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(_shutdown))

    logger.info(
        "Workers starting",
        environment=settings.environment,
        job_store=settings.job_store,
        queues=[pool.queue.name for pool in pools],
    )
    try:
        await asyncio.gather(*(pool.run_forever() for pool in pools))
    finally:
        await store.close()
        await close_redis()
        logger.info("Workers stopped")


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
