"""
Worker Pool

Consumes one named queue with a fixed number of concurrent slots.

Each slot claims a job (with a lease), runs the handler registered for the
job's type under a per-attempt timeout, then completes it, schedules a retry
with the queue's backoff, or moves it to `failed` once attempts run out.
A reaper task recovers jobs whose worker died while holding the lease.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from uuid import uuid4

import structlog

from leadflow.jobs.models import Job, compute_backoff_seconds
from leadflow.jobs.queue import JobQueue
from leadflow.jobs.rate_limit import RateLimiter
from leadflow.kernel.errors import JobTimeoutError, UnknownJobTypeError
from leadflow.monitoring.metrics import get_metrics

logger = structlog.get_logger()

JobHandler = Callable[[Job], Awaitable[Any]]


class WorkerPool:
    def __init__(
        self,
        queue: JobQueue,
        handlers: Mapping[str, JobHandler],
        *,
        concurrency: int = 1,
        rate_limiter: RateLimiter | None = None,
        poll_interval: float = 1.0,
        job_timeout: float = 300.0,
        lease_grace: float = 30.0,
        reaper_interval: float = 30.0,
        reaper_limit: int = 500,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if job_timeout <= 0:
            raise ValueError("job_timeout must be > 0")
        self.queue = queue
        self.handlers = dict(handlers)
        self.concurrency = concurrency
        self.rate_limiter = rate_limiter
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout
        self.lease_seconds = job_timeout + lease_grace
        self.reaper_interval = reaper_interval
        self.reaper_limit = reaper_limit
        self.worker_id = f"{queue.name}-worker:{uuid4()}"
        self._metrics = get_metrics()
        self._shutdown = asyncio.Event()
        self._slots: list[asyncio.Task[None]] = []
        self._reaper: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return bool(self._slots)

    def start(self) -> None:
        """Spawn the slot tasks and the stalled-job reaper. No-op if already running."""
        if self._slots:
            return
        self._shutdown.clear()
        self._slots = [
            asyncio.create_task(self._slot_loop(slot), name=f"{self.worker_id}:slot-{slot}")
            for slot in range(self.concurrency)
        ]
        self._reaper = asyncio.create_task(
            self._reap_stalled_jobs(), name=f"{self.worker_id}:reaper"
        )
        logger.info(
            "Worker pool started",
            worker_id=self.worker_id,
            queue=self.queue.name,
            concurrency=self.concurrency,
            job_types=sorted(self.handlers),
            rate_limit=self.rate_limiter.max_calls if self.rate_limiter else None,
        )

    def request_shutdown(self) -> None:
        """Stop claiming new jobs; safe to call from a signal handler."""
        self._shutdown.set()

    async def close(self) -> None:
        """Stop claiming, wait for in-flight jobs, stop the reaper."""
        self._shutdown.set()
        slots, self._slots = self._slots, []
        reaper, self._reaper = self._reaper, None
        if reaper is not None:
            reaper.cancel()
        if not slots and reaper is None:
            return
        await asyncio.gather(*slots, return_exceptions=True)
        if reaper is not None:
            await asyncio.gather(reaper, return_exceptions=True)
        logger.info("Worker pool stopped", worker_id=self.worker_id, queue=self.queue.name)

    async def run_forever(self) -> None:
        self.start()
        try:
            await self._shutdown.wait()
        finally:
            await self.close()

    async def _idle(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _slot_loop(self, slot: int) -> None:
        while not self._shutdown.is_set():
            try:
                job = await self.queue.store.claim_next(
                    self.queue.name, lease_seconds=self.lease_seconds
                )
            except Exception as exc:
                logger.warning(
                    "Failed to claim job (will retry)",
                    worker_id=self.worker_id,
                    queue=self.queue.name,
                    slot=slot,
                    error=str(exc),
                )
                await self._idle(self.poll_interval)
                continue
            if job is None:
                await self._idle(self.poll_interval)
                continue

            # Never crash the slot because of a single job.
            try:
                await self._execute(job)
            except Exception as exc:
                logger.error(
                    "Unhandled exception executing job",
                    worker_id=self.worker_id,
                    queue=self.queue.name,
                    job_id=job.id,
                    job_type=job.name,
                    error=str(exc),
                )

    async def _execute(self, job: Job) -> None:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        started = time.monotonic()
        logger.debug(
            "Executing job",
            queue=self.queue.name,
            job_id=job.id,
            job_type=job.name,
            attempt=job.attempts_made,
            max_attempts=job.opts.attempts,
        )
        try:
            result = await self._dispatch(job)
        except Exception as exc:
            await self._handle_failure(job, exc, time.monotonic() - started)
            return
        await self._handle_success(job, result, time.monotonic() - started)

    async def _dispatch(self, job: Job) -> Any:
        handler = self.handlers.get(job.name)
        if handler is None:
            raise UnknownJobTypeError(queue=self.queue.name, job_type=job.name)

        timeout = min(job.opts.timeout or self.job_timeout, self.job_timeout)
        try:
            return await asyncio.wait_for(handler(job), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise JobTimeoutError(timeout_seconds=timeout, meta={"job_id": job.id}) from exc

    async def _handle_success(self, job: Job, result: Any, duration: float) -> None:
        try:
            await self.queue.store.complete(job, result=result, retention=self.queue.retention)
        except Exception as exc:
            # The lease expires and the reaper makes the job runnable again.
            logger.error(
                "Failed to mark job completed",
                worker_id=self.worker_id,
                queue=self.queue.name,
                job_id=job.id,
                job_type=job.name,
                error=str(exc),
            )
            return
        self._metrics.track_job_completed(self.queue.name, job.name, duration)
        logger.info(
            "Job completed",
            queue=self.queue.name,
            job_id=job.id,
            job_type=job.name,
            attempt=job.attempts_made,
            duration_seconds=round(duration, 4),
        )

    async def _handle_failure(self, job: Job, exc: Exception, duration: float) -> None:
        error = str(exc) or type(exc).__name__
        retry = getattr(exc, "retryable", True) and job.attempts_made < job.opts.attempts
        backoff_seconds = (
            compute_backoff_seconds(job.opts.backoff, attempts_made=job.attempts_made)
            if retry
            else None
        )
        try:
            if retry:
                await self.queue.store.retry_later(
                    job, error=error, delay_seconds=backoff_seconds or 0.0
                )
            else:
                await self.queue.store.fail(job, error=error, retention=self.queue.retention)
        except Exception as mark_exc:
            logger.error(
                "Failed to mark job failed",
                worker_id=self.worker_id,
                queue=self.queue.name,
                job_id=job.id,
                job_type=job.name,
                error=str(mark_exc),
            )
            return

        outcome = "retry" if retry else "terminal"
        self._metrics.track_job_failed(self.queue.name, job.name, outcome, duration)
        log = logger.warning if retry else logger.error
        log(
            "Job failed",
            queue=self.queue.name,
            job_id=job.id,
            job_type=job.name,
            attempt=job.attempts_made,
            max_attempts=job.opts.attempts,
            outcome=outcome,
            backoff_seconds=backoff_seconds,
            error=error,
            error_type=type(exc).__name__,
        )

    async def _reap_stalled_jobs(self) -> None:
        """
        Periodically recover jobs stuck in `active` with expired leases.

        Runs once immediately on startup, then every `reaper_interval` seconds.
        """
        while not self._shutdown.is_set():
            try:
                requeued, failed = await self.queue.store.requeue_stalled(
                    self.queue.name,
                    retention=self.queue.retention,
                    limit=self.reaper_limit,
                )
                if requeued or failed:
                    logger.warning(
                        "Recovered stalled jobs",
                        worker_id=self.worker_id,
                        queue=self.queue.name,
                        requeued=requeued,
                        failed=failed,
                    )
            except Exception as exc:
                logger.warning(
                    "Failed to recover stalled jobs",
                    worker_id=self.worker_id,
                    queue=self.queue.name,
                    error=str(exc),
                )
            await self._idle(self.reaper_interval)
