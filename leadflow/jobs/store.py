"""
Job store interface.

The queue and the worker pool only talk to this interface, so the rest of
the pipeline does not care whether jobs live in Redis or in process memory.

State machine per job:

    waiting/delayed -> active -> completed
                       active -> delayed/waiting (retry_later) -> ... -> failed
                       active (lease expired) -> waiting | failed (requeue_stalled)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable

from leadflow.jobs.models import MAX_PRIORITY, Job, JobCounts, JobState, RetentionPolicy
from leadflow.kernel.time import utc_now

Clock = Callable[[], datetime]

_SEQ_SPACE = 2**32


def waiting_score(priority: int, seq: int) -> int:
    """Sort key for the waiting set: priority first, then FIFO by sequence."""
    if not 0 <= priority <= MAX_PRIORITY:
        raise ValueError(f"priority must be between 0 and {MAX_PRIORITY}")
    return priority * _SEQ_SPACE + (seq % _SEQ_SPACE)


class JobStore(ABC):
    """Durable storage for the jobs of one or more named queues."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock: Clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    async def add(self, job: Job) -> Job:
        """
        Store a new job in `waiting` (or `delayed` if `run_at` is in the future).

        If a job with the same id already exists in the queue, the existing job
        is returned unchanged.
        """

    @abstractmethod
    async def claim_next(self, queue: str, *, lease_seconds: float) -> Job | None:
        """
        Claim the next runnable job: lowest priority value, then oldest.

        Delayed jobs whose `run_at` has passed are promoted first. The claimed job
        is `active`, has `attempts_made` incremented and holds a lease until
        `now + lease_seconds`.
        """

    @abstractmethod
    async def complete(self, job: Job, *, result: Any, retention: RetentionPolicy) -> Job:
        """Move an active job to `completed` and prune the completed set."""

    @abstractmethod
    async def retry_later(self, job: Job, *, error: str, delay_seconds: float) -> Job:
        """Release an active job for another attempt after `delay_seconds`."""

    @abstractmethod
    async def fail(self, job: Job, *, error: str, retention: RetentionPolicy) -> Job:
        """Move an active job to `failed` (terminal) and prune the failed set."""

    @abstractmethod
    async def get_job(self, queue: str, job_id: str) -> Job | None: ...

    @abstractmethod
    async def get_jobs(self, queue: str, state: JobState, *, limit: int = 100) -> list[Job]:
        """Jobs in one state. Finished sets are returned newest first."""

    @abstractmethod
    async def get_counts(self, queue: str) -> JobCounts: ...

    @abstractmethod
    async def requeue_stalled(
        self,
        queue: str,
        *,
        retention: RetentionPolicy,
        limit: int = 500,
    ) -> tuple[int, int]:
        """
        Recover active jobs whose lease expired (the worker died mid-job).

        Jobs with attempts left go back to `waiting`; the rest are `failed`.
        Returns (requeued, failed).
        """

    async def close(self) -> None:
        return None
