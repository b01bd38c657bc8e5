"""In-process job store for tests, local development and single-process deployments."""

from __future__ import annotations

import itertools
import threading
from collections import defaultdict
from datetime import timedelta
from typing import Any

from leadflow.jobs.models import Job, JobCounts, JobState, RetentionPolicy
from leadflow.jobs.store import Clock, JobStore, waiting_score


class MemoryJobStore(JobStore):
    """
    Job store backed by plain dicts.

    Not durable across restarts. All operations are synchronous under a lock,
    so concurrent slots of a worker pool never claim the same job.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self._lock = threading.Lock()
        self._jobs: dict[str, dict[str, Job]] = defaultdict(dict)
        self._seq: dict[str, itertools.count] = defaultdict(lambda: itertools.count(1))

    async def add(self, job: Job) -> Job:
        with self._lock:
            jobs = self._jobs[job.queue]
            existing = jobs.get(job.id)
            if existing is not None:
                return existing.model_copy()
            state = JobState.DELAYED if job.run_at > self.now() else JobState.WAITING
            stored = job.model_copy(update={"state": state, "seq": next(self._seq[job.queue])})
            jobs[stored.id] = stored
            return stored.model_copy()

    async def claim_next(self, queue: str, *, lease_seconds: float) -> Job | None:
        with self._lock:
            now = self.now()
            jobs = self._jobs[queue]
            for job in jobs.values():
                if job.state == JobState.DELAYED and job.run_at <= now:
                    job.state = JobState.WAITING

            runnable = [job for job in jobs.values() if job.state == JobState.WAITING]
            if not runnable:
                return None

            job = min(runnable, key=lambda j: waiting_score(j.opts.priority, j.seq))
            job.state = JobState.ACTIVE
            job.attempts_made += 1
            job.processed_at = now
            job.lock_until = now + timedelta(seconds=lease_seconds)
            return job.model_copy()

    async def complete(self, job: Job, *, result: Any, retention: RetentionPolicy) -> Job:
        with self._lock:
            stored = self._require(job)
            stored.state = JobState.COMPLETED
            stored.finished_at = self.now()
            stored.lock_until = None
            stored.result = result
            stored.failed_reason = None
            snapshot = stored.model_copy()
            self._prune(job.queue, JobState.COMPLETED, retention.keep_completed)
            return snapshot

    async def retry_later(self, job: Job, *, error: str, delay_seconds: float) -> Job:
        with self._lock:
            now = self.now()
            stored = self._require(job)
            stored.failed_reason = error
            stored.lock_until = None
            stored.run_at = now + timedelta(seconds=max(0.0, delay_seconds))
            stored.state = JobState.DELAYED if delay_seconds > 0 else JobState.WAITING
            stored.seq = next(self._seq[job.queue])
            return stored.model_copy()

    async def fail(self, job: Job, *, error: str, retention: RetentionPolicy) -> Job:
        with self._lock:
            stored = self._require(job)
            self._mark_failed(stored, error)
            snapshot = stored.model_copy()
            self._prune(job.queue, JobState.FAILED, retention.keep_failed)
            return snapshot

    async def get_job(self, queue: str, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs[queue].get(job_id)
            return job.model_copy() if job else None

    async def get_jobs(self, queue: str, state: JobState, *, limit: int = 100) -> list[Job]:
        with self._lock:
            matching = [job for job in self._jobs[queue].values() if job.state == state]
            if state in (JobState.COMPLETED, JobState.FAILED):
                matching.sort(key=lambda j: (j.finished_at, j.seq), reverse=True)
            elif state == JobState.DELAYED:
                matching.sort(key=lambda j: j.run_at)
            else:
                matching.sort(key=lambda j: waiting_score(j.opts.priority, j.seq))
            return [job.model_copy() for job in matching[: max(0, limit)]]

    async def get_counts(self, queue: str) -> JobCounts:
        with self._lock:
            counts = JobCounts()
            for job in self._jobs[queue].values():
                setattr(counts, job.state.value, counts.get(job.state) + 1)
            return counts

    async def requeue_stalled(
        self,
        queue: str,
        *,
        retention: RetentionPolicy,
        limit: int = 500,
    ) -> tuple[int, int]:
        requeued = failed = 0
        with self._lock:
            now = self.now()
            expired = [
                job
                for job in self._jobs[queue].values()
                if job.state == JobState.ACTIVE and job.lock_until is not None and job.lock_until < now
            ][: max(1, limit)]
            for job in expired:
                if job.attempts_made >= job.opts.attempts:
                    self._mark_failed(job, job.failed_reason or "Lease expired")
                    failed += 1
                else:
                    job.state = JobState.WAITING
                    job.lock_until = None
                    job.run_at = now
                    requeued += 1
            if failed:
                self._prune(queue, JobState.FAILED, retention.keep_failed)
        return requeued, failed

    def _require(self, job: Job) -> Job:
        stored = self._jobs[job.queue].get(job.id)
        if stored is None:
            raise KeyError(f"Job {job.id} not found in queue {job.queue}")
        return stored

    def _mark_failed(self, job: Job, error: str) -> None:
        job.state = JobState.FAILED
        job.finished_at = self.now()
        job.lock_until = None
        job.failed_reason = error

    def _prune(self, queue: str, state: JobState, keep: int) -> None:
        jobs = self._jobs[queue]
        finished = sorted(
            (job for job in jobs.values() if job.state == state),
            key=lambda j: (j.finished_at, j.seq),
        )
        excess = len(finished) - keep
        for job in finished[: max(0, excess)]:
            del jobs[job.id]
