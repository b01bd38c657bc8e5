"""
Job Queue

A named channel of typed jobs. Producers append; exactly one worker pool per
process consumes. Dequeue order is priority first (lower value wins), then
FIFO, honoring each job's delay.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import timedelta
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from leadflow.config import QueueConfig
from leadflow.jobs.models import BackoffPolicy, Job, JobCounts, JobOptions, JobState, RetentionPolicy
from leadflow.jobs.store import JobStore
from leadflow.kernel.errors import JobValidationError
from leadflow.kernel.ids import new_job_id
from leadflow.monitoring.metrics import get_metrics

logger = structlog.get_logger()


class JobQueue:
    """Queue facade over a `JobStore`, carrying the queue's default job options."""

    def __init__(
        self,
        name: str,
        store: JobStore,
        config: QueueConfig,
        job_types: Iterable[str | Enum],
        payload_model: type[BaseModel] | None = None,
    ) -> None:
        self.name = name
        self.store = store
        self.config = config
        self.job_types = frozenset(_type_value(t) for t in job_types)
        self.payload_model = payload_model
        self.retention = RetentionPolicy.from_queue_config(config)
        self._metrics = get_metrics()

    async def add(
        self,
        job_type: str | Enum,
        data: BaseModel | Mapping[str, Any],
        *,
        priority: int | None = None,
        delay: float | None = None,
        job_id: str | None = None,
        attempts: int | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> Job:
        """
        Enqueue a job and return its stored record.

        Raises:
            JobValidationError: unknown job type, invalid payload or invalid options.
            QueueUnavailableError: the backend could not be reached. Never swallowed.
        """
        name = _type_value(job_type)
        if name not in self.job_types:
            raise JobValidationError(
                message=f"Unknown {self.name} job type: {name}",
                meta={"queue": self.name, "job_type": name, "allowed": sorted(self.job_types)},
            )

        payload = self._validate_payload(name, data)

        try:
            opts = JobOptions.from_queue_config(
                self.config,
                priority=priority,
                delay=delay,
                job_id=job_id,
                attempts=attempts,
                backoff=backoff,
            )
        except ValidationError as exc:
            raise JobValidationError(
                message=f"Invalid options for {self.name} job {name}",
                meta={"queue": self.name, "job_type": name, "errors": exc.errors(include_url=False)},
            ) from exc

        now = self.store.now()
        job = Job(
            id=opts.job_id or new_job_id(),
            queue=self.name,
            name=name,
            data=payload,
            opts=opts,
            created_at=now,
            run_at=now + timedelta(seconds=opts.delay),
        )

        stored = await self.store.add(job)
        self._metrics.track_job_enqueued(self.name, name)
        logger.info(
            "Job enqueued",
            queue=self.name,
            job_id=stored.id,
            job_type=name,
            state=stored.state.value,
            priority=opts.priority,
            delay_seconds=opts.delay,
        )
        return stored

    def _validate_payload(self, name: str, data: BaseModel | Mapping[str, Any]) -> dict[str, Any]:
        """Normalize the payload to JSON-able data, rejecting it before anything is queued."""
        payload = data.model_dump(mode="json") if isinstance(data, BaseModel) else dict(data)
        if self.payload_model is None:
            return payload

        payload_type = payload.setdefault("type", name)
        if _type_value(payload_type) != name:
            raise JobValidationError(
                message=f"Payload type {payload_type} does not match {self.name} job {name}",
                meta={"queue": self.name, "job_type": name, "payload_type": str(payload_type)},
            )
        try:
            return self.payload_model.model_validate(payload).model_dump(mode="json")
        except ValidationError as exc:
            raise JobValidationError(
                message=f"Invalid payload for {self.name} job {name}",
                meta={"queue": self.name, "job_type": name, "errors": exc.errors(include_url=False)},
            ) from exc

    async def get_job(self, job_id: str) -> Job | None:
        return await self.store.get_job(self.name, job_id)

    async def get_jobs(self, state: JobState, *, limit: int = 100) -> list[Job]:
        return await self.store.get_jobs(self.name, state, limit=limit)

    async def get_completed(self, *, limit: int = 100) -> list[Job]:
        return await self.get_jobs(JobState.COMPLETED, limit=limit)

    async def get_failed(self, *, limit: int = 100) -> list[Job]:
        return await self.get_jobs(JobState.FAILED, limit=limit)

    async def get_counts(self) -> JobCounts:
        return await self.store.get_counts(self.name)


def _type_value(job_type: str | Enum) -> str:
    return str(job_type.value) if isinstance(job_type, Enum) else str(job_type)
