"""Job records, delivery options and retry policy."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from leadflow.config import BackoffConfig, QueueConfig

# Priorities share a sorted-set score with a 32-bit sequence; keep them in 21 bits.
MAX_PRIORITY = 2**21 - 1


class JobState(str, Enum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class BackoffPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["fixed", "exponential"] = "exponential"
    delay: float = Field(default=2.0, ge=0)

    @classmethod
    def from_config(cls, config: BackoffConfig) -> "BackoffPolicy":
        return cls(type=config.type, delay=config.delay)


def compute_backoff_seconds(policy: BackoffPolicy, *, attempts_made: int) -> float:
    """
    Delay before the next attempt.

    fixed:       delay
    exponential: delay * 2 ** (attempts_made - 1)
                 attempt 1 -> delay, attempt 2 -> 2x, attempt 3 -> 4x
    """
    if policy.type == "fixed":
        return policy.delay
    return policy.delay * (2 ** max(0, attempts_made - 1))


class JobOptions(BaseModel):
    """Delivery options for one job. Lower priority values are serviced first."""

    model_config = ConfigDict(frozen=True)

    priority: int = Field(default=0, ge=0, le=MAX_PRIORITY)
    delay: float = Field(default=0.0, ge=0, description="Seconds before the job becomes visible")
    attempts: int = Field(default=1, ge=1)
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    job_id: str | None = None
    timeout: float | None = Field(default=None, gt=0)

    @classmethod
    def from_queue_config(cls, config: QueueConfig, **overrides: Any) -> "JobOptions":
        values: dict[str, Any] = {
            "attempts": config.attempts,
            "backoff": BackoffPolicy.from_config(config.backoff),
            "timeout": config.job_timeout_seconds,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class Job(BaseModel):
    """A unit of deferred work as stored by the queue backend."""

    id: str
    queue: str
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    opts: JobOptions = Field(default_factory=JobOptions)
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    seq: int = 0
    created_at: datetime
    run_at: datetime
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    lock_until: datetime | None = None
    failed_reason: str | None = None
    result: Any = None

    @property
    def attempts_remaining(self) -> int:
        return max(0, self.opts.attempts - self.attempts_made)


class JobCounts(BaseModel):
    waiting: int = 0
    delayed: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    def get(self, state: JobState) -> int:
        return int(getattr(self, state.value))


class RetentionPolicy(BaseModel):
    """How many finished jobs each set keeps; oldest are pruned first."""

    model_config = ConfigDict(frozen=True)

    keep_completed: int = Field(default=100, ge=0)
    keep_failed: int = Field(default=500, ge=0)

    @classmethod
    def from_queue_config(cls, config: QueueConfig) -> "RetentionPolicy":
        return cls(keep_completed=config.keep_completed, keep_failed=config.keep_failed)
