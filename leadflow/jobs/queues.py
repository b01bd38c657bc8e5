"""
Queue definitions: job types, payload schemas and the per-process queue set.

Three job domains, one queue each:
- email:        outbound email (welcome, lead notification, confirmations, bulk)
- notification: in-app / push / SMS notifications
- lead:         lead enrichment, scoring, CRM sync and follow-ups
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leadflow.config import Settings, get_settings
from leadflow.jobs.models import Job
from leadflow.jobs.queue import JobQueue
from leadflow.jobs.store import JobStore

EMAIL_QUEUE = "email"
NOTIFICATION_QUEUE = "notification"
LEAD_QUEUE = "lead"


class EmailJobType(str, Enum):
    SEND_WELCOME = "SEND_WELCOME"
    SEND_LEAD_NOTIFICATION = "SEND_LEAD_NOTIFICATION"
    SEND_SUBMISSION_CONFIRMATION = "SEND_SUBMISSION_CONFIRMATION"
    SEND_BULK_EMAIL = "SEND_BULK_EMAIL"


class NotificationJobType(str, Enum):
    CREATE_NOTIFICATION = "CREATE_NOTIFICATION"
    SEND_PUSH_NOTIFICATION = "SEND_PUSH_NOTIFICATION"
    SEND_SMS = "SEND_SMS"


class LeadJobType(str, Enum):
    ENRICH_LEAD_DATA = "ENRICH_LEAD_DATA"
    CALCULATE_LEAD_SCORE = "CALCULATE_LEAD_SCORE"
    SYNC_TO_CRM = "SYNC_TO_CRM"
    SEND_FOLLOW_UP = "SEND_FOLLOW_UP"


class EmailJobData(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    type: EmailJobType
    to: str | list[str]
    subject: str | None = None
    template: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_recipients(self) -> "EmailJobData":
        if self.type == EmailJobType.SEND_BULK_EMAIL.value:
            if not isinstance(self.to, list) or not self.to:
                raise ValueError("SEND_BULK_EMAIL requires a non-empty recipient list")
            if not self.subject or not self.template:
                raise ValueError("SEND_BULK_EMAIL requires subject and template")
        elif not isinstance(self.to, str) or not self.to:
            raise ValueError(f"{self.type} requires a single recipient")
        return self


class NotificationJobData(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    type: NotificationJobType
    user_id: str = Field(min_length=1)
    title: str
    message: str
    action_url: str | None = None
    notification_type: Literal["INFO", "SUCCESS", "WARNING", "ERROR"] = "INFO"
    metadata: dict[str, Any] = Field(default_factory=dict)


class LeadJobData(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    type: LeadJobType
    lead_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


@dataclass(frozen=True)
class JobQueues:
    """The queues of one process, all sharing one store (and broker connection)."""

    email: JobQueue
    notification: JobQueue
    lead: JobQueue

    def all(self) -> list[JobQueue]:
        return [self.email, self.notification, self.lead]

    def by_name(self, name: str) -> JobQueue:
        for queue in self.all():
            if queue.name == name:
                return queue
        raise KeyError(f"Unknown queue: {name}")


def build_job_queues(store: JobStore, settings: Settings | None = None) -> JobQueues:
    settings = settings or get_settings()
    return JobQueues(
        email=JobQueue(EMAIL_QUEUE, store, settings.email_queue, EmailJobType, EmailJobData),
        notification=JobQueue(
            NOTIFICATION_QUEUE,
            store,
            settings.notification_queue,
            NotificationJobType,
            NotificationJobData,
        ),
        lead=JobQueue(LEAD_QUEUE, store, settings.lead_queue, LeadJobType, LeadJobData),
    )


async def add_email_job(
    queue: JobQueue,
    data: EmailJobData,
    *,
    priority: int | None = None,
    delay: float | None = None,
    job_id: str | None = None,
) -> Job:
    return await queue.add(data.type, data, priority=priority, delay=delay, job_id=job_id)


async def add_notification_job(
    queue: JobQueue,
    data: NotificationJobData,
    *,
    priority: int | None = None,
    delay: float | None = None,
) -> Job:
    return await queue.add(data.type, data, priority=priority, delay=delay)


async def add_lead_job(
    queue: JobQueue,
    data: LeadJobData,
    *,
    priority: int | None = None,
    delay: float | None = None,
) -> Job:
    return await queue.add(data.type, data, priority=priority, delay=delay)
