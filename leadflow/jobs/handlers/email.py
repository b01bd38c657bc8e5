"""Email queue handlers."""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import ValidationError

from leadflow.jobs.models import Job
from leadflow.jobs.queues import EmailJobData, EmailJobType
from leadflow.jobs.worker import JobHandler
from leadflow.kernel.errors import JobValidationError
from leadflow.services import EmailSender

logger = structlog.get_logger()


def parse_email_job(job: Job) -> EmailJobData:
    try:
        return EmailJobData.model_validate(job.data)
    except ValidationError as exc:
        raise JobValidationError(
            message=f"Malformed email job payload: {job.id}",
            meta={"job_id": job.id, "errors": exc.errors(include_url=False)},
        ) from exc


class EmailJobHandlers:
    def __init__(self, sender: EmailSender) -> None:
        self.sender = sender

    def handlers(self) -> dict[str, JobHandler]:
        return {
            EmailJobType.SEND_WELCOME.value: self.send_welcome,
            EmailJobType.SEND_LEAD_NOTIFICATION.value: self.send_lead_notification,
            EmailJobType.SEND_SUBMISSION_CONFIRMATION.value: self.send_submission_confirmation,
            EmailJobType.SEND_BULK_EMAIL.value: self.send_bulk,
        }

    async def send_welcome(self, job: Job) -> dict[str, Any]:
        payload = parse_email_job(job)
        await self.sender.send(
            to=str(payload.to),
            subject=payload.subject or "Welcome!",
            template=payload.template or "welcome",
            data={"name": payload.data.get("name"), **payload.data},
        )
        return {"to": payload.to}

    async def send_lead_notification(self, job: Job) -> dict[str, Any]:
        payload = parse_email_job(job)
        lead_name = payload.data.get("lead_name") or "unnamed lead"
        await self.sender.send(
            to=str(payload.to),
            subject=payload.subject or f"New lead: {lead_name}",
            template=payload.template or "lead-notification",
            data=payload.data,
        )
        return {"to": payload.to}

    async def send_submission_confirmation(self, job: Job) -> dict[str, Any]:
        payload = parse_email_job(job)
        await self.sender.send(
            to=str(payload.to),
            subject=payload.subject or "We received your message",
            template=payload.template or "submission-confirmation",
            data=payload.data,
        )
        return {"to": payload.to}

    async def send_bulk(self, job: Job) -> dict[str, Any]:
        payload = parse_email_job(job)
        recipients = list(payload.to)
        logger.info("Sending bulk email", job_id=job.id, recipients=len(recipients))
        await self.sender.send_bulk(
            to=recipients,
            subject=payload.subject or "",
            template=payload.template or "",
            data=payload.data,
        )
        return {"recipients": len(recipients)}
