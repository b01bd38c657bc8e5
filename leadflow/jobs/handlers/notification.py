"""Notification queue handlers: in-app notifications, push and SMS."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from leadflow.jobs.models import Job
from leadflow.jobs.queues import NotificationJobData, NotificationJobType
from leadflow.jobs.worker import JobHandler
from leadflow.kernel.errors import JobValidationError
from leadflow.services import NotificationStore, PushSender, SmsSender


def parse_notification_job(job: Job) -> NotificationJobData:
    try:
        return NotificationJobData.model_validate(job.data)
    except ValidationError as exc:
        raise JobValidationError(
            message=f"Malformed notification job payload: {job.id}",
            meta={"job_id": job.id, "errors": exc.errors(include_url=False)},
        ) from exc


class NotificationJobHandlers:
    def __init__(self, store: NotificationStore, push: PushSender, sms: SmsSender) -> None:
        self.store = store
        self.push = push
        self.sms = sms

    def handlers(self) -> dict[str, JobHandler]:
        return {
            NotificationJobType.CREATE_NOTIFICATION.value: self.create_notification,
            NotificationJobType.SEND_PUSH_NOTIFICATION.value: self.send_push_notification,
            NotificationJobType.SEND_SMS.value: self.send_sms,
        }

    async def create_notification(self, job: Job) -> dict[str, Any]:
        payload = parse_notification_job(job)
        notification_id = await self.store.create(
            user_id=payload.user_id,
            title=payload.title,
            message=payload.message,
            action_url=payload.action_url,
            notification_type=payload.notification_type,
        )
        return {"notification_id": notification_id}

    async def send_push_notification(self, job: Job) -> dict[str, Any]:
        payload = parse_notification_job(job)
        await self.push.send(
            user_id=payload.user_id,
            title=payload.title,
            message=payload.message,
            data=payload.metadata,
        )
        return {"user_id": payload.user_id}

    async def send_sms(self, job: Job) -> dict[str, Any]:
        payload = parse_notification_job(job)
        await self.sms.send(user_id=payload.user_id, message=payload.message)
        return {"user_id": payload.user_id}
