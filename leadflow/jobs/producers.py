"""
Job producers.

Typed helpers that build a job payload and push it onto the right queue with
the delivery options each kind of work needs. Broker errors propagate: losing
a job silently would break at-least-once delivery.
"""

from __future__ import annotations

from typing import Any, Literal

from leadflow.jobs.models import Job
from leadflow.jobs.queues import (
    EmailJobData,
    EmailJobType,
    JobQueues,
    LeadJobData,
    LeadJobType,
    NotificationJobData,
    NotificationJobType,
    add_email_job,
    add_lead_job,
    add_notification_job,
)

NotificationLevel = Literal["INFO", "SUCCESS", "WARNING", "ERROR"]


class JobProducer:
    """Enqueue helpers bound to one set of queues."""

    def __init__(self, queues: JobQueues) -> None:
        self.queues = queues

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    async def send_welcome_email(self, email: str, user_data: dict[str, Any] | None = None) -> Job:
        return await add_email_job(
            self.queues.email,
            EmailJobData(type=EmailJobType.SEND_WELCOME, to=email, data=user_data or {}),
            priority=1,
        )

    async def send_lead_notification(self, recipient_email: str, lead_data: dict[str, Any]) -> Job:
        # Short delay lets bursts of new leads batch up at the provider.
        return await add_email_job(
            self.queues.email,
            EmailJobData(
                type=EmailJobType.SEND_LEAD_NOTIFICATION,
                to=recipient_email,
                data=lead_data,
            ),
            priority=2,
            delay=1.0,
        )

    async def send_submission_confirmation(
        self,
        email: str,
        submission_data: dict[str, Any] | None = None,
    ) -> Job:
        return await add_email_job(
            self.queues.email,
            EmailJobData(
                type=EmailJobType.SEND_SUBMISSION_CONFIRMATION,
                to=email,
                data=submission_data or {},
            ),
            priority=2,
        )

    async def send_bulk_email(
        self,
        recipients: list[str],
        subject: str,
        template: str,
        data: dict[str, Any] | None = None,
        *,
        job_id: str | None = None,
    ) -> Job:
        return await add_email_job(
            self.queues.email,
            EmailJobData(
                type=EmailJobType.SEND_BULK_EMAIL,
                to=recipients,
                subject=subject,
                template=template,
                data=data or {},
            ),
            priority=10,
            job_id=job_id,
        )

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        *,
        action_url: str | None = None,
        level: NotificationLevel = "INFO",
    ) -> Job:
        return await add_notification_job(
            self.queues.notification,
            NotificationJobData(
                type=NotificationJobType.CREATE_NOTIFICATION,
                user_id=user_id,
                title=title,
                message=message,
                action_url=action_url,
                notification_type=level,
            ),
        )

    async def send_push_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> Job:
        return await add_notification_job(
            self.queues.notification,
            NotificationJobData(
                type=NotificationJobType.SEND_PUSH_NOTIFICATION,
                user_id=user_id,
                title=title,
                message=message,
                metadata=metadata or {},
            ),
        )

    async def send_sms(self, user_id: str, message: str, metadata: dict[str, Any] | None = None) -> Job:
        return await add_notification_job(
            self.queues.notification,
            NotificationJobData(
                type=NotificationJobType.SEND_SMS,
                user_id=user_id,
                title="SMS",
                message=message,
                metadata=metadata or {},
            ),
        )

    # ------------------------------------------------------------------
    # Leads
    # ------------------------------------------------------------------

    async def enrich_lead_data(
        self,
        lead_id: str,
        organization_id: str,
        *,
        priority: int | None = None,
        delay: float | None = None,
    ) -> Job:
        """Not urgent: low priority and a 5s delay unless overridden."""
        return await add_lead_job(
            self.queues.lead,
            LeadJobData(
                type=LeadJobType.ENRICH_LEAD_DATA,
                lead_id=lead_id,
                organization_id=organization_id,
            ),
            priority=5 if priority is None else priority,
            delay=5.0 if delay is None else delay,
        )

    async def calculate_lead_score(self, lead_id: str, organization_id: str) -> Job:
        return await add_lead_job(
            self.queues.lead,
            LeadJobData(
                type=LeadJobType.CALCULATE_LEAD_SCORE,
                lead_id=lead_id,
                organization_id=organization_id,
            ),
            priority=3,
        )

    async def sync_lead_to_crm(
        self,
        lead_id: str,
        organization_id: str,
        crm_data: dict[str, Any] | None = None,
    ) -> Job:
        return await add_lead_job(
            self.queues.lead,
            LeadJobData(
                type=LeadJobType.SYNC_TO_CRM,
                lead_id=lead_id,
                organization_id=organization_id,
                data=crm_data or {},
            ),
            priority=2,
        )

    async def send_follow_up(
        self,
        lead_id: str,
        organization_id: str,
        *,
        template: str | None = None,
        delay: float | None = None,
        data: dict[str, Any] | None = None,
    ) -> Job:
        payload = dict(data or {})
        if template:
            payload["template"] = template
        return await add_lead_job(
            self.queues.lead,
            LeadJobData(
                type=LeadJobType.SEND_FOLLOW_UP,
                lead_id=lead_id,
                organization_id=organization_id,
                data=payload,
            ),
            priority=4,
            delay=delay,
        )
