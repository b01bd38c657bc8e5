"""Submission event handlers."""

from __future__ import annotations

import structlog

from leadflow.events.submission_events import (
    SubmissionApprovedEvent,
    SubmissionCreatedEvent,
    SubmissionRejectedEvent,
    SubmissionStatusChangedEvent,
)
from leadflow.jobs.producers import JobProducer

logger = structlog.get_logger()

AUTO_APPROVE_FORM_TYPES = frozenset({"NEWSLETTER"})


class SubmissionEventHandlers:
    def __init__(self, producer: JobProducer) -> None:
        self.producer = producer

    async def handle_submission_created(self, event: SubmissionCreatedEvent) -> None:
        logger.info(
            "Submission created",
            event_id=event.event_id,
            submission_id=event.submission_id,
            form_type=event.form_type,
        )
        if event.form_type in AUTO_APPROVE_FORM_TYPES:
            logger.info(
                "Submission eligible for auto-approval",
                submission_id=event.submission_id,
                form_type=event.form_type,
            )

        email = event.contact_email
        if not email:
            return
        try:
            await self.producer.send_submission_confirmation(
                email,
                {"submission_id": event.submission_id, "form_type": event.form_type},
            )
        except Exception as exc:
            logger.error(
                "Failed to enqueue submission confirmation",
                event_id=event.event_id,
                submission_id=event.submission_id,
                error=str(exc),
                exc_info=True,
            )

    async def handle_submission_status_changed(self, event: SubmissionStatusChangedEvent) -> None:
        logger.info(
            "Submission status changed",
            event_id=event.event_id,
            submission_id=event.submission_id,
            previous_status=event.previous_status,
            new_status=event.new_status,
            reviewed_by=event.reviewed_by,
            notes=event.metadata.notes if event.metadata else None,
        )

    async def handle_submission_approved(self, event: SubmissionApprovedEvent) -> None:
        if not event.user_id:
            return
        try:
            await self.producer.create_notification(
                event.user_id,
                "Submission approved",
                "Your submission was approved!",
                level="SUCCESS",
            )
        except Exception as exc:
            logger.error(
                "Failed to handle submission approved",
                event_id=event.event_id,
                submission_id=event.submission_id,
                error=str(exc),
                exc_info=True,
            )

    async def handle_submission_rejected(self, event: SubmissionRejectedEvent) -> None:
        if not event.user_id:
            return
        try:
            await self.producer.create_notification(
                event.user_id,
                "Submission rejected",
                event.reason or "Your submission was rejected",
                level="WARNING",
            )
        except Exception as exc:
            logger.error(
                "Failed to handle submission rejected",
                event_id=event.event_id,
                submission_id=event.submission_id,
                error=str(exc),
                exc_info=True,
            )
