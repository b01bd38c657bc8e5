"""
Lead event handlers.

Anything that has to happen reliably (notifications, emails, enrichment,
scoring, CRM sync) is pushed to a job queue; the handlers themselves only
decide what to enqueue. Each handler catches and logs its own failures.
"""

from __future__ import annotations

import structlog

from leadflow.events.lead_events import (
    LeadAssignedEvent,
    LeadConvertedEvent,
    LeadCreatedEvent,
    LeadDeletedEvent,
    LeadStatusChangedEvent,
)
from leadflow.jobs.producers import JobProducer
from leadflow.services import OrganizationDirectory

logger = structlog.get_logger()

# Enrichment is not urgent: let the lead settle before calling providers.
ENRICH_DELAY_SECONDS = 10.0
ENRICH_PRIORITY = 5


def lead_url(lead_id: str) -> str:
    return f"/dashboard/leads/{lead_id}"


class LeadEventHandlers:
    def __init__(self, producer: JobProducer, directory: OrganizationDirectory) -> None:
        self.producer = producer
        self.directory = directory

    async def handle_lead_created(self, event: LeadCreatedEvent) -> None:
        logger.info(
            "Lead created",
            event_id=event.event_id,
            lead_id=event.lead_id,
            organization_id=event.organization_id,
            source=event.source,
        )
        try:
            if event.assigned_to:
                await self.producer.create_notification(
                    event.assigned_to,
                    "New lead",
                    f"Lead {event.name} was created and assigned to you",
                    action_url=lead_url(event.lead_id),
                )

            manager_email = await self.directory.get_manager_email(event.organization_id)
            if manager_email:
                await self.producer.send_lead_notification(
                    manager_email,
                    {
                        "lead_id": event.lead_id,
                        "lead_name": event.name,
                        "lead_email": event.email,
                        "source": event.source,
                        "value": event.value,
                    },
                )

            await self.producer.enrich_lead_data(
                event.lead_id,
                event.organization_id,
                priority=ENRICH_PRIORITY,
                delay=ENRICH_DELAY_SECONDS,
            )
            await self.producer.calculate_lead_score(event.lead_id, event.organization_id)
        except Exception as exc:
            logger.error(
                "Failed to handle lead created",
                event_id=event.event_id,
                lead_id=event.lead_id,
                error=str(exc),
                exc_info=True,
            )

    async def handle_lead_status_changed(self, event: LeadStatusChangedEvent) -> None:
        logger.info(
            "Lead status changed",
            event_id=event.event_id,
            lead_id=event.lead_id,
            previous_status=event.previous_status,
            new_status=event.new_status,
            changed_by=event.changed_by or (event.metadata.user_id if event.metadata else None),
        )
        if event.is_conversion:
            logger.info("Lead converted to customer", lead_id=event.lead_id)
        if event.is_loss:
            logger.info(
                "Lead lost",
                lead_id=event.lead_id,
                reason=event.metadata.reason if event.metadata else None,
            )

    async def handle_lead_converted(self, event: LeadConvertedEvent) -> None:
        logger.info(
            "Lead converted",
            event_id=event.event_id,
            lead_id=event.lead_id,
            converted_value=event.converted_value or 0,
        )
        try:
            if event.assigned_to:
                await self.producer.create_notification(
                    event.assigned_to,
                    "Lead converted!",
                    f"Lead {event.lead_name or event.lead_id} was converted successfully!",
                    action_url=lead_url(event.lead_id),
                    level="SUCCESS",
                )

            await self.producer.sync_lead_to_crm(
                event.lead_id,
                event.organization_id,
                {"status": "CUSTOMER", "converted_value": event.converted_value},
            )

            if event.lead_email:
                await self.producer.send_welcome_email(
                    event.lead_email,
                    {"name": event.lead_name},
                )
        except Exception as exc:
            logger.error(
                "Failed to handle lead converted",
                event_id=event.event_id,
                lead_id=event.lead_id,
                error=str(exc),
                exc_info=True,
            )

    async def handle_lead_assigned(self, event: LeadAssignedEvent) -> None:
        try:
            await self.producer.create_notification(
                event.assigned_to,
                "Lead assigned",
                "A lead was assigned to you",
                action_url=lead_url(event.lead_id),
            )
        except Exception as exc:
            logger.error(
                "Failed to handle lead assigned",
                event_id=event.event_id,
                lead_id=event.lead_id,
                error=str(exc),
                exc_info=True,
            )

    async def handle_lead_deleted(self, event: LeadDeletedEvent) -> None:
        logger.info(
            "Lead deleted",
            event_id=event.event_id,
            lead_id=event.lead_id,
            organization_id=event.organization_id,
            deleted_by=event.deleted_by or (event.metadata.user_id if event.metadata else None),
            reason=event.metadata.reason if event.metadata else None,
        )

    async def handle_lead_analytics(
        self,
        event: LeadCreatedEvent | LeadStatusChangedEvent | LeadConvertedEvent,
    ) -> None:
        logger.info(
            "Lead analytics event",
            event_type=event.type,
            event_id=event.event_id,
            lead_id=event.lead_id,
            organization_id=event.organization_id,
            occurred_at=event.occurred_at.isoformat(),
        )
