"""Wires the default event handlers onto a bus."""

from __future__ import annotations

import structlog

from leadflow.events.bus import EventBus
from leadflow.events.handlers import LeadEventHandlers, SubmissionEventHandlers
from leadflow.events.lead_events import (
    LeadAssignedEvent,
    LeadConvertedEvent,
    LeadCreatedEvent,
    LeadDeletedEvent,
    LeadStatusChangedEvent,
)
from leadflow.events.submission_events import (
    SubmissionApprovedEvent,
    SubmissionCreatedEvent,
    SubmissionRejectedEvent,
    SubmissionStatusChangedEvent,
)

logger = structlog.get_logger()


def register_event_handlers(
    bus: EventBus,
    lead_handlers: LeadEventHandlers,
    submission_handlers: SubmissionEventHandlers,
) -> None:
    # Lead events
    bus.on(LeadCreatedEvent, lead_handlers.handle_lead_created)
    bus.on(LeadCreatedEvent, lead_handlers.handle_lead_analytics)
    bus.on(LeadStatusChangedEvent, lead_handlers.handle_lead_status_changed)
    bus.on(LeadStatusChangedEvent, lead_handlers.handle_lead_analytics)
    bus.on(LeadConvertedEvent, lead_handlers.handle_lead_converted)
    bus.on(LeadConvertedEvent, lead_handlers.handle_lead_analytics)
    bus.on(LeadAssignedEvent, lead_handlers.handle_lead_assigned)
    bus.on(LeadDeletedEvent, lead_handlers.handle_lead_deleted)

    # Submission events
    bus.on(SubmissionCreatedEvent, submission_handlers.handle_submission_created)
    bus.on(SubmissionStatusChangedEvent, submission_handlers.handle_submission_status_changed)
    bus.on(SubmissionApprovedEvent, submission_handlers.handle_submission_approved)
    bus.on(SubmissionRejectedEvent, submission_handlers.handle_submission_rejected)

    logger.info("Event handlers registered", **bus.get_stats())
