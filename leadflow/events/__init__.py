"""
Domain Events

Typed, immutable business facts and the in-process bus that fans them out
to handlers.
"""

from leadflow.events.base import DomainEvent, EventHandler, EventMetadata
from leadflow.events.bus import EventBus, get_event_bus, reset_event_bus, set_event_bus
from leadflow.events.lead_events import (
    LeadAssignedEvent,
    LeadConvertedEvent,
    LeadCreatedEvent,
    LeadDeletedEvent,
    LeadStatusChangedEvent,
    LeadUpdatedEvent,
)
from leadflow.events.submission_events import (
    SubmissionApprovedEvent,
    SubmissionCreatedEvent,
    SubmissionRejectedEvent,
    SubmissionStatusChangedEvent,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "EventMetadata",
    "LeadAssignedEvent",
    "LeadConvertedEvent",
    "LeadCreatedEvent",
    "LeadDeletedEvent",
    "LeadStatusChangedEvent",
    "LeadUpdatedEvent",
    "SubmissionApprovedEvent",
    "SubmissionCreatedEvent",
    "SubmissionRejectedEvent",
    "SubmissionStatusChangedEvent",
    "get_event_bus",
    "reset_event_bus",
    "set_event_bus",
]
