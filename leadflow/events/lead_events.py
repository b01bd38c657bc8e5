"""Lead lifecycle events."""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from leadflow.events.base import DomainEvent

LEAD_STATUS_WON = "WON"
LEAD_STATUS_LOST = "LOST"


class LeadCreatedEvent(DomainEvent):
    """Emitted when a new lead is created."""

    event_type: ClassVar[str] = "LeadCreated"

    lead_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    name: str
    email: str
    status: str
    source: str
    value: float | None = None
    assigned_to: str | None = None


class LeadStatusChangedEvent(DomainEvent):
    """Emitted when a lead moves between pipeline stages."""

    event_type: ClassVar[str] = "LeadStatusChanged"

    lead_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    previous_status: str
    new_status: str
    changed_by: str | None = None

    @property
    def is_conversion(self) -> bool:
        return self.new_status == LEAD_STATUS_WON

    @property
    def is_loss(self) -> bool:
        return self.new_status == LEAD_STATUS_LOST


class LeadUpdatedEvent(DomainEvent):
    event_type: ClassVar[str] = "LeadUpdated"

    lead_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    updated_fields: tuple[str, ...]
    updated_by: str | None = None


class LeadDeletedEvent(DomainEvent):
    event_type: ClassVar[str] = "LeadDeleted"

    lead_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    deleted_by: str | None = None


class LeadConvertedEvent(DomainEvent):
    """Emitted after a lead reaches WON, in addition to LeadStatusChanged."""

    event_type: ClassVar[str] = "LeadConverted"

    lead_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    converted_value: float | None = None
    converted_by: str | None = None
    assigned_to: str | None = None
    lead_name: str | None = None
    lead_email: str | None = None


class LeadAssignedEvent(DomainEvent):
    event_type: ClassVar[str] = "LeadAssigned"

    lead_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    assigned_to: str = Field(min_length=1)
    assigned_by: str | None = None
    previous_assignee: str | None = None
