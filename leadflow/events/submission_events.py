"""Form submission events."""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from leadflow.events.base import DomainEvent, FrozenDict

SUBMISSION_STATUS_APPROVED = "APPROVED"
SUBMISSION_STATUS_REJECTED = "REJECTED"


class SubmissionCreatedEvent(DomainEvent):
    event_type: ClassVar[str] = "SubmissionCreated"

    submission_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    user_id: str
    form_type: str
    status: str
    data: FrozenDict = Field(default_factory=dict, validate_default=True)

    @property
    def contact_email(self) -> str | None:
        email = self.data.get("email")
        return str(email) if email else None


class SubmissionStatusChangedEvent(DomainEvent):
    event_type: ClassVar[str] = "SubmissionStatusChanged"

    submission_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    previous_status: str
    new_status: str
    reviewed_by: str | None = None

    @property
    def is_approved(self) -> bool:
        return self.new_status == SUBMISSION_STATUS_APPROVED

    @property
    def is_rejected(self) -> bool:
        return self.new_status == SUBMISSION_STATUS_REJECTED


class SubmissionApprovedEvent(DomainEvent):
    event_type: ClassVar[str] = "SubmissionApproved"

    submission_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    approved_by: str
    user_id: str | None = None


class SubmissionRejectedEvent(DomainEvent):
    event_type: ClassVar[str] = "SubmissionRejected"

    submission_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    rejected_by: str
    user_id: str | None = None
    reason: str | None = None
