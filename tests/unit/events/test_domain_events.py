from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from leadflow.events import (
    EventMetadata,
    LeadCreatedEvent,
    LeadStatusChangedEvent,
    LeadUpdatedEvent,
    SubmissionCreatedEvent,
    SubmissionStatusChangedEvent,
)


def _lead_created(**overrides) -> LeadCreatedEvent:
    values = {
        "lead_id": "l1",
        "organization_id": "o1",
        "name": "Jane",
        "email": "jane@x.com",
        "status": "NEW",
        "source": "WEBSITE",
    }
    values.update(overrides)
    return LeadCreatedEvent(**values)


@pytest.mark.unit
def test_event_envelope_is_assigned_at_construction():
    event = _lead_created()

    assert event.type == "LeadCreated"
    assert event.event_id.startswith("LeadCreated-")
    assert isinstance(event.occurred_at, datetime)
    assert event.occurred_at.tzinfo is not None


@pytest.mark.unit
def test_event_is_immutable():
    event = _lead_created()
    with pytest.raises(ValidationError):
        event.name = "Other"


@pytest.mark.unit
def test_payload_is_a_fresh_copy():
    event = _lead_created()
    payload = event.payload
    payload["name"] = "Mutated"

    assert event.payload["name"] == "Jane"
    assert "event_id" not in payload
    assert payload["lead_id"] == "l1"


@pytest.mark.unit
def test_missing_required_field_fails_at_construction():
    with pytest.raises(ValidationError):
        LeadCreatedEvent(lead_id="l1", organization_id="o1", name="Jane", status="NEW", source="WEBSITE")


@pytest.mark.unit
def test_unknown_field_is_rejected():
    with pytest.raises(ValidationError):
        _lead_created(unexpected="x")


@pytest.mark.unit
def test_to_dict_serialises_envelope():
    event = _lead_created(metadata=EventMetadata(user_id="u1", source="api"))
    data = event.to_dict()

    assert data["type"] == "LeadCreated"
    assert data["event_id"] == event.event_id
    assert data["occurred_at"].endswith("Z")
    assert data["payload"]["email"] == "jane@x.com"
    assert data["metadata"] == {"user_id": "u1", "source": "api"}


@pytest.mark.unit
def test_metadata_allows_extra_keys():
    metadata = EventMetadata(user_id="u1", request_id="r-1")
    assert metadata.to_dict() == {"user_id": "u1", "request_id": "r-1"}


@pytest.mark.unit
def test_lead_status_changed_flags():
    won = LeadStatusChangedEvent(lead_id="l1", organization_id="o1", previous_status="NEW", new_status="WON")
    lost = LeadStatusChangedEvent(lead_id="l1", organization_id="o1", previous_status="NEW", new_status="LOST")

    assert won.is_conversion and not won.is_loss
    assert lost.is_loss and not lost.is_conversion


@pytest.mark.unit
def test_submission_events():
    created = SubmissionCreatedEvent(
        submission_id="s1",
        organization_id="o1",
        user_id="u1",
        form_type="CONTACT",
        status="PENDING",
        data={"email": "a@b.com"},
    )
    changed = SubmissionStatusChangedEvent(
        submission_id="s1",
        organization_id="o1",
        previous_status="PENDING",
        new_status="APPROVED",
    )

    assert created.contact_email == "a@b.com"
    assert changed.is_approved and not changed.is_rejected


@pytest.mark.unit
def test_nested_event_data_is_read_only():
    source = {"email": "a@b.com", "answers": {"budget": [1, 2]}}
    event = SubmissionCreatedEvent(
        submission_id="s1",
        organization_id="o1",
        user_id="u1",
        form_type="CONTACT",
        status="PENDING",
        data=source,
    )

    with pytest.raises(TypeError):
        event.data["email"] = "evil@x.com"
    with pytest.raises(TypeError):
        event.data["answers"]["budget"] = []
    with pytest.raises(AttributeError):
        event.data["answers"]["budget"].append(3)

    source["email"] = "changed@x.com"
    assert event.contact_email == "a@b.com"

    payload = event.payload
    payload["data"]["answers"]["budget"].append(3)
    assert event.data["answers"]["budget"] == (1, 2)
    assert event.to_dict()["payload"]["data"] == {"email": "a@b.com", "answers": {"budget": [1, 2]}}


@pytest.mark.unit
def test_updated_fields_and_metadata_changes_are_read_only():
    event = LeadUpdatedEvent(
        lead_id="l1",
        organization_id="o1",
        updated_fields=["name", "value"],
        metadata=EventMetadata(changes={"value": {"from": 1, "to": 2}}),
    )

    assert event.updated_fields == ("name", "value")
    with pytest.raises(AttributeError):
        event.updated_fields.append("email")
    with pytest.raises(TypeError):
        event.metadata.changes["value"]["to"] = 3
    assert event.metadata.to_dict() == {"changes": {"value": {"from": 1, "to": 2}}}


@pytest.mark.unit
def test_submission_data_defaults_to_empty_read_only_mapping():
    event = SubmissionCreatedEvent(
        submission_id="s1", organization_id="o1", user_id="u1", form_type="CONTACT", status="PENDING"
    )

    assert dict(event.data) == {}
    assert event.contact_email is None
    with pytest.raises(TypeError):
        event.data["email"] = "a@b.com"
