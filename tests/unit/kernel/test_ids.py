from __future__ import annotations

import re

import pytest

from leadflow.kernel.ids import new_event_id, new_job_id


@pytest.mark.unit
def test_new_event_id_format():
    value = new_event_id("LeadCreated")
    assert re.fullmatch(r"LeadCreated-\d{13}-[0-9a-z]{9}", value)


@pytest.mark.unit
def test_new_event_id_is_unique_per_call():
    assert new_event_id("LeadCreated") != new_event_id("LeadCreated")


@pytest.mark.unit
def test_new_event_id_requires_type():
    with pytest.raises(ValueError):
        new_event_id("")


@pytest.mark.unit
def test_new_job_id_is_hex():
    value = new_job_id()
    assert len(value) == 32
    int(value, 16)
