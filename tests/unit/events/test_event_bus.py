from __future__ import annotations

import asyncio

import pytest

from leadflow.events import (
    EventBus,
    LeadCreatedEvent,
    LeadDeletedEvent,
    get_event_bus,
    reset_event_bus,
    set_event_bus,
)


def _lead_created(lead_id: str = "l1") -> LeadCreatedEvent:
    return LeadCreatedEvent(
        lead_id=lead_id,
        organization_id="o1",
        name="Jane",
        email="jane@x.com",
        status="NEW",
        source="WEBSITE",
    )


def _lead_deleted(lead_id: str = "l1") -> LeadDeletedEvent:
    return LeadDeletedEvent(lead_id=lead_id, organization_id="o1")


@pytest.mark.asyncio
async def test_emit_invokes_every_handler_once_even_when_one_raises(event_bus):
    calls: list[str] = []

    def sync_ok(event):
        calls.append("sync_ok")

    async def async_ok(event):
        await asyncio.sleep(0)
        calls.append("async_ok")

    def sync_boom(event):
        calls.append("sync_boom")
        raise RuntimeError("boom")

    async def async_boom(event):
        calls.append("async_boom")
        raise RuntimeError("async boom")

    for handler in (sync_ok, sync_boom, async_ok, async_boom):
        event_bus.on(LeadCreatedEvent, handler)

    await event_bus.emit(_lead_created())

    assert sorted(calls) == ["async_boom", "async_ok", "sync_boom", "sync_ok"]


@pytest.mark.asyncio
async def test_emit_waits_for_slow_siblings_of_a_failing_handler(event_bus):
    finished = asyncio.Event()

    async def slow(event):
        await asyncio.sleep(0.01)
        finished.set()

    def boom(event):
        raise ValueError("nope")

    event_bus.on("LeadCreated", boom)
    event_bus.on("LeadCreated", slow)

    await event_bus.emit(_lead_created())

    assert finished.is_set()


@pytest.mark.asyncio
async def test_emit_without_handlers_is_recorded_in_history(event_bus):
    event = _lead_created()
    await event_bus.emit(event)
    assert event_bus.get_event_history() == [event]


@pytest.mark.asyncio
async def test_handlers_only_receive_their_event_type(event_bus):
    seen: list[str] = []
    event_bus.on(LeadDeletedEvent, lambda event: seen.append(event.type))

    await event_bus.emit(_lead_created())
    await event_bus.emit(_lead_deleted())

    assert seen == ["LeadDeleted"]


@pytest.mark.unit
def test_registering_same_handler_twice_is_a_noop(event_bus):
    def handler(event):
        return None

    event_bus.on(LeadCreatedEvent, handler)
    event_bus.on("LeadCreated", handler)

    assert event_bus.listener_count(LeadCreatedEvent) == 1


@pytest.mark.asyncio
async def test_off_removes_exactly_the_given_handler(event_bus):
    calls: list[str] = []

    def first(event):
        calls.append("first")

    def second(event):
        calls.append("second")

    event_bus.on(LeadCreatedEvent, first)
    event_bus.on(LeadCreatedEvent, second)
    event_bus.off(LeadCreatedEvent, first)

    await event_bus.emit(_lead_created())

    assert calls == ["second"]
    assert event_bus.listener_count(LeadCreatedEvent) == 1


@pytest.mark.unit
def test_off_unknown_handler_is_a_noop(event_bus):
    event_bus.off(LeadCreatedEvent, lambda event: None)
    assert event_bus.listener_count(LeadCreatedEvent) == 0
    assert event_bus.get_registered_event_types() == []


@pytest.mark.unit
def test_remove_all_listeners_without_type_clears_everything(event_bus):
    event_bus.on(LeadCreatedEvent, lambda event: None)
    event_bus.on(LeadCreatedEvent, lambda event: None)
    event_bus.on(LeadDeletedEvent, lambda event: None)

    event_bus.remove_all_listeners()

    assert event_bus.listener_count(LeadCreatedEvent) == 0
    assert event_bus.listener_count(LeadDeletedEvent) == 0
    assert event_bus.get_registered_event_types() == []


@pytest.mark.unit
def test_remove_all_listeners_for_one_type(event_bus):
    event_bus.on(LeadCreatedEvent, lambda event: None)
    event_bus.on(LeadDeletedEvent, lambda event: None)

    event_bus.remove_all_listeners(LeadCreatedEvent)

    assert event_bus.listener_count(LeadCreatedEvent) == 0
    assert event_bus.listener_count(LeadDeletedEvent) == 1


@pytest.mark.asyncio
async def test_history_is_bounded_with_fifo_eviction():
    bus = EventBus(max_history_size=5)
    events = [_lead_created(f"l{i}") for i in range(8)]

    for event in events:
        await bus.emit(event)

    history = bus.get_event_history()
    assert len(history) == 5
    assert history == events[3:]
    assert all(event not in history for event in events[:3])


@pytest.mark.asyncio
async def test_clear_history(event_bus):
    await event_bus.emit(_lead_created())
    event_bus.clear_history()
    assert event_bus.get_event_history() == []


@pytest.mark.asyncio
async def test_get_stats(event_bus):
    event_bus.on(LeadCreatedEvent, lambda event: None)
    event_bus.on(LeadCreatedEvent, lambda event: None)
    event_bus.on(LeadDeletedEvent, lambda event: None)
    await event_bus.emit(_lead_created())

    stats = event_bus.get_stats()

    assert stats["total_event_types"] == 2
    assert stats["total_handlers"] == 3
    assert stats["history_size"] == 1
    assert stats["max_history_size"] == 50
    assert set(stats["event_types"]) == {"LeadCreated", "LeadDeleted"}


@pytest.mark.asyncio
async def test_handler_registered_during_emit_runs_from_next_emit(event_bus):
    calls: list[str] = []

    def late(event):
        calls.append("late")

    def registers_late(event):
        event_bus.on(LeadCreatedEvent, late)

    event_bus.on(LeadCreatedEvent, registers_late)

    await event_bus.emit(_lead_created())
    assert calls == []

    await event_bus.emit(_lead_created())
    assert calls == ["late"]


@pytest.mark.unit
def test_invalid_history_size():
    with pytest.raises(ValueError):
        EventBus(max_history_size=0)


@pytest.mark.unit
def test_default_bus_can_be_replaced_and_reset():
    default = get_event_bus()
    assert get_event_bus() is default

    custom = EventBus(max_history_size=3)
    set_event_bus(custom)
    assert get_event_bus() is custom

    reset_event_bus()
    assert get_event_bus() is not custom
