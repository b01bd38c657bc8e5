"""
Test Configuration and Fixtures

Shared fixtures for the event bus and job pipeline suites. Nothing here needs
a running Redis: queues run on the in-memory store driven by a fake clock.
"""

import os

import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """
    Auto-assign tier markers so we can run:
    - pytest -m unit
    - pytest -m integration

    Convention:
    - tests/integration/** => integration
    - everything else      => unit
    """
    for item in items:
        path = str(getattr(item, "fspath", ""))
        if item.get_closest_marker("integration") or item.get_closest_marker("unit"):
            continue
        if "/tests/integration/" in path or "\\tests\\integration\\" in path:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture
def fake_clock():
    """Deterministic clock shared by the job store and rate limiters."""
    from tests.support.clock import FakeClock

    return FakeClock.fixed()


@pytest.fixture
def settings():
    from leadflow.config import Settings

    return Settings(_env_file=None)


@pytest.fixture
def memory_store(fake_clock):
    from leadflow.jobs.memory_store import MemoryJobStore

    return MemoryJobStore(clock=fake_clock.now)


@pytest.fixture
def job_queues(memory_store, settings):
    from leadflow.jobs.queues import build_job_queues

    return build_job_queues(memory_store, settings)


@pytest.fixture
def producer(job_queues):
    from leadflow.jobs.producers import JobProducer

    return JobProducer(job_queues)


@pytest.fixture
def event_bus():
    from leadflow.events.bus import EventBus

    return EventBus(max_history_size=50)


@pytest.fixture(autouse=True)
def _reset_default_event_bus():
    from leadflow.events.bus import reset_event_bus

    reset_event_bus()
    yield
    reset_event_bus()
