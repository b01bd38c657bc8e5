from __future__ import annotations

import pytest
from pydantic import ValidationError

from leadflow.config import BackoffConfig, QueueConfig
from leadflow.jobs.models import MAX_PRIORITY, BackoffPolicy, JobOptions, compute_backoff_seconds
from leadflow.jobs.store import waiting_score


@pytest.mark.unit
def test_exponential_backoff_doubles_per_attempt():
    policy = BackoffPolicy(type="exponential", delay=2.0)
    delays = [compute_backoff_seconds(policy, attempts_made=n) for n in (1, 2, 3)]
    assert delays == [2.0, 4.0, 8.0]


@pytest.mark.unit
def test_fixed_backoff_is_constant():
    policy = BackoffPolicy(type="fixed", delay=5.0)
    delays = [compute_backoff_seconds(policy, attempts_made=n) for n in (1, 2, 3)]
    assert delays == [5.0, 5.0, 5.0]


@pytest.mark.unit
def test_options_merge_queue_defaults_and_ignore_none_overrides():
    config = QueueConfig(attempts=2, backoff=BackoffConfig(type="fixed", delay=5.0), job_timeout_seconds=60)

    opts = JobOptions.from_queue_config(config, priority=3, delay=None)

    assert opts.attempts == 2
    assert opts.backoff == BackoffPolicy(type="fixed", delay=5.0)
    assert opts.priority == 3
    assert opts.delay == 0.0
    assert opts.timeout == 60


@pytest.mark.unit
def test_options_validate_ranges():
    with pytest.raises(ValidationError):
        JobOptions(priority=-1)
    with pytest.raises(ValidationError):
        JobOptions(priority=MAX_PRIORITY + 1)
    with pytest.raises(ValidationError):
        JobOptions(delay=-1)
    with pytest.raises(ValidationError):
        JobOptions(attempts=0)


@pytest.mark.unit
def test_waiting_score_orders_priority_before_sequence():
    assert waiting_score(0, 10) < waiting_score(1, 1)
    assert waiting_score(2, 1) < waiting_score(2, 2)
    with pytest.raises(ValueError):
        waiting_score(MAX_PRIORITY + 1, 1)
