from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from leadflow.jobs.models import JobState
from leadflow.jobs.queues import LeadJobType
from leadflow.jobs.worker import WorkerPool
from tests.support.waiting import eventually

SCORE = LeadJobType.CALCULATE_LEAD_SCORE.value
ENRICH = LeadJobType.ENRICH_LEAD_DATA.value


def _pool(queue, handlers, **kwargs) -> WorkerPool:
    kwargs.setdefault("poll_interval", 0.005)
    kwargs.setdefault("reaper_interval", 60)
    return WorkerPool(queue, handlers, **kwargs)


async def _enqueue(queue, job_type: str = SCORE, lead_id: str = "l1", **kwargs):
    return await queue.add(
        job_type,
        {"type": job_type, "lead_id": lead_id, "organization_id": "o1"},
        **kwargs,
    )


def _job_state(queue, job_id: str, state: JobState, attempts: int | None = None):
    async def check() -> bool:
        job = await queue.get_job(job_id)
        if job is None or job.state != state:
            return False
        return attempts is None or job.attempts_made == attempts

    return check


@pytest.mark.asyncio
async def test_always_failing_job_is_attempted_exactly_three_times(job_queues, fake_clock):
    queue = job_queues.lead  # 3 attempts, exponential backoff from 3s
    attempts_seen: list[int] = []

    async def boom(job):
        attempts_seen.append(job.attempts_made)
        raise RuntimeError("enrichment provider down")

    job = await _enqueue(queue)
    pool = _pool(queue, {SCORE: boom})
    pool.start()
    try:
        await eventually(_job_state(queue, job.id, JobState.DELAYED, attempts=1))

        # First backoff: 3s
        fake_clock.advance(2.9)
        await asyncio.sleep(0.03)
        assert attempts_seen == [1]
        fake_clock.advance(0.1)
        await eventually(_job_state(queue, job.id, JobState.DELAYED, attempts=2))

        # Second backoff: 6s
        fake_clock.advance(5.9)
        await asyncio.sleep(0.03)
        assert attempts_seen == [1, 2]
        fake_clock.advance(0.1)
        await eventually(_job_state(queue, job.id, JobState.FAILED, attempts=3))
    finally:
        await pool.close()

    assert attempts_seen == [1, 2, 3]
    failed = await queue.get_failed()
    assert [j.id for j in failed] == [job.id]
    assert failed[0].failed_reason == "enrichment provider down"


@pytest.mark.asyncio
async def test_job_succeeding_on_second_attempt_completes_with_two_attempts(job_queues, fake_clock):
    queue = job_queues.lead
    calls = 0

    async def flaky(job):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("transient")
        return {"score": 42}

    job = await _enqueue(queue)
    pool = _pool(queue, {SCORE: flaky})
    pool.start()
    try:
        await eventually(_job_state(queue, job.id, JobState.DELAYED, attempts=1))
        fake_clock.advance(3)
        await eventually(_job_state(queue, job.id, JobState.COMPLETED))
    finally:
        await pool.close()

    completed = await queue.get_job(job.id)
    assert completed.attempts_made == 2
    assert completed.result == {"score": 42}
    assert calls == 2


@pytest.mark.asyncio
async def test_delayed_job_is_not_dispatched_before_its_delay(job_queues, fake_clock):
    queue = job_queues.lead
    seen: list[str] = []

    async def handler(job):
        seen.append(job.data["lead_id"])

    job = await _enqueue(queue, ENRICH, delay=5)
    pool = _pool(queue, {ENRICH: handler})
    pool.start()
    try:
        await asyncio.sleep(0.03)
        fake_clock.advance(4.9)
        await asyncio.sleep(0.03)
        assert seen == []

        fake_clock.advance(0.1)
        await eventually(_job_state(queue, job.id, JobState.COMPLETED))
    finally:
        await pool.close()

    assert seen == ["l1"]


@pytest.mark.asyncio
async def test_jobs_are_dequeued_in_priority_order(job_queues):
    queue = job_queues.lead
    order: list[str] = []

    async def handler(job):
        order.append(job.data["lead_id"])

    await _enqueue(queue, lead_id="low", priority=5)
    await _enqueue(queue, lead_id="high", priority=1)
    await _enqueue(queue, lead_id="default")

    pool = _pool(queue, {SCORE: handler}, concurrency=1)
    pool.start()
    try:
        await eventually(lambda: len(order) == 3)
    finally:
        await pool.close()

    assert order == ["default", "high", "low"]


@pytest.mark.asyncio
async def test_unknown_job_type_fails_without_retry(job_queues):
    queue = job_queues.lead
    job = await _enqueue(queue, ENRICH)

    pool = _pool(queue, {SCORE: lambda job: asyncio.sleep(0)})
    pool.start()
    try:
        await eventually(_job_state(queue, job.id, JobState.FAILED))
    finally:
        await pool.close()

    failed = await queue.get_job(job.id)
    assert failed.attempts_made == 1
    assert "Unknown lead job type: ENRICH_LEAD_DATA" in failed.failed_reason


@pytest.mark.asyncio
async def test_attempt_timeout_counts_as_failed_attempt(job_queues):
    queue = job_queues.lead

    async def hangs(job):
        await asyncio.sleep(10)

    job = await _enqueue(queue, attempts=1)
    pool = _pool(queue, {SCORE: hangs}, job_timeout=0.05)
    pool.start()
    try:
        await eventually(_job_state(queue, job.id, JobState.FAILED))
    finally:
        await pool.close()

    failed = await queue.get_job(job.id)
    assert "timed out" in failed.failed_reason


@pytest.mark.asyncio
async def test_timeout_with_attempts_left_is_retried(job_queues):
    queue = job_queues.lead

    async def hangs(job):
        await asyncio.sleep(10)

    job = await _enqueue(queue, attempts=2)
    pool = _pool(queue, {SCORE: hangs}, job_timeout=0.05)
    pool.start()
    try:
        await eventually(_job_state(queue, job.id, JobState.DELAYED, attempts=1))
    finally:
        await pool.close()


@pytest.mark.asyncio
async def test_concurrency_bounds_in_flight_jobs(job_queues):
    queue = job_queues.lead
    release = asyncio.Event()
    in_flight = 0
    peak = 0

    async def blocking(job):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await release.wait()
        in_flight -= 1

    for i in range(5):
        await _enqueue(queue, lead_id=f"l{i}")

    pool = _pool(queue, {SCORE: blocking}, concurrency=3)
    pool.start()
    try:
        await eventually(lambda: in_flight == 3)
        await asyncio.sleep(0.03)
        assert (await queue.get_counts()).active == 3
        release.set()
        await eventually(_all_completed(queue, 5))
    finally:
        await pool.close()

    assert peak == 3


def _all_completed(queue, total: int):
    async def check() -> bool:
        return (await queue.get_counts()).completed == total

    return check


@pytest.mark.asyncio
async def test_close_waits_for_in_flight_jobs(job_queues):
    queue = job_queues.lead
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow(job):
        started.set()
        await release.wait()

    job = await _enqueue(queue)
    pool = _pool(queue, {SCORE: slow})
    pool.start()
    await started.wait()

    closing = asyncio.create_task(pool.close())
    await asyncio.sleep(0.02)
    assert not closing.done()

    release.set()
    await closing

    assert not pool.running
    assert (await queue.get_job(job.id)).state == JobState.COMPLETED


@pytest.mark.asyncio
async def test_claim_errors_do_not_stop_the_pool(job_queues, memory_store, monkeypatch):
    queue = job_queues.lead
    original_claim = memory_store.claim_next
    failures = {"left": 2}

    async def flaky_claim(queue_name, *, lease_seconds):
        if failures["left"]:
            failures["left"] -= 1
            raise ConnectionError("broker unreachable")
        return await original_claim(queue_name, lease_seconds=lease_seconds)

    monkeypatch.setattr(memory_store, "claim_next", flaky_claim)
    done: list[str] = []

    async def handler(job):
        done.append(job.id)

    job = await _enqueue(queue)
    pool = _pool(queue, {SCORE: handler})
    pool.start()
    try:
        await eventually(lambda: done == [job.id])
    finally:
        await pool.close()

    assert failures["left"] == 0


@pytest.mark.asyncio
async def test_reaper_requeues_jobs_abandoned_by_a_dead_worker(job_queues, memory_store, fake_clock):
    queue = job_queues.lead
    job = await _enqueue(queue)

    # A previous worker claimed the job and died.
    await memory_store.claim_next(queue.name, lease_seconds=1)
    fake_clock.advance(2)

    seen: list[int] = []

    async def handler(job):
        seen.append(job.attempts_made)

    pool = _pool(queue, {SCORE: handler})
    pool.start()
    try:
        await eventually(_job_state(queue, job.id, JobState.COMPLETED))
    finally:
        await pool.close()

    assert seen == [2]


@pytest.mark.asyncio
async def test_run_forever_returns_after_shutdown_request(job_queues):
    pool = _pool(job_queues.lead, {})
    runner = asyncio.create_task(pool.run_forever())
    await eventually(lambda: pool.running)

    pool.request_shutdown()
    await asyncio.wait_for(runner, timeout=1)

    assert not pool.running


@pytest.mark.unit
def test_pool_rejects_invalid_sizing(job_queues):
    with pytest.raises(ValueError):
        WorkerPool(job_queues.lead, {}, concurrency=0)
    with pytest.raises(ValueError):
        WorkerPool(job_queues.lead, {}, job_timeout=0)


def _failed_attempts(outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "leadflow_jobs_failed_total",
        {"queue": "lead", "job_type": SCORE, "outcome": outcome},
    )
    return value or 0.0


@pytest.mark.asyncio
async def test_failed_attempts_are_counted_as_retry_then_terminal(job_queues, fake_clock):
    queue = job_queues.lead
    retries_before = _failed_attempts("retry")
    terminal_before = _failed_attempts("terminal")

    async def boom(job):
        raise RuntimeError("crm down")

    job = await _enqueue(queue, attempts=2)
    pool = _pool(queue, {SCORE: boom})
    pool.start()
    try:
        await eventually(_job_state(queue, job.id, JobState.DELAYED, attempts=1))
        await eventually(lambda: _failed_attempts("retry") == retries_before + 1)
        assert _failed_attempts("terminal") == terminal_before

        fake_clock.advance(3)
        await eventually(_job_state(queue, job.id, JobState.FAILED, attempts=2))
    finally:
        await pool.close()

    assert _failed_attempts("retry") == retries_before + 1
    assert _failed_attempts("terminal") == terminal_before + 1
