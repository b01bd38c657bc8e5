"""
Redis-backed durable job store.

Layout per queue (`{prefix}:{queue}:...`):
- `jobs`      hash   id -> job JSON
- `attempts`  hash   id -> attempts made (source of truth, bumped atomically on claim)
- `order`     hash   id -> waiting score used when a delayed job is promoted
- `seq`       string monotonically increasing enqueue sequence
- `waiting`   zset   score = priority * 2**32 + seq
- `delayed`   zset   score = run_at (epoch ms)
- `active`    zset   score = lease expiry (epoch ms)
- `completed` zset   score = finished_at (epoch ms)
- `failed`    zset   score = finished_at (epoch ms)

State transitions that must not interleave between workers (add with dedup,
claim, finish with pruning, stalled recovery) run as Lua scripts.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from leadflow.jobs.models import Job, JobCounts, JobState, RetentionPolicy
from leadflow.jobs.store import Clock, JobStore, waiting_score
from leadflow.kernel.errors import QueueUnavailableError
from leadflow.kernel.time import to_epoch_ms

logger = structlog.get_logger()

_ADD_SCRIPT = """
-- KEYS: jobs, order, target ; ARGV: id, json, order_score, target_score
if redis.call('HEXISTS', KEYS[1], ARGV[1]) == 1 then
    return redis.call('HGET', KEYS[1], ARGV[1])
end
redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
redis.call('HSET', KEYS[2], ARGV[1], ARGV[3])
redis.call('ZADD', KEYS[3], ARGV[4], ARGV[1])
return ARGV[2]
"""

_CLAIM_SCRIPT = """
-- KEYS: delayed, waiting, active, order, attempts, jobs ; ARGV: now_ms, lease_until_ms
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, 1000)
for _, id in ipairs(due) do
    redis.call('ZREM', KEYS[1], id)
    redis.call('ZADD', KEYS[2], redis.call('HGET', KEYS[4], id) or 0, id)
end
local ids = redis.call('ZRANGE', KEYS[2], 0, 0)
if #ids == 0 then
    return false
end
local id = ids[1]
redis.call('ZREM', KEYS[2], id)
redis.call('ZADD', KEYS[3], ARGV[2], id)
local attempts = redis.call('HINCRBY', KEYS[5], id, 1)
return {id, redis.call('HGET', KEYS[6], id), attempts}
"""

_FINISH_SCRIPT = """
-- KEYS: active, target, jobs, attempts, order ; ARGV: id, finished_ms, json, keep
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('HSET', KEYS[3], ARGV[1], ARGV[3])
redis.call('ZADD', KEYS[2], ARGV[2], ARGV[1])
local excess = redis.call('ZCARD', KEYS[2]) - tonumber(ARGV[4])
if excess > 0 then
    local old = redis.call('ZRANGE', KEYS[2], 0, excess - 1)
    for _, id in ipairs(old) do
        redis.call('ZREM', KEYS[2], id)
        redis.call('HDEL', KEYS[3], id)
        redis.call('HDEL', KEYS[4], id)
        redis.call('HDEL', KEYS[5], id)
    end
    return excess
end
return 0
"""

_RECOVER_SCRIPT = """
-- KEYS: active, target, jobs ; ARGV: id, now_ms, target_score, json
local lease = redis.call('ZSCORE', KEYS[1], ARGV[1])
if not lease or tonumber(lease) >= tonumber(ARGV[2]) then
    return 0
end
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('HSET', KEYS[3], ARGV[1], ARGV[4])
redis.call('ZADD', KEYS[2], ARGV[3], ARGV[1])
return 1
"""


class RedisJobStore(JobStore):
    """Job store backed by a shared, long-lived Redis client."""

    def __init__(
        self,
        redis: Redis,
        *,
        prefix: str = "leadflow",
        clock: Clock | None = None,
    ) -> None:
        super().__init__(clock)
        self._redis = redis
        self._prefix = prefix
        self._add = redis.register_script(_ADD_SCRIPT)
        self._claim = redis.register_script(_CLAIM_SCRIPT)
        self._finish = redis.register_script(_FINISH_SCRIPT)
        self._recover = redis.register_script(_RECOVER_SCRIPT)

    def key(self, queue: str, name: str) -> str:
        return f"{self._prefix}:{queue}:{name}"

    async def add(self, job: Job) -> Job:
        now = self.now()
        try:
            seq = int(await self._redis.incr(self.key(job.queue, "seq")))
            delayed = job.run_at > now
            stored = job.model_copy(
                update={"seq": seq, "state": JobState.DELAYED if delayed else JobState.WAITING}
            )
            order = waiting_score(stored.opts.priority, seq)
            raw = await self._add(
                keys=[
                    self.key(job.queue, "jobs"),
                    self.key(job.queue, "order"),
                    self.key(job.queue, "delayed" if delayed else "waiting"),
                ],
                args=[
                    stored.id,
                    stored.model_dump_json(),
                    order,
                    to_epoch_ms(stored.run_at) if delayed else order,
                ],
            )
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            raise QueueUnavailableError(
                message=f"Could not enqueue job on '{job.queue}': {exc}",
                meta={"queue": job.queue, "job_type": job.name},
            ) from exc
        return Job.model_validate_json(raw)

    async def claim_next(self, queue: str, *, lease_seconds: float) -> Job | None:
        now = self.now()
        lock_until = now + timedelta(seconds=lease_seconds)
        claimed = await self._claim(
            keys=[
                self.key(queue, "delayed"),
                self.key(queue, "waiting"),
                self.key(queue, "active"),
                self.key(queue, "order"),
                self.key(queue, "attempts"),
                self.key(queue, "jobs"),
            ],
            args=[to_epoch_ms(now), to_epoch_ms(lock_until)],
        )
        if not claimed:
            return None

        job_id, raw, attempts = claimed
        if raw is None:
            # Pruned hash entry with a dangling set member; drop it.
            await self._redis.zrem(self.key(queue, "active"), job_id)
            logger.warning("Dropped job without payload", queue=queue, job_id=job_id)
            return None

        job = Job.model_validate_json(raw).model_copy(
            update={
                "state": JobState.ACTIVE,
                "attempts_made": int(attempts),
                "processed_at": now,
                "lock_until": lock_until,
            }
        )
        await self._redis.hset(self.key(queue, "jobs"), job.id, job.model_dump_json())
        return job

    async def complete(self, job: Job, *, result: Any, retention: RetentionPolicy) -> Job:
        finished = job.model_copy(
            update={
                "state": JobState.COMPLETED,
                "finished_at": self.now(),
                "lock_until": None,
                "result": result,
                "failed_reason": None,
            }
        )
        await self._finish_job(finished, JobState.COMPLETED, retention.keep_completed)
        return finished

    async def retry_later(self, job: Job, *, error: str, delay_seconds: float) -> Job:
        now = self.now()
        delay_seconds = max(0.0, delay_seconds)
        seq = int(await self._redis.incr(self.key(job.queue, "seq")))
        retried = job.model_copy(
            update={
                "state": JobState.DELAYED if delay_seconds > 0 else JobState.WAITING,
                "run_at": now + timedelta(seconds=delay_seconds),
                "lock_until": None,
                "failed_reason": error,
                "seq": seq,
            }
        )
        order = waiting_score(retried.opts.priority, seq)

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.key(job.queue, "active"), job.id)
            pipe.hset(self.key(job.queue, "jobs"), job.id, retried.model_dump_json())
            pipe.hset(self.key(job.queue, "order"), job.id, order)
            if delay_seconds > 0:
                pipe.zadd(self.key(job.queue, "delayed"), {job.id: to_epoch_ms(retried.run_at)})
            else:
                pipe.zadd(self.key(job.queue, "waiting"), {job.id: order})
            await pipe.execute()
        return retried

    async def fail(self, job: Job, *, error: str, retention: RetentionPolicy) -> Job:
        failed = job.model_copy(
            update={
                "state": JobState.FAILED,
                "finished_at": self.now(),
                "lock_until": None,
                "failed_reason": error,
            }
        )
        await self._finish_job(failed, JobState.FAILED, retention.keep_failed)
        return failed

    async def _finish_job(self, job: Job, state: JobState, keep: int) -> None:
        await self._finish(
            keys=[
                self.key(job.queue, "active"),
                self.key(job.queue, state.value),
                self.key(job.queue, "jobs"),
                self.key(job.queue, "attempts"),
                self.key(job.queue, "order"),
            ],
            args=[job.id, to_epoch_ms(job.finished_at or self.now()), job.model_dump_json(), int(keep)],
        )

    async def get_job(self, queue: str, job_id: str) -> Job | None:
        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.hget(self.key(queue, "jobs"), job_id)
            pipe.hget(self.key(queue, "attempts"), job_id)
            raw, attempts = await pipe.execute()
        if raw is None:
            return None
        job = self._hydrate(raw, attempts)
        if job.state == JobState.DELAYED and job.run_at <= self.now():
            # Promoted lazily by the next claim.
            job = job.model_copy(update={"state": JobState.WAITING})
        return job

    async def get_jobs(self, queue: str, state: JobState, *, limit: int = 100) -> list[Job]:
        if limit <= 0:
            return []
        key = self.key(queue, state.value)
        if state in (JobState.COMPLETED, JobState.FAILED):
            ids = await self._redis.zrevrange(key, 0, limit - 1)
        else:
            ids = await self._redis.zrange(key, 0, limit - 1)
        if not ids:
            return []

        async with self._redis.pipeline(transaction=False) as pipe:
            pipe.hmget(self.key(queue, "jobs"), ids)
            pipe.hmget(self.key(queue, "attempts"), ids)
            raws, attempts = await pipe.execute()
        return [
            self._hydrate(raw, count).model_copy(update={"state": state})
            for raw, count in zip(raws, attempts)
            if raw is not None
        ]

    async def get_counts(self, queue: str) -> JobCounts:
        async with self._redis.pipeline(transaction=False) as pipe:
            for state in JobState:
                pipe.zcard(self.key(queue, state.value))
            results = await pipe.execute()
        return JobCounts(**{state.value: int(count) for state, count in zip(JobState, results)})

    async def requeue_stalled(
        self,
        queue: str,
        *,
        retention: RetentionPolicy,
        limit: int = 500,
    ) -> tuple[int, int]:
        now = self.now()
        now_ms = to_epoch_ms(now)
        ids = await self._redis.zrangebyscore(
            self.key(queue, "active"), "-inf", f"({now_ms}", start=0, num=max(1, limit)
        )
        requeued = failed = 0
        for job_id in ids:
            job = await self.get_job(queue, job_id)
            if job is None:
                await self._redis.zrem(self.key(queue, "active"), job_id)
                continue

            if job.attempts_made >= job.opts.attempts:
                recovered = job.model_copy(
                    update={
                        "state": JobState.FAILED,
                        "finished_at": now,
                        "lock_until": None,
                        "failed_reason": job.failed_reason or "Lease expired",
                    }
                )
                target, score = JobState.FAILED, now_ms
            else:
                recovered = job.model_copy(
                    update={"state": JobState.WAITING, "lock_until": None, "run_at": now}
                )
                target, score = JobState.WAITING, waiting_score(job.opts.priority, job.seq)

            moved = await self._recover(
                keys=[
                    self.key(queue, "active"),
                    self.key(queue, target.value),
                    self.key(queue, "jobs"),
                ],
                args=[job_id, now_ms, score, recovered.model_dump_json()],
            )
            if not moved:
                continue
            if target == JobState.FAILED:
                failed += 1
            else:
                requeued += 1

        if failed:
            await self._prune(queue, JobState.FAILED, retention.keep_failed)
        return requeued, failed

    async def _prune(self, queue: str, state: JobState, keep: int) -> None:
        key = self.key(queue, state.value)
        excess = int(await self._redis.zcard(key)) - keep
        if excess <= 0:
            return
        old = await self._redis.zrange(key, 0, excess - 1)
        if not old:
            return
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(key, *old)
            pipe.hdel(self.key(queue, "jobs"), *old)
            pipe.hdel(self.key(queue, "attempts"), *old)
            pipe.hdel(self.key(queue, "order"), *old)
            await pipe.execute()

    async def close(self) -> None:
        # The client is shared; its owner closes it.
        return None

    @staticmethod
    def _hydrate(raw: str, attempts: str | int | None) -> Job:
        job = Job.model_validate_json(raw)
        if attempts is not None:
            job = job.model_copy(update={"attempts_made": int(attempts)})
        return job
