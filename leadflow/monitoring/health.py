"""
Health Checks

JSON-able snapshot of the event bus and the job queues for ops endpoints.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from leadflow.db.redis import redis_healthcheck
from leadflow.kernel.time import utc_now

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from leadflow.events.bus import EventBus
    from leadflow.jobs.queue import JobQueue

logger = structlog.get_logger()


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    message: str | None = None
    latency_ms: float | None = None
    details: dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "latency_ms": self.latency_ms,
            "details": self.details,
            "checked_at": self.checked_at.isoformat(),
        }


def check_event_bus(bus: "EventBus") -> ComponentHealth:
    return ComponentHealth(name="event_bus", status=HealthStatus.HEALTHY, details=bus.get_stats())


async def check_queue(queue: "JobQueue") -> ComponentHealth:
    start = time.perf_counter()
    try:
        counts = await queue.get_counts()
    except Exception as exc:
        logger.warning("Queue health check failed", queue=queue.name, error=str(exc))
        return ComponentHealth(
            name=f"queue:{queue.name}",
            status=HealthStatus.UNHEALTHY,
            message=str(exc),
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
    return ComponentHealth(
        name=f"queue:{queue.name}",
        status=HealthStatus.HEALTHY,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
        details=counts.model_dump(),
    )


async def check_broker(redis: "Redis") -> ComponentHealth:
    result = await redis_healthcheck(redis)
    if not result["ok"]:
        return ComponentHealth(name="broker", status=HealthStatus.UNHEALTHY, message=result["error"])
    return ComponentHealth(name="broker", status=HealthStatus.HEALTHY, latency_ms=result["latency_ms"])


def overall_status(components: Iterable[ComponentHealth]) -> HealthStatus:
    statuses = {c.status for c in components}
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


async def collect_health(
    bus: "EventBus | None" = None,
    queues: Iterable["JobQueue"] = (),
    *,
    redis: "Redis | None" = None,
) -> dict[str, Any]:
    """Snapshot of broker reachability, bus stats and per-queue job counts by state."""
    components: list[ComponentHealth] = []
    if redis is not None:
        components.append(await check_broker(redis))
    if bus is not None:
        components.append(check_event_bus(bus))
    for queue in queues:
        components.append(await check_queue(queue))

    return {
        "status": overall_status(components).value,
        "components": [c.to_dict() for c in components],
        "checked_at": utc_now().isoformat(),
    }
