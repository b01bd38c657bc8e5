"""
Monitoring

Prometheus metrics and health snapshots for the event bus and job queues.
"""

from leadflow.monitoring.health import ComponentHealth, HealthStatus, collect_health
from leadflow.monitoring.metrics import Metrics, get_metrics

__all__ = [
    "ComponentHealth",
    "HealthStatus",
    "Metrics",
    "collect_health",
    "get_metrics",
]
