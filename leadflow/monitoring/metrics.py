"""
Prometheus Metrics

Counters and histograms for the event bus and the job pipeline.
"""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

# Singleton metrics instance
_metrics: "Metrics | None" = None


class Metrics:
    """
    Prometheus metrics for the pipeline.

    Tracks:
    - Domain events emitted and event handler failures
    - Jobs enqueued, completed and failed per queue/job type
    - Job execution duration
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        registry = registry or REGISTRY

        # Event bus
        self.events_emitted_total = Counter(
            "leadflow_events_emitted_total",
            "Total domain events emitted on the bus",
            ["event_type"],
            registry=registry,
        )
        self.event_handler_failures_total = Counter(
            "leadflow_event_handler_failures_total",
            "Total event handler invocations that raised",
            ["event_type"],
            registry=registry,
        )

        # Jobs
        self.jobs_enqueued_total = Counter(
            "leadflow_jobs_enqueued_total",
            "Total jobs enqueued",
            ["queue", "job_type"],
            registry=registry,
        )
        self.jobs_completed_total = Counter(
            "leadflow_jobs_completed_total",
            "Total jobs completed",
            ["queue", "job_type"],
            registry=registry,
        )
        self.jobs_failed_total = Counter(
            "leadflow_jobs_failed_total",
            "Total failed job attempts",
            ["queue", "job_type", "outcome"],
            registry=registry,
        )
        self.job_duration_seconds = Histogram(
            "leadflow_job_duration_seconds",
            "Job attempt duration in seconds",
            ["queue", "job_type"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0],
            registry=registry,
        )

    def track_event_emitted(self, event_type: str) -> None:
        self.events_emitted_total.labels(event_type=event_type).inc()

    def track_event_handler_failure(self, event_type: str) -> None:
        self.event_handler_failures_total.labels(event_type=event_type).inc()

    def track_job_enqueued(self, queue: str, job_type: str) -> None:
        self.jobs_enqueued_total.labels(queue=queue, job_type=job_type).inc()

    def track_job_completed(self, queue: str, job_type: str, duration_seconds: float) -> None:
        self.jobs_completed_total.labels(queue=queue, job_type=job_type).inc()
        self.job_duration_seconds.labels(queue=queue, job_type=job_type).observe(duration_seconds)

    def track_job_failed(
        self,
        queue: str,
        job_type: str,
        outcome: str,
        duration_seconds: float | None = None,
    ) -> None:
        """Record a failed attempt. `outcome` is `retry` or `terminal`."""
        self.jobs_failed_total.labels(queue=queue, job_type=job_type, outcome=outcome).inc()
        if duration_seconds is not None:
            self.job_duration_seconds.labels(queue=queue, job_type=job_type).observe(duration_seconds)


def get_metrics() -> Metrics:
    """Get or create the singleton metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics()
    return _metrics
