"""
Background Jobs

Named durable queues (email, notification, lead), producer helpers and the
worker pools that consume them.
"""

from leadflow.jobs.models import BackoffPolicy, Job, JobCounts, JobOptions, JobState
from leadflow.jobs.producers import JobProducer
from leadflow.jobs.queue import JobQueue
from leadflow.jobs.queues import JobQueues, build_job_queues
from leadflow.jobs.worker import WorkerPool

__all__ = [
    "BackoffPolicy",
    "Job",
    "JobCounts",
    "JobOptions",
    "JobProducer",
    "JobQueue",
    "JobQueues",
    "JobState",
    "WorkerPool",
    "build_job_queues",
]
