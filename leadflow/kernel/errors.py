from __future__ import annotations

import re
from typing import Any


_ERROR_CODE_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)*$")


class LeadflowError(Exception):
    """Base typed error for the event and job pipeline.

    Goals:
    - Stable `code` for programmatic handling (logs, alerts, dashboards).
    - Human-readable `message`.
    - Optional `meta` payload for debugging.
    - `retryable` tells the worker pool whether another attempt makes sense.
    """

    retryable: bool = True

    def __init__(
        self,
        *,
        code: str,
        message: str,
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not _ERROR_CODE_RE.fullmatch(code):
            raise ValueError(
                "Invalid error code. Expected dot-separated lowercase tokens, "
                f"got: {code!r}"
            )
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = dict(meta or {})

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.meta:
            payload["meta"] = self.meta
        return payload


class JobValidationError(LeadflowError):
    """Malformed job request; raised at the call site before anything is queued."""

    retryable = False

    def __init__(
        self,
        *,
        message: str = "Invalid job",
        code: str = "jobs.validation_error",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, meta=meta)


class UnknownJobTypeError(LeadflowError):
    """A worker pool has no handler for the job's type. Never retried."""

    retryable = False

    def __init__(
        self,
        *,
        queue: str,
        job_type: str,
        code: str = "jobs.unknown_type",
    ):
        super().__init__(
            code=code,
            message=f"Unknown {queue} job type: {job_type}",
            meta={"queue": queue, "job_type": job_type},
        )


class JobTimeoutError(LeadflowError):
    """A single attempt exceeded the queue's job timeout. Counts as a failed attempt."""

    def __init__(
        self,
        *,
        timeout_seconds: float,
        code: str = "jobs.timeout",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(
            code=code,
            message=f"Job attempt timed out after {timeout_seconds:g}s",
            meta={"timeout_seconds": timeout_seconds, **(meta or {})},
        )


class QueueUnavailableError(LeadflowError):
    """The queue backend could not be reached. Always propagated to the producer."""

    def __init__(
        self,
        *,
        message: str = "Queue backend unavailable",
        code: str = "jobs.queue_unavailable",
        meta: dict[str, Any] | None = None,
    ):
        super().__init__(code=code, message=message, meta=meta)
