from __future__ import annotations

import secrets
import string
from uuid import uuid4

from leadflow.kernel.time import to_epoch_ms, utc_now

_BASE36 = string.digits + string.ascii_lowercase


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def new_event_id(event_type: str) -> str:
    """Generate an event id of the form `{type}-{epoch_ms}-{suffix}`.

    Used for tracing and dedup only; uniqueness is not enforced anywhere.
    """
    if not event_type:
        raise ValueError("event_type is required to derive an event id")
    return f"{event_type}-{to_epoch_ms(utc_now())}-{_random_base36(9)}"


def new_job_id() -> str:
    return uuid4().hex
