from __future__ import annotations

from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Return a tz-aware UTC timestamp."""
    return datetime.now(UTC)


def is_tz_aware(value: datetime) -> bool:
    """True if a datetime is timezone-aware (has a non-None UTC offset)."""
    return value.tzinfo is not None and value.utcoffset() is not None


def coerce_utc(value: datetime, *, assume_naive_is_utc: bool = True) -> datetime:
    """Coerce any datetime to tz-aware UTC.

    Job records read back from the broker may carry naive timestamps.
    """
    if is_tz_aware(value):
        return value.astimezone(UTC)

    if not assume_naive_is_utc:
        raise ValueError("Naive datetime cannot be coerced without an explicit assumption")

    return value.replace(tzinfo=UTC)


def isoformat_z(value: datetime) -> str:
    """RFC3339-ish UTC string with a `Z` suffix."""
    dt = coerce_utc(value)
    return dt.isoformat().replace("+00:00", "Z")


def to_epoch_ms(value: datetime) -> int:
    """Milliseconds since the epoch, used as sorted-set scores."""
    return int(coerce_utc(value).timestamp() * 1000)


def from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=UTC)
