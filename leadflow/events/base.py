"""
Domain Event base types.

A domain event is an immutable record of a business fact that already
happened. Typed events subclass `DomainEvent`, declare their payload fields
as pydantic fields, and fix `event_type`; required fields are validated at
construction so malformed events fail at the call site, before emission.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Annotated, Any, Awaitable, Callable, ClassVar, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, model_validator

from leadflow.kernel.ids import new_event_id
from leadflow.kernel.time import isoformat_z, utc_now

_ENVELOPE_FIELDS = frozenset({"event_id", "occurred_at", "metadata"})


def freeze(value: Any) -> Any:
    """Recursively copy `value` into read-only containers."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of `freeze`: fresh, mutable plain containers."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [thaw(v) for v in value]
    return value


# Read-only nested data for event fields; dumps hand out plain dicts and lists.
FrozenDict = Annotated[dict[str, Any], AfterValidator(freeze), PlainSerializer(thaw)]


class EventMetadata(BaseModel):
    """Cross-cutting context attached to an event (who, from where, why)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    reason: str | None = None
    notes: str | None = None
    source: str | None = None
    customer_id: str | None = None
    changes: FrozenDict | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class DomainEvent(BaseModel):
    """Base class for all domain events."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_type: ClassVar[str] = "DomainEvent"

    event_id: str = ""
    occurred_at: datetime = Field(default_factory=utc_now)
    metadata: EventMetadata | None = None

    @model_validator(mode="before")
    @classmethod
    def _assign_event_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("event_id"):
            data = {**data, "event_id": new_event_id(cls.event_type)}
        return data

    @property
    def type(self) -> str:
        return self.event_type

    @property
    def payload(self) -> dict[str, Any]:
        """Event-specific data. Returns a fresh dict on every access."""
        return self.model_dump(exclude=set(_ENVELOPE_FIELDS))

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event envelope for logs and debugging surfaces."""
        return {
            "type": self.type,
            "occurred_at": isoformat_z(self.occurred_at),
            "event_id": self.event_id,
            "payload": self.model_dump(mode="json", exclude=set(_ENVELOPE_FIELDS)),
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }


E = TypeVar("E", bound=DomainEvent)

EventHandler = Callable[[E], Awaitable[None] | None]
"""A function reacting to one event type. May be sync or async."""


def event_type_key(event_type: str | type[DomainEvent]) -> str:
    """Normalize a registration key: accepts the type string or the event class."""
    if isinstance(event_type, str):
        return event_type
    return event_type.event_type
