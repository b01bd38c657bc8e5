"""
Event Bus

In-process publish/subscribe for domain events. `emit` fans an event out to
every handler registered for its type, runs them concurrently, and waits for
all of them to settle. A failing handler is logged and counted; it never
cancels its siblings and never reaches the publisher.

Anything that must actually happen (emails, CRM sync) is handed to a job
queue from inside a handler; the bus itself has no retry.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from collections import deque
from typing import Any

import structlog

from leadflow.events.base import DomainEvent, EventHandler, event_type_key
from leadflow.monitoring.metrics import get_metrics

logger = structlog.get_logger()

DEFAULT_MAX_HISTORY_SIZE = 1000

# Process-wide default instance
_event_bus: "EventBus | None" = None


class EventBus:
    """
    In-memory event bus with a bounded history.

    The handler table and the history buffer are the only mutable state and
    are guarded by a lock so `on`/`off`/`emit` may be called from several
    threads. Handler execution happens outside the lock.
    """

    def __init__(self, max_history_size: int = DEFAULT_MAX_HISTORY_SIZE) -> None:
        if max_history_size < 1:
            raise ValueError("max_history_size must be >= 1")
        self._max_history_size = max_history_size
        # dict keys give set semantics with stable iteration
        self._handlers: dict[str, dict[EventHandler, None]] = {}
        self._history: deque[DomainEvent] = deque(maxlen=max_history_size)
        self._lock = threading.Lock()
        self._metrics = get_metrics()

    async def emit(self, event: DomainEvent) -> None:
        """
        Publish an event to all handlers registered for its type.

        Returns once every handler has finished, successfully or not.
        """
        with self._lock:
            self._history.append(event)
            handlers = list(self._handlers.get(event.type, {}))

        self._metrics.track_event_emitted(event.type)

        if not handlers:
            logger.debug("No handlers for event", event_type=event.type, event_id=event.event_id)
            return

        logger.info(
            "Emitting event",
            event_type=event.type,
            event_id=event.event_id,
            handler_count=len(handlers),
        )

        await asyncio.gather(*(self._invoke(handler, event) for handler in handlers))

    async def _invoke(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self._metrics.track_event_handler_failure(event.type)
            logger.error(
                "Event handler failed",
                event_type=event.type,
                event_id=event.event_id,
                handler=_handler_name(handler),
                error=str(exc),
                exc_info=True,
            )

    def on(self, event_type: str | type[DomainEvent], handler: EventHandler) -> None:
        """Register a handler. Registering the same handler twice is a no-op."""
        key = event_type_key(event_type)
        with self._lock:
            self._handlers.setdefault(key, {})[handler] = None
        logger.info("Registered event handler", event_type=key, handler=_handler_name(handler))

    def off(self, event_type: str | type[DomainEvent], handler: EventHandler) -> None:
        """Remove one handler. No-op if it was never registered."""
        key = event_type_key(event_type)
        with self._lock:
            handlers = self._handlers.get(key)
            if handlers is None or handler not in handlers:
                return
            del handlers[handler]
            if not handlers:
                del self._handlers[key]
        logger.info("Removed event handler", event_type=key, handler=_handler_name(handler))

    def remove_all_listeners(self, event_type: str | type[DomainEvent] | None = None) -> None:
        """Remove every handler for one event type, or for all types."""
        with self._lock:
            if event_type is None:
                self._handlers.clear()
            else:
                self._handlers.pop(event_type_key(event_type), None)
        if event_type is None:
            logger.info("Removed all event handlers")
        else:
            logger.info("Removed all handlers for event type", event_type=event_type_key(event_type))

    def listener_count(self, event_type: str | type[DomainEvent]) -> int:
        with self._lock:
            return len(self._handlers.get(event_type_key(event_type), {}))

    def get_registered_event_types(self) -> list[str]:
        with self._lock:
            return list(self._handlers)

    def get_event_history(self) -> list[DomainEvent]:
        """Snapshot of retained events, oldest first."""
        with self._lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
        logger.info("Event history cleared")

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "total_event_types": len(self._handlers),
                "total_handlers": sum(len(h) for h in self._handlers.values()),
                "history_size": len(self._history),
                "max_history_size": self._max_history_size,
                "event_types": list(self._handlers),
            }


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


def get_event_bus() -> EventBus:
    """Get or create the process-wide default event bus."""
    global _event_bus
    if _event_bus is None:
        from leadflow.config import get_settings

        _event_bus = EventBus(max_history_size=get_settings().event_history_size)
    return _event_bus


def set_event_bus(bus: EventBus) -> None:
    """Replace the process-wide default bus (tests, embedding apps)."""
    global _event_bus
    _event_bus = bus


def reset_event_bus() -> None:
    """Drop the process-wide default bus; the next `get_event_bus()` builds a fresh one."""
    global _event_bus
    _event_bus = None
