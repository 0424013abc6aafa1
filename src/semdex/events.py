"""EventBus and event types for record-store changes and index signals."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of events flowing between the record store and the index."""

    RANK_CHANGED = "rank_changed"
    RECORD_REMOVED = "record_removed"
    RECORDS_CLEARED = "records_cleared"
    UPDATE_COMPLETE = "update_complete"
    READINESS_CHANGED = "readiness_changed"


CHANGE_EVENTS: tuple[EventType, ...] = (
    EventType.RANK_CHANGED,
    EventType.RECORD_REMOVED,
    EventType.RECORDS_CLEARED,
)
"""Record-store events that may invalidate the index."""


@dataclass(frozen=True, slots=True)
class IndexEvent:
    """Immutable record of a change or signal.

    Attributes:
        event_type: The kind of event.
        identity_key: Affected record identity, when the event concerns one record.
        detail: Free-form payload (e.g. pass statistics, readiness flag).
    """

    event_type: EventType
    identity_key: str | None = None
    detail: Any = None


class EventBus:
    """Dispatches events to registered handlers and counts emissions.

    Handlers are called sequentially in registration order.
    Exceptions are logged but never propagated; a failing handler
    must not break the writer that emitted the event.

    The per-type emission counts are monotonic and serve as the
    "changes observed" counter the index updater gates on.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Callable[..., Any]]] = {et: [] for et in EventType}
        self._counts: Counter[EventType] = Counter()

    def register(self, event_type: EventType, handler: Callable[..., Any]) -> None:
        """Append *handler* to the list for *event_type*."""
        self._handlers[event_type].append(handler)

    def unregister(self, event_type: EventType, handler: Callable[..., Any]) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        handlers = self._handlers[event_type]
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: IndexEvent) -> None:
        """Count *event* and dispatch it to all registered handlers for its type."""
        self._counts[event.event_type] += 1
        for handler in list(self._handlers[event.event_type]):
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Handler %r failed for %s",
                    handler,
                    event.event_type.value,
                    exc_info=True,
                )

    def count(self, *event_types: EventType) -> int:
        """Total emissions of *event_types* (all types when none given)."""
        types = event_types or tuple(EventType)
        return sum(self._counts[et] for et in types)

    @property
    def handler_count(self) -> int:
        """Total number of registered handlers across all event types."""
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Remove all registered handlers. Counters are left untouched."""
        for handlers in self._handlers.values():
            handlers.clear()
