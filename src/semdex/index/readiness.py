"""PopulationReadiness — is the index populated enough to be worth querying?"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from semdex.events import EventType, IndexEvent
from semdex.index.types import ReadinessStatus

if TYPE_CHECKING:
    from semdex.events import EventBus
    from semdex.index.diff import DiffFinder
    from semdex.index.store import VectorStore


logger = logging.getLogger(__name__)


class PopulationReadiness:
    """Memoized readiness verdict.

    Among the eligible top-N records, the index is ready once
    ``completed / total >= completion_threshold``.  A True verdict is
    cached and never recomputed until :meth:`invalidate` is called (the
    index reset path does so); False verdicts are recomputed each call.
    """

    def __init__(
        self,
        diff: DiffFinder,
        store: VectorStore,
        completion_threshold: float,
        event_bus: EventBus | None = None,
    ) -> None:
        self._diff = diff
        self._store = store
        self._threshold = completion_threshold
        self._events = event_bus
        self._ready = False

    @property
    def cached(self) -> bool:
        """The memoized verdict, without querying."""
        return self._ready

    async def status(self) -> ReadinessStatus:
        """Count eligible records and how many of them are indexed."""
        eligible = await self._diff.eligible()
        mapped = await self._store.mapped_keys()
        completed = sum(1 for row in eligible if row.identity_key in mapped)
        return ReadinessStatus(completed=completed, total=len(eligible))

    async def check(self) -> bool:
        """Return whether the index is sufficiently populated."""
        if self._ready:
            return True

        status = await self.status()
        ready = status.ratio >= self._threshold
        logger.debug(
            "Index population: %d/%d (%.1f %%), threshold %.1f %%",
            status.completed,
            status.total,
            status.ratio * 100,
            self._threshold * 100,
        )
        if ready:
            self._ready = True
            if self._events is not None:
                await self._events.emit(
                    IndexEvent(event_type=EventType.READINESS_CHANGED, detail=True)
                )
        return ready

    async def invalidate(self) -> None:
        """Forget a cached True verdict."""
        if not self._ready:
            return
        self._ready = False
        if self._events is not None:
            await self._events.emit(IndexEvent(event_type=EventType.READINESS_CHANGED, detail=False))
