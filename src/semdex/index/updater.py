"""IndexUpdater — one incremental maintenance pass over the vector index."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from semdex.embeddings.protocol import embed_many
from semdex.events import EventType, IndexEvent
from semdex.index.types import PassResult
from semdex.index.vectors import coerce_embeddings

if TYPE_CHECKING:
    import numpy as np

    from semdex.config import IndexConfig
    from semdex.events import EventBus
    from semdex.index.diff import DiffFinder
    from semdex.index.store import VectorStore
    from semdex.records.protocol import EligibleRecord, RecordStore

logger = logging.getLogger(__name__)


class PassStage(Enum):
    """Where a maintenance pass currently is."""

    IDLE = "idle"
    GATED = "gated"
    DIFFING = "diffing"
    EMBEDDING = "embedding"
    WRITING = "writing"
    DONE = "done"


@dataclass(slots=True)
class UpdateState:
    """Process-wide bookkeeping for one index.

    Attributes:
        last_change_count: Record-store change counter seen by the last gated-in pass.
        pending_updates: Work is carried over; the next pass skips the change gate.
        stage: Stage of the pass in progress (IDLE between passes).
        max_chunks_count: Largest number of chunks ever found pending at once.
        latencies: Wall-clock duration (seconds) of every pass that ran.
    """

    last_change_count: int = 0
    pending_updates: bool = True
    stage: PassStage = PassStage.IDLE
    max_chunks_count: int = 0
    latencies: list[float] = field(default_factory=list)

    def reset(self) -> None:
        self.last_change_count = 0
        self.pending_updates = True
        self.stage = PassStage.IDLE
        self.max_chunks_count = 0


class IndexUpdater:
    """Runs maintenance passes: gate, diff, embed, write, decide on re-arming.

    Each pass handles at most one chunk of additions and one chunk of
    removals, both inside a single write transaction.  Failures never
    escape :meth:`run_pass`; they are logged, reported in the returned
    :class:`PassResult`, and retried by a later pass.
    """

    def __init__(
        self,
        records: RecordStore,
        embedder: object,
        store: VectorStore,
        diff: DiffFinder,
        config: IndexConfig,
        *,
        state: UpdateState | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._records = records
        self._embedder = embedder
        self._store = store
        self._diff = diff
        self._config = config
        self._events = event_bus
        self.state = state or UpdateState()

    async def run_pass(self, *, force: bool = False) -> PassResult:
        """Run one pass. *force* bypasses the change-count gate."""
        state = self.state
        started = time.perf_counter()
        logger.info("Running index update pass")
        try:
            state.stage = PassStage.GATED
            change_count = self._records.change_count
            delta = change_count - state.last_change_count
            if delta < self._config.change_threshold and not state.pending_updates and not force:
                logger.info("No significant changes detected (%d below %d)", delta, self._config.change_threshold)
                return PassResult(skipped=True)
            state.last_change_count = change_count

            state.stage = PassStage.DIFFING
            chunk_size = self._config.chunk_size
            additions = await self._diff.find_additions(chunk_size)
            removals = await self._diff.find_removals(chunk_size)
            logger.info("Total rows to add: %d, delete: %d", additions.total, removals.total)

            chunks = math.ceil(additions.total / chunk_size) + math.ceil(removals.total / chunk_size)
            state.max_chunks_count = max(state.max_chunks_count, chunks)

            added = removed = 0
            error: str | None = None
            if additions.total or removals.total:
                state.stage = PassStage.EMBEDDING
                rows, vectors, error = await self._embed(additions.items)

                state.stage = PassStage.WRITING
                try:
                    added, removed = await self._write(rows, vectors, removals.items)
                except Exception as exc:
                    logger.exception("Index update transaction failed; changes rolled back")
                    state.pending_updates = True
                    return PassResult(
                        pending_additions=additions.total,
                        pending_removals=removals.total,
                        error=f"transaction failed: {exc}",
                    )

            more = additions.has_more or removals.has_more
            # A failed embedding carries work over but never re-arms immediately.
            state.pending_updates = more or error is not None
            result = PassResult(
                added=added,
                removed=removed,
                pending_additions=additions.total,
                pending_removals=removals.total,
                pending=more and error is None,
                error=error,
            )
            if not state.pending_updates and self._events is not None:
                await self._events.emit(IndexEvent(event_type=EventType.UPDATE_COMPLETE, detail=result))
            return result
        finally:
            state.stage = PassStage.DONE
            elapsed = time.perf_counter() - started
            state.latencies.append(elapsed)
            logger.info("Index update pass completed in %.1f ms", elapsed * 1000)
            state.stage = PassStage.IDLE

    async def _embed(
        self, rows: list[EligibleRecord]
    ) -> tuple[list[EligibleRecord], list[np.ndarray], str | None]:
        """Batch-embed *rows*. On failure the additions are dropped for this pass."""
        if not rows:
            return [], [], None
        try:
            raw = await embed_many(self._embedder, [row.content for row in rows])
            vectors = coerce_embeddings(raw, len(rows), self._config.embedding_dimension)
        except Exception as exc:
            logger.error("Error embedding %d rows: %s", len(rows), exc)
            return [], [], f"embedding failed: {exc}"
        return rows, vectors, None

    async def _write(
        self,
        rows: list[EligibleRecord],
        vectors: list[np.ndarray],
        removals: list[str],
    ) -> tuple[int, int]:
        added = removed = 0
        async with self._store.transaction() as tx:
            for row, vector in zip(rows, vectors, strict=True):
                row_id = await tx.insert_mapping(row.identity_key)
                await tx.insert_embedding(row_id, vector)
                logger.debug("Added embedding and mapping for %s", row.identity_key)
                added += 1

            for identity_key in removals:
                row_id = await tx.delete_mapping(identity_key)
                if row_id is None:
                    logger.warning("No mapping found for %s", identity_key)
                    continue
                await tx.delete_embedding(row_id)
                logger.debug("Deleted embedding and mapping for %s", identity_key)
                removed += 1
        return added, removed
