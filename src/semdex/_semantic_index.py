"""SemanticIndex — async facade owning one incrementally maintained index."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from semdex.config import IndexConfig
from semdex.embeddings.protocol import is_available
from semdex.events import EventBus
from semdex.exceptions import CapabilityUnavailableError
from semdex.index.diff import DiffFinder
from semdex.index.query import QueryEngine
from semdex.index.readiness import PopulationReadiness
from semdex.index.scheduler import UpdateScheduler
from semdex.index.store import VectorStore
from semdex.index.updater import IndexUpdater, UpdateState

if TYPE_CHECKING:
    from semdex.events import IndexEvent
    from semdex.index.types import PassResult, SearchResult
    from semdex.records.protocol import RecordStore

logger = logging.getLogger(__name__)

_DEFAULT_DATA_DIR = Path.home() / ".semdex"


class SemanticIndex:
    """Keeps a vector index in sync with a record store and answers queries.

    One instance per index; construct it with its collaborators and pass
    it to whoever needs to search::

        records = DatabaseRecordStore("/app/records.sqlite")
        await records.open()
        index = SemanticIndex(records, SentenceTransformerEmbedding(),
                              data_dir="/app/.semdex",
                              config=IndexConfig(embedding_dimension=384))
        await index.open()
        hits = await index.search("python asyncio tutorial")

    Record-store changes arm a debounced maintenance pass in the
    background; callers are never blocked by index upkeep.  Index signals
    (``UPDATE_COMPLETE``, ``READINESS_CHANGED``) are emitted on
    :attr:`events`.
    """

    def __init__(
        self,
        records: RecordStore,
        embedder: Any,
        *,
        data_dir: str | Path | None = None,
        config: IndexConfig | None = None,
        vector_store: VectorStore | None = None,
    ) -> None:
        self._config = config or IndexConfig()
        self._data_dir = Path(data_dir) if data_dir else _DEFAULT_DATA_DIR
        self._records = records
        self._embedder = embedder
        self._events = EventBus()

        self._store = vector_store or VectorStore(
            self._data_dir / self._config.db_filename,
            dimension=self._config.embedding_dimension,
        )
        if self._store.dimension != self._config.embedding_dimension:
            msg = (
                f"Vector store dimension {self._store.dimension} does not match "
                f"configured dimension {self._config.embedding_dimension}"
            )
            raise ValueError(msg)

        self._state = UpdateState()
        self._diff = DiffFinder(records, self._store, self._config)
        self._updater = IndexUpdater(
            records,
            embedder,
            self._store,
            self._diff,
            self._config,
            state=self._state,
            event_bus=self._events,
        )
        self._query = QueryEngine(records, embedder, self._store, self._config)
        self._readiness = PopulationReadiness(
            self._diff,
            self._store,
            self._config.completion_threshold,
            self._events,
        )
        self._scheduler: UpdateScheduler | None = None
        self._open_lock = asyncio.Lock()
        self._pass_lock = asyncio.Lock()
        self._opened = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def can_use(self) -> bool:
        """Whether the feature gate is open and the embedder qualifies."""
        return self._config.enabled and is_available(self._embedder)

    async def open(self) -> None:
        """Open the index and start background maintenance.

        When the feature is unavailable, any index left on disk from an
        earlier session is removed and the index stays closed.
        """
        async with self._open_lock:
            if self._opened:
                return

            available = self.can_use
            if (not available and self._store.exists()) or self._config.remove_on_startup:
                logger.info("Removing index files on startup")
                await self._store.remove_files()
            if not available:
                logger.info("Semantic index unavailable on this system; not opening")
                return

            await self._store.open()
            self._scheduler = UpdateScheduler(
                self._scheduled_pass,
                debounce_interval=self._config.debounce_interval,
                idle_timeout=self._config.idle_timeout,
            )
            self._records.add_listener(self._on_records_changed)
            self._opened = True
            logger.info("Semantic index opened (%d entries)", await self._store.count())

            # Catch up with whatever changed while closed.
            self._scheduler.arm()

    async def close(self) -> None:
        """Stop maintenance without waiting for an in-flight pass, then close the store."""
        async with self._open_lock:
            if not self._opened:
                return
            self._opened = False
            if self._scheduler is not None:
                self._scheduler.finalize()
            self._records.remove_listener(self._on_records_changed)
            await self._store.close()
            logger.info("Semantic index closed")

    async def __aenter__(self) -> SemanticIndex:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def reset(self) -> None:
        """Destroy the index on disk and rebuild it from scratch."""
        async with self._pass_lock:
            await self.close()
            await self._store.remove_files()
            await self._readiness.invalidate()
            self._state.reset()
        await self.open()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def _on_records_changed(self, event: IndexEvent) -> None:
        if self._scheduler is not None and self._opened:
            logger.debug("Arming update pass after %s", event.event_type.value)
            self._scheduler.arm()

    async def _scheduled_pass(self) -> bool:
        async with self._pass_lock:
            if not self._opened:
                return False
            result = await self._updater.run_pass()
        return result.pending

    async def update_now(self, *, force: bool = False) -> PassResult:
        """Run one maintenance pass inline. *force* bypasses the change gate."""
        if not self._opened:
            raise CapabilityUnavailableError("Semantic index is not open")
        async with self._pass_lock:
            return await self._updater.run_pass(force=force)

    async def wait_for_idle(self) -> None:
        """Wait for armed and running background passes to finish."""
        if self._scheduler is not None:
            await self._scheduler.wait_idle()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        distance_threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[SearchResult]:
        """Semantic search over the indexed records. Never raises."""
        if not self._opened:
            return []
        return await self._query.search(
            query,
            distance_threshold=distance_threshold,
            max_results=max_results,
        )

    async def is_sufficiently_populated(self) -> bool:
        """Whether enough eligible records are indexed for search to be useful."""
        if not self._opened:
            return False
        return await self._readiness.check()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._opened

    @property
    def config(self) -> IndexConfig:
        return self._config

    @property
    def events(self) -> EventBus:
        """Bus carrying ``UPDATE_COMPLETE`` and ``READINESS_CHANGED``."""
        return self._events

    @property
    def state(self) -> UpdateState:
        """Updater bookkeeping (change counter, pending flag, pass latencies)."""
        return self._state

    @property
    def store(self) -> VectorStore:
        return self._store

    @property
    def scheduler(self) -> UpdateScheduler | None:
        return self._scheduler

    @property
    def diff(self) -> DiffFinder:
        return self._diff

    @property
    def records(self) -> RecordStore:
        return self._records
