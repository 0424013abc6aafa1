"""SemanticIndexSync — synchronous wrapper with a private event loop."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from semdex._semantic_index import SemanticIndex
from semdex.records.database import DatabaseRecordStore

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from semdex.config import IndexConfig
    from semdex.index.types import PassResult, SearchResult

logger = logging.getLogger(__name__)


class SemanticIndexSync:
    """Record store plus semantic index, usable from plain sync code.

    Both subsystems are async internally; a private event loop in a
    background thread runs them, so debounced maintenance passes keep
    firing between calls.

    Usage::

        with SemanticIndexSync("/app/records.sqlite", embedder, data_dir="/app/.semdex") as s:
            s.put_record("https://example.com/", title="Example Domain",
                         frecency=100, last_visit_date=now)
            s.update_now(force=True)
            hits = s.search("example")
    """

    def __init__(
        self,
        records_path: str | Path,
        embedder: Any,
        *,
        data_dir: str | Path | None = None,
        config: IndexConfig | None = None,
    ) -> None:
        self._closed = False

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        try:
            self._run(self._async_init(records_path, embedder, data_dir, config))
        except BaseException:
            self._stop_loop()
            raise

    async def _async_init(
        self,
        records_path: str | Path,
        embedder: Any,
        data_dir: str | Path | None,
        config: IndexConfig | None,
    ) -> None:
        self._records = DatabaseRecordStore(records_path)
        await self._records.open()
        self._index = SemanticIndex(self._records, embedder, data_dir=data_dir, config=config)
        await self._index.open()

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block on the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the index and the record store, stop the loop and join the thread."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._async_close())
        finally:
            self._stop_loop()

    async def _async_close(self) -> None:
        await self._index.close()
        await self._records.close()

    def __enter__(self) -> SemanticIndexSync:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Record mutations
    # ------------------------------------------------------------------

    def put_record(
        self,
        url: str,
        *,
        title: str | None = None,
        description: str | None = None,
        frecency: int = 0,
        alt_frecency: int | None = None,
        last_visit_date: datetime | None = None,
    ) -> None:
        """Insert or update the record for *url*."""
        self._run(
            self._records.put_record(
                url,
                title=title,
                description=description,
                frecency=frecency,
                alt_frecency=alt_frecency,
                last_visit_date=last_visit_date,
            )
        )

    def set_rank(self, url: str, frecency: int) -> bool:
        return self._run(self._records.set_rank(url, frecency))

    def remove_record(self, url: str) -> bool:
        return self._run(self._records.remove_record(url))

    def clear_records(self) -> int:
        return self._run(self._records.clear())

    # ------------------------------------------------------------------
    # Index wrappers
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        *,
        distance_threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[SearchResult]:
        """Semantic search over the indexed records."""
        return self._run(
            self._index.search(
                query,
                distance_threshold=distance_threshold,
                max_results=max_results,
            )
        )

    def update_now(self, *, force: bool = False) -> PassResult:
        """Run one maintenance pass and return its result."""
        return self._run(self._index.update_now(force=force))

    def is_sufficiently_populated(self) -> bool:
        return self._run(self._index.is_sufficiently_populated())

    def reset(self) -> None:
        """Delete the index files and start over."""
        self._run(self._index.reset())

    def wait_for_idle(self) -> None:
        self._run(self._index.wait_for_idle())

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def index(self) -> SemanticIndex:
        """The underlying async ``SemanticIndex`` (for advanced use)."""
        return self._index

    @property
    def records(self) -> DatabaseRecordStore:
        return self._records
