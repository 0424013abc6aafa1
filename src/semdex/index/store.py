"""VectorStore — SQLite-persisted embeddings with an in-process usearch coarse index."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from sqlalchemy import delete as sa_delete
from sqlalchemy import event, func
from sqlalchemy import insert as sa_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import select
from usearch.index import Index

from semdex.exceptions import StorageError
from semdex.index.types import StoredEmbedding
from semdex.index.vectors import (
    as_vector,
    cosine_distance,
    expand_binary,
    from_blob,
    quantize_binary,
    to_blob,
)
from semdex.models.vectors import IndexEmbedding, IndexMapping

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def _set_sqlite_pragma(dbapi_connection: object, connection_record: object) -> None:
    cursor = dbapi_connection.cursor()  # type: ignore[union-attr]
    cursor.execute("PRAGMA journal_mode=WAL")
    result = cursor.fetchone()
    if result[0].lower() not in ("wal", "memory"):
        logger.warning("WAL mode not active, got: %s", result[0])
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


class VectorTransaction:
    """Write operations on the index tables, bound to one open transaction.

    Obtained from :meth:`VectorStore.transaction`; every statement issued
    through one instance commits or rolls back together.  Conflicts are
    part of the contract rather than errors:

    - :meth:`insert_mapping` is insert-or-reuse: an existing mapping for
      the identity key yields its row id.
    - :meth:`insert_embedding` is insert-or-replace: an existing row with
      the same id is deleted before the new one is inserted.
    """

    def __init__(self, session: AsyncSession, dimension: int) -> None:
        self._session = session
        self._dimension = dimension
        # Coarse-index changes to publish once the transaction commits.
        self.added: dict[int, bytes] = {}
        self.removed: set[int] = set()

    async def insert_mapping(self, identity_key: str) -> int:
        """Map *identity_key* to a row id, reusing an existing mapping."""
        await self._session.execute(
            sqlite_insert(IndexMapping)
            .values(identity_key=identity_key)
            .on_conflict_do_nothing(index_elements=["identity_key"])
        )
        result = await self._session.execute(
            select(IndexMapping.id).where(IndexMapping.identity_key == identity_key)
        )
        return result.scalar_one()

    async def insert_embedding(self, row_id: int, vector: Sequence[float] | np.ndarray) -> bool:
        """Store *vector* and its binary quantization under *row_id*.

        Returns True when an existing row was replaced.  Raises
        :class:`~semdex.exceptions.DimensionMismatchError` on a vector of
        the wrong dimension.
        """
        arr = as_vector(vector, self._dimension)
        coarse = quantize_binary(arr)

        result = await self._session.execute(
            sa_delete(IndexEmbedding).where(IndexEmbedding.id == row_id)  # type: ignore[arg-type]
        )
        replaced = bool(result.rowcount)
        if replaced:
            logger.debug("Replacing conflicting embedding row %d", row_id)

        await self._session.execute(
            sa_insert(IndexEmbedding).values(
                id=row_id,
                embedding=to_blob(arr),
                embedding_coarse=coarse,
            )
        )
        self.added[row_id] = coarse
        self.removed.discard(row_id)
        return replaced

    async def delete_mapping(self, identity_key: str) -> int | None:
        """Remove the mapping for *identity_key*, returning its row id (None if absent)."""
        result = await self._session.execute(
            select(IndexMapping.id).where(IndexMapping.identity_key == identity_key)
        )
        row_id = result.scalar_one_or_none()
        if row_id is None:
            return None
        await self._session.execute(
            sa_delete(IndexMapping).where(IndexMapping.id == row_id)  # type: ignore[arg-type]
        )
        return row_id

    async def delete_embedding(self, row_id: int) -> bool:
        """Remove the embedding row *row_id*. Returns True if a row existed."""
        result = await self._session.execute(
            sa_delete(IndexEmbedding).where(IndexEmbedding.id == row_id)  # type: ignore[arg-type]
        )
        self.removed.add(row_id)
        self.added.pop(row_id, None)
        return bool(result.rowcount)


class VectorStore:
    """Persistent vector index in a dedicated SQLite file.

    Two tables hold the identity mapping and the embeddings (dense float32
    plus packed binary code).  Coarse search runs on an in-process usearch
    index over the binary codes, rebuilt from the table on :meth:`open` and
    updated only after write transactions commit.  Exact distances are
    computed from the dense vectors.

    Reads may run concurrently with a write transaction; SQLite's WAL
    snapshot isolation gives each read a consistent view.

    Pass ``path=None`` for an in-memory database.
    """

    def __init__(self, path: str | Path | None, *, dimension: int) -> None:
        if dimension <= 0:
            msg = f"dimension must be positive, got {dimension}"
            raise ValueError(msg)
        self._path = Path(path) if path is not None else None
        self._dimension = dimension
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._init_lock = asyncio.Lock()

        # usearch keys are never reused; row id <-> key maps sit beside the index.
        self._lock = threading.Lock()
        self._coarse = self._new_coarse_index()
        self._row_to_key: dict[int, int] = {}
        self._key_to_row: dict[int, int] = {}
        self._next_key = 0

    def _new_coarse_index(self) -> Index:
        return Index(ndim=self._dimension, metric="cos", dtype="f16")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the database (if needed) and load the coarse index."""
        if self._session_factory is not None:
            return
        async with self._init_lock:
            if self._session_factory is not None:
                return

            if self._path is None:
                url = "sqlite+aiosqlite://"
            else:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                url = f"sqlite+aiosqlite:///{self._path}"
            self._engine = create_async_engine(url, echo=False)
            event.listen(self._engine.sync_engine, "connect", _set_sqlite_pragma)

            mapping_table = IndexMapping.__table__  # type: ignore[unresolved-attribute]
            embedding_table = IndexEmbedding.__table__  # type: ignore[unresolved-attribute]
            async with self._engine.begin() as conn:
                await conn.run_sync(lambda c: mapping_table.create(c, checkfirst=True))
                await conn.run_sync(lambda c: embedding_table.create(c, checkfirst=True))

            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )
        await self.rebuild_coarse_index()

    async def close(self) -> None:
        """Dispose of the engine and drop the in-memory coarse index."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._session_factory = None
        with self._lock:
            self._coarse = self._new_coarse_index()
            self._row_to_key = {}
            self._key_to_row = {}
            self._next_key = 0

    @property
    def is_open(self) -> bool:
        return self._session_factory is not None

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def path(self) -> Path | None:
        """Database file path (None for in-memory stores)."""
        return self._path

    def exists(self) -> bool:
        """Whether the database file is present on disk."""
        return self._path is not None and self._path.exists()

    async def remove_files(self) -> None:
        """Close the store and delete the database file and its sidecars."""
        await self.close()
        if self._path is None:
            return
        candidates = [self._path] + [
            self._path.with_name(self._path.name + suffix) for suffix in _SIDECAR_SUFFIXES
        ]
        for candidate in candidates:
            with contextlib.suppress(FileNotFoundError):
                candidate.unlink()
                logger.info("Removed %s", candidate)

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise StorageError("VectorStore is not open")
        return self._session_factory

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[VectorTransaction]:
        """Open a write transaction.

        Commits when the block exits normally; any exception rolls back
        every statement issued through the yielded
        :class:`VectorTransaction` and propagates.
        """
        async with self._sessions()() as session:
            async with session.begin():
                tx = VectorTransaction(session, self._dimension)
                yield tx
        self._publish(tx.added, tx.removed)

    def _publish(self, added: dict[int, bytes], removed: set[int]) -> None:
        """Apply committed changes to the coarse index."""
        with self._lock:
            for row_id in removed | set(added):
                key = self._row_to_key.pop(row_id, None)
                if key is not None:
                    self._coarse.remove(key)
                    del self._key_to_row[key]
            for row_id, packed in added.items():
                key = self._next_key
                self._next_key += 1
                self._coarse.add(key, expand_binary(packed, self._dimension))
                self._row_to_key[row_id] = key
                self._key_to_row[key] = row_id

    async def rebuild_coarse_index(self) -> int:
        """Reload the coarse index from the embeddings table. Returns its size."""
        expected_bytes = (self._dimension + 7) // 8
        async with self._sessions()() as session:
            result = await session.execute(
                select(IndexEmbedding.id, IndexEmbedding.embedding_coarse)
            )
            rows = result.all()

        keys: list[int] = []
        vectors: list[np.ndarray] = []
        for row_id, packed in rows:
            if len(packed) != expected_bytes:
                logger.warning("Ignoring embedding row %d with a foreign dimension", row_id)
                continue
            keys.append(row_id)
            vectors.append(expand_binary(packed, self._dimension))

        index = self._new_coarse_index()
        if keys:
            index.add(np.arange(len(keys), dtype=np.uint64), np.vstack(vectors))
        with self._lock:
            self._coarse = index
            self._row_to_key = {row_id: key for key, row_id in enumerate(keys)}
            self._key_to_row = dict(enumerate(keys))
            self._next_key = len(keys)
        logger.debug("Coarse index loaded with %d rows", len(keys))
        return len(keys)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def mapped_keys(self) -> set[str]:
        """Identity keys that currently have a mapping."""
        async with self._sessions()() as session:
            result = await session.execute(select(IndexMapping.identity_key))
            return set(result.scalars().all())

    async def broken_mapping_keys(self) -> list[str]:
        """Identity keys whose mapping has no embedding row."""
        stmt = (
            select(IndexMapping.identity_key)
            .outerjoin(IndexEmbedding, IndexEmbedding.id == IndexMapping.id)  # type: ignore[arg-type]
            .where(IndexEmbedding.id.is_(None))  # type: ignore[union-attr]
            .order_by(IndexMapping.id)
        )
        async with self._sessions()() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(self) -> int:
        """Number of identity mappings."""
        async with self._sessions()() as session:
            result = await session.execute(select(func.count()).select_from(IndexMapping))
            return int(result.scalar_one())

    async def fetch_embeddings(self, row_ids: Sequence[int]) -> list[StoredEmbedding]:
        """Dense vectors for *row_ids* that still have both rows.

        Rows deleted since the ids were obtained are silently absent, as
        are rows stored with a different dimension.
        """
        if not row_ids:
            return []
        stmt = (
            select(IndexMapping.id, IndexMapping.identity_key, IndexEmbedding.embedding)
            .join(IndexEmbedding, IndexEmbedding.id == IndexMapping.id)  # type: ignore[arg-type]
            .where(IndexMapping.id.in_(list(row_ids)))  # type: ignore[union-attr]
        )
        async with self._sessions()() as session:
            result = await session.execute(stmt)
            rows = result.all()

        stored: list[StoredEmbedding] = []
        for row_id, identity_key, blob in rows:
            vector = from_blob(blob)
            if vector.shape[0] != self._dimension:
                continue
            stored.append(StoredEmbedding(row_id=row_id, identity_key=identity_key, vector=vector))
        return stored

    def coarse_search(self, coarse: bytes, k: int) -> list[int]:
        """Row ids of up to *k* nearest binary codes, closest first."""
        with self._lock:
            size = len(self._row_to_key)
            if size == 0 or k <= 0:
                return []
            query = expand_binary(coarse, self._dimension)
            matches = self._coarse.search(query, min(k, size))
            return [
                self._key_to_row[int(key)]
                for key in matches.keys.tolist()
                if int(key) in self._key_to_row
            ]

    @staticmethod
    def exact_distance(vector: np.ndarray, query: np.ndarray) -> float:
        """Exact cosine distance used to re-rank coarse candidates."""
        return cosine_distance(vector, query)

    def __len__(self) -> int:
        """Number of rows in the coarse index."""
        return len(self._row_to_key)
