"""DatabaseRecordStore — SQLite-backed RecordStore with change notifications."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import event, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import select

from semdex.config import RANK_ATTRIBUTES
from semdex.events import CHANGE_EVENTS, EventBus, EventType, IndexEvent
from semdex.exceptions import StorageError
from semdex.models.records import Record, url_hash
from semdex.records.protocol import EligibleRecord, RecordInfo

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from semdex.models.records import RecordBase

logger = logging.getLogger(__name__)


def _set_sqlite_pragma(dbapi_connection: object, connection_record: object) -> None:
    cursor = dbapi_connection.cursor()  # type: ignore[union-attr]
    cursor.execute("PRAGMA journal_mode=WAL")
    result = cursor.fetchone()
    if result[0].lower() not in ("wal", "memory"):
        logger.warning("WAL mode not active, got: %s", result[0])
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


class DatabaseRecordStore:
    """Ranked record table in its own SQLite database.

    Writers go through :meth:`put_record`, :meth:`set_rank`,
    :meth:`remove_record` and :meth:`clear`, each of which emits the
    matching change event.  Components that write the table directly
    report their changes with :meth:`notify`.

    Either pass a database *path* (the store owns the engine) or an
    existing async *engine* (the caller owns it).
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        engine: AsyncEngine | None = None,
        record_model: type[RecordBase] | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        if path is not None and engine is not None:
            raise ValueError("Provide path or engine, not both")
        self._path = Path(path) if path is not None else None
        self._engine: AsyncEngine | None = engine
        self._owns_engine = engine is None
        self._model: type[RecordBase] = record_model or Record
        self._events = event_bus or EventBus()
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the engine (if owned) and the record table."""
        if self._session_factory is not None:
            return
        async with self._init_lock:
            if self._session_factory is not None:
                return

            if self._engine is None:
                if self._path is None:
                    url = "sqlite+aiosqlite://"
                else:
                    self._path.parent.mkdir(parents=True, exist_ok=True)
                    url = f"sqlite+aiosqlite:///{self._path}"
                self._engine = create_async_engine(url, echo=False)
                event.listen(self._engine.sync_engine, "connect", _set_sqlite_pragma)

            table = self._model.__table__  # type: ignore[unresolved-attribute]
            async with self._engine.begin() as conn:
                await conn.run_sync(lambda c: table.create(c, checkfirst=True))

            self._session_factory = async_sessionmaker(
                self._engine,
                class_=AsyncSession,
                expire_on_commit=False,
            )

    async def close(self) -> None:
        """Dispose of the engine if this store created it."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        self._session_factory = None

    async def __aenter__(self) -> DatabaseRecordStore:
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def engine(self) -> AsyncEngine | None:
        """The async engine, available after ``open()``."""
        return self._engine

    @property
    def events(self) -> EventBus:
        """Bus the change events are emitted on."""
        return self._events

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise StorageError("DatabaseRecordStore is not open")
        return self._session_factory

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    @property
    def change_count(self) -> int:
        """Monotonic count of change events emitted so far."""
        return self._events.count(*CHANGE_EVENTS)

    def add_listener(self, handler: Callable[..., Any]) -> None:
        for event_type in CHANGE_EVENTS:
            self._events.register(event_type, handler)

    def remove_listener(self, handler: Callable[..., Any]) -> None:
        for event_type in CHANGE_EVENTS:
            self._events.unregister(event_type, handler)

    async def notify(self, event_type: EventType, identity_key: str | None = None) -> None:
        """Report a change made outside this store's write methods."""
        if event_type not in CHANGE_EVENTS:
            msg = f"{event_type.value!r} is not a record change event"
            raise ValueError(msg)
        await self._events.emit(IndexEvent(event_type=event_type, identity_key=identity_key))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put_record(
        self,
        url: str,
        *,
        title: str | None = None,
        description: str | None = None,
        frecency: int = 0,
        alt_frecency: int | None = None,
        last_visit_date: datetime | None = None,
    ) -> RecordBase:
        """Insert or update the record for *url* and emit ``RANK_CHANGED``."""
        model = self._model
        async with self._sessions()() as session:
            result = await session.execute(select(model).where(model.url == url))
            record = result.scalar_one_or_none()
            if record is None:
                record = model(url=url, url_hash=url_hash(url))
                session.add(record)
            record.title = title
            record.description = description
            record.frecency = frecency
            record.alt_frecency = alt_frecency
            record.last_visit_date = last_visit_date
            await session.commit()
            await session.refresh(record)

        await self.notify(EventType.RANK_CHANGED, record.url_hash)
        return record

    async def set_rank(self, url: str, frecency: int, *, alt_frecency: int | None = None) -> bool:
        """Change the rank of *url*. Returns False if the record does not exist."""
        model = self._model
        async with self._sessions()() as session:
            result = await session.execute(select(model).where(model.url == url))
            record = result.scalar_one_or_none()
            if record is None:
                return False
            record.frecency = frecency
            if alt_frecency is not None:
                record.alt_frecency = alt_frecency
            key = record.url_hash
            await session.commit()

        await self.notify(EventType.RANK_CHANGED, key)
        return True

    async def remove_record(self, url: str) -> bool:
        """Delete the record for *url*. Returns False if it did not exist."""
        model = self._model
        async with self._sessions()() as session:
            result = await session.execute(select(model).where(model.url == url))
            record = result.scalar_one_or_none()
            if record is None:
                return False
            key = record.url_hash
            await session.delete(record)
            await session.commit()

        await self.notify(EventType.RECORD_REMOVED, key)
        return True

    async def clear(self) -> int:
        """Delete every record. Returns the number of rows removed."""
        async with self._sessions()() as session:
            result = await session.execute(sa_delete(self._model))
            await session.commit()
            removed = result.rowcount or 0

        await self.notify(EventType.RECORDS_CLEARED)
        return removed

    # ------------------------------------------------------------------
    # RecordStore protocol
    # ------------------------------------------------------------------

    def _rank_column(self, rank_attribute: str) -> Any:
        if rank_attribute not in RANK_ATTRIBUTES:
            msg = f"Unknown rank attribute {rank_attribute!r}"
            raise ValueError(msg)
        return getattr(self._model, rank_attribute)

    async def top_eligible(
        self,
        row_limit: int,
        min_content_length: int,
        rank_attribute: str,
    ) -> list[EligibleRecord]:
        """Top *row_limit* eligible records, highest rank first.

        Eligible: has a title, ``len(title || description)`` above
        *min_content_length*, a last-visit date, and a positive rank.
        Ties keep insertion order.
        """
        model = self._model
        rank = self._rank_column(rank_attribute)
        description = func.coalesce(model.description, "")
        content = func.trim(model.title + " " + description)  # type: ignore[operator]
        stmt = (
            select(model.url_hash, content.label("content"))
            .where(
                model.title.is_not(None),  # type: ignore[union-attr]
                func.length(model.title + description) > min_content_length,  # type: ignore[operator]
                model.last_visit_date.is_not(None),  # type: ignore[union-attr]
                rank > 0,
            )
            .order_by(rank.desc(), model.id)
            .limit(row_limit)
        )
        async with self._sessions()() as session:
            result = await session.execute(stmt)
            return [EligibleRecord(identity_key=row[0], content=row[1]) for row in result.all()]

    async def hydrate(
        self,
        identity_keys: list[str],
        rank_attribute: str,
    ) -> dict[str, list[RecordInfo]]:
        if not identity_keys:
            return {}
        model = self._model
        rank = self._rank_column(rank_attribute)
        stmt = (
            select(model)
            .where(model.url_hash.in_(identity_keys), rank != 0)  # type: ignore[union-attr]
            .order_by(model.id)
        )
        hydrated: dict[str, list[RecordInfo]] = {}
        async with self._sessions()() as session:
            result = await session.execute(stmt)
            for record in result.scalars().all():
                hydrated.setdefault(record.url_hash, []).append(
                    RecordInfo(
                        id=record.id,  # type: ignore[arg-type]
                        identity_key=record.url_hash,
                        url=record.url,
                        title=record.title,
                        rank=getattr(record, rank_attribute) or 0,
                        last_visit_date=record.last_visit_date,
                    )
                )
        return hydrated
