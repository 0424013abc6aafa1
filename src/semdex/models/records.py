"""Record model — the ranked relational rows the index is built from.

Provides ``RecordBase`` (non-table base) and ``Record`` (concrete table).
Subclass ``RecordBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name.
"""

from __future__ import annotations

import hashlib
from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

URL_HASH_LENGTH: int = 16


def url_hash(url: str) -> str:
    """Return the identity key for *url* (truncated SHA-256 hex digest)."""
    return hashlib.sha256(url.encode()).hexdigest()[:URL_HASH_LENGTH]


class RecordBase(SQLModel):
    """Base fields for a ranked record. Subclass with ``table=True`` for a concrete table."""

    id: int | None = Field(default=None, primary_key=True)
    url: str = Field(index=True, unique=True)
    url_hash: str = Field(index=True)
    title: str | None = Field(default=None)
    description: str | None = Field(default=None)
    frecency: int = Field(default=0, index=True)
    alt_frecency: int | None = Field(default=None, index=True)
    last_visit_date: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Record(RecordBase, table=True):
    """Default record table — ``semdex_records``."""

    __tablename__ = "semdex_records"
