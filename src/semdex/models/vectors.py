"""Index tables — identity mapping and stored embeddings.

An ``IndexMapping`` row exists iff an ``IndexEmbedding`` row with the same
``id`` exists; both are written in the same transaction.
"""

from __future__ import annotations

from sqlalchemy import LargeBinary
from sqlmodel import Field, SQLModel


class IndexMapping(SQLModel, table=True):
    """Maps a record identity key to the internal row id of its embedding."""

    __tablename__ = "semantic_mapping"
    # AUTOINCREMENT keeps SQLite from recycling the ids of deleted rows.
    __table_args__ = {"sqlite_autoincrement": True}

    id: int | None = Field(default=None, primary_key=True)
    identity_key: str = Field(index=True, unique=True)


class IndexEmbedding(SQLModel, table=True):
    """Dense float32 embedding plus its packed binary quantization."""

    __tablename__ = "semantic_embeddings"

    id: int = Field(primary_key=True, sa_column_kwargs={"autoincrement": False})
    embedding: bytes = Field(sa_type=LargeBinary)  # type: ignore[invalid-argument-type]
    embedding_coarse: bytes = Field(sa_type=LargeBinary)  # type: ignore[invalid-argument-type]
