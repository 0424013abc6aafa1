"""SQLModel database models for semdex."""

from semdex.models.records import Record, RecordBase, url_hash
from semdex.models.vectors import IndexEmbedding, IndexMapping

__all__ = [
    "IndexEmbedding",
    "IndexMapping",
    "Record",
    "RecordBase",
    "url_hash",
]
