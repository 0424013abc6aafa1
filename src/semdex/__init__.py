"""semdex: an incrementally maintained semantic index over a ranked record store.

Background maintenance keeps embeddings in sync with the record store;
queries run a binary-quantized coarse filter followed by exact re-ranking.
"""

__version__ = "0.1.0"

from semdex._semantic_index import SemanticIndex
from semdex._semantic_index_sync import SemanticIndexSync
from semdex.config import IndexConfig
from semdex.embeddings.protocol import Embedder
from semdex.events import EventBus, EventType, IndexEvent
from semdex.exceptions import (
    CapabilityUnavailableError,
    DimensionMismatchError,
    EmbeddingError,
    SemdexError,
    StorageError,
)
from semdex.index.types import PassResult, ReadinessStatus, SearchResult
from semdex.models.records import Record
from semdex.records.database import DatabaseRecordStore
from semdex.records.protocol import EligibleRecord, RecordInfo, RecordStore

__all__ = [
    "CapabilityUnavailableError",
    "DatabaseRecordStore",
    "DimensionMismatchError",
    "EligibleRecord",
    "Embedder",
    "EmbeddingError",
    "EventBus",
    "EventType",
    "IndexConfig",
    "IndexEvent",
    "PassResult",
    "ReadinessStatus",
    "Record",
    "RecordInfo",
    "RecordStore",
    "SearchResult",
    "SemanticIndex",
    "SemanticIndexSync",
    "SemdexError",
    "StorageError",
    "__version__",
]
