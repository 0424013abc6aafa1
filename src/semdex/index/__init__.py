"""Index layer — vector store, diffing, maintenance passes, scheduling, search."""

from semdex.index.diff import DiffFinder
from semdex.index.query import QueryEngine
from semdex.index.readiness import PopulationReadiness
from semdex.index.scheduler import SchedulerState, UpdateScheduler
from semdex.index.store import VectorStore, VectorTransaction
from semdex.index.types import (
    PassResult,
    PendingChunk,
    ReadinessStatus,
    SearchResult,
    StoredEmbedding,
)
from semdex.index.updater import IndexUpdater, PassStage, UpdateState

__all__ = [
    "DiffFinder",
    "IndexUpdater",
    "PassResult",
    "PassStage",
    "PendingChunk",
    "PopulationReadiness",
    "QueryEngine",
    "ReadinessStatus",
    "SchedulerState",
    "SearchResult",
    "StoredEmbedding",
    "UpdateScheduler",
    "UpdateState",
    "VectorStore",
    "VectorTransaction",
]
