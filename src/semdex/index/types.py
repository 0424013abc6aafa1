"""Index layer data types — value objects for diffs, passes, and search results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from datetime import datetime

    import numpy as np

T = TypeVar("T")


# ------------------------------------------------------------------
# Stored vectors
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StoredEmbedding:
    """An embedding row joined with its identity mapping.

    Attributes:
        row_id: Internal row id shared by the mapping and embedding rows.
        identity_key: Record identity the embedding belongs to.
        vector: Dense float32 vector.
    """

    row_id: int
    identity_key: str
    vector: np.ndarray


# ------------------------------------------------------------------
# Diffing
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PendingChunk(Generic[T]):
    """A bounded chunk of pending work plus the total pending count.

    Attributes:
        total: Number of pending items overall, not just in this chunk.
        items: Up to ``limit`` items to process now.
    """

    total: int
    items: list[T] = field(default_factory=list)

    @property
    def has_more(self) -> bool:
        """Whether work remains beyond this chunk."""
        return self.total > len(self.items)


# ------------------------------------------------------------------
# Maintenance passes
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PassResult:
    """Outcome of one maintenance pass.

    Attributes:
        skipped: The pass was gated off (not enough changes, nothing carried over).
        added: Embeddings written.
        removed: Mappings removed.
        pending_additions: Total additions found before this pass wrote anything.
        pending_removals: Total removals found before this pass wrote anything.
        pending: More work remains; the scheduler should re-arm immediately.
        error: Description of an embedding or transaction failure, if any.
    """

    skipped: bool = False
    added: int = 0
    removed: int = 0
    pending_additions: int = 0
    pending_removals: int = 0
    pending: bool = False
    error: str | None = None


# ------------------------------------------------------------------
# Readiness
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReadinessStatus:
    """Population snapshot used by the readiness check.

    Attributes:
        completed: Eligible records that already have an index entry.
        total: Eligible records.
    """

    completed: int
    total: int

    @property
    def ratio(self) -> float:
        return self.completed / self.total if self.total else 0.0


# ------------------------------------------------------------------
# User-facing search result
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A single semantic search hit, hydrated from the record store.

    Attributes:
        record_id: Primary key of the matched record.
        url: Record URL.
        title: Record title.
        distance: Exact cosine distance to the query (lower is closer).
        rank: Value of the configured rank attribute.
        last_visit_date: Last activity timestamp.
    """

    record_id: int
    url: str
    title: str | None
    distance: float
    rank: int
    last_visit_date: datetime | None = None
