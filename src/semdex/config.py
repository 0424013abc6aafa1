"""Index configuration and tuning constants."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_EMBEDDING_DIMENSION: int = 512
DEFAULT_ROW_LIMIT: int = 10_000
DEFAULT_CHUNK_SIZE: int = 25
"""Rows processed per addition/removal chunk in one maintenance pass."""

DEFAULT_DEBOUNCE_INTERVAL: float = 3.0
DEFAULT_IDLE_TIMEOUT: float = 120.0
"""Maximum seconds between the first ``arm()`` and the pass actually running."""

MIN_CONTENT_LENGTH: int = 4
"""``len(title || description)`` must exceed this for a record to be eligible."""

COARSE_CANDIDATES: int = 100

RANK_ATTRIBUTES: frozenset[str] = frozenset({"frecency", "alt_frecency"})


@dataclass(frozen=True, slots=True)
class IndexConfig:
    """Configuration for a :class:`~semdex.SemanticIndex`.

    Attributes:
        embedding_dimension: Fixed dimension of every stored vector.
        row_limit: Only the top-N eligible records (by rank) are indexed.
        rank_attribute: Record column used for ordering and positivity.
        change_threshold: Change-counter delta needed before a pass does work.
        distance_threshold: Cosine distance above which query matches are dropped.
        debounce_interval: Quiet interval (seconds) before an armed pass runs.
        idle_timeout: Ceiling (seconds) on how long an armed pass can be deferred.
        completion_threshold: Indexed/eligible ratio at which the index is ready.
        chunk_size: Rows added and removed per pass.
        min_content_length: Minimum combined title + description length.
        coarse_candidates: Candidates taken from the coarse quantized filter.
        max_results: Default result cap for searches.
        enabled: Feature gate; when False the index is never opened.
        remove_on_startup: Delete the index file when opening.
        db_filename: Index database file name inside the data directory.
    """

    embedding_dimension: int = DEFAULT_EMBEDDING_DIMENSION
    row_limit: int = DEFAULT_ROW_LIMIT
    rank_attribute: str = "frecency"
    change_threshold: int = 3
    distance_threshold: float = 0.6
    debounce_interval: float = DEFAULT_DEBOUNCE_INTERVAL
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    completion_threshold: float = 0.5
    chunk_size: int = DEFAULT_CHUNK_SIZE
    min_content_length: int = MIN_CONTENT_LENGTH
    coarse_candidates: int = COARSE_CANDIDATES
    max_results: int = 2
    enabled: bool = True
    remove_on_startup: bool = False
    db_filename: str = "semantic.sqlite"

    def __post_init__(self) -> None:
        for name in ("embedding_dimension", "row_limit", "chunk_size", "coarse_candidates", "max_results"):
            if getattr(self, name) <= 0:
                msg = f"{name} must be positive, got {getattr(self, name)!r}"
                raise ValueError(msg)
        for name in ("change_threshold", "min_content_length", "debounce_interval", "idle_timeout"):
            if getattr(self, name) < 0:
                msg = f"{name} must not be negative, got {getattr(self, name)!r}"
                raise ValueError(msg)
        if self.distance_threshold < 0:
            msg = f"distance_threshold must not be negative, got {self.distance_threshold!r}"
            raise ValueError(msg)
        if not 0.0 <= self.completion_threshold <= 1.0:
            msg = f"completion_threshold must be within [0, 1], got {self.completion_threshold!r}"
            raise ValueError(msg)
        if self.rank_attribute not in RANK_ATTRIBUTES:
            msg = f"Unknown rank attribute {self.rank_attribute!r}; expected one of {sorted(RANK_ATTRIBUTES)}"
            raise ValueError(msg)
        if not self.db_filename:
            raise ValueError("db_filename must not be empty")
