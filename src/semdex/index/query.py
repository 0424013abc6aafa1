"""QueryEngine — two-stage semantic search: coarse binary filter, exact re-rank."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from semdex.embeddings.protocol import embed_one
from semdex.index.types import SearchResult
from semdex.index.vectors import coerce_embeddings, quantize_binary

if TYPE_CHECKING:
    from semdex.config import IndexConfig
    from semdex.index.store import VectorStore
    from semdex.records.protocol import RecordStore

logger = logging.getLogger(__name__)

# float64 round-off on identical vectors; a zero threshold still matches duplicates.
_DISTANCE_TOLERANCE = 1e-6


class QueryEngine:
    """Executes similarity searches against the index.

    1. Embed the query (single embed).
    2. Take ``coarse_candidates`` row ids from the coarse quantized filter.
    3. Re-rank them by exact cosine distance, dropping any above the threshold.
    4. Keep the closest ``max_results`` and hydrate them from the record store.

    Searches never raise: any failure is logged and yields ``[]``.
    """

    def __init__(
        self,
        records: RecordStore,
        embedder: object,
        store: VectorStore,
        config: IndexConfig,
    ) -> None:
        self._records = records
        self._embedder = embedder
        self._store = store
        self._config = config

    async def search(
        self,
        query: str,
        *,
        distance_threshold: float | None = None,
        max_results: int | None = None,
    ) -> list[SearchResult]:
        """Return up to *max_results* records ordered by ascending distance."""
        threshold = self._config.distance_threshold if distance_threshold is None else distance_threshold
        limit = self._config.max_results if max_results is None else max_results
        if limit <= 0 or not query.strip():
            return []

        try:
            raw = await embed_one(self._embedder, query)
            (vector,) = coerce_embeddings(raw, 1, self._config.embedding_dimension)
        except Exception as exc:
            logger.error("Error embedding query: %s", exc)
            return []

        try:
            candidates = self._store.coarse_search(quantize_binary(vector), self._config.coarse_candidates)
            if not candidates:
                return []

            scored: list[tuple[float, str]] = []
            for stored in await self._store.fetch_embeddings(candidates):
                distance = self._store.exact_distance(stored.vector, vector)
                if distance <= threshold + _DISTANCE_TOLERANCE:
                    scored.append((distance, stored.identity_key))
            scored.sort()
            top = scored[:limit]
            if not top:
                return []

            rank_attribute = self._config.rank_attribute
            hydrated = await self._records.hydrate([key for _, key in top], rank_attribute)
            results: list[SearchResult] = []
            for distance, key in top:
                for info in hydrated.get(key, []):
                    results.append(
                        SearchResult(
                            record_id=info.id,
                            url=info.url,
                            title=info.title,
                            distance=distance,
                            rank=info.rank,
                            last_visit_date=info.last_visit_date,
                        )
                    )
            return results[:limit]
        except Exception:
            logger.exception("Semantic search failed for query %r", query)
            return []
