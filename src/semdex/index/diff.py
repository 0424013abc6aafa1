"""DiffFinder — what the index is missing and what it holds that it should not."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from semdex.index.types import PendingChunk

if TYPE_CHECKING:
    from semdex.config import IndexConfig
    from semdex.index.store import VectorStore
    from semdex.records.protocol import EligibleRecord, RecordStore

logger = logging.getLogger(__name__)


class DiffFinder:
    """Compares the record store's eligible top-N view with the index mapping.

    Both finders are pure reads that recompute from current state, so a
    pass that failed or was rolled back is simply retried by diffing again.
    The join across the two stores happens here over identity-key sets.
    """

    def __init__(self, records: RecordStore, store: VectorStore, config: IndexConfig) -> None:
        self._records = records
        self._store = store
        self._config = config

    async def eligible(self) -> list[EligibleRecord]:
        """The top-N eligible records, in the record store's order, one per identity key."""
        rows = await self._records.top_eligible(
            self._config.row_limit,
            self._config.min_content_length,
            self._config.rank_attribute,
        )
        seen: set[str] = set()
        unique: list[EligibleRecord] = []
        for row in rows:
            if row.identity_key in seen:
                continue
            seen.add(row.identity_key)
            unique.append(row)
        return unique

    async def find_additions(self, limit: int) -> PendingChunk[EligibleRecord]:
        """Eligible records with no index entry: up to *limit* of them plus the total."""
        eligible = await self.eligible()
        mapped = await self._store.mapped_keys()
        pending = [row for row in eligible if row.identity_key not in mapped]
        return PendingChunk(total=len(pending), items=pending[:limit])

    async def find_removals(self, limit: int) -> PendingChunk[str]:
        """Orphaned and broken index entries: up to *limit* keys plus the total.

        Orphans are mapped keys outside the eligible top-N set; broken
        mappings are mapped keys whose embedding row is missing.
        """
        eligible_keys = {row.identity_key for row in await self.eligible()}
        mapped = await self._store.mapped_keys()
        orphans = mapped - eligible_keys
        broken = set(await self._store.broken_mapping_keys())
        if broken:
            logger.debug("Found %d broken mappings", len(broken))
        pending = sorted(orphans | broken)
        return PendingChunk(total=len(pending), items=pending[:limit])
