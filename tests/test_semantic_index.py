"""Tests for the SemanticIndex facade — lifecycle, background upkeep, search, reset."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from conftest import DIM, FakeEmbedder, add_records

from semdex import SemanticIndex
from semdex.config import IndexConfig
from semdex.events import EventType, IndexEvent
from semdex.exceptions import CapabilityUnavailableError
from semdex.index.scheduler import SchedulerState
from semdex.index.store import VectorStore
from semdex.models.records import url_hash
from semdex.records.database import DatabaseRecordStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


def _config(**overrides) -> IndexConfig:
    values = {
        "embedding_dimension": DIM,
        "debounce_interval": 0.01,
        "idle_timeout": 0.5,
        "distance_threshold": 2.0,
        "max_results": 5,
    }
    values.update(overrides)
    return IndexConfig(**values)


@pytest.fixture
async def manual_index(
    record_store: DatabaseRecordStore, embedder: FakeEmbedder, tmp_path: Path
) -> AsyncIterator[SemanticIndex]:
    """Index whose background pass is far off, so tests drive passes with ``update_now``."""
    idx = SemanticIndex(
        record_store,
        embedder,
        data_dir=tmp_path / "index",
        config=_config(debounce_interval=5.0, idle_timeout=10.0),
    )
    yield idx
    await idx.close()


@pytest.fixture
async def index(
    record_store: DatabaseRecordStore, embedder: FakeEmbedder, tmp_path: Path
) -> AsyncIterator[SemanticIndex]:
    idx = SemanticIndex(record_store, embedder, data_dir=tmp_path / "index", config=_config())
    yield idx
    await idx.close()


# ==================================================================
# Lifecycle
# ==================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_open_creates_index_file(self, index: SemanticIndex, tmp_path: Path):
        await index.open()
        assert index.is_open
        assert (tmp_path / "index" / "semantic.sqlite").exists()

    @pytest.mark.asyncio
    async def test_open_is_idempotent(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        await index.open()
        handlers = record_store.events.handler_count
        await index.open()
        assert record_store.events.handler_count == handlers

    @pytest.mark.asyncio
    async def test_close_unregisters_listener(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        baseline = record_store.events.handler_count
        await index.open()
        assert record_store.events.handler_count == baseline + 3
        await index.close()
        assert record_store.events.handler_count == baseline
        assert not index.is_open
        await index.close()

    @pytest.mark.asyncio
    async def test_context_manager(self, record_store: DatabaseRecordStore, embedder, tmp_path: Path):
        async with SemanticIndex(record_store, embedder, data_dir=tmp_path, config=_config()) as idx:
            assert idx.is_open
        assert not idx.is_open
        assert idx.scheduler is not None
        assert idx.scheduler.state is SchedulerState.FINALIZED

    @pytest.mark.asyncio
    async def test_vector_store_dimension_must_match(self, record_store, embedder, tmp_path: Path):
        store = VectorStore(tmp_path / "v.sqlite", dimension=DIM * 2)
        with pytest.raises(ValueError, match="does not match"):
            SemanticIndex(record_store, embedder, config=_config(), vector_store=store)

    @pytest.mark.asyncio
    async def test_update_now_requires_open(self, index: SemanticIndex):
        with pytest.raises(CapabilityUnavailableError):
            await index.update_now()

    @pytest.mark.asyncio
    async def test_closed_index_answers_nothing(self, index: SemanticIndex):
        assert await index.search("anything") == []
        assert await index.is_sufficiently_populated() is False


# ==================================================================
# Capability gating
# ==================================================================


class TestCapability:
    @pytest.mark.asyncio
    async def test_unavailable_embedder_does_not_open(self, record_store, tmp_path: Path):
        idx = SemanticIndex(record_store, FakeEmbedder(available=False), data_dir=tmp_path, config=_config())
        assert idx.can_use is False
        await idx.open()
        assert not idx.is_open
        assert not (tmp_path / "semantic.sqlite").exists()

    @pytest.mark.asyncio
    async def test_disabled_removes_stale_file(self, record_store, embedder, tmp_path: Path):
        stale = tmp_path / "semantic.sqlite"
        stale.write_bytes(b"left over")
        idx = SemanticIndex(record_store, embedder, data_dir=tmp_path, config=_config(enabled=False))
        await idx.open()
        assert not idx.is_open
        assert not stale.exists()

    @pytest.mark.asyncio
    async def test_remove_on_startup(self, record_store, embedder, tmp_path: Path):
        await add_records(record_store, 3)
        first = SemanticIndex(record_store, embedder, data_dir=tmp_path, config=_config())
        await first.open()
        await first.wait_for_idle()
        await first.close()

        second = SemanticIndex(
            record_store,
            embedder,
            data_dir=tmp_path,
            config=_config(remove_on_startup=True, debounce_interval=5.0, idle_timeout=10.0),
        )
        await second.open()
        try:
            assert await second.store.count() == 0
        finally:
            await second.close()

    @pytest.mark.asyncio
    async def test_embedder_without_capability_check(self, record_store, tmp_path: Path):
        class _Plain:
            async def embed(self, text: str) -> list[float]:
                return [1.0] * DIM

            async def embed_batch(self, texts: list[str]) -> list[list[float]]:
                return [[1.0] * DIM for _ in texts]

        idx = SemanticIndex(record_store, _Plain(), data_dir=tmp_path, config=_config())
        assert idx.can_use is True


# ==================================================================
# Background maintenance
# ==================================================================


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_open_catches_up(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        urls = await add_records(record_store, 4)
        await index.open()
        await index.wait_for_idle()
        assert await index.store.mapped_keys() == {url_hash(u) for u in urls}

    @pytest.mark.asyncio
    async def test_changes_arm_a_pass(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        await index.open()
        await index.wait_for_idle()
        urls = await add_records(record_store, 3)
        await index.wait_for_idle()
        assert await index.store.mapped_keys() == {url_hash(u) for u in urls}

    @pytest.mark.asyncio
    async def test_small_change_is_deferred(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        await index.open()
        await index.wait_for_idle()
        await add_records(record_store, 1)
        await index.wait_for_idle()
        assert await index.store.count() == 0

        result = await index.update_now(force=True)
        assert result.added == 1

    @pytest.mark.asyncio
    async def test_removal_reaches_index(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        urls = await add_records(record_store, 3)
        await index.open()
        await index.wait_for_idle()
        for url in urls:
            await record_store.remove_record(url)
        await index.wait_for_idle()
        assert await index.store.count() == 0

    @pytest.mark.asyncio
    async def test_chunked_catch_up_rearms(self, record_store, embedder, tmp_path: Path):
        urls = await add_records(record_store, 7)
        async with SemanticIndex(
            record_store, embedder, data_dir=tmp_path, config=_config(chunk_size=2)
        ) as idx:
            await idx.wait_for_idle()
            assert await idx.store.count() == len(urls)
            assert idx.scheduler is not None
            assert idx.scheduler.runs == 4
            assert idx.state.max_chunks_count == 4
            assert len(idx.state.latencies) == 4

    @pytest.mark.asyncio
    async def test_update_complete_event(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        seen: list[IndexEvent] = []

        async def _on_complete(event: IndexEvent) -> None:
            seen.append(event)

        index.events.register(EventType.UPDATE_COMPLETE, _on_complete)
        await add_records(record_store, 2)
        await index.open()
        await index.wait_for_idle()
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_is_retried_later(
        self, index: SemanticIndex, record_store: DatabaseRecordStore, embedder: FakeEmbedder
    ):
        await add_records(record_store, 2)
        embedder.fail = True
        await index.open()
        await index.wait_for_idle()
        assert await index.store.count() == 0
        assert index.state.pending_updates is True

        embedder.fail = False
        await add_records(record_store, 1, start=5)
        await index.wait_for_idle()
        assert await index.store.count() == 3


# ==================================================================
# Queries and readiness
# ==================================================================


class TestQueries:
    @pytest.mark.asyncio
    async def test_search_round_trip(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        await add_records(record_store, 5)
        await index.open()
        await index.wait_for_idle()
        results = await index.search("Example page number 2 All about topic 2")
        assert results[0].url == "https://example.com/page/2"
        assert results[0].distance == pytest.approx(0.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_search_overrides(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        await add_records(record_store, 5)
        await index.open()
        await index.wait_for_idle()
        assert len(await index.search("anything", max_results=1)) == 1
        exact = await index.search("Example page number 4 All about topic 4", distance_threshold=0.0)
        assert [r.url for r in exact] == ["https://example.com/page/4"]

    @pytest.mark.asyncio
    async def test_sufficiently_populated(
        self, manual_index: SemanticIndex, record_store: DatabaseRecordStore
    ):
        await add_records(record_store, 3)
        await manual_index.open()
        assert await manual_index.is_sufficiently_populated() is False
        await manual_index.update_now()
        assert await manual_index.is_sufficiently_populated() is True


# ==================================================================
# Reset
# ==================================================================


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_rebuilds(self, manual_index: SemanticIndex, record_store: DatabaseRecordStore):
        urls = await add_records(record_store, 3)
        await manual_index.open()
        await manual_index.update_now()
        assert await manual_index.is_sufficiently_populated() is True

        await manual_index.reset()
        assert manual_index.is_open
        assert await manual_index.store.count() == 0
        assert await manual_index.is_sufficiently_populated() is False

        await manual_index.update_now()
        assert await manual_index.store.mapped_keys() == {url_hash(u) for u in urls}
        assert await manual_index.is_sufficiently_populated() is True

    @pytest.mark.asyncio
    async def test_reset_discards_stale_entries(self, index: SemanticIndex):
        await index.open()
        async with index.store.transaction() as tx:
            await tx.insert_mapping("stale-entry")
        await index.reset()
        assert "stale-entry" not in await index.store.mapped_keys()

    @pytest.mark.asyncio
    async def test_reset_resets_state(self, manual_index: SemanticIndex, record_store: DatabaseRecordStore):
        await add_records(record_store, 3)
        await manual_index.open()
        await manual_index.update_now()
        assert manual_index.state.pending_updates is False
        assert manual_index.state.last_change_count == 3

        await manual_index.reset()
        assert manual_index.state.pending_updates is True
        assert manual_index.state.last_change_count == 0

    @pytest.mark.asyncio
    async def test_reset_rearms_catch_up(self, index: SemanticIndex, record_store: DatabaseRecordStore):
        urls = await add_records(record_store, 3)
        await index.open()
        await index.wait_for_idle()
        await index.reset()
        await index.wait_for_idle()
        assert await index.store.mapped_keys() == {url_hash(u) for u in urls}
