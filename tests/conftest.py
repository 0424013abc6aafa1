"""Shared fixtures for semdex tests."""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import numpy as np
import pytest

from semdex.config import IndexConfig
from semdex.index.diff import DiffFinder
from semdex.index.store import VectorStore
from semdex.records.database import DatabaseRecordStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

DIM = 32
VISITED = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


# ------------------------------------------------------------------
# Fake embedders
# ------------------------------------------------------------------


def hash_vector(text: str, dim: int = DIM) -> list[float]:
    """Deterministic unit vector from a text hash, centred so signs vary."""
    digest = hashlib.sha256(text.encode()).digest()
    while len(digest) < dim:
        digest += hashlib.sha256(digest).digest()
    raw = np.frombuffer(digest[:dim], dtype=np.uint8).astype(np.float64) - 127.5
    return (raw / np.linalg.norm(raw)).tolist()


class FakeEmbedder:
    """Hash-based embedder that records every call."""

    def __init__(self, dim: int = DIM, *, available: bool = True) -> None:
        self._dim = dim
        self._available = available
        self.calls: list[list[str]] = []
        self.fail = False

    async def embed(self, text: str) -> list[float]:
        self.calls.append([text])
        if self.fail:
            raise RuntimeError("embedder offline")
        return hash_vector(text, self._dim)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedder offline")
        return [hash_vector(t, self._dim) for t in texts]

    def is_available(self) -> bool:
        return self._available

    @property
    def dimensions(self) -> int:
        return self._dim

    @property
    def model_name(self) -> str:
        return "fake-hash"


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def config() -> IndexConfig:
    """Small-dimension config with no debounce so passes are easy to drive."""
    return IndexConfig(
        embedding_dimension=DIM,
        debounce_interval=0.0,
        idle_timeout=1.0,
        change_threshold=3,
    )


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
async def record_store(tmp_path: Path) -> AsyncIterator[DatabaseRecordStore]:
    store = DatabaseRecordStore(tmp_path / "records.sqlite")
    await store.open()
    yield store
    await store.close()


@pytest.fixture
async def vector_store(tmp_path: Path) -> AsyncIterator[VectorStore]:
    store = VectorStore(tmp_path / "semantic.sqlite", dimension=DIM)
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def diff(record_store: DatabaseRecordStore, vector_store: VectorStore, config: IndexConfig) -> DiffFinder:
    return DiffFinder(record_store, vector_store, config)


async def add_records(store: DatabaseRecordStore, count: int, *, start: int = 0) -> list[str]:
    """Insert *count* eligible records with descending frecency; return their URLs."""
    urls = []
    for i in range(start, start + count):
        url = f"https://example.com/page/{i}"
        await store.put_record(
            url,
            title=f"Example page number {i}",
            description=f"All about topic {i}",
            frecency=1000 - i,
            last_visit_date=VISITED,
        )
        urls.append(url)
    return urls
