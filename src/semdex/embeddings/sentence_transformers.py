"""SentenceTransformerEmbedding — local embedding provider."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import psutil

try:
    from sentence_transformers import SentenceTransformer

    _HAS_SENTENCE_TRANSFORMERS = True
except ImportError:  # pragma: no cover
    _HAS_SENTENCE_TRANSFORMERS = False

logger = logging.getLogger(__name__)

_ONE_GIB = 1024 * 1024 * 1024


class SentenceTransformerEmbedding:
    """Embedding provider backed by ``sentence-transformers``.

    The model is loaded lazily on the first call to :meth:`embed` or
    :meth:`embed_batch`.  Async methods run the underlying CPU-bound model
    inference in a thread pool via :func:`asyncio.to_thread`.

    :meth:`is_available` reports whether this machine has enough CPU cores
    and physical memory to run the model alongside everything else.
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        *,
        min_cpu_cores: int = 2,
        min_memory_bytes: int = 2 * _ONE_GIB,
    ) -> None:
        if not _HAS_SENTENCE_TRANSFORMERS:
            msg = (
                "sentence-transformers is required for SentenceTransformerEmbedding. "
                "Install it with: pip install semdex[search]"
            )
            raise ImportError(msg)
        self._model_name = model_name
        self._model: SentenceTransformer | None = None
        self._min_cpu_cores = min_cpu_cores
        self._min_memory_bytes = min_memory_bytes

    def _load_model(self) -> SentenceTransformer:
        if self._model is None:
            logger.info("Loading embedding model %s", self._model_name)
            self._model = SentenceTransformer(self._model_name)
        return self._model

    # ------------------------------------------------------------------
    # Capability checks
    # ------------------------------------------------------------------

    def is_enough_cpu_cores_available(self) -> bool:
        # Physical cores; an unknown count fails the check.
        cores = psutil.cpu_count(logical=False)
        return cores is not None and cores >= self._min_cpu_cores

    def is_enough_physical_memory_available(self) -> bool:
        return psutil.virtual_memory().total >= self._min_memory_bytes

    def is_available(self) -> bool:
        """Whether the hardware qualifies for running the model."""
        return self.is_enough_cpu_cores_available() and self.is_enough_physical_memory_available()

    # ------------------------------------------------------------------
    # Sync methods
    # ------------------------------------------------------------------

    def embed_sync(self, text: str) -> list[float]:
        """Embed a single text string (synchronous)."""
        model = self._load_model()
        result: Any = model.encode([text], normalize_embeddings=True)
        return result[0].tolist()

    def embed_batch_sync(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts (synchronous)."""
        if not texts:
            return []
        model = self._load_model()
        result: Any = model.encode(texts, normalize_embeddings=True)
        return [row.tolist() for row in result]

    # ------------------------------------------------------------------
    # Async methods (Embedder protocol)
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string in a thread pool."""
        return await asyncio.to_thread(self.embed_sync, text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts in a thread pool."""
        return await asyncio.to_thread(self.embed_batch_sync, texts)

    @property
    def dimensions(self) -> int:
        """Return the embedding dimensionality."""
        model = self._load_model()
        dim = model.get_sentence_embedding_dimension()
        if dim is None:
            msg = f"Model {self._model_name!r} did not report embedding dimensions"
            raise RuntimeError(msg)
        return dim

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._model_name
