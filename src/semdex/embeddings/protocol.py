"""Embedder protocol — async-first text-to-vector conversion."""

from __future__ import annotations

import inspect
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Embedder(Protocol):
    """Async-first protocol for text-to-vector embedding.

    Implementations convert text into fixed-dimension float vectors.
    Synchronous implementations are accepted too; callers go through
    :func:`embed_one` / :func:`embed_many`, which await when needed.

    An embedder may also define ``is_available() -> bool``; when it
    returns False the semantic index is never opened.
    """

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string into a vector."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts into vectors."""
        ...

    @property
    def dimensions(self) -> int:
        """Number of dimensions in the embedding vectors."""
        ...

    @property
    def model_name(self) -> str:
        """Name of the embedding model."""
        ...


async def embed_one(embedder: Any, text: str) -> Any:
    """Embed a single text, handling both sync and async embedders."""
    result = embedder.embed(text)
    if inspect.isawaitable(result):
        return await result
    return result


async def embed_many(embedder: Any, texts: list[str]) -> Any:
    """Embed a batch of texts, handling both sync and async embedders."""
    result = embedder.embed_batch(texts)
    if inspect.isawaitable(result):
        return await result
    return result


def is_available(embedder: Any) -> bool:
    """Return the embedder's capability verdict (True when it has none)."""
    check = getattr(embedder, "is_available", None)
    if check is None:
        return True
    return bool(check())
