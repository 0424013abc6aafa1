"""Embedders — protocol and implementations."""

from semdex.embeddings.protocol import Embedder

__all__ = [
    "Embedder",
]

# Optional embedders, import-guarded; available only when deps are installed.
try:
    from semdex.embeddings.sentence_transformers import SentenceTransformerEmbedding

    __all__.append("SentenceTransformerEmbedding")
except ImportError:  # pragma: no cover
    pass
