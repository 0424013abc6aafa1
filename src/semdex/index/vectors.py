"""Vector helpers — blob encoding, binary quantization, cosine distance."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np

from semdex.exceptions import DimensionMismatchError, EmbeddingError


def as_vector(vector: Sequence[float] | np.ndarray, dimension: int) -> np.ndarray:
    """Return *vector* as a 1-D float32 array, enforcing *dimension*.

    A ``(1, D)`` row is accepted as a single vector.  Any other shape, or a
    wrong length, raises :class:`DimensionMismatchError` instead of being
    reshaped, truncated or padded.
    """
    arr = np.asarray(vector, dtype=np.float32)
    if arr.ndim == 2 and arr.shape[0] == 1:
        arr = arr[0]
    if arr.ndim != 1:
        raise DimensionMismatchError(dimension, arr.shape)
    if arr.shape[0] != dimension:
        raise DimensionMismatchError(dimension, arr.shape[0])
    return arr


def to_blob(vector: np.ndarray) -> bytes:
    """Serialize a float32 vector for storage."""
    return np.ascontiguousarray(vector, dtype=np.float32).tobytes()


def from_blob(blob: bytes) -> np.ndarray:
    """Deserialize a stored float32 vector."""
    return np.frombuffer(blob, dtype=np.float32)


def quantize_binary(vector: np.ndarray) -> bytes:
    """Binarize *vector* to bit-packed bytes (1 where the component is positive).

    Deterministic; a D-dimensional vector packs into ``ceil(D / 8)`` bytes.
    """
    return np.packbits((np.asarray(vector) > 0).astype(np.uint8)).tobytes()


def expand_binary(packed: bytes, dimension: int) -> np.ndarray:
    """Expand packed bits to a ±1 float vector of length *dimension*.

    Cosine similarity between ±1 vectors is ``1 - 2 * hamming / dimension``,
    so ranking the expansions by cosine ranks the codes by Hamming distance.
    """
    bits = np.unpackbits(np.frombuffer(packed, dtype=np.uint8))[:dimension]
    return bits.astype(np.float32) * 2.0 - 1.0


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Exact cosine distance ``1 - cos(a, b)`` computed in float64.

    A zero-norm operand has no direction; its distance to anything is 1.0.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 1.0
    distance = 1.0 - float(np.dot(va, vb)) / denom
    return min(max(distance, 0.0), 2.0)


def _is_array_like(value: Any) -> bool:
    return isinstance(value, (list, tuple, np.ndarray))


def coerce_embeddings(raw: Any, expected_count: int, dimension: int) -> list[np.ndarray]:
    """Normalize embedder output into *expected_count* float32 vectors.

    Accepts a list of vectors, a 2-D array, a single flat vector (when one
    is expected) or a single-element nesting of either.  Anything else,
    including a wrong count or dimension, raises :class:`EmbeddingError`.
    """
    if expected_count == 0:
        return []
    if raw is None:
        raise EmbeddingError("Embedder returned no output")

    if isinstance(raw, np.ndarray):
        if raw.ndim == 3 and raw.shape[0] == 1:
            raw = raw[0]
        rows: list[Any] = [raw] if raw.ndim == 1 else list(raw)
    elif _is_array_like(raw):
        rows = list(raw)
        if (
            len(rows) == 1
            and _is_array_like(rows[0])
            and len(rows[0]) > 0
            and _is_array_like(rows[0][0])
        ):
            rows = list(rows[0])
        if rows and not _is_array_like(rows[0]):
            rows = [rows]
    else:
        msg = f"Unexpected embedder output of type {type(raw).__name__}"
        raise EmbeddingError(msg)

    if len(rows) != expected_count:
        msg = f"Got {len(rows)} embeddings instead of {expected_count}"
        raise EmbeddingError(msg)

    try:
        return [as_vector(row, dimension) for row in rows]
    except DimensionMismatchError as exc:
        msg = f"Got embeddings with dimension {exc.actual} instead of {exc.expected}"
        raise EmbeddingError(msg) from exc
