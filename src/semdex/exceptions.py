"""Custom exception hierarchy for semdex."""


class SemdexError(Exception):
    """Base exception for all semdex errors."""


class EmbeddingError(SemdexError):
    """Raised when the embedder fails or returns malformed output."""


class DimensionMismatchError(SemdexError, ValueError):
    """Raised when a vector's dimension differs from the index dimension."""

    def __init__(self, expected: int, actual: int | tuple[int, ...]) -> None:
        super().__init__(f"Expected vectors of dimension {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StorageError(SemdexError):
    """Raised on index storage failures (store not open, transaction failure)."""


class CapabilityUnavailableError(SemdexError):
    """Raised when the semantic index is gated off on this system."""
