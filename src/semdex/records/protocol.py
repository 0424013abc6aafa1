"""RecordStore protocol and the value objects it exchanges with the index."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class EligibleRecord:
    """A record that qualifies for indexing.

    Attributes:
        identity_key: Content hash of the record URL.
        content: Text to embed (title and description, trimmed).
    """

    identity_key: str
    content: str


@dataclass(frozen=True, slots=True)
class RecordInfo:
    """Record metadata used to hydrate search results."""

    id: int
    identity_key: str
    url: str
    title: str | None
    rank: int
    last_visit_date: datetime | None = None


@runtime_checkable
class RecordStore(Protocol):
    """Async interface the index needs from the record store.

    The index never writes through this interface; it only reads the
    eligible top-N view, watches the change counter, and hydrates results.
    """

    async def top_eligible(
        self,
        row_limit: int,
        min_content_length: int,
        rank_attribute: str,
    ) -> list[EligibleRecord]:
        """Eligible records ordered by *rank_attribute* descending, at most *row_limit*."""
        ...

    async def hydrate(
        self,
        identity_keys: list[str],
        rank_attribute: str,
    ) -> dict[str, list[RecordInfo]]:
        """Metadata for records with the given keys; zero-rank records are excluded."""
        ...

    @property
    def change_count(self) -> int:
        """Monotonic count of rank changes, removals and clears observed."""
        ...

    def add_listener(self, handler: Callable[..., Any]) -> None:
        """Call *handler* (async) with every change event."""
        ...

    def remove_listener(self, handler: Callable[..., Any]) -> None:
        """Stop calling *handler*."""
        ...
