"""Ports (interfaces) the application layer depends on.

Hey future me - Hexagonal Architecture again! The migration runner only knows
these interfaces. Tests plug in InMemoryKeyValueStore + fake fetchers, the real
app plugs in SqliteKeyValueStore + SpotifyMetadataClient.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime


class KeyValueStore(ABC):
    """Durable string-keyed string storage.

    Absence is a normal answer (get returns None), not an error. Implementations
    raise PersistenceError when the backend itself fails.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Insert or overwrite a value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key. Deleting a missing key is a no-op."""


@dataclass
class TrackIdentity:
    """Display identity of a track as returned by the metadata API."""

    display_name: str
    attribution_list: list[str] = field(default_factory=list)

    @property
    def artists(self) -> str:
        """Artists joined the way the tag UI shows them."""
        return ", ".join(self.attribution_list)


class TrackMetadataFetcher(ABC):
    """Typed wrappers around single external-API calls.

    Both methods route through a RequestCoordinator internally and may raise
    anything from the domain error taxonomy. None means "API has no value".
    """

    @abstractmethod
    async def fetch_identity(self, record_key: str) -> TrackIdentity | None:
        """Fetch track name + artists."""

    @abstractmethod
    async def fetch_numeric_feature(self, record_key: str) -> float | None:
        """Fetch tempo (BPM)."""


@dataclass
class DatasetChangedEvent:
    """Broadcast after the stored dataset changed underneath observers."""

    reason: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


DatasetChangedHandler = Callable[[DatasetChangedEvent], Awaitable[None] | None]


__all__ = [
    "DatasetChangedEvent",
    "DatasetChangedHandler",
    "KeyValueStore",
    "TrackIdentity",
    "TrackMetadataFetcher",
]
