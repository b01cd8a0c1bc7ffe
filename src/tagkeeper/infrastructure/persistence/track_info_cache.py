"""Legacy track info cache.

Hey future me - before name/artists lived IN the tag data, the UI cached them in a
separate document keyed by track URI. The backfill reads it as a free first pass
(no API call!), cleanupEmptyTracks prunes it, and removeTrackInfoCache deletes it
for good once the data has moved over.

Shape on disk:
    {"spotify:track:abc": {"name": "...", "artists": "...", ...}, ...}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from tagkeeper.domain.exceptions import PersistenceError
from tagkeeper.domain.ports import KeyValueStore
from tagkeeper.infrastructure.persistence.repositories import TRACK_INFO_CACHE_KEY

logger = logging.getLogger(__name__)


@dataclass
class CachedTrackInfo:
    name: str
    artists: str


class TrackInfoCache:
    """Loaded once, edited in memory, written back with flush()."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._entries: dict[str, dict[str, Any]] | None = None
        self._dirty = False

    async def load(self) -> None:
        try:
            raw = await self._store.get(TRACK_INFO_CACHE_KEY)
        except PersistenceError as e:
            logger.warning(f"Track info cache unavailable: {e}")
            raw = None

        entries: dict[str, dict[str, Any]] = {}
        if raw:
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, dict):
                    entries = {k: v for k, v in parsed.items() if isinstance(v, dict)}
            except json.JSONDecodeError as e:
                logger.warning(f"Corrupt track info cache, ignoring it: {e}")
        self._entries = entries
        self._dirty = False

    @property
    def _data(self) -> dict[str, dict[str, Any]]:
        if self._entries is None:
            raise RuntimeError("TrackInfoCache.load() must be awaited first")
        return self._entries

    def get(self, uri: str) -> CachedTrackInfo | None:
        """Cached name/artists, or None if missing or incomplete."""
        entry = self._data.get(uri)
        if not entry:
            return None
        name = entry.get("name")
        artists = entry.get("artists")
        if not name or not artists:
            return None
        if isinstance(artists, list):
            artists = ", ".join(str(a) for a in artists)
        return CachedTrackInfo(name=str(name), artists=str(artists))

    def remove(self, uri: str) -> None:
        if self._data.pop(uri, None) is not None:
            self._dirty = True

    def __len__(self) -> int:
        return len(self._data)

    async def flush(self) -> None:
        """Write back pending removals (no-op when nothing changed)."""
        if not self._dirty:
            return
        await self._store.set(TRACK_INFO_CACHE_KEY, json.dumps(self._data, ensure_ascii=False))
        self._dirty = False

    async def clear(self) -> None:
        """Delete the whole cache document."""
        await self._store.delete(TRACK_INFO_CACHE_KEY)
        self._entries = {}
        self._dirty = False
