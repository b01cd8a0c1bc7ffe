"""Tests for the legacy track info cache."""

import json

import pytest
from conftest import track_info_cache_document

from tagkeeper.infrastructure.persistence import (
    TRACK_INFO_CACHE_KEY,
    InMemoryKeyValueStore,
    TrackInfoCache,
)


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore(
        track_info_cache_document(
            {
                "spotify:track:a": {"name": "Song A", "artists": "Artist A"},
                "spotify:track:b": {"name": "Song B", "artists": ["X", "Y"]},
                "spotify:track:c": {"name": "Only a name"},
            }
        )
    )


class TestTrackInfoCache:
    """Test lookups, pruning and deletion."""

    async def test_get_complete_entry(self, store: InMemoryKeyValueStore) -> None:
        cache = TrackInfoCache(store)
        await cache.load()

        entry = cache.get("spotify:track:a")
        assert entry is not None
        assert (entry.name, entry.artists) == ("Song A", "Artist A")

    async def test_artist_lists_are_joined(self, store: InMemoryKeyValueStore) -> None:
        cache = TrackInfoCache(store)
        await cache.load()
        assert cache.get("spotify:track:b").artists == "X, Y"

    async def test_incomplete_or_missing_entries(self, store: InMemoryKeyValueStore) -> None:
        cache = TrackInfoCache(store)
        await cache.load()
        assert cache.get("spotify:track:c") is None
        assert cache.get("spotify:track:zzz") is None

    async def test_remove_and_flush(self, store: InMemoryKeyValueStore) -> None:
        cache = TrackInfoCache(store)
        await cache.load()
        cache.remove("spotify:track:a")
        await cache.flush()

        saved = json.loads(store.snapshot()[TRACK_INFO_CACHE_KEY])
        assert "spotify:track:a" not in saved
        assert len(cache) == 2

    async def test_clear_deletes_document(self, store: InMemoryKeyValueStore) -> None:
        cache = TrackInfoCache(store)
        await cache.clear()
        assert TRACK_INFO_CACHE_KEY not in store.snapshot()

    async def test_corrupt_document_is_empty(self) -> None:
        cache = TrackInfoCache(InMemoryKeyValueStore({TRACK_INFO_CACHE_KEY: "nope{"}))
        await cache.load()
        assert len(cache) == 0

    def test_get_before_load_raises(self, store: InMemoryKeyValueStore) -> None:
        with pytest.raises(RuntimeError):
            TrackInfoCache(store).get("spotify:track:a")
