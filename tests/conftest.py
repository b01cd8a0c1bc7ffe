"""Shared fixtures: fake clock/sleep, fake fetcher, in-memory storage."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from tagkeeper.config import MigrationSettings, reset_settings
from tagkeeper.domain.entities import TagDataset, TrackRecord
from tagkeeper.domain.ports import TrackIdentity, TrackMetadataFetcher
from tagkeeper.infrastructure.persistence import (
    TRACK_INFO_CACHE_KEY,
    InMemoryKeyValueStore,
    TagDataRepository,
)


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Records requested sleeps; optionally advances a FakeClock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


Behavior = Callable[[str, int], Any]


class FakeFetcher(TrackMetadataFetcher):
    """Scriptable fetcher.

    identity/bpm behaviours get (uri, call_number) and return a value or raise.
    Default: every track resolves to "Song <id>" by "Artist" at 120 BPM.
    """

    def __init__(
        self,
        identity: Behavior | None = None,
        bpm: Behavior | None = None,
    ) -> None:
        self._identity = identity or (
            lambda uri, n: TrackIdentity(f"Song {uri.split(':')[-1]}", ["Artist"])
        )
        self._bpm = bpm or (lambda uri, n: 120.0)
        self.identity_calls: list[str] = []
        self.bpm_calls: list[str] = []

    async def fetch_identity(self, record_key: str) -> TrackIdentity | None:
        self.identity_calls.append(record_key)
        return self._identity(record_key, self.identity_calls.count(record_key))

    async def fetch_numeric_feature(self, record_key: str) -> float | None:
        self.bpm_calls.append(record_key)
        return self._bpm(record_key, self.bpm_calls.count(record_key))


def make_track(**kwargs: Any) -> TrackRecord:
    kwargs.setdefault("rating", 3)
    return TrackRecord(**kwargs)


def make_dataset(tracks: dict[str, TrackRecord]) -> TagDataset:
    return TagDataset(tracks=tracks, extra={"categories": []})


@pytest.fixture(autouse=True)
def _reset_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def repository(store: InMemoryKeyValueStore) -> TagDataRepository:
    return TagDataRepository(store)


@pytest.fixture
def fast_migration_settings() -> MigrationSettings:
    """Default pacing with every delay zeroed."""
    return MigrationSettings(
        base_batch_delay_seconds=0,
        max_batch_delay_seconds=0,
        retry_base_delay_seconds=0,
        retry_max_delay_seconds=0,
    )


def track_info_cache_document(entries: dict[str, dict]) -> dict[str, str]:
    """Initial store contents holding a legacy track info cache."""
    return {TRACK_INFO_CACHE_KEY: json.dumps(entries)}
