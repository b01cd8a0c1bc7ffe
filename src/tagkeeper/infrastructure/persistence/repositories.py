"""Repositories mapping domain objects onto the key/value store.

Hey future me - every document is plain JSON under a fixed key. The keys are
part of the on-disk format: renaming one orphans existing user data!

READ POLICY: missing or corrupt documents fall back to a default and get logged.
A corrupt migration state must not brick startup - worst case the idempotent
migrations run once more.

WRITE POLICY: failures raise PersistenceError. The CALLER decides whether that's
fatal (final save) or survivable (intermediate checkpoint).
"""

from __future__ import annotations

import json
import logging

from tagkeeper.domain.entities import TagDataset
from tagkeeper.domain.exceptions import PersistenceError
from tagkeeper.domain.ports import KeyValueStore
from tagkeeper.domain.value_objects import MigrationProgress, MigrationState

logger = logging.getLogger(__name__)

TAG_DATA_KEY = "tagkeeper:tagData"
MIGRATION_STATE_KEY = "tagkeeper:migrations"
MIGRATION_PROGRESS_KEY = "tagkeeper:migrationProgress"
TRACK_INFO_CACHE_KEY = "tagkeeper:trackInfoCache"


class TagDataRepository:
    """Reads and writes the dataset, migration state and checkpoint."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def _read_json(self, key: str) -> dict | None:
        try:
            raw = await self._store.get(key)
        except PersistenceError as e:
            logger.error(f"Error reading '{key}': {e}")
            return None

        if raw is None:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON in '{key}', ignoring it: {e}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Unexpected JSON type in '{key}': {type(data).__name__}")
            return None
        return data

    async def _write_json(self, key: str, data: dict) -> None:
        await self._store.set(key, json.dumps(data, ensure_ascii=False))

    # === Dataset ===

    async def load_dataset(self) -> TagDataset | None:
        data = await self._read_json(TAG_DATA_KEY)
        if data is None:
            return None
        return TagDataset.from_dict(data)

    async def save_dataset(self, dataset: TagDataset) -> None:
        await self._write_json(TAG_DATA_KEY, dataset.to_dict())

    # === Migration state ===

    async def load_migration_state(self) -> MigrationState:
        data = await self._read_json(MIGRATION_STATE_KEY)
        if data is None:
            return MigrationState()
        return MigrationState.from_dict(data)

    async def save_migration_state(self, state: MigrationState) -> None:
        await self._write_json(MIGRATION_STATE_KEY, state.to_dict())

    # === Checkpoint ===

    async def load_progress(self) -> MigrationProgress | None:
        data = await self._read_json(MIGRATION_PROGRESS_KEY)
        if data is None:
            return None
        try:
            return MigrationProgress.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid migration checkpoint, starting fresh: {e}")
            return None

    async def save_progress(self, progress: MigrationProgress) -> None:
        await self._write_json(MIGRATION_PROGRESS_KEY, progress.to_dict())

    async def clear_progress(self) -> None:
        await self._store.delete(MIGRATION_PROGRESS_KEY)
