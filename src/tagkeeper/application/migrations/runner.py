"""Top-level migration driver.

Hey future me - run_migrations() is called once at startup with the dataset the app
just loaded. For each migration in MIGRATION_ORDER whose flag is not set yet:

- structural ones (cleanup, cache removal) run in one go, then the dataset is saved
  and the flag set
- the backfill may raise MigrationPausedError - then the flag stays unset and we
  simply move on; the next startup resumes from the checkpoint
- same for ConfigurationError (no access token yet): logged, flag unset, move on

Finally, if anything changed (or the app version changed), the migration state is
saved with the new version stamp and observers get a DatasetChangedEvent.

Any OTHER exception propagates - a bug or a dead database is not a "pause".
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from tagkeeper import __version__
from tagkeeper.application.migrations.backfill import (
    ProgressCallback,
    SleepFn,
    TrackMetadataBackfill,
)
from tagkeeper.application.migrations.registry import (
    ADD_TRACK_METADATA,
    CLEANUP_EMPTY_TRACKS,
    MIGRATION_ORDER,
    REMOVE_TRACK_INFO_CACHE,
)
from tagkeeper.application.migrations.structural import (
    cleanup_empty_tracks,
    remove_track_info_cache,
)
from tagkeeper.application.services.dataset_events import DatasetEventBus
from tagkeeper.config import MigrationSettings
from tagkeeper.domain.entities import TagDataset
from tagkeeper.domain.exceptions import (
    ConfigurationError,
    MigrationPausedError,
    PersistenceError,
)
from tagkeeper.domain.ports import DatasetChangedEvent, TrackMetadataFetcher
from tagkeeper.infrastructure.observability.logging import set_run_id
from tagkeeper.infrastructure.persistence import TagDataRepository, TrackInfoCache

logger = logging.getLogger(__name__)

StructuralMigration = Callable[[TagDataset, TrackInfoCache], Awaitable[TagDataset]]


class MigrationRunner:
    """Applies pending migrations exactly once per migration name."""

    def __init__(
        self,
        repository: TagDataRepository,
        fetcher: TrackMetadataFetcher,
        event_bus: DatasetEventBus,
        settings: MigrationSettings,
        version: str = __version__,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._repository = repository
        self._event_bus = event_bus
        self.version = version
        self._cache = TrackInfoCache(repository.store)
        self._backfill = TrackMetadataBackfill(
            repository=repository,
            fetcher=fetcher,
            cache=self._cache,
            settings=settings,
            sleep=sleep,
        )
        self._structural: dict[str, StructuralMigration] = {
            CLEANUP_EMPTY_TRACKS: cleanup_empty_tracks,
            REMOVE_TRACK_INFO_CACHE: remove_track_info_cache,
        }
        self._dataset: TagDataset | None = None

    @property
    def dataset(self) -> TagDataset | None:
        """Latest dataset produced by run_migrations (None before the first run)."""
        return self._dataset

    async def needs_migrations(self) -> bool:
        state = await self._repository.load_migration_state()
        if state.version != self.version:
            return True
        return any(not state.is_complete(name) for name in MIGRATION_ORDER)

    async def run_migrations(
        self,
        dataset: TagDataset,
        on_progress: ProgressCallback | None = None,
    ) -> bool:
        """Run all pending migrations.

        Args:
            dataset: Current dataset (not mutated)
            on_progress: Optional callback(migration_name, processed, total)

        Returns:
            True if at least one migration completed in this run
        """
        run_id = set_run_id()
        self._dataset = dataset

        if not dataset.tracks:
            logger.info("[MIGRATION] No tracks found, skipping migrations")
            return False

        state = await self._repository.load_migration_state()
        logger.info(
            f"[MIGRATION] Checking migrations (run {run_id}). "
            f"Stored: {state.version}, running: {self.version}"
        )

        changed = False
        working = dataset

        for name in MIGRATION_ORDER:
            if state.is_complete(name):
                continue

            if name == ADD_TRACK_METADATA:
                try:
                    working, _ = await self._backfill.run(working, on_progress)
                except MigrationPausedError as e:
                    logger.warning(f"[MIGRATION] {e.message}")
                    working = await self._reload_dataset(working)
                    self._dataset = working
                    continue
                except ConfigurationError as e:
                    logger.error(
                        f"[MIGRATION] {name} cannot run, will retry on next startup: {e.message}"
                    )
                    working = await self._reload_dataset(working)
                    self._dataset = working
                    continue
            else:
                try:
                    migrated = await self._structural[name](working, self._cache)
                    if migrated is not working:
                        await self._repository.save_dataset(migrated)
                except PersistenceError as e:
                    logger.error(f"[MIGRATION] {name} could not be saved, retrying next run: {e}")
                    continue
                working = migrated

            state.mark_complete(name)
            changed = True
            self._dataset = working

        if changed or state.version != self.version:
            state.version = self.version
            try:
                await self._repository.save_migration_state(state)
            except PersistenceError as e:
                logger.error(f"[MIGRATION] Failed to save migration state: {e}")
            await self._event_bus.publish(DatasetChangedEvent(reason="migration"))

        return changed

    async def _reload_dataset(self, fallback: TagDataset) -> TagDataset:
        # The paused backfill checkpointed its partial work to the store
        stored = await self._repository.load_dataset()
        return stored if stored is not None else fallback
