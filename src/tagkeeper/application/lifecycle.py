"""Composition root: wires settings, storage, coordinators, client and runner.

Hey future me - this is the ONLY place that knows concrete classes. Everything else
talks to ports. Typical host usage:

    async with application_lifespan() as app:
        changed = await run_startup_migrations(app)
        dataset = app.runner.dataset

Tests call build_application(settings, store=InMemoryKeyValueStore()) so no SQLite
file is ever created.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from tagkeeper.application.migrations import MigrationRunner
from tagkeeper.application.migrations.backfill import ProgressCallback
from tagkeeper.application.services import DatasetEventBus
from tagkeeper.config import Settings, get_settings
from tagkeeper.domain.ports import KeyValueStore
from tagkeeper.infrastructure.integrations import SpotifyMetadataClient
from tagkeeper.infrastructure.observability import configure_logging
from tagkeeper.infrastructure.persistence import (
    Database,
    SqliteKeyValueStore,
    TagDataRepository,
)
from tagkeeper.infrastructure.request_coordinator import RequestCoordinator

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Everything a host needs after startup."""

    settings: Settings
    store: KeyValueStore
    repository: TagDataRepository
    graphql_coordinator: RequestCoordinator
    audio_features_coordinator: RequestCoordinator
    client: SpotifyMetadataClient
    event_bus: DatasetEventBus
    runner: MigrationRunner
    database: Database | None = None

    async def close(self) -> None:
        """Release the HTTP client and the database engine."""
        await self.client.close()
        if self.database is not None:
            await self.database.close()


async def build_application(
    settings: Settings,
    store: KeyValueStore | None = None,
) -> Application:
    """Build the object graph.

    Args:
        settings: Application settings
        store: Key/value store to use; defaults to SQLite at settings.storage.url
    """
    database: Database | None = None
    if store is None:
        database = Database(settings.storage)
        sqlite_store = SqliteKeyValueStore(database)
        await sqlite_store.initialize()
        store = sqlite_store

    repository = TagDataRepository(store)
    graphql_coordinator = RequestCoordinator.from_settings(
        settings.graphql_coordinator, name="graphql"
    )
    audio_features_coordinator = RequestCoordinator.from_settings(
        settings.audio_features_coordinator, name="audio_features"
    )
    client = SpotifyMetadataClient(
        settings.spotify,
        track_coordinator=graphql_coordinator,
        features_coordinator=audio_features_coordinator,
    )
    event_bus = DatasetEventBus()
    runner = MigrationRunner(
        repository=repository,
        fetcher=client,
        event_bus=event_bus,
        settings=settings.migration,
    )

    return Application(
        settings=settings,
        store=store,
        repository=repository,
        graphql_coordinator=graphql_coordinator,
        audio_features_coordinator=audio_features_coordinator,
        client=client,
        event_bus=event_bus,
        runner=runner,
        database=database,
    )


async def run_startup_migrations(
    app: Application,
    on_progress: ProgressCallback | None = None,
) -> bool:
    """Load the stored dataset and run pending migrations on it."""
    dataset = await app.repository.load_dataset()
    if dataset is None:
        logger.info("[STARTUP] No tag data stored yet, nothing to migrate")
        return False

    if not await app.runner.needs_migrations():
        logger.debug("[STARTUP] Migrations up to date")
        return False

    return await app.runner.run_migrations(dataset, on_progress=on_progress)


@asynccontextmanager
async def application_lifespan(
    settings: Settings | None = None,
) -> AsyncGenerator[Application, None]:
    """Configure logging, build the app, and always close it again."""
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.logging.level,
        json_format=settings.logging.json_format,
        app_name=settings.app_name,
    )
    logger.info(f"[STARTUP] Starting {settings.app_name}")

    app = await build_application(settings)
    try:
        yield app
    finally:
        await app.close()
        logger.info(f"[SHUTDOWN] {settings.app_name} stopped")
