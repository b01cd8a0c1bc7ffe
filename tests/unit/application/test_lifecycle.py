"""Tests for the composition root."""

from pathlib import Path

from conftest import make_dataset, make_track

from tagkeeper.application.lifecycle import (
    Application,
    application_lifespan,
    build_application,
    run_startup_migrations,
)
from tagkeeper.config import MigrationSettings, Settings, SpotifySettings, StorageSettings
from tagkeeper.infrastructure.persistence import InMemoryKeyValueStore, SqliteKeyValueStore


def make_settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        storage=StorageSettings(url=f"sqlite+aiosqlite:///{tmp_path}/tags.db"),
        spotify=SpotifySettings(access_token="token"),
        migration=MigrationSettings(base_batch_delay_seconds=0),
    )


class TestBuildApplication:
    """Test wiring."""

    async def test_in_memory_store(self, tmp_path: Path) -> None:
        store = InMemoryKeyValueStore()
        app = await build_application(make_settings(tmp_path), store=store)

        assert isinstance(app, Application)
        assert app.store is store
        assert app.database is None
        assert app.graphql_coordinator.name == "graphql"
        assert app.graphql_coordinator.config.max_requests_per_second == 15
        assert app.audio_features_coordinator.config.request_timeout_ms == 15_000
        assert app.runner.version
        await app.close()

    async def test_sqlite_store_by_default(self, tmp_path: Path) -> None:
        app = await build_application(make_settings(tmp_path))

        assert isinstance(app.store, SqliteKeyValueStore)
        await app.store.set("k", "v")
        assert await app.store.get("k") == "v"
        await app.close()


class TestRunStartupMigrations:
    """Test the startup entry point."""

    async def test_nothing_stored(self, tmp_path: Path) -> None:
        app = await build_application(make_settings(tmp_path), store=InMemoryKeyValueStore())
        assert await run_startup_migrations(app) is False
        await app.close()

    async def test_runs_on_stored_dataset(self, tmp_path: Path, mocker) -> None:
        app = await build_application(make_settings(tmp_path), store=InMemoryKeyValueStore())
        await app.repository.save_dataset(
            make_dataset({"spotify:track:a": make_track(name="n", artists="a", bpm=100)})
        )
        run = mocker.spy(app.runner, "run_migrations")

        assert await run_startup_migrations(app) is True
        assert run.call_count == 1
        # Up to date now: second startup skips the runner entirely
        assert await run_startup_migrations(app) is False
        assert run.call_count == 1
        await app.close()


class TestLifespan:
    async def test_builds_and_closes(self, tmp_path: Path, mocker) -> None:
        close = mocker.patch.object(Application, "close", autospec=True)

        async with application_lifespan(make_settings(tmp_path)) as app:
            assert isinstance(app.store, SqliteKeyValueStore)

        close.assert_awaited_once()
        await app.database.close()
