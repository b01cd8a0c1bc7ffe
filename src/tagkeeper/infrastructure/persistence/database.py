"""Database session management."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tagkeeper.config import StorageSettings
from tagkeeper.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Database:
    """Database connection and session manager."""

    def __init__(self, settings: StorageSettings) -> None:
        """Initialize database with settings."""
        self.settings = settings

        engine_kwargs: dict[str, Any] = {"echo": settings.echo}
        if "sqlite" in settings.url:
            self._ensure_sqlite_directory()
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": 30,  # Wait up to 30s for lock
            }

        self._engine = create_async_engine(settings.url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # SQLite creates the .db file itself but NOT missing parent directories - without this
    # the first write fails with a cryptic "unable to open database file".
    def _ensure_sqlite_directory(self) -> None:
        database = make_url(self.settings.url).database
        if not database or database == ":memory:":
            return
        parent = Path(database).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(
                f"Unable to create SQLite database directory '{parent}': {exc}"
            ) from exc

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional scope for database operations."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                # Rollback on any exception - all exceptions are re-raised
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all tables (idempotent)."""
        from tagkeeper.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()
