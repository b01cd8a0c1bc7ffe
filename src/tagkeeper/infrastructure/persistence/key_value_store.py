"""Key/value store implementations.

Hey future me - two flavors of the same KeyValueStore port:

- InMemoryKeyValueStore: a dict. Tests, embedding, "I just want to try it".
- SqliteKeyValueStore: the durable one, one row per key in kv_entries.

Both raise PersistenceError on backend failure and return None for missing keys.
The migration code never sees SQLAlchemy exceptions.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from tagkeeper.domain.exceptions import PersistenceError
from tagkeeper.domain.ports import KeyValueStore
from tagkeeper.infrastructure.persistence.database import Database
from tagkeeper.infrastructure.persistence.models import KeyValueEntryModel, utc_now
from tagkeeper.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store. Not durable across processes."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents (for tests / debugging)."""
        return dict(self._data)


class SqliteKeyValueStore(KeyValueStore):
    """SQLite-backed store on top of the async SQLAlchemy engine."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def initialize(self) -> None:
        """Create the kv_entries table if needed. Call once at startup."""
        await self._db.create_tables()

    @with_db_retry(max_attempts=3)
    async def _get(self, key: str) -> str | None:
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(KeyValueEntryModel.value).where(KeyValueEntryModel.key == key)
            )
            return result.scalar_one_or_none()

    @with_db_retry(max_attempts=3)
    async def _set(self, key: str, value: str) -> None:
        # Upsert - the dataset document is rewritten as a whole on every checkpoint
        stmt = sqlite_insert(KeyValueEntryModel).values(
            key=key, value=value, updated_at=utc_now()
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[KeyValueEntryModel.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        async with self._db.session_scope() as session:
            await session.execute(stmt)

    @with_db_retry(max_attempts=3)
    async def _delete(self, key: str) -> None:
        async with self._db.session_scope() as session:
            await session.execute(
                delete(KeyValueEntryModel).where(KeyValueEntryModel.key == key)
            )

    async def get(self, key: str) -> str | None:
        try:
            return await self._get(key)
        except SQLAlchemyError as e:
            raise PersistenceError("read", key, e) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._set(key, value)
        except SQLAlchemyError as e:
            raise PersistenceError("write", key, e) from e

    async def delete(self, key: str) -> None:
        try:
            await self._delete(key)
        except SQLAlchemyError as e:
            raise PersistenceError("delete", key, e) from e
