"""Infrastructure persistence layer."""

from .database import Database
from .key_value_store import InMemoryKeyValueStore, SqliteKeyValueStore
from .models import Base, KeyValueEntryModel
from .repositories import (
    MIGRATION_PROGRESS_KEY,
    MIGRATION_STATE_KEY,
    TAG_DATA_KEY,
    TRACK_INFO_CACHE_KEY,
    TagDataRepository,
)
from .retry import is_lock_error, with_db_retry
from .track_info_cache import CachedTrackInfo, TrackInfoCache

__all__ = [
    "Base",
    "CachedTrackInfo",
    "Database",
    "InMemoryKeyValueStore",
    "KeyValueEntryModel",
    "MIGRATION_PROGRESS_KEY",
    "MIGRATION_STATE_KEY",
    "SqliteKeyValueStore",
    "TAG_DATA_KEY",
    "TRACK_INFO_CACHE_KEY",
    "TagDataRepository",
    "TrackInfoCache",
    "is_lock_error",
    "with_db_retry",
]
