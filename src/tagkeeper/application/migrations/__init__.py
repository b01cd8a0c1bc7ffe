"""Startup data migrations."""

from .backfill import TrackMetadataBackfill, find_backfill_targets
from .registry import (
    ADD_TRACK_METADATA,
    CLEANUP_EMPTY_TRACKS,
    MIGRATION_ORDER,
    REMOVE_TRACK_INFO_CACHE,
)
from .runner import MigrationRunner
from .structural import cleanup_empty_tracks, remove_empty_tracks, remove_track_info_cache

__all__ = [
    "ADD_TRACK_METADATA",
    "CLEANUP_EMPTY_TRACKS",
    "MIGRATION_ORDER",
    "MigrationRunner",
    "REMOVE_TRACK_INFO_CACHE",
    "TrackMetadataBackfill",
    "cleanup_empty_tracks",
    "find_backfill_targets",
    "remove_empty_tracks",
    "remove_track_info_cache",
]
