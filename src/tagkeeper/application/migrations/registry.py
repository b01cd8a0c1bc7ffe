"""Migration names and their fixed run order.

Hey future me - these strings are PERSISTED as keys of MigrationState.migrations
and as MigrationProgress.migration_name. Never rename one: a renamed migration
is a brand-new migration and runs again on every existing install!
"""

CLEANUP_EMPTY_TRACKS = "cleanupEmptyTracks"
ADD_TRACK_METADATA = "addTrackMetadata"
REMOVE_TRACK_INFO_CACHE = "removeTrackInfoCache"

# Declaration order == run order
MIGRATION_ORDER: tuple[str, ...] = (
    CLEANUP_EMPTY_TRACKS,
    ADD_TRACK_METADATA,
    REMOVE_TRACK_INFO_CACHE,
)
