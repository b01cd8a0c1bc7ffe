"""Structural (one-pass) migrations."""

from __future__ import annotations

import logging

from tagkeeper.domain.entities import TagDataset
from tagkeeper.infrastructure.persistence import TrackInfoCache

logger = logging.getLogger(__name__)


def remove_empty_tracks(dataset: TagDataset) -> tuple[TagDataset, list[str]]:
    """Pure transform: drop tracks without rating, energy and tags.

    Returns:
        (new dataset, URIs that were removed)
    """
    cleaned = dataset.copy()
    removed = [uri for uri, track in cleaned.tracks.items() if track.is_empty]
    for uri in removed:
        del cleaned.tracks[uri]
    return cleaned, removed


async def cleanup_empty_tracks(dataset: TagDataset, cache: TrackInfoCache) -> TagDataset:
    """cleanupEmptyTracks: remove empty tracks and their track-info cache entries."""
    cleaned, removed = remove_empty_tracks(dataset)

    if removed:
        await cache.load()
        for uri in removed:
            cache.remove(uri)
        await cache.flush()

    logger.info(f"[MIGRATION] Cleanup complete: removed {len(removed)} empty tracks")
    return cleaned


async def remove_track_info_cache(dataset: TagDataset, cache: TrackInfoCache) -> TagDataset:
    """removeTrackInfoCache: name/artists live in the dataset now, drop the old cache."""
    await cache.clear()
    logger.info("[MIGRATION] Removed deprecated track info cache")
    return dataset
