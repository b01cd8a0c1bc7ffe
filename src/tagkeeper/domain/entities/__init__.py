"""Tag dataset entities.

Hey future me - TrackRecord is ONE entry in the user's tag data, keyed by Spotify URI.
Most fields are user data (rating, energy, tags) and are never touched by migrations.
name/artists/bpm are the enrichment targets - older data doesn't have them at all,
that's exactly what the addTrackMetadata backfill fills in.

We keep unknown JSON keys in `extra` so a newer UI writing fields we don't know about
doesn't lose data when a migration round-trips the dataset. Same for the dataset's
top-level keys (categories etc.) - we carry them, we don't interpret them.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

LOCAL_TRACK_PREFIX = "spotify:local:"

# Enrichment target fields (JSON names).
METADATA_FIELDS = ("name", "artists")
NUMERIC_FEATURE_FIELD = "bpm"
BACKFILL_FIELDS = (*METADATA_FIELDS, NUMERIC_FEATURE_FIELD)

_KNOWN_TRACK_KEYS = {
    "rating",
    "energy",
    "bpm",
    "tags",
    "name",
    "artists",
    "dateCreated",
    "dateModified",
}


def is_local_track(uri: str) -> bool:
    """Local files have no Spotify ID, so there is nothing to fetch for them."""
    return uri.startswith(LOCAL_TRACK_PREFIX)


def track_id_from_uri(uri: str) -> str | None:
    """Extract the bare track ID from a spotify:track:<id> URI."""
    if is_local_track(uri):
        return None
    track_id = uri.split(":")[-1]
    return track_id or None


@dataclass
class TrackRecord:
    """One tagged track.

    Attributes:
        rating: 0-5 star rating (0 = unrated)
        energy: 0-10 energy level (0 = unset)
        tags: List of tag references ({categoryId, subcategoryId, tagId})
        bpm: Tempo, None until backfilled
        name: Track title, None until backfilled
        artists: Display string of artists, None until backfilled
    """

    rating: int = 0
    energy: int = 0
    tags: list[dict[str, Any]] = field(default_factory=list)
    bpm: float | None = None
    name: str | None = None
    artists: str | None = None
    date_created: int | None = None
    date_modified: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        """No rating, no energy, no tags - nothing the user cares about."""
        return self.rating == 0 and self.energy == 0 and not self.tags

    @property
    def needs_metadata(self) -> bool:
        return not self.name or not self.artists

    @property
    def needs_numeric_feature(self) -> bool:
        return self.bpm is None

    @property
    def needs_enrichment(self) -> bool:
        return self.needs_metadata or self.needs_numeric_feature

    def apply_updates(self, updates: dict[str, Any]) -> None:
        """Merge backfilled fields into this record."""
        for key, value in updates.items():
            if key not in BACKFILL_FIELDS:
                raise ValueError(f"Field '{key}' is not a backfill target")
            setattr(self, key, value)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackRecord:
        return cls(
            rating=data.get("rating", 0) or 0,
            energy=data.get("energy", 0) or 0,
            tags=list(data.get("tags") or []),
            bpm=data.get("bpm"),
            name=data.get("name"),
            artists=data.get("artists"),
            date_created=data.get("dateCreated"),
            date_modified=data.get("dateModified"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_TRACK_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update(
            {
                "rating": self.rating,
                "energy": self.energy,
                "bpm": self.bpm,
                "tags": self.tags,
            }
        )
        # Hey future me - name/artists are OMITTED (not null) when unknown,
        # that's how the UI has always written them.
        if self.name is not None:
            data["name"] = self.name
        if self.artists is not None:
            data["artists"] = self.artists
        if self.date_created is not None:
            data["dateCreated"] = self.date_created
        if self.date_modified is not None:
            data["dateModified"] = self.date_modified
        return data


@dataclass
class TagDataset:
    """The whole local dataset: tracks plus opaque top-level data (categories...)."""

    tracks: dict[str, TrackRecord] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.tracks)

    def copy(self) -> TagDataset:
        """Deep working copy - migrations mutate this, never the caller's object."""
        return copy.deepcopy(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TagDataset:
        raw_tracks = data.get("tracks") or {}
        return cls(
            tracks={uri: TrackRecord.from_dict(t or {}) for uri, t in raw_tracks.items()},
            extra={k: v for k, v in data.items() if k != "tracks"},
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data["tracks"] = {uri: track.to_dict() for uri, track in self.tracks.items()}
        return data


__all__ = [
    "LOCAL_TRACK_PREFIX",
    "BACKFILL_FIELDS",
    "METADATA_FIELDS",
    "NUMERIC_FEATURE_FIELD",
    "TagDataset",
    "TrackRecord",
    "is_local_track",
    "track_id_from_uri",
]
