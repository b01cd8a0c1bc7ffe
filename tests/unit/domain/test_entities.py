"""Tests for tag dataset entities."""

import pytest

from tagkeeper.domain.entities import (
    BACKFILL_FIELDS,
    TagDataset,
    TrackRecord,
    is_local_track,
    track_id_from_uri,
)


class TestUriHelpers:
    """Test Spotify URI helpers."""

    def test_local_track(self) -> None:
        assert is_local_track("spotify:local:Artist:Album:Song:180")
        assert not is_local_track("spotify:track:abc")

    def test_track_id(self) -> None:
        assert track_id_from_uri("spotify:track:abc") == "abc"

    def test_track_id_local_is_none(self) -> None:
        assert track_id_from_uri("spotify:local:a:b:c:1") is None

    def test_track_id_empty_is_none(self) -> None:
        assert track_id_from_uri("spotify:track:") is None


class TestTrackRecord:
    """Test TrackRecord rules."""

    def test_is_empty(self) -> None:
        """Empty means no rating, no energy, no tags."""
        assert TrackRecord().is_empty
        assert not TrackRecord(rating=1).is_empty
        assert not TrackRecord(energy=5).is_empty
        assert not TrackRecord(tags=[{"tagId": "t"}]).is_empty

    def test_needs_enrichment(self) -> None:
        """Any of name, artists or bpm missing."""
        assert TrackRecord(name="a", artists="b").needs_enrichment
        assert TrackRecord(bpm=120).needs_enrichment
        assert not TrackRecord(name="a", artists="b", bpm=120).needs_enrichment

    def test_empty_string_name_needs_metadata(self) -> None:
        assert TrackRecord(name="", artists="b").needs_metadata

    def test_apply_updates(self) -> None:
        track = TrackRecord()
        track.apply_updates({"name": "n", "artists": "a", "bpm": 99})
        assert (track.name, track.artists, track.bpm) == ("n", "a", 99)

    def test_apply_updates_rejects_user_fields(self) -> None:
        """Migrations never touch user data."""
        with pytest.raises(ValueError):
            TrackRecord().apply_updates({"rating": 5})

    def test_backfill_fields_match_enrichment_checks(self) -> None:
        """Every field the enrichment checks look at is writable by apply_updates."""
        assert BACKFILL_FIELDS == ("name", "artists", "bpm")
        track = TrackRecord()
        track.apply_updates({field: "x" for field in BACKFILL_FIELDS})
        assert not track.needs_enrichment

    def test_from_dict_defaults_and_extra(self) -> None:
        track = TrackRecord.from_dict(
            {"rating": None, "dateCreated": 1, "color": "blue", "bpm": 100}
        )
        assert track.rating == 0
        assert track.date_created == 1
        assert track.extra == {"color": "blue"}
        assert track.to_dict()["color"] == "blue"
        assert track.to_dict()["dateCreated"] == 1


class TestTagDataset:
    """Test dataset mapping."""

    def test_copy_is_deep(self) -> None:
        dataset = TagDataset(tracks={"a": TrackRecord(rating=1)})
        clone = dataset.copy()
        clone.tracks["a"].rating = 5
        assert dataset.tracks["a"].rating == 1

    def test_roundtrip(self) -> None:
        raw = {
            "categories": [{"id": "c"}],
            "tracks": {"spotify:track:a": {"rating": 2, "energy": 3, "bpm": 90, "tags": []}},
        }
        assert TagDataset.from_dict(raw).to_dict() == raw

    def test_missing_tracks(self) -> None:
        assert len(TagDataset.from_dict({})) == 0
