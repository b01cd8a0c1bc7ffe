"""Pydantic models for Spotify Web API responses.

Hey future me - we validate at the BOUNDARY. Only the fields we actually read are
declared; everything else Spotify sends is ignored (extra="ignore"). If a field we
need is missing or the wrong type, pydantic raises and the client turns that into
MalformedResponseError (terminal) instead of letting None leak into the dataset.
"""

from pydantic import BaseModel, ConfigDict, Field


class _SpotifyModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ArtistRef(_SpotifyModel):
    name: str
    uri: str | None = None


class TrackResponse(_SpotifyModel):
    """GET /v1/tracks/{id} (only what the tag UI needs)."""

    name: str = Field(min_length=1)
    artists: list[ArtistRef] = Field(min_length=1)
    uri: str | None = None
    duration_ms: int | None = None


class AudioFeaturesResponse(_SpotifyModel):
    """GET /v1/audio-features/{id}.

    tempo can legitimately be null/0 for spoken word, silence, etc.
    """

    tempo: float | None = None
    key: int | None = None
    mode: int | None = None
