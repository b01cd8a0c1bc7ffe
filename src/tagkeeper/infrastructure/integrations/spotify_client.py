"""Spotify metadata fetchers routed through the RequestCoordinator."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tagkeeper.config import SpotifySettings
from tagkeeper.domain.entities import track_id_from_uri
from tagkeeper.domain.exceptions import ConfigurationError, MalformedResponseError
from tagkeeper.domain.ports import TrackIdentity, TrackMetadataFetcher
from tagkeeper.infrastructure.error_classification import classify_http_error
from tagkeeper.infrastructure.integrations.schemas import (
    AudioFeaturesResponse,
    TrackResponse,
)
from tagkeeper.infrastructure.request_coordinator import RequestCoordinator

logger = logging.getLogger(__name__)


class SpotifyMetadataClient(TrackMetadataFetcher):
    """Typed wrappers around two Spotify Web API calls.

    Hey future me - this client is deliberately DUMB. One HTTP call per method, no
    retries of its own! Throttling/dedup/circuit breaking live in the coordinators,
    retries live in the backfill. If you add a retry loop here, a flaky track gets
    retried 3x3 = 9 times and the circuit breaker counts it wrong.

    Two coordinators because the endpoints have separate budgets on Spotify's side.
    Token acquisition is NOT our job - the host app passes a valid bearer token.
    """

    def __init__(
        self,
        settings: SpotifySettings,
        track_coordinator: RequestCoordinator,
        features_coordinator: RequestCoordinator,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._track_coordinator = track_coordinator
        self._features_coordinator = features_coordinator
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            if not self.settings.access_token:
                raise ConfigurationError("Spotify access token not configured")
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_base_url,
                headers={
                    "Authorization": f"Bearer {self.settings.access_token}",
                    "Accept": "application/json",
                },
                timeout=self.settings.timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client (only if we created it)."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _get_json(self, path: str) -> dict[str, Any] | None:
        """GET path and decode JSON. 404 -> None, other failures -> domain errors."""
        client = self._get_client()
        try:
            response = await client.get(path)
            if response.status_code == 404:
                return None
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise classify_http_error(e) from e

        if not isinstance(data, dict):
            raise MalformedResponseError(f"Expected JSON object from {path}")
        return data

    async def fetch_identity(self, record_key: str) -> TrackIdentity | None:
        """Fetch track name + artists for a spotify:track URI.

        Returns:
            TrackIdentity, or None for local files / unknown tracks
        """
        track_id = track_id_from_uri(record_key)
        if track_id is None:
            return None

        async def request() -> TrackIdentity | None:
            data = await self._get_json(f"/tracks/{track_id}")
            if data is None:
                return None
            try:
                track = TrackResponse.model_validate(data)
            except ValidationError as e:
                raise MalformedResponseError(
                    f"Unexpected track payload for {record_key}: {e.error_count()} errors"
                ) from e
            return TrackIdentity(
                display_name=track.name,
                attribution_list=[artist.name for artist in track.artists],
            )

        return await self._track_coordinator.execute(f"getTrack:{record_key}", request)

    async def fetch_numeric_feature(self, record_key: str) -> float | None:
        """Fetch the rounded tempo (BPM) for a spotify:track URI.

        Returns:
            Integer BPM, or None when Spotify has no tempo for this track
        """
        track_id = track_id_from_uri(record_key)
        if track_id is None:
            return None

        async def request() -> int | None:
            data = await self._get_json(f"/audio-features/{track_id}")
            if data is None:
                return None
            try:
                features = AudioFeaturesResponse.model_validate(data)
            except ValidationError as e:
                raise MalformedResponseError(
                    f"Unexpected audio features payload for {record_key}: "
                    f"{e.error_count()} errors"
                ) from e
            if not features.tempo:
                return None
            return int(round(features.tempo))

        return await self._features_coordinator.execute(f"getBpm:{track_id}", request)
