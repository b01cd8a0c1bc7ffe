"""External API integrations."""

from .spotify_client import SpotifyMetadataClient

__all__ = ["SpotifyMetadataClient"]
