"""Application settings loaded from environment variables.

Hey future me - everything is env-driven with the TAGKEEPER_ prefix and "__" for
nesting, e.g.:

    TAGKEEPER_LOGGING__LEVEL=DEBUG
    TAGKEEPER_GRAPHQL_COORDINATOR__MAX_REQUESTS_PER_SECOND=5
    TAGKEEPER_MIGRATION__BATCH_SIZE=10

The defaults are the values the app has always shipped with. Tests build the
nested models directly (MigrationSettings(base_batch_delay_seconds=0) etc.)
instead of going through the env.
"""

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CoordinatorSettings(BaseModel):
    """Tunables for one RequestCoordinator instance."""

    max_requests_per_second: int = Field(default=20, ge=1)
    max_requests_per_minute: int = Field(default=1000, ge=1)
    circuit_breaker_threshold: int = Field(default=10, ge=1)
    circuit_breaker_reset_ms: int = Field(default=30_000, ge=0)
    request_timeout_ms: int = Field(default=10_000, ge=1)
    max_rate_limit_waits: int = Field(default=100, ge=1)


class MigrationSettings(BaseModel):
    """Backfill pacing.

    Hey future me - these are tuned for Spotify's tolerance. Don't crank
    batch_size up "to make it faster" - 5 concurrent + adaptive delay is what
    keeps us from burning through the whole library during an outage.
    """

    batch_size: int = Field(default=5, ge=1)
    base_batch_delay_seconds: float = Field(default=0.5, ge=0)
    max_batch_delay_seconds: float = Field(default=5.0, ge=0)
    batch_delay_multiplier: float = Field(default=1.5, ge=1)
    save_every_n_batches: int = Field(default=10, ge=1)
    max_retries_per_record: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0)
    max_consecutive_failures: int = Field(default=10, ge=1)


class StorageSettings(BaseModel):
    """Local store location."""

    url: str = "sqlite+aiosqlite:///./tagkeeper.db"
    echo: bool = False


class SpotifySettings(BaseModel):
    """Spotify Web API access.

    The token is opaque to us - acquiring/refreshing it is the host app's job.
    """

    api_base_url: str = "https://api.spotify.com/v1"
    access_token: str | None = None
    timeout_seconds: float = 30.0


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_format: bool = False


def _graphql_defaults() -> CoordinatorSettings:
    return CoordinatorSettings(max_requests_per_second=15)


def _audio_features_defaults() -> CoordinatorSettings:
    return CoordinatorSettings(max_requests_per_second=10, request_timeout_ms=15_000)


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="TAGKEEPER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "tagkeeper"
    graphql_coordinator: CoordinatorSettings = Field(default_factory=_graphql_defaults)
    audio_features_coordinator: CoordinatorSettings = Field(
        default_factory=_audio_features_defaults
    )
    migration: MigrationSettings = Field(default_factory=MigrationSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (for testing)."""
    global _settings
    _settings = None
