"""Configuration module for tagkeeper."""

from .settings import (
    CoordinatorSettings,
    LoggingSettings,
    MigrationSettings,
    Settings,
    SpotifySettings,
    StorageSettings,
    get_settings,
    reset_settings,
)

__all__ = [
    "CoordinatorSettings",
    "LoggingSettings",
    "MigrationSettings",
    "Settings",
    "SpotifySettings",
    "StorageSettings",
    "get_settings",
    "reset_settings",
]
