"""tagkeeper - resilient Spotify metadata access and resumable tag-data migrations."""

__version__ = "1.4.0"
