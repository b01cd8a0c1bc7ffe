"""User-facing error messages for metadata fetch failures.

This module turns coordinator and API errors into short, retry-later messages
for UI-triggered single fetches (track details panel, "refresh metadata" button).
Those callers don't go through the backfill's retry logic, so the error reaches
the user directly and must not read like a crash.
"""

import logging

from tagkeeper.domain.exceptions import (
    CircuitOpenError,
    ExternalServiceError,
    MalformedResponseError,
    NetworkError,
    RateLimitExceededError,
    RequestTimeoutError,
)
from tagkeeper.infrastructure.error_classification import is_retryable_error

logger = logging.getLogger(__name__)


def _format_wait(seconds: float) -> str:
    seconds = max(1, round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    return f"{seconds // 60}m {seconds % 60:02d}s"


# Hey future me - order matters! RateLimitExceededError IS an ExternalServiceError,
# so it has to be checked first or it would show up as a generic API error.
def format_user_error(error: BaseException) -> str:
    """Render an error as a short message for the end user.

    Args:
        error: Exception raised by a fetcher or the RequestCoordinator

    Returns:
        One-line message; transient problems always say "try again"

    Example:
        try:
            info = await client.fetch_identity(uri)
        except Exception as e:
            show_toast(format_user_error(e))
    """
    if isinstance(error, CircuitOpenError):
        return (
            "Spotify is not responding right now. "
            f"Try again in {_format_wait(error.retry_after_ms / 1000)}."
        )

    if isinstance(error, RateLimitExceededError):
        if error.retry_after:
            return f"Too many requests to Spotify. Try again in {_format_wait(error.retry_after)}."
        return "Too many requests to Spotify. Try again in a moment."

    if isinstance(error, RequestTimeoutError | TimeoutError):
        return "Spotify took too long to answer. Try again in a moment."

    if isinstance(error, NetworkError):
        return "Could not reach Spotify. Check your connection and try again."

    if isinstance(error, MalformedResponseError):
        return "Spotify returned data we could not read for this track."

    if isinstance(error, ExternalServiceError):
        if is_retryable_error(error):
            return "Spotify is having trouble right now. Try again in a moment."
        return f"Spotify could not provide data for this track (HTTP {error.status_code})."

    if is_retryable_error(error):
        return "Temporary problem while loading track data. Try again in a moment."

    logger.debug("No user message mapping for %s", type(error).__name__)
    return "Could not load track data."
