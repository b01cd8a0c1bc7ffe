# Hey future me - this is THE place that decides "retry or give up"!
#
# The backfill retries a record only when is_retryable_error() says so. Get this
# wrong in one direction and a dead track (404, garbage response) burns three
# attempts + backoff on every batch. Get it wrong in the other direction and a
# short outage marks hundreds of tracks as permanently failed.
#
# RETRYABLE: 429, 5xx, network/transport errors, timeouts, open circuit
# TERMINAL:  everything else (other 4xx, malformed responses, our own bugs)
#
# The backoff helper is the same exponential curve the DB retry decorator uses,
# just with a much higher cap (the API can stay grumpy for a while).
"""Shared error classification and backoff helpers for external calls."""

from __future__ import annotations

import httpx

from tagkeeper.domain.exceptions import (
    CircuitOpenError,
    DomainException,
    ExternalServiceError,
    MalformedResponseError,
    NetworkError,
    RateLimitExceededError,
    RequestTimeoutError,
)

MAX_BACKOFF_SECONDS = 30.0

_RETRYABLE_TYPES: tuple[type[BaseException], ...] = (
    RateLimitExceededError,
    NetworkError,
    RequestTimeoutError,
    CircuitOpenError,
    TimeoutError,
    httpx.TimeoutException,
    httpx.TransportError,
)

# Last resort for exceptions from code we don't control
_RETRYABLE_MESSAGE_HINTS = ("network", "fetch", "timeout")


def _is_retryable_status(status_code: int | None) -> bool:
    if status_code is None:
        return False
    return status_code == 429 or 500 <= status_code < 600


def is_retryable_error(error: BaseException | None) -> bool:
    """Check if an error is worth retrying.

    Args:
        error: The exception to check (None counts as terminal)

    Returns:
        True for rate limits, transient network failures and timeouts
    """
    if error is None:
        return False

    if isinstance(error, _RETRYABLE_TYPES):
        return True

    if isinstance(error, httpx.HTTPStatusError):
        return _is_retryable_status(error.response.status_code)

    if isinstance(error, ExternalServiceError):
        return _is_retryable_status(error.status_code)

    # Domain errors are classified by type only - no message sniffing
    if isinstance(error, DomainException):
        return False

    message = str(error).lower()
    return any(hint in message for hint in _RETRYABLE_MESSAGE_HINTS)


def get_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = MAX_BACKOFF_SECONDS,
) -> float:
    """Exponential backoff: 1s, 2s, 4s, 8s ... capped at max_delay.

    Args:
        attempt: Retry number (1 = first retry)
        base_delay: Delay for attempt 0 in seconds
        max_delay: Cap in seconds

    Returns:
        Delay in seconds
    """
    return min(base_delay * (2**attempt), max_delay)


def _parse_retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def classify_http_error(error: Exception) -> Exception:
    """Translate httpx exceptions into the domain error taxonomy.

    Non-httpx exceptions are returned unchanged so callers can always do
    `raise classify_http_error(e) from e`.
    """
    if isinstance(error, httpx.TimeoutException):
        return RequestTimeoutError(f"Request timed out: {error}")

    if isinstance(error, httpx.TransportError):
        return NetworkError(f"Network error: {error}")

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        status = response.status_code
        if status == 429:
            return RateLimitExceededError(
                f"Rate limited (429): {response.request.url}",
                retry_after=_parse_retry_after(response),
            )
        return ExternalServiceError(
            f"API error: {status} {response.reason_phrase} ({response.request.url})",
            status_code=status,
        )

    if isinstance(error, ValueError) and not isinstance(error, DomainException):
        # response.json() on a non-JSON body
        return MalformedResponseError(f"Unparseable response: {error}")

    return error


__all__ = [
    "MAX_BACKOFF_SECONDS",
    "classify_http_error",
    "get_backoff_delay",
    "is_retryable_error",
]
