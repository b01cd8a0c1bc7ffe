"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # The *args lets subclasses pass extra context. This is your base class - DON'T raise it directly!
    # Always use a specific subclass so callers (and is_retryable_error) can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when required configuration is missing or invalid.

    Example:
        raise ConfigurationError("Spotify access token not configured")
    """

    pass


# =============================================================================
# External API errors
# Hey future me - the split between these classes IS the retry policy!
# error_classification.is_retryable_error() keys off these types, so a new
# failure mode needs a home here before the backfill can treat it correctly.
# =============================================================================


class ExternalServiceError(DomainException):
    """External service (Spotify) returned an error.

    The status_code is kept so the classifier can tell a 503 (transient)
    from a 400 (our fault, never going to work).

    Example:
        raise ExternalServiceError("Spotify API error: 400 Bad Request", status_code=400)
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceededError(ExternalServiceError):
    """External service rate limit was exceeded (HTTP 429).

    Retryable. retry_after is the server's Retry-After hint in seconds, if any.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class NetworkError(DomainException):
    """Transient network failure (connection reset, DNS, generic fetch failure).

    Retryable.
    """

    pass


class RequestTimeoutError(DomainException, TimeoutError):
    """A call exceeded its time budget.

    Raised by the RequestCoordinator when fn() outlives request_timeout_ms.
    Also a builtin TimeoutError so generic `except TimeoutError` still works.
    Retryable.
    """

    def __init__(self, message: str = "Request timeout", timeout_ms: int | None = None) -> None:
        super().__init__(message)
        self.timeout_ms = timeout_ms


class CircuitOpenError(DomainException):
    """Raised locally while the circuit breaker is tripped.

    Not a remote error - no call was made. Always carries retry_after_ms so the
    UI can say "try again in N seconds" instead of showing a scary failure.
    """

    def __init__(self, retry_after_ms: int) -> None:
        super().__init__(
            f"Circuit breaker open. Retry after {retry_after_ms}ms"
        )
        self.retry_after_ms = retry_after_ms


class MalformedResponseError(DomainException):
    """External response did not match the expected schema.

    Terminal - retrying returns the same garbage.
    """

    pass


# =============================================================================
# Persistence / migration errors
# =============================================================================


class PersistenceError(DomainException):
    """Local store read or write failed.

    Intermediate checkpoint writes catch this and keep going (in-memory progress
    survives, only crash-safety of that checkpoint is lost).
    """

    def __init__(self, operation: str, key: str, cause: Exception | None = None) -> None:
        super().__init__(f"Failed to {operation} '{key}': {cause}")
        self.operation = operation
        self.key = key
        self.cause = cause


class MigrationPausedError(DomainException):
    """Migration stopped itself after too many consecutive failures.

    NOT a crash! Progress was checkpointed before raising. The runner catches
    this, leaves the migration flag unset and the next launch resumes.
    """

    def __init__(self, migration_name: str, consecutive_failures: int) -> None:
        super().__init__(
            f"Migration '{migration_name}' paused due to repeated failures "
            f"({consecutive_failures}). Will retry on next run."
        )
        self.migration_name = migration_name
        self.consecutive_failures = consecutive_failures
