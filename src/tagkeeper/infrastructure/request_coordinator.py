"""
Request Coordinator - the ONE choke point for outbound metadata API calls.

Hey future me – JEDER Call zur externen API geht hier durch! No exceptions.
It stops runaway request storms (infinite loops, re-render storms, a migration
hammering the API during an outage) before Spotify starts answering with 429s.

FOUR JOBS:
1. Sliding-window rate limits (per second AND per minute)
2. Circuit breaker: N consecutive errors -> reject everything for a cool-down
3. In-flight dedup: same key while a call is running -> share that call's result
4. Per-call timeout

ALGORITHM: Sliding log (NOT token bucket!)
- Every admitted call leaves a timestamp in _history
- Entries older than 60s get pruned on every check
- Too many in the last 1s or 60s -> wait until the oldest one in that window
  expires, then try again. Bursts get smoothed, never dropped.

CIRCUIT RESET IS LAZY:
There is no background timer. The next execute() after the cool-down notices
the time has passed and closes the circuit itself.

USAGE:
    coordinator = RequestCoordinator.for_graphql()

    track = await coordinator.execute(
        f"getTrack:{uri}",
        lambda: client.get(f"/tracks/{track_id}"),
    )
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from tagkeeper.domain.exceptions import (
    CircuitOpenError,
    RateLimitExceededError,
    RequestTimeoutError,
)
from tagkeeper.infrastructure.observability.log_messages import LogMessages

if TYPE_CHECKING:
    from tagkeeper.config import CoordinatorSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")

HISTORY_WINDOW_SECONDS = 60.0
SECOND_WINDOW_SECONDS = 1.0
# Fallback waits when the violated window has no sample (should not happen)
SECOND_FALLBACK_WAIT_MS = 100.0
MINUTE_FALLBACK_WAIT_MS = 1000.0


@dataclass
class RequestCoordinatorConfig:
    """Configuration for a request coordinator.

    Hey future me – die Defaults sind konservativ für Spotify's interne APIs.
    Multiple coordinators with different limits can exist side by side
    (GraphQL metadata vs. audio features have separate budgets).
    """

    max_requests_per_second: int = 20
    max_requests_per_minute: int = 1000
    circuit_breaker_threshold: int = 10  # Consecutive errors before circuit opens
    circuit_breaker_reset_ms: int = 30_000  # Cool-down before circuit resets
    request_timeout_ms: int = 10_000
    # Upper bound on wait-and-retry rounds in one execute() call
    max_rate_limit_waits: int = 100

    @classmethod
    def from_settings(cls, settings: CoordinatorSettings) -> RequestCoordinatorConfig:
        return cls(**settings.model_dump())


@dataclass
class RequestRecord:
    """One admitted call in the rolling window.

    success is None while the call is still in flight.
    """

    timestamp: float
    success: bool | None = None


@dataclass
class PendingCall:
    """In-flight call shared by every caller using the same key."""

    task: asyncio.Task[Any]
    started_at: float


def _consume_task_result(task: asyncio.Task[Any]) -> None:
    # Attached callers may all be gone (cancelled) by the time the call fails -
    # retrieve the exception so asyncio doesn't log "never retrieved".
    if not task.cancelled():
        task.exception()


@dataclass
class RequestCoordinator:
    """Rate-limited, circuit-broken, deduplicating call executor.

    Hey future me – das ist die Haupt-Klasse! Build one per external endpoint in
    the composition root and inject it. Tests build fresh ones and pass a fake
    clock/sleep so nothing actually waits.

    Attributes:
        config: Limits and timeouts
        name: Label for log lines
        clock: Monotonic time source in seconds
        sleep: Async sleep used for rate-limit waits
    """

    config: RequestCoordinatorConfig = field(default_factory=RequestCoordinatorConfig)
    name: str = "default"
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    # Internal state (not in __init__ signature)
    _history: list[RequestRecord] = field(default_factory=list, init=False)
    _pending: dict[str, PendingCall] = field(default_factory=dict, init=False)
    _circuit_open: bool = field(default=False, init=False)
    _circuit_opened_at: float = field(default=0.0, init=False)
    _consecutive_errors: int = field(default=0, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @classmethod
    def for_graphql(cls, **kwargs: Any) -> RequestCoordinator:
        """Coordinator for track metadata lookups.

        15 req/s leaves headroom below what the metadata API tolerates.
        """
        return cls(
            config=RequestCoordinatorConfig(
                max_requests_per_second=15,
                max_requests_per_minute=1000,
                circuit_breaker_threshold=10,
                circuit_breaker_reset_ms=30_000,
            ),
            name="graphql",
            **kwargs,
        )

    @classmethod
    def for_audio_features(cls, **kwargs: Any) -> RequestCoordinator:
        """Coordinator for audio features (BPM).

        Slower endpoint - longer timeout, lower rate.
        """
        return cls(
            config=RequestCoordinatorConfig(
                max_requests_per_second=10,
                max_requests_per_minute=1000,
                circuit_breaker_threshold=10,
                circuit_breaker_reset_ms=30_000,
                request_timeout_ms=15_000,
            ),
            name="audio_features",
            **kwargs,
        )

    @classmethod
    def from_settings(
        cls, settings: CoordinatorSettings, name: str, **kwargs: Any
    ) -> RequestCoordinator:
        return cls(config=RequestCoordinatorConfig.from_settings(settings), name=name, **kwargs)

    # ------------------------------------------------------------------
    # Checks (call with _lock held)
    # ------------------------------------------------------------------

    def _prune_history(self, now: float) -> None:
        self._history = [
            r for r in self._history if now - r.timestamp < HISTORY_WINDOW_SECONDS
        ]

    def _check_rate_limits(self, now: float) -> tuple[bool, float]:
        """Check if we're within rate limits.

        Returns:
            (allowed, retry_after_ms) - retry_after_ms is 0 when allowed
        """
        self._prune_history(now)

        last_second = [
            r for r in self._history if now - r.timestamp < SECOND_WINDOW_SECONDS
        ]
        if len(last_second) >= self.config.max_requests_per_second:
            # History is appended in admission order, so [0] is the oldest
            oldest = last_second[0] if last_second else None
            retry_after_ms = (
                (SECOND_WINDOW_SECONDS - (now - oldest.timestamp)) * 1000
                if oldest
                else SECOND_FALLBACK_WAIT_MS
            )
            return False, retry_after_ms

        if len(self._history) >= self.config.max_requests_per_minute:
            oldest = self._history[0] if self._history else None
            retry_after_ms = (
                (HISTORY_WINDOW_SECONDS - (now - oldest.timestamp)) * 1000
                if oldest
                else MINUTE_FALLBACK_WAIT_MS
            )
            return False, retry_after_ms

        return True, 0.0

    def _check_circuit_breaker(self, now: float) -> None:
        """Raise CircuitOpenError while tripped, auto-reset after the cool-down."""
        if not self._circuit_open:
            return

        elapsed_ms = (now - self._circuit_opened_at) * 1000
        if elapsed_ms >= self.config.circuit_breaker_reset_ms:
            logger.info(
                f"RequestCoordinator[{self.name}]: Circuit breaker reset, allowing requests"
            )
            self._circuit_open = False
            self._consecutive_errors = 0
            return

        raise CircuitOpenError(
            retry_after_ms=int(self.config.circuit_breaker_reset_ms - elapsed_ms)
        )

    # ------------------------------------------------------------------
    # Outcome bookkeeping
    # ------------------------------------------------------------------

    def _record_success(self, record: RequestRecord) -> None:
        record.success = True
        self._consecutive_errors = 0

    def _record_error(self, record: RequestRecord) -> None:
        record.success = False
        self._consecutive_errors += 1

        if (
            not self._circuit_open
            and self._consecutive_errors >= self.config.circuit_breaker_threshold
        ):
            logger.error(
                LogMessages.circuit_opened(
                    coordinator=self.name,
                    consecutive_errors=self._consecutive_errors,
                    reset_ms=self.config.circuit_breaker_reset_ms,
                )
            )
            self._circuit_open = True
            self._circuit_opened_at = self.clock()

    async def _run(
        self, key: str, fn: Callable[[], Awaitable[T]], record: RequestRecord
    ) -> T:
        """Run fn with the timeout and record the outcome."""
        timeout_ms = self.config.request_timeout_ms
        try:
            try:
                result = await asyncio.wait_for(fn(), timeout=timeout_ms / 1000)
            except RequestTimeoutError:
                raise
            except TimeoutError as e:
                raise RequestTimeoutError(
                    f"Request timeout after {timeout_ms}ms ({key})",
                    timeout_ms=timeout_ms,
                ) from e
        except Exception:
            async with self._lock:
                self._record_error(record)
            raise
        else:
            async with self._lock:
                self._record_success(record)
            return result
        finally:
            pending = self._pending.get(key)
            if pending is not None and pending.task is asyncio.current_task():
                del self._pending[key]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Execute a call with rate limiting, circuit breaking and deduplication.

        Hey future me – das ist die Haupt-Methode! The rate-limit wait is a LOOP,
        not recursion: every round re-checks the circuit and the pending table,
        because both can change while we sleep.

        Args:
            key: Dedup key for logically identical calls (e.g. "getTrack:spotify:track:xxx")
            fn: Zero-argument callable returning an awaitable

        Returns:
            Whatever fn's awaitable produced

        Raises:
            CircuitOpenError: Circuit is tripped and the cool-down hasn't elapsed
            RequestTimeoutError: fn took longer than request_timeout_ms
            RateLimitExceededError: Still throttled after max_rate_limit_waits rounds
            Exception: Whatever fn raised, unchanged
        """
        waits = 0
        while True:
            task: asyncio.Task[T] | None = None
            retry_after_ms = 0.0
            async with self._lock:
                now = self.clock()
                self._check_circuit_breaker(now)

                pending = self._pending.get(key)
                if (
                    pending is not None
                    and (now - pending.started_at) * 1000 < self.config.request_timeout_ms
                ):
                    task = pending.task
                else:
                    allowed, retry_after_ms = self._check_rate_limits(now)
                    if allowed:
                        record = RequestRecord(timestamp=now)
                        self._history.append(record)
                        task = asyncio.ensure_future(self._run(key, fn, record))
                        task.add_done_callback(_consume_task_result)
                        self._pending[key] = PendingCall(task=task, started_at=now)

            if task is not None:
                # shield: one impatient caller must not cancel the shared call
                return await asyncio.shield(task)

            waits += 1
            if waits > self.config.max_rate_limit_waits:
                raise RateLimitExceededError(
                    f"RequestCoordinator[{self.name}]: still throttled after "
                    f"{self.config.max_rate_limit_waits} waits ({key})",
                    retry_after=retry_after_ms / 1000,
                )

            logger.debug(
                f"RequestCoordinator[{self.name}]: Rate limit reached, "
                f"waiting {retry_after_ms:.0f}ms ({key})"
            )
            await self.sleep(retry_after_ms / 1000)

    def get_stats(self) -> dict[str, Any]:
        """Get current stats (for debugging / health endpoint)."""
        now = self.clock()
        return {
            "name": self.name,
            "requests_last_second": sum(
                1 for r in self._history if now - r.timestamp < SECOND_WINDOW_SECONDS
            ),
            "requests_last_minute": sum(
                1 for r in self._history if now - r.timestamp < HISTORY_WINDOW_SECONDS
            ),
            "pending_requests": len(self._pending),
            "circuit_open": self._circuit_open,
            "consecutive_errors": self._consecutive_errors,
        }

    def reset(self) -> None:
        """Reset all state (useful for testing)."""
        self._history = []
        self._pending.clear()
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._consecutive_errors = 0

    @property
    def circuit_open(self) -> bool:
        return self._circuit_open


__all__ = [
    "PendingCall",
    "RequestCoordinator",
    "RequestCoordinatorConfig",
    "RequestRecord",
]
