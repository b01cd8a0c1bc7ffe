"""Tests for RequestCoordinator."""

import asyncio
from collections.abc import Awaitable, Callable

import pytest
from conftest import FakeClock, FakeSleep

from tagkeeper.config import CoordinatorSettings
from tagkeeper.domain.exceptions import (
    CircuitOpenError,
    RateLimitExceededError,
    RequestTimeoutError,
)
from tagkeeper.infrastructure.request_coordinator import (
    RequestCoordinator,
    RequestCoordinatorConfig,
)

# Hey future me - every test injects a FakeClock + FakeSleep. FakeSleep advances the
# clock, so "waiting" for the rate window is instant and fully deterministic.


def make_coordinator(
    clock: FakeClock, sleep: Callable[[float], Awaitable[None]] | None = None, **config
) -> RequestCoordinator:
    return RequestCoordinator(
        config=RequestCoordinatorConfig(**config),
        name="test",
        clock=clock,
        sleep=sleep or FakeSleep(clock),
    )


def returning(value):
    async def call():
        return value

    return call


def failing(error: Exception):
    async def call():
        raise error

    return call


class TestFactories:
    """Test preset constructors."""

    def test_for_graphql(self) -> None:
        """GraphQL preset runs at 15 req/s."""
        coordinator = RequestCoordinator.for_graphql()
        assert coordinator.name == "graphql"
        assert coordinator.config.max_requests_per_second == 15

    def test_for_audio_features(self) -> None:
        """Audio features preset is slower with a longer timeout."""
        coordinator = RequestCoordinator.for_audio_features()
        assert coordinator.config.max_requests_per_second == 10
        assert coordinator.config.request_timeout_ms == 15_000

    def test_from_settings(self, clock: FakeClock) -> None:
        """Settings map 1:1 onto the config."""
        settings = CoordinatorSettings(max_requests_per_second=3, circuit_breaker_threshold=2)
        coordinator = RequestCoordinator.from_settings(settings, name="x", clock=clock)
        assert coordinator.config.max_requests_per_second == 3
        assert coordinator.config.circuit_breaker_threshold == 2
        assert coordinator.clock is clock


class TestExecute:
    """Test basic call execution."""

    async def test_returns_result(self, clock: FakeClock) -> None:
        """Result of the operation is passed through."""
        coordinator = make_coordinator(clock)
        assert await coordinator.execute("k", returning(42)) == 42

    async def test_reraises_original_error(self, clock: FakeClock) -> None:
        """The caller sees the exact exception the operation raised."""
        coordinator = make_coordinator(clock)
        error = ValueError("boom")

        with pytest.raises(ValueError) as exc_info:
            await coordinator.execute("k", failing(error))

        assert exc_info.value is error

    async def test_pending_entry_cleared_after_settle(self, clock: FakeClock) -> None:
        """Success and failure both clear the in-flight entry."""
        coordinator = make_coordinator(clock)

        await coordinator.execute("a", returning(1))
        with pytest.raises(ValueError):
            await coordinator.execute("b", failing(ValueError("x")))

        assert coordinator.get_stats()["pending_requests"] == 0

    async def test_success_resets_consecutive_errors(self, clock: FakeClock) -> None:
        """One success wipes the error streak."""
        coordinator = make_coordinator(clock, circuit_breaker_threshold=3)

        for i in range(2):
            with pytest.raises(ValueError):
                await coordinator.execute(f"f{i}", failing(ValueError("x")))
        await coordinator.execute("ok", returning(None))

        assert coordinator.get_stats()["consecutive_errors"] == 0


class TestDeduplication:
    """Test in-flight request sharing."""

    async def test_concurrent_same_key_invokes_once(self, clock: FakeClock) -> None:
        """Two callers with the same key share one invocation."""
        coordinator = make_coordinator(clock)
        release = asyncio.Event()
        invocations = 0

        async def slow():
            nonlocal invocations
            invocations += 1
            await release.wait()
            return "shared"

        first = asyncio.create_task(coordinator.execute("getTrack:1", slow))
        second = asyncio.create_task(coordinator.execute("getTrack:1", slow))
        await asyncio.sleep(0)
        release.set()

        assert await asyncio.gather(first, second) == ["shared", "shared"]
        assert invocations == 1

    async def test_shared_failure_reaches_all_callers(self, clock: FakeClock) -> None:
        """Every attached caller sees the same error."""
        coordinator = make_coordinator(clock)
        release = asyncio.Event()

        async def slow_fail():
            await release.wait()
            raise ValueError("nope")

        first = asyncio.create_task(coordinator.execute("k", slow_fail))
        second = asyncio.create_task(coordinator.execute("k", slow_fail))
        await asyncio.sleep(0)
        release.set()

        results = await asyncio.gather(first, second, return_exceptions=True)
        assert all(isinstance(r, ValueError) for r in results)

    async def test_different_keys_not_shared(self, clock: FakeClock) -> None:
        """Distinct keys run independently."""
        coordinator = make_coordinator(clock)
        calls: list[str] = []

        def tracked(name):
            async def call():
                calls.append(name)
                return name

            return call

        results = await asyncio.gather(
            coordinator.execute("a", tracked("a")),
            coordinator.execute("b", tracked("b")),
        )

        assert results == ["a", "b"]
        assert sorted(calls) == ["a", "b"]

    async def test_cancelled_caller_does_not_cancel_shared_call(self, clock: FakeClock) -> None:
        """One impatient caller leaving must not break the other."""
        coordinator = make_coordinator(clock)
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return "done"

        impatient = asyncio.create_task(coordinator.execute("k", slow))
        patient = asyncio.create_task(coordinator.execute("k", slow))
        await asyncio.sleep(0)
        impatient.cancel()
        release.set()

        assert await patient == "done"


class TestRateLimits:
    """Test sliding-window throttling."""

    async def test_per_second_window_waits(self, clock: FakeClock) -> None:
        """Call over the per-second budget waits for the oldest sample to expire."""
        sleep = FakeSleep(clock)
        coordinator = make_coordinator(clock, sleep, max_requests_per_second=2)

        for i in range(3):
            await coordinator.execute(f"k{i}", returning(i))

        assert sleep.calls == [pytest.approx(1.0)]

    async def test_per_minute_window_waits(self, clock: FakeClock) -> None:
        """Per-minute budget waits up to 60s."""
        sleep = FakeSleep(clock)
        coordinator = make_coordinator(
            clock, sleep, max_requests_per_second=100, max_requests_per_minute=3
        )

        for i in range(4):
            await coordinator.execute(f"k{i}", returning(i))

        assert sleep.calls == [pytest.approx(60.0)]

    async def test_no_wait_within_budget(self, clock: FakeClock) -> None:
        """Calls within both budgets never sleep."""
        sleep = FakeSleep(clock)
        coordinator = make_coordinator(clock, sleep, max_requests_per_second=5)

        for i in range(5):
            await coordinator.execute(f"k{i}", returning(i))

        assert sleep.calls == []

    async def test_concurrent_callers_never_exceed_either_window(
        self, clock: FakeClock, mocker
    ) -> None:
        """Admissions are counted under the lock, so a burst of parallel calls stays in budget."""

        async def sleep_until(seconds: float) -> None:
            # Parallel sleepers wake at their own deadline instead of stacking up
            deadline = clock() + seconds
            await asyncio.sleep(0)
            clock.now = max(clock.now, deadline)

        coordinator = make_coordinator(
            clock, sleep_until, max_requests_per_second=3, max_requests_per_minute=7
        )
        run = mocker.spy(coordinator, "_run")

        results = await asyncio.gather(
            *(coordinator.execute(f"k{i}", returning(i)) for i in range(20))
        )

        assert results == list(range(20))
        admitted = sorted(call.args[-1].timestamp for call in run.call_args_list)
        assert len(admitted) == 20
        for t in admitted:
            assert sum(1 for a in admitted if t - 1 < a <= t) <= 3
            assert sum(1 for a in admitted if t - 60 < a <= t) <= 7

    async def test_failed_calls_count_toward_budget(self, clock: FakeClock) -> None:
        """Samples are recorded at admission, whatever the outcome."""
        sleep = FakeSleep(clock)
        coordinator = make_coordinator(clock, sleep, max_requests_per_second=1)

        with pytest.raises(ValueError):
            await coordinator.execute("a", failing(ValueError("x")))
        await coordinator.execute("b", returning(None))

        assert len(sleep.calls) == 1

    async def test_gives_up_after_max_waits(self, clock: FakeClock) -> None:
        """A clock that never moves ends in RateLimitExceededError instead of looping forever."""
        sleep = FakeSleep()  # does NOT advance the clock
        coordinator = make_coordinator(
            clock, sleep, max_requests_per_second=1, max_rate_limit_waits=2
        )
        await coordinator.execute("a", returning(None))

        with pytest.raises(RateLimitExceededError):
            await coordinator.execute("b", returning(None))

        assert len(sleep.calls) == 2

    async def test_stats_count_window(self, clock: FakeClock) -> None:
        """get_stats reports samples in both windows."""
        coordinator = make_coordinator(clock)
        await coordinator.execute("a", returning(None))
        clock.advance(2)
        await coordinator.execute("b", returning(None))

        stats = coordinator.get_stats()
        assert stats["requests_last_second"] == 1
        assert stats["requests_last_minute"] == 2


class TestCircuitBreaker:
    """Test circuit breaker trip and lazy reset."""

    async def test_opens_after_threshold_and_fails_fast(self, clock: FakeClock) -> None:
        """3 failures on distinct keys -> 4th call fails without invoking fn."""
        coordinator = make_coordinator(clock, circuit_breaker_threshold=3)
        for i in range(3):
            with pytest.raises(ValueError):
                await coordinator.execute(f"k{i}", failing(ValueError("x")))

        invoked = False

        async def should_not_run():
            nonlocal invoked
            invoked = True

        with pytest.raises(CircuitOpenError) as exc_info:
            await coordinator.execute("other", should_not_run)

        assert coordinator.circuit_open
        assert invoked is False
        assert 0 < exc_info.value.retry_after_ms <= 30_000

    async def test_resets_after_cool_down(self, clock: FakeClock) -> None:
        """After reset_ms the next call goes through and closes the circuit."""
        coordinator = make_coordinator(
            clock, circuit_breaker_threshold=1, circuit_breaker_reset_ms=5_000
        )
        with pytest.raises(ValueError):
            await coordinator.execute("a", failing(ValueError("x")))

        clock.advance(4.9)
        with pytest.raises(CircuitOpenError):
            await coordinator.execute("b", returning("ok"))

        clock.advance(0.2)
        assert await coordinator.execute("b", returning("ok")) == "ok"
        assert not coordinator.circuit_open
        assert coordinator.get_stats()["consecutive_errors"] == 0

    async def test_reset_clears_state(self, clock: FakeClock) -> None:
        """reset() closes the circuit and empties the history."""
        coordinator = make_coordinator(clock, circuit_breaker_threshold=1)
        with pytest.raises(ValueError):
            await coordinator.execute("a", failing(ValueError("x")))

        coordinator.reset()

        stats = coordinator.get_stats()
        assert stats["circuit_open"] is False
        assert stats["requests_last_minute"] == 0


class TestTimeout:
    """Test per-call timeout."""

    async def test_slow_call_times_out(self, clock: FakeClock) -> None:
        """Operation exceeding request_timeout_ms raises RequestTimeoutError."""
        coordinator = make_coordinator(clock, request_timeout_ms=10)

        async def hang():
            await asyncio.sleep(5)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await coordinator.execute("slow", hang)

        assert exc_info.value.timeout_ms == 10
        assert isinstance(exc_info.value, TimeoutError)

    async def test_timeout_counts_as_error(self, clock: FakeClock) -> None:
        """Timeouts feed the circuit breaker."""
        coordinator = make_coordinator(clock, request_timeout_ms=10, circuit_breaker_threshold=1)

        async def hang():
            await asyncio.sleep(5)

        with pytest.raises(RequestTimeoutError):
            await coordinator.execute("slow", hang)

        assert coordinator.circuit_open
