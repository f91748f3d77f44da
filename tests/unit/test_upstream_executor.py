"""Unit tests for the upstream executor.

Tests cover:
1. Timeout behavior
2. Retry + jitter
3. Circuit breaker (rolling window, single half-open trial)
4. Task cancellation (no retry, no breaker failure)
5. Metrics and structured logging wiring
"""

import asyncio
import logging
import random

import pytest
from prometheus_client import generate_latest

from backend.quoting.upstream.executor import (
    BreakerRegistry,
    BreakerState,
    CallConfig,
    CallContext,
    CircuitBreaker,
    UpstreamCallError,
    UpstreamCircuitOpenError,
    UpstreamExecutor,
    UpstreamTimeoutError,
)
from backend.quoting.utils.logging import StructuredCallLogger
from backend.quoting.utils.metrics import PrometheusUpstreamMetrics


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(**overrides: int) -> CallConfig:
    values = {
        "hard_timeout_ms": 2000,
        "retry_count": 0,
        "retry_jitter_min_ms": 200,
        "retry_jitter_max_ms": 500,
        "breaker_failure_threshold": 5,
        "breaker_window_seconds": 60,
        "breaker_half_open_seconds": 30,
    }
    values.update(overrides)
    return CallConfig(**values)


class RecordingLogger(StructuredCallLogger):
    def __init__(self) -> None:
        self.outcomes: list[tuple[int, str]] = []

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        self.outcomes.append((attempt, outcome))
        super().log_attempt(ctx, attempt, outcome, latency_ms, error_reason)


async def no_sleep(seconds: float) -> None:
    return None


async def always_fails() -> str:
    raise RuntimeError("down")


async def fine() -> str:
    return "ok"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> BreakerRegistry:
    return BreakerRegistry(clock=clock)


@pytest.fixture
def executor(registry: BreakerRegistry) -> UpstreamExecutor:
    return UpstreamExecutor(sleep_fn=no_sleep, breakers=registry)


class TestCircuitBreaker:
    def make_breaker(self, clock: FakeClock, threshold: int = 3) -> CircuitBreaker:
        return CircuitBreaker(
            "catalog",
            failure_threshold=threshold,
            window_seconds=60,
            half_open_seconds=30,
            clock=clock,
        )

    def test_starts_closed(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock)

        assert breaker.state is BreakerState.closed
        assert breaker.try_acquire() is BreakerState.closed

    def test_opens_after_threshold_failures(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock)
        for _ in range(3):
            breaker.record_failure(trial=False)

        assert breaker.state is BreakerState.open
        assert breaker.try_acquire() is None

    def test_old_failures_fall_out_of_window(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock)
        breaker.record_failure(trial=False)
        clock.advance(30)
        breaker.record_failure(trial=False)
        clock.advance(31)
        breaker.record_failure(trial=False)

        assert breaker.state is BreakerState.closed
        assert breaker.recent_failures == 2

    def test_successes_do_not_reset_the_window(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock)
        breaker.record_failure(trial=False)
        breaker.record_success(trial=False)
        breaker.record_failure(trial=False)
        breaker.record_failure(trial=False)

        assert breaker.state is BreakerState.open

    def test_half_open_admits_a_single_trial(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock, threshold=1)
        breaker.record_failure(trial=False)
        clock.advance(30)

        assert breaker.state is BreakerState.half_open
        assert breaker.try_acquire() is BreakerState.half_open
        assert breaker.try_acquire() is None

    def test_trial_success_closes(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock, threshold=1)
        breaker.record_failure(trial=False)
        clock.advance(30)
        breaker.try_acquire()

        breaker.record_success(trial=True)

        assert breaker.state is BreakerState.closed
        assert breaker.recent_failures == 0

    def test_trial_failure_reopens_for_a_full_period(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock, threshold=1)
        breaker.record_failure(trial=False)
        clock.advance(45)
        breaker.try_acquire()

        breaker.record_failure(trial=True)

        assert breaker.state is BreakerState.open
        clock.advance(29)
        assert breaker.state is BreakerState.open
        clock.advance(1)
        assert breaker.state is BreakerState.half_open

    def test_released_trial_can_be_claimed_again(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock, threshold=1)
        breaker.record_failure(trial=False)
        clock.advance(30)
        breaker.try_acquire()

        breaker.release_trial()

        assert breaker.state is BreakerState.half_open
        assert breaker.try_acquire() is BreakerState.half_open

    def test_late_failures_while_open_are_ignored(self, clock: FakeClock) -> None:
        breaker = self.make_breaker(clock, threshold=1)
        breaker.record_failure(trial=False)
        clock.advance(20)
        breaker.record_failure(trial=False)

        clock.advance(10)
        assert breaker.state is BreakerState.half_open


class TestBreakerRegistry:
    def test_shares_breakers_per_upstream(self, registry: BreakerRegistry) -> None:
        first = registry.get_or_create("completion", make_config())
        second = registry.get_or_create("completion", make_config(breaker_failure_threshold=1))

        assert first is second
        assert first.failure_threshold == 5
        assert registry.get_or_create("catalog", make_config()) is not first

    def test_breakers_use_the_registry_clock(
        self, registry: BreakerRegistry, clock: FakeClock
    ) -> None:
        breaker = registry.get_or_create("catalog", make_config(breaker_failure_threshold=1))
        breaker.record_failure(trial=False)

        clock.advance(30)

        assert breaker.state is BreakerState.half_open


class TestUpstreamExecutor:
    @pytest.mark.asyncio
    async def test_successful_call(self, executor: UpstreamExecutor) -> None:
        async def fetch() -> list[int]:
            return [1, 2, 3]

        ctx = CallContext(trace_id="tr1", upstream="catalog", operation="search")

        assert await executor.call(ctx, make_config(), fetch) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_timeout_raises(self, executor: UpstreamExecutor) -> None:
        async def slow() -> str:
            await asyncio.sleep(10)
            return "too slow"

        ctx = CallContext(trace_id="tr1", upstream="completion", operation="complete")

        with pytest.raises(UpstreamTimeoutError):
            await executor.call(ctx, make_config(hard_timeout_ms=50), slow)

    @pytest.mark.asyncio
    async def test_retry_with_jitter(self, registry: BreakerRegistry) -> None:
        sleeps: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)

        executor = UpstreamExecutor(sleep_fn=fake_sleep, breakers=registry, rng=random.Random(3))
        attempts = 0

        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise ConnectionError("reset by peer")
            return "ok"

        ctx = CallContext(trace_id="tr1", upstream="catalog", operation="search")

        assert await executor.call(ctx, make_config(retry_count=1), flaky) == "ok"
        assert attempts == 2
        assert len(sleeps) == 1
        assert 0.2 <= sleeps[0] <= 0.5

    @pytest.mark.asyncio
    async def test_every_attempt_failing_raises_call_error(
        self, executor: UpstreamExecutor
    ) -> None:
        async def broken() -> str:
            raise ValueError("bad response")

        ctx = CallContext(trace_id="tr1", upstream="catalog", operation="fuzzy_search")

        with pytest.raises(UpstreamCallError, match=r"2 attempt\(s\)") as exc_info:
            await executor.call(ctx, make_config(retry_count=1), broken)
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_breaker_opens_after_failures(self, executor: UpstreamExecutor) -> None:
        calls = 0

        async def counted_failure() -> str:
            nonlocal calls
            calls += 1
            raise RuntimeError("down")

        ctx = CallContext(trace_id="tr1", upstream="catalog", operation="search")
        config = make_config(breaker_failure_threshold=3)

        for _ in range(3):
            with pytest.raises(UpstreamCallError):
                await executor.call(ctx, config, counted_failure)

        with pytest.raises(UpstreamCircuitOpenError):
            await executor.call(ctx, config, counted_failure)
        assert calls == 3

    @pytest.mark.asyncio
    async def test_opening_breaker_stops_retries(self, executor: UpstreamExecutor) -> None:
        calls = 0

        async def counted_failure() -> str:
            nonlocal calls
            calls += 1
            raise RuntimeError("down")

        ctx = CallContext(trace_id="tr1", upstream="catalog", operation="search")

        with pytest.raises(UpstreamCallError, match=r"2 attempt\(s\)"):
            await executor.call(
                ctx, make_config(retry_count=4, breaker_failure_threshold=2), counted_failure
            )
        assert calls == 2

    @pytest.mark.asyncio
    async def test_breaker_is_per_upstream(self, executor: UpstreamExecutor) -> None:
        config = make_config(breaker_failure_threshold=1)
        catalog = CallContext(trace_id="tr1", upstream="catalog", operation="search")
        completion = CallContext(trace_id="tr1", upstream="completion", operation="complete")

        with pytest.raises(UpstreamCallError):
            await executor.call(catalog, config, always_fails)

        assert await executor.call(completion, config, fine) == "ok"

    @pytest.mark.asyncio
    async def test_half_open_trial_closes_breaker(
        self, executor: UpstreamExecutor, clock: FakeClock
    ) -> None:
        ctx = CallContext(trace_id="tr1", upstream="catalog", operation="search")
        config = make_config(breaker_failure_threshold=1)

        with pytest.raises(UpstreamCallError):
            await executor.call(ctx, config, always_fails)
        with pytest.raises(UpstreamCircuitOpenError):
            await executor.call(ctx, config, fine)

        clock.advance(30)

        assert await executor.call(ctx, config, fine) == "ok"
        assert await executor.call(ctx, config, fine) == "ok"

    @pytest.mark.asyncio
    async def test_half_open_rejects_while_trial_in_flight(
        self, executor: UpstreamExecutor, registry: BreakerRegistry, clock: FakeClock
    ) -> None:
        ctx = CallContext(trace_id="tr1", upstream="completion", operation="complete")
        config = make_config(breaker_failure_threshold=1)
        with pytest.raises(UpstreamCallError):
            await executor.call(ctx, config, always_fails)
        clock.advance(30)

        release = asyncio.Event()

        async def held() -> str:
            await release.wait()
            return "trial ok"

        trial = asyncio.create_task(executor.call(ctx, config, held))
        await asyncio.sleep(0)
        with pytest.raises(UpstreamCircuitOpenError):
            await executor.call(ctx, config, fine)

        release.set()
        assert await trial == "trial ok"
        assert registry.get_or_create("completion", config).state is BreakerState.closed

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried_or_counted(
        self, registry: BreakerRegistry
    ) -> None:
        call_logger = RecordingLogger()
        executor = UpstreamExecutor(logger=call_logger, sleep_fn=no_sleep, breakers=registry)
        started = asyncio.Event()
        calls = 0

        async def stalled() -> str:
            nonlocal calls
            calls += 1
            started.set()
            await asyncio.Event().wait()
            return "never"

        ctx = CallContext(trace_id="tr1", upstream="completion", operation="complete")
        config = make_config(retry_count=3, breaker_failure_threshold=1)

        task = asyncio.create_task(executor.call(ctx, config, stalled))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert calls == 1
        assert call_logger.outcomes == [(1, "cancelled")]
        breaker = registry.get_or_create("completion", config)
        assert breaker.state is BreakerState.closed
        assert breaker.recent_failures == 0

    @pytest.mark.asyncio
    async def test_cancelled_trial_frees_the_slot(
        self, executor: UpstreamExecutor, registry: BreakerRegistry, clock: FakeClock
    ) -> None:
        ctx = CallContext(trace_id="tr1", upstream="catalog", operation="search")
        config = make_config(breaker_failure_threshold=1)
        with pytest.raises(UpstreamCallError):
            await executor.call(ctx, config, always_fails)
        clock.advance(30)

        started = asyncio.Event()

        async def stalled() -> str:
            started.set()
            await asyncio.Event().wait()
            return "never"

        trial = asyncio.create_task(executor.call(ctx, config, stalled))
        await started.wait()
        trial.cancel()
        with pytest.raises(asyncio.CancelledError):
            await trial

        assert registry.get_or_create("catalog", config).state is BreakerState.half_open
        assert await executor.call(ctx, config, fine) == "ok"

    @pytest.mark.asyncio
    async def test_metrics_and_logging(self, registry: BreakerRegistry) -> None:
        call_logger = RecordingLogger()
        executor = UpstreamExecutor(
            metrics=PrometheusUpstreamMetrics(), logger=call_logger, breakers=registry
        )

        async def slow() -> str:
            await asyncio.sleep(10)
            return "late"

        await executor.call(
            CallContext(trace_id="tr1", upstream="metric_ok", operation="search"),
            make_config(),
            fine,
        )
        with pytest.raises(UpstreamTimeoutError):
            await executor.call(
                CallContext(trace_id="tr2", upstream="metric_slow", operation="complete"),
                make_config(hard_timeout_ms=20, breaker_failure_threshold=1),
                slow,
            )
        with pytest.raises(UpstreamCircuitOpenError):
            await executor.call(
                CallContext(trace_id="tr3", upstream="metric_slow", operation="complete"),
                make_config(),
                slow,
            )

        assert call_logger.outcomes == [(1, "success"), (1, "timeout"), (0, "breaker_open")]
        output = generate_latest().decode("utf-8")
        assert 'upstream_latency_ms_count{outcome="success",upstream="metric_ok"}' in output
        assert 'upstream_latency_ms_count{outcome="timeout",upstream="metric_slow"}' in output
        assert 'upstream_errors_total{reason="timeout",upstream="metric_slow"}' in output
        assert 'upstream_errors_total{reason="breaker_open",upstream="metric_slow"}' in output


class TestStructuredCallLogger:
    @pytest.mark.parametrize(
        ("outcome", "level"),
        [("success", logging.DEBUG), ("cancelled", logging.INFO), ("timeout", logging.WARNING)],
    )
    def test_level_follows_outcome(
        self, caplog: pytest.LogCaptureFixture, outcome: str, level: int
    ) -> None:
        ctx = CallContext(trace_id="tr9", upstream="catalog", operation="search")

        with caplog.at_level(logging.DEBUG, logger="backend.quoting.utils.logging"):
            StructuredCallLogger().log_attempt(ctx, 1, outcome, 12.345)

        [record] = caplog.records
        assert record.levelno == level
        assert record.structured == {
            "trace_id": "tr9",
            "upstream": "catalog",
            "operation": "search",
            "attempt": 1,
            "outcome": outcome,
            "latency_ms": 12.35,
        }
