"""Policy layer for catalog queries and completion calls.

Each call gets a hard timeout per attempt and a bounded number of jittered
retries. A circuit breaker is shared by every caller of the same upstream.
Cancellation is ordinary asyncio task cancellation: the attempt in flight is
logged as ``cancelled`` and ``CancelledError`` propagates unchanged, without
a retry and without counting against the breaker.
"""

import asyncio
import random
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, TypeVar

T = TypeVar("T")


class UpstreamError(Exception):
    """An upstream (catalog or completion) call failed."""

    retryable = False


class UpstreamTimeoutError(UpstreamError):
    """The last attempt exceeded the hard timeout."""

    retryable = True


class UpstreamCircuitOpenError(UpstreamError):
    """The breaker for this upstream is rejecting calls."""

    retryable = True


class UpstreamCallError(UpstreamError):
    """The last attempt raised."""

    retryable = True


@dataclass(frozen=True)
class CallContext:
    """Identifies one logical call in logs and metrics."""

    trace_id: str
    upstream: str
    operation: str


@dataclass(frozen=True)
class CallConfig:
    """Timeout, retry and breaker policy for one upstream."""

    hard_timeout_ms: int
    retry_count: int
    retry_jitter_min_ms: int
    retry_jitter_max_ms: int
    breaker_failure_threshold: int = 5
    breaker_window_seconds: float = 60
    breaker_half_open_seconds: float = 30

    @property
    def attempts(self) -> int:
        return self.retry_count + 1

    @property
    def timeout_seconds(self) -> float:
        return self.hard_timeout_ms / 1000

    def jitter_seconds(self, rng: random.Random) -> float:
        return rng.uniform(self.retry_jitter_min_ms, self.retry_jitter_max_ms) / 1000


class BreakerState(str, Enum):
    closed = "closed"
    open = "open"
    half_open = "half_open"


class CircuitBreaker:
    """Rolling-window breaker for one upstream.

    Opens once ``failure_threshold`` failures land within ``window_seconds``.
    After ``half_open_seconds`` a single trial call is admitted: success
    closes the breaker, failure reopens it for another full period.
    """

    def __init__(
        self,
        upstream: str,
        *,
        failure_threshold: int,
        window_seconds: float,
        half_open_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.upstream = upstream
        self.failure_threshold = failure_threshold
        self.window_seconds = window_seconds
        self.half_open_seconds = half_open_seconds
        self._clock = clock
        self._failures: deque[float] = deque()
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        if self._opened_at is None:
            return BreakerState.closed
        if self._clock() - self._opened_at < self.half_open_seconds:
            return BreakerState.open
        return BreakerState.half_open

    @property
    def recent_failures(self) -> int:
        self._prune(self._clock())
        return len(self._failures)

    def try_acquire(self) -> BreakerState | None:
        """Admit a call, returning the state it was admitted under.

        None means rejected: the breaker is open, or half-open with its
        trial call already in flight.
        """
        state = self.state
        if state is BreakerState.closed:
            return state
        if state is BreakerState.half_open and not self._trial_in_flight:
            self._trial_in_flight = True
            return state
        return None

    def record_success(self, *, trial: bool) -> None:
        if trial:
            self._trial_in_flight = False
            self._opened_at = None
            self._failures.clear()

    def record_failure(self, *, trial: bool) -> None:
        now = self._clock()
        if trial:
            self._trial_in_flight = False
            self._opened_at = now
            return
        if self._opened_at is not None:
            return

        self._prune(now)
        self._failures.append(now)
        if len(self._failures) >= self.failure_threshold:
            self._opened_at = now
            self._failures.clear()

    def release_trial(self) -> None:
        """Give the trial slot back without a verdict (the call was cancelled)."""
        self._trial_in_flight = False

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._failures and self._failures[0] <= cutoff:
            self._failures.popleft()


class BreakerRegistry:
    """One breaker per upstream name, created on first use."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._by_upstream: dict[str, CircuitBreaker] = {}

    def get_or_create(self, upstream: str, config: CallConfig) -> CircuitBreaker:
        """The upstream's breaker; ``config`` only applies when it is created."""
        breaker = self._by_upstream.get(upstream)
        if breaker is None:
            breaker = CircuitBreaker(
                upstream,
                failure_threshold=config.breaker_failure_threshold,
                window_seconds=config.breaker_window_seconds,
                half_open_seconds=config.breaker_half_open_seconds,
                clock=self._clock,
            )
            self._by_upstream[upstream] = breaker
        return breaker


_global_breaker_registry = BreakerRegistry()


def get_breaker_registry() -> BreakerRegistry:
    """Process-wide registry, so every request sees the same breaker state."""
    return _global_breaker_registry


class UpstreamMetrics(Protocol):
    def record_latency(self, upstream: str, outcome: str, latency_ms: float) -> None: ...

    def inc_error(self, upstream: str, reason: str) -> None: ...


class CallLogger(Protocol):
    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None: ...


class _Silent:
    def record_latency(self, upstream: str, outcome: str, latency_ms: float) -> None:
        pass

    def inc_error(self, upstream: str, reason: str) -> None:
        pass

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        pass


class UpstreamExecutor:
    """Runs upstream calls under timeout, retry and breaker policy."""

    def __init__(
        self,
        metrics: UpstreamMetrics | None = None,
        logger: CallLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        breakers: BreakerRegistry | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            metrics: Latency and error recorder (default: discard)
            logger: Per-attempt call logger (default: discard)
            sleep_fn: Injectable sleep between retries (default: asyncio.sleep)
            breakers: Breaker registry (default: process-wide registry)
            rng: Jitter source (default: module-level random)
        """
        self._metrics: UpstreamMetrics = metrics or _Silent()
        self._logger: CallLogger = logger or _Silent()
        self._sleep = sleep_fn or asyncio.sleep
        self._breakers = breakers or get_breaker_registry()
        self._rng = rng or random.Random()

    async def call(
        self, ctx: CallContext, config: CallConfig, fn: Callable[[], Awaitable[T]]
    ) -> T:
        """Await ``fn()`` under the upstream's policy.

        Raises:
            UpstreamCircuitOpenError: The breaker rejected the call
            UpstreamTimeoutError: The last attempt timed out
            UpstreamCallError: The last attempt raised
            asyncio.CancelledError: The calling task was cancelled
        """
        breaker = self._breakers.get_or_create(ctx.upstream, config)
        admitted = breaker.try_acquire()
        if admitted is None:
            self._record(ctx, 0, "breaker_open", time.monotonic(), reason="breaker_open")
            raise UpstreamCircuitOpenError(f"Circuit breaker open for {ctx.upstream}")

        trial = admitted is BreakerState.half_open
        last_error: Exception | None = None
        for attempt in range(1, config.attempts + 1):
            try:
                result = await self._attempt(ctx, config, fn, attempt)
            except asyncio.CancelledError:
                if trial:
                    breaker.release_trial()
                raise
            except Exception as e:
                last_error = e
                breaker.record_failure(trial=trial)
                trial = False
                # An opened breaker ends the retries early
                if breaker.state is not BreakerState.closed or attempt == config.attempts:
                    break
                await self._sleep(config.jitter_seconds(self._rng))
                continue

            breaker.record_success(trial=trial)
            return result

        raise self._exhausted(ctx, attempt, last_error) from last_error

    async def _attempt(
        self, ctx: CallContext, config: CallConfig, fn: Callable[[], Awaitable[T]], attempt: int
    ) -> T:
        started = time.monotonic()
        try:
            result = await asyncio.wait_for(fn(), timeout=config.timeout_seconds)
        except TimeoutError:
            self._record(ctx, attempt, "timeout", started, reason="timeout")
            raise
        except asyncio.CancelledError:
            self._record(ctx, attempt, "cancelled", started)
            raise
        except Exception as e:
            self._record(
                ctx, attempt, "error", started, reason="execution_error", detail=type(e).__name__
            )
            raise
        self._record(ctx, attempt, "success", started)
        return result

    def _record(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        started: float,
        *,
        reason: str | None = None,
        detail: str | None = None,
    ) -> None:
        latency_ms = (time.monotonic() - started) * 1000
        self._metrics.record_latency(ctx.upstream, outcome, latency_ms)
        if reason is not None:
            self._metrics.inc_error(ctx.upstream, reason)
        self._logger.log_attempt(ctx, attempt, outcome, latency_ms, error_reason=detail or reason)

    @staticmethod
    def _exhausted(ctx: CallContext, attempts: int, error: Exception | None) -> UpstreamError:
        where = f"{ctx.upstream}.{ctx.operation}"
        if isinstance(error, TimeoutError):
            return UpstreamTimeoutError(f"{where} timed out ({attempts} attempt(s))")
        return UpstreamCallError(f"{where} failed ({attempts} attempt(s)): {error!r}")
