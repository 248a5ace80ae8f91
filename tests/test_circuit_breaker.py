"""Tests for the writer circuit breaker.

Covers before_call(), on_success(), on_failure() and the composed
run_with_timeout() helper. State transitions:
  CLOSED -> OPEN (after threshold failures)
  OPEN -> HALF_OPEN (after cooldown)
  HALF_OPEN -> CLOSED (on success)
  HALF_OPEN -> OPEN (on failure)
"""

import threading

import pytest

from doctype.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    CircuitState,
    get_breaker,
    run_with_timeout,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------


class TestCircuitBreakerStates:
    def test_starts_closed(self):
        cb = CircuitBreaker("writer")
        assert cb.state == CircuitState.CLOSED
        assert cb.consecutive_failures == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker("writer", failure_threshold=3)
        cb.on_failure()
        cb.on_failure()
        assert cb.state == CircuitState.CLOSED
        cb.before_call()

    def test_opens_at_threshold(self):
        cb = CircuitBreaker("writer", failure_threshold=3)
        for _ in range(3):
            cb.on_failure()
        assert cb.state == CircuitState.OPEN

    def test_open_refuses_calls(self, clock):
        cb = CircuitBreaker("writer", failure_threshold=1, cooldown_seconds=60, clock=clock)
        cb.on_failure()
        clock.advance(10)
        with pytest.raises(CircuitBreakerOpen) as exc_info:
            cb.before_call()
        assert exc_info.value.endpoint == "writer"
        assert exc_info.value.retry_after == pytest.approx(50)

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker("writer", failure_threshold=3)
        cb.on_failure()
        cb.on_failure()
        cb.on_success()
        cb.on_failure()
        assert cb.state == CircuitState.CLOSED
        assert cb.consecutive_failures == 1

    def test_half_open_after_cooldown(self, clock):
        cb = CircuitBreaker("writer", failure_threshold=1, cooldown_seconds=30, clock=clock)
        cb.on_failure()
        clock.advance(30)
        cb.before_call()
        assert cb.state == CircuitState.HALF_OPEN

    def test_half_open_success_closes(self, clock):
        cb = CircuitBreaker("writer", failure_threshold=1, cooldown_seconds=30, clock=clock)
        cb.on_failure()
        clock.advance(31)
        cb.before_call()
        cb.on_success()
        assert cb.state == CircuitState.CLOSED
        assert cb.consecutive_failures == 0

    def test_half_open_failure_reopens(self, clock):
        cb = CircuitBreaker("writer", failure_threshold=3, cooldown_seconds=30, clock=clock)
        for _ in range(3):
            cb.on_failure()
        clock.advance(31)
        cb.before_call()
        cb.on_failure()
        assert cb.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpen):
            cb.before_call()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_same_endpoint_same_breaker(self):
        assert get_breaker("http://a") is get_breaker("http://a")

    def test_different_endpoints_isolated(self):
        a = get_breaker("http://a", failure_threshold=1)
        b = get_breaker("http://b", failure_threshold=1)
        a.on_failure()
        assert a.state == CircuitState.OPEN
        assert b.state == CircuitState.CLOSED


# ---------------------------------------------------------------------------
# run_with_timeout
# ---------------------------------------------------------------------------


class TestRunWithTimeout:
    def test_returns_value(self):
        assert run_with_timeout(lambda: 42, timeout=5, endpoint="t") == 42
        assert get_breaker("t").consecutive_failures == 0

    def test_propagates_exception_and_counts_failure(self):
        def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            run_with_timeout(boom, timeout=5, endpoint="t")
        assert get_breaker("t").consecutive_failures == 1

    def test_timeout(self):
        release = threading.Event()
        try:
            with pytest.raises(TimeoutError):
                run_with_timeout(lambda: release.wait(5), timeout=0.05, endpoint="slow")
        finally:
            release.set()
        assert get_breaker("slow").consecutive_failures == 1

    def test_open_breaker_skips_call(self):
        breaker = CircuitBreaker("down", failure_threshold=1)
        breaker.on_failure()
        called = []

        with pytest.raises(CircuitBreakerOpen):
            run_with_timeout(lambda: called.append(1), timeout=5, breaker=breaker)
        assert called == []

    def test_trips_after_repeated_failures(self):
        def boom():
            raise ConnectionError("refused")

        for _ in range(3):
            with pytest.raises(ConnectionError):
                run_with_timeout(boom, timeout=5, endpoint="flaky")
        assert get_breaker("flaky").state == CircuitState.OPEN
