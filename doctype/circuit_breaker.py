"""Circuit breaker guarding the documentation-writer endpoint.

When the LLM endpoint starts failing, every drifted symbol in a fix run
would otherwise wait out its own timeout and retries. The breaker counts
consecutive failures per endpoint and, once tripped, makes further calls
fail fast so the orchestrator drops straight to placeholder content.

    CLOSED     calls go through
    OPEN       calls are refused until the cooldown elapses
    HALF_OPEN  one probe call is let through to test recovery

``run_with_timeout`` bundles the breaker with a wall-clock deadline.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger("doctype.circuit_breaker")

DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_COOLDOWN_SECONDS = 60.0


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """The endpoint is considered down; the call was not attempted."""

    def __init__(self, endpoint: str, retry_after: float):
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(
            f"Writer endpoint '{endpoint}' is unavailable "
            f"(circuit open, retry in {retry_after:.0f}s)"
        )


class CircuitBreaker:
    """Failure counter plus state machine for one endpoint.

    Shared by every fix worker that talks to the same endpoint, so all
    state changes happen under a lock.
    """

    def __init__(
        self,
        endpoint: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.endpoint = endpoint
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    def before_call(self) -> None:
        """Admit or refuse a call. Raises CircuitBreakerOpen when refused."""
        with self._lock:
            if self._state is not CircuitState.OPEN:
                return
            waited = self._clock() - self._opened_at
            if waited < self.cooldown_seconds:
                raise CircuitBreakerOpen(self.endpoint, self.cooldown_seconds - waited)
            self._state = CircuitState.HALF_OPEN
            logger.info("Writer circuit %s half-open, sending probe", self.endpoint)

    def on_success(self) -> None:
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                logger.info("Writer circuit %s closed again", self.endpoint)
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0

    def on_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if self._state is CircuitState.HALF_OPEN:
                self._trip("probe failed")
            elif (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._trip(f"{self._consecutive_failures} failures in a row")

    def _trip(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning("Writer circuit %s opened: %s", self.endpoint, reason)


# ---------------------------------------------------------------------------
# Registry: one breaker per endpoint, shared by every generator instance
# ---------------------------------------------------------------------------

_breakers: dict[str, CircuitBreaker] = {}
_registry_lock = threading.Lock()


def get_breaker(
    endpoint: str,
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
) -> CircuitBreaker:
    """Return the breaker for *endpoint*, creating it on first use.

    Thresholds only apply when the breaker is first created.
    """
    with _registry_lock:
        breaker = _breakers.get(endpoint)
        if breaker is None:
            breaker = CircuitBreaker(endpoint, failure_threshold, cooldown_seconds)
            _breakers[endpoint] = breaker
        return breaker


def reset_all() -> None:
    """Forget every breaker. Used between tests."""
    with _registry_lock:
        _breakers.clear()


# ---------------------------------------------------------------------------
# Deadline helper
# ---------------------------------------------------------------------------

def run_with_timeout(
    fn: Callable[[], Any],
    timeout: float,
    endpoint: str = "writer",
    breaker: Optional[CircuitBreaker] = None,
) -> Any:
    """Call *fn* under a wall-clock deadline, reporting to the breaker.

    The call runs on a helper thread; on timeout the caller stops waiting
    but the helper thread is left to finish on its own.

    Raises:
        CircuitBreakerOpen: the breaker refused the call.
        TimeoutError: *fn* did not return within *timeout* seconds.
        Exception: whatever *fn* raised.
    """
    breaker = breaker or get_breaker(endpoint)
    breaker.before_call()

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="doctype-llm")
    future = executor.submit(fn)
    try:
        result = future.result(timeout=timeout)
    except FuturesTimeoutError:
        breaker.on_failure()
        logger.error("Call to %s timed out after %ss", breaker.endpoint, timeout)
        raise TimeoutError(f"{breaker.endpoint} did not answer within {timeout}s")
    except Exception:
        breaker.on_failure()
        raise
    finally:
        executor.shutdown(wait=False)

    breaker.on_success()
    return result
