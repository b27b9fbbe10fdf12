"""
Name: Provider Call Policy (timeout + retry + circuit breaker)

Responsibilities
----------------
- Bound every provider call with an explicit timeout (a call that exceeds it
  is a failure, never left pending for the caller).
- Retry transient failures with the tenacity decorator from `retry.py`.
- Trip a circuit breaker after consecutive transient failures and reject
  calls fast while it is open; let one trial call through after the reset
  timeout (half-open).

CRC (Component Card)
--------------------
Component: ProviderCallPolicy / CircuitBreaker
Collaborators:
  - concurrent.futures.ThreadPoolExecutor (per-attempt timeout)
  - retry.create_retry_decorator / is_transient_error
  - crosscutting.metrics.record_circuit_state_change
  - crosscutting.exceptions.CircuitOpenError
Constraints:
  - Applied to the embedding and language-model calls only.
  - A timed-out worker thread is abandoned (Python cannot kill it); its
    result is discarded.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from threading import Lock
from typing import Callable, Optional, TypeVar

from ...crosscutting.exceptions import CircuitOpenError
from ...crosscutting.logger import logger
from ...crosscutting.metrics import record_circuit_state_change
from .retry import create_retry_decorator, is_transient_error

T = TypeVar("T")


class ProviderTimeoutError(TimeoutError):
    """A provider call did not finish within its timeout."""


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    R: Consecutive-failure circuit breaker.

    CLOSED --(failure_threshold consecutive failures)--> OPEN
    OPEN --(reset_timeout elapsed)--> HALF_OPEN (one trial call)
    HALF_OPEN --success--> CLOSED, --failure--> OPEN
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int,
        reset_timeout: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be > 0")
        if reset_timeout <= 0:
            raise ValueError("reset_timeout must be > 0")

        self._name = name
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._clock = clock

        self._lock = Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._current_state()

    def _current_state(self) -> CircuitState:
        if (
            self._state is CircuitState.OPEN
            and self._clock() - self._opened_at >= self._reset_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def _transition(self, state: CircuitState) -> None:
        if state is self._state:
            return
        self._state = state
        record_circuit_state_change(self._name, state.value)
        logger.warning(
            "Circuit breaker state changed",
            extra={"provider": self._name, "state": state.value},
        )

    def before_call(self) -> None:
        """Raise CircuitOpenError unless the call may proceed."""
        with self._lock:
            state = self._current_state()
            if state is CircuitState.CLOSED:
                return
            if state is CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return
            retry_after = max(
                1.0, self._reset_timeout - (self._clock() - self._opened_at)
            )
        raise CircuitOpenError(self._name, retry_after=retry_after)

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._trial_in_flight = False
            self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._trial_in_flight = False
            self._consecutive_failures += 1
            if (
                self._state is CircuitState.HALF_OPEN
                or self._consecutive_failures >= self._failure_threshold
            ):
                self._opened_at = self._clock()
                self._transition(CircuitState.OPEN)

    def release_trial(self) -> None:
        """A trial call ended with a non-transient error: neither trip nor close."""
        with self._lock:
            self._trial_in_flight = False


class ProviderCallPolicy:
    """
    R: Reusable policy object wrapped around one provider.

    Order per call: breaker check -> retried attempts, each bounded by
    `timeout_seconds` -> breaker bookkeeping.
    """

    def __init__(
        self,
        name: str,
        *,
        timeout_seconds: float,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        breaker: CircuitBreaker,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.name = name
        self._timeout = timeout_seconds
        self._breaker = breaker
        self._executor = executor or ThreadPoolExecutor(
            max_workers=8, thread_name_prefix=f"{name}-provider"
        )
        retry_decorator = create_retry_decorator(
            max_attempts=max_attempts, base_delay=base_delay, max_delay=max_delay
        )
        self._call_with_retry = retry_decorator(self._call_with_timeout)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _call_with_timeout(self, fn: Callable[..., T], *args, **kwargs) -> T:
        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise ProviderTimeoutError(
                f"{self.name} call timed out after {self._timeout}s"
            ) from exc

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        self._breaker.before_call()
        try:
            result = self._call_with_retry(fn, *args, **kwargs)
        except Exception as exc:
            if is_transient_error(exc):
                self._breaker.record_failure()
            else:
                self._breaker.release_trial()
            raise
        self._breaker.record_success()
        return result

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
