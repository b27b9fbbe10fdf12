"""
Name: Provider Resilience Unit Tests

Responsibilities:
  - Circuit breaker transitions (closed -> open -> half-open -> closed)
  - Retry of transient errors only; fail-fast on permanent ones
  - Per-attempt timeout surfaces as a failure, not a hang
  - Guarded services map provider failures to the chat error taxonomy

Notes:
  - Delays are tiny (base_delay=0) so retries do not slow the suite
"""

import threading

import pytest

from portal_chat.crosscutting.exceptions import (
    CircuitOpenError,
    EmbeddingProviderError,
    GenerationProviderError,
)
from portal_chat.infrastructure.services.guarded_services import (
    GuardedEmbeddingService,
    GuardedLLMService,
)
from portal_chat.infrastructure.services.resilience import (
    CircuitBreaker,
    CircuitState,
    ProviderCallPolicy,
    ProviderTimeoutError,
)
from portal_chat.infrastructure.services.retry import is_transient_error

pytestmark = pytest.mark.unit


class _Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class _Flaky:
    """Raises the queued errors in order, then returns `result`."""

    def __init__(self, *errors, result="ok"):
        self._errors = list(errors)
        self._result = result
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._result


class _HttpError(Exception):
    def __init__(self, code: int):
        super().__init__(f"http {code}")
        self.code = code


def _policy(breaker=None, **kwargs) -> ProviderCallPolicy:
    kwargs.setdefault("timeout_seconds", 1.0)
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("base_delay", 0)
    kwargs.setdefault("max_delay", 0.01)
    breaker = breaker or CircuitBreaker("test", failure_threshold=5, reset_timeout=30)
    return ProviderCallPolicy("test", breaker=breaker, **kwargs)


@pytest.fixture
def ticker() -> _Ticker:
    return _Ticker()


# =============================================================================
# Error classification
# =============================================================================


@pytest.mark.parametrize(
    "error, expected",
    [
        (TimeoutError(), True),
        (ConnectionError(), True),
        (_HttpError(429), True),
        (_HttpError(503), True),
        (_HttpError(400), False),
        (_HttpError(401), False),
        (RuntimeError("service unavailable, retry later"), True),
        (ValueError("bad input"), False),
    ],
)
def test_is_transient_error(error, expected):
    assert is_transient_error(error) is expected


# =============================================================================
# Circuit breaker
# =============================================================================


def test_breaker_opens_after_consecutive_failures(ticker):
    breaker = CircuitBreaker("p", failure_threshold=2, reset_timeout=10, clock=ticker)

    breaker.record_failure()
    assert breaker.state is CircuitState.CLOSED
    breaker.record_failure()
    assert breaker.state is CircuitState.OPEN

    with pytest.raises(CircuitOpenError) as exc_info:
        breaker.before_call()
    assert exc_info.value.retry_after == 10


def test_success_resets_the_failure_streak(ticker):
    breaker = CircuitBreaker("p", failure_threshold=2, reset_timeout=10, clock=ticker)

    breaker.record_failure()
    breaker.record_success()
    breaker.record_failure()

    assert breaker.state is CircuitState.CLOSED


def test_half_open_allows_a_single_trial(ticker):
    breaker = CircuitBreaker("p", failure_threshold=1, reset_timeout=10, clock=ticker)
    breaker.record_failure()
    ticker.now = 10

    assert breaker.state is CircuitState.HALF_OPEN
    breaker.before_call()
    with pytest.raises(CircuitOpenError):
        breaker.before_call()

    breaker.record_success()
    assert breaker.state is CircuitState.CLOSED
    breaker.before_call()


def test_failed_trial_reopens(ticker):
    breaker = CircuitBreaker("p", failure_threshold=3, reset_timeout=10, clock=ticker)
    for _ in range(3):
        breaker.record_failure()
    ticker.now = 15
    breaker.before_call()

    breaker.record_failure()

    assert breaker.state is CircuitState.OPEN


def test_breaker_validates_configuration():
    with pytest.raises(ValueError):
        CircuitBreaker("p", failure_threshold=0, reset_timeout=1)
    with pytest.raises(ValueError):
        CircuitBreaker("p", failure_threshold=1, reset_timeout=0)


# =============================================================================
# Call policy
# =============================================================================


def test_transient_errors_are_retried():
    policy = _policy()
    fn = _Flaky(ConnectionError("reset"), TimeoutError("slow"), result=[1.0])

    try:
        assert policy.call(fn) == [1.0]
    finally:
        policy.shutdown()

    assert fn.calls == 3
    assert policy.breaker.state is CircuitState.CLOSED


def test_permanent_errors_fail_fast_without_tripping():
    breaker = CircuitBreaker("p", failure_threshold=1, reset_timeout=30)
    policy = _policy(breaker)
    fn = _Flaky(_HttpError(400))

    try:
        with pytest.raises(_HttpError):
            policy.call(fn)
    finally:
        policy.shutdown()

    assert fn.calls == 1
    assert breaker.state is CircuitState.CLOSED


def test_exhausted_retries_trip_the_breaker_and_reject_fast():
    breaker = CircuitBreaker("p", failure_threshold=1, reset_timeout=30)
    policy = _policy(breaker, max_attempts=2)
    fn = _Flaky(ConnectionError("a"), ConnectionError("b"), ConnectionError("c"))

    try:
        with pytest.raises(ConnectionError):
            policy.call(fn)
        with pytest.raises(CircuitOpenError):
            policy.call(fn)
    finally:
        policy.shutdown()

    assert fn.calls == 2


def test_slow_call_times_out():
    release = threading.Event()
    policy = _policy(timeout_seconds=0.05, max_attempts=1)

    def slow():
        release.wait(2)
        return "late"

    try:
        with pytest.raises(ProviderTimeoutError):
            policy.call(slow)
    finally:
        release.set()
        policy.shutdown()


# =============================================================================
# Guarded services
# =============================================================================


class _Embeddings:
    model_id = "stub-embed"

    def __init__(self, fn):
        self._fn = fn

    def embed_batch(self, texts):
        return self._fn(texts)

    def embed_query(self, query):
        return self._fn(query)


class _LLM:
    model_id = "stub-llm"

    def __init__(self, fn):
        self._fn = fn

    def complete(self, prompt, max_tokens, temperature):
        return self._fn(prompt)


def test_guarded_embeddings_pass_results_through():
    service = GuardedEmbeddingService(
        _Embeddings(lambda texts: [[0.1, 0.2] for _ in texts]), _policy(max_attempts=1)
    )
    try:
        assert service.embed_batch(["a", "b"]) == [[0.1, 0.2], [0.1, 0.2]]
        assert service.model_id == "stub-embed"
    finally:
        service.close()


def test_guarded_embeddings_wrap_provider_failures():
    cause = ConnectionError("upstream reset")
    service = GuardedEmbeddingService(
        _Embeddings(_Flaky(cause, cause)), _policy(max_attempts=2)
    )
    try:
        with pytest.raises(EmbeddingProviderError) as exc_info:
            service.embed_query("python")
    finally:
        service.close()

    assert exc_info.value.original_error is cause
    assert "upstream" not in exc_info.value.message


def test_guarded_embeddings_report_open_circuit():
    breaker = CircuitBreaker("p", failure_threshold=1, reset_timeout=30)
    breaker.record_failure()
    service = GuardedEmbeddingService(_Embeddings(_Flaky()), _policy(breaker))
    try:
        with pytest.raises(EmbeddingProviderError) as exc_info:
            service.embed_batch(["x"])
    finally:
        service.close()

    assert isinstance(exc_info.value.original_error, CircuitOpenError)


def test_guarded_llm_timeout_is_a_generation_error():
    release = threading.Event()

    def slow(prompt):
        release.wait(2)
        return "late"

    service = GuardedLLMService(_LLM(slow), _policy(timeout_seconds=0.05, max_attempts=1))
    try:
        with pytest.raises(GenerationProviderError) as exc_info:
            service.complete("prompt", 100, 0.2)
    finally:
        release.set()
        service.close()

    assert isinstance(exc_info.value.original_error, ProviderTimeoutError)


def test_guarded_llm_wraps_unexpected_errors():
    service = GuardedLLMService(_LLM(_Flaky(KeyError("candidates"))), _policy())
    try:
        with pytest.raises(GenerationProviderError):
            service.complete("prompt", 100, 0.2)
    finally:
        service.close()
