"""portal_chat.infrastructure.services.retry

Name: Retry Helper with Exponential Backoff + Jitter

What it is
----------
Resilience utility for calls to external providers:
  - Error classification: transient (retry) vs permanent (fail-fast)
  - A `tenacity` decorator with exponential backoff + jitter
  - Structured logging of each retry attempt

CRC (Component Card)
--------------------
Component: retry helper
Responsibilities:
  - Decide which errors are retryable
  - Provide a standard tenacity decorator with backoff+jitter
  - Log attempts with useful context
Collaborators:
  - tenacity (retry engine)
  - crosscutting.config.get_settings (attempt/delay defaults)
  - crosscutting.logger
  - infrastructure.services.resilience.ProviderCallPolicy (only consumer)
Constraints:
  - Retry ONLY transient errors (429, 5xx, timeouts, connection issues)
  - Never retry permanent errors (400, 401, 403, 404)
"""

from __future__ import annotations

from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from ...crosscutting.config import get_settings
from ...crosscutting.logger import logger

T = TypeVar("T")


# ---------------------------------------------------------------------------
# HTTP code policies
# ---------------------------------------------------------------------------

TRANSIENT_HTTP_CODES: frozenset[int] = frozenset(
    {
        408,  # Request Timeout
        429,  # Too Many Requests
        500,  # Internal Server Error
        502,  # Bad Gateway
        503,  # Service Unavailable
        504,  # Gateway Timeout
    }
)

PERMANENT_HTTP_CODES: frozenset[int] = frozenset(
    {
        400,  # Bad Request
        401,  # Unauthorized
        403,  # Forbidden
        404,  # Not Found
    }
)


def get_http_status_code(exception: BaseException) -> int | None:
    """R: Extract an HTTP status code from SDK exceptions (best-effort).

    Supports:
      - google.genai errors (`code`)
      - httpx.HTTPStatusError (`response.status_code`)
      - SDKs exposing `status_code`
    """
    code = getattr(exception, "code", None)
    # Some SDKs use gRPC codes here; keep HTTP range only
    if isinstance(code, int) and code >= 100:
        return code

    resp = getattr(exception, "response", None)
    status_code = getattr(resp, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    status_code = getattr(exception, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    return None


def is_transient_error(exception: BaseException) -> bool:
    """R: Decide whether an error is transient (retry) or permanent (fail-fast).

    Rules (in order):
      1) HTTP status code: permanent -> False, transient -> True.
      2) Built-in timeout/connection errors -> True.
      3) Class-name heuristics for loosely typed SDKs.
      4) Message heuristics (last resort).
      5) Default: do not retry unknown errors.
    """
    status_code = get_http_status_code(exception)
    if status_code is not None:
        if status_code in PERMANENT_HTTP_CODES:
            return False
        if status_code in TRANSIENT_HTTP_CODES:
            return True

    if isinstance(exception, (TimeoutError, ConnectionError)):
        return True

    exception_name = type(exception).__name__.lower()
    transient_name_patterns = (
        "timeout",
        "timedout",
        "connection",
        "temporary",
        "unavailable",
        "resourceexhausted",
        "deadline",
    )
    if any(p in exception_name for p in transient_name_patterns):
        return True

    message = str(exception).lower()
    transient_message_patterns = (
        "rate limit",
        "too many requests",
        "quota exceeded",
        "temporarily unavailable",
        "service unavailable",
        "connection reset",
        "connection refused",
        "timed out",
        "deadline exceeded",
    )
    return any(p in message for p in transient_message_patterns)


def _log_retry(retry_state: RetryCallState) -> None:
    """R: Log each attempt before sleeping (before_sleep hook)."""
    fn = getattr(retry_state, "fn", None)
    fn_name = getattr(fn, "__name__", "unknown")
    wait_time = (
        retry_state.next_action.sleep if retry_state.next_action is not None else 0
    )

    exc: Optional[BaseException] = None
    if retry_state.outcome is not None:
        exc = retry_state.outcome.exception()

    logger.warning(
        "Retrying external call",
        extra={
            "function": fn_name,
            "attempt": retry_state.attempt_number,
            "wait_seconds": round(float(wait_time), 2),
            "error_type": type(exc).__name__ if exc else None,
        },
    )


def create_retry_decorator(
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """R: Build a `tenacity` decorator with exponential backoff + jitter.

    Config:
      - stop: `stop_after_attempt(max_attempts)`
      - wait: `wait_exponential_jitter(initial=base_delay, max=max_delay)`
      - retry: only if `is_transient_error(exception)`
      - before_sleep: `_log_retry`
      - reraise: True (propagates the last exception)
    """
    settings = get_settings()

    _max_attempts = (
        settings.retry_max_attempts if max_attempts is None else max_attempts
    )
    _base_delay = (
        settings.retry_base_delay_seconds if base_delay is None else float(base_delay)
    )
    _max_delay = (
        settings.retry_max_delay_seconds if max_delay is None else float(max_delay)
    )

    if _max_attempts <= 0:
        raise ValueError("max_attempts must be > 0")
    if _base_delay < 0:
        raise ValueError("base_delay must be >= 0")
    if _max_delay <= 0:
        raise ValueError("max_delay must be > 0")

    return retry(
        stop=stop_after_attempt(_max_attempts),
        wait=wait_exponential_jitter(
            initial=_base_delay,
            max=_max_delay,
            jitter=_base_delay,
        ),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_retry,
        reraise=True,
    )
