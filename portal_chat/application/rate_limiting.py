# =============================================================================
# FILE: application/rate_limiting.py
# =============================================================================
"""
===============================================================================
SERVICE: Rate Limiting (per-session message quotas)
===============================================================================

Name:
    Sliding-window rate limiter

What it is:
    Per-session message quotas over two sliding windows (minute and hour),
    plus a per-visitor hourly quota so opening new sessions does not reset
    the budget.

Architecture:
    - Layer: Application (policy/service)
    - Pattern: Sliding Window Log (timestamps per key)
    - Storage: in-process, bounded (LRU eviction of idle keys)

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: SlidingWindowRateLimiter
Responsibilities:
  - Decide and count in one critical section (check + increment atomic)
  - Report remaining quota and the reset time of the tightest window
  - Never count denied attempts
Collaborators:
  - domain.value_objects.UsageQuota
  - application.usecases.send_message (raises RateLimitedError on denial)
  - crosscutting.metrics (throttle counter)
===============================================================================
"""

from __future__ import annotations

import math
import threading
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Deque, Final, Optional, Tuple

from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_throttled
from ..domain.value_objects import UsageQuota

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
_MINUTE: Final[int] = 60
_HOUR: Final[int] = 3600
_DEFAULT_MAX_KEYS: Final[int] = 50_000

REASON_PER_MINUTE: Final[str] = "messages_per_minute"
REASON_PER_HOUR: Final[str] = "messages_per_hour"
REASON_VISITOR_PER_HOUR: Final[str] = "visitor_messages_per_hour"


# -----------------------------------------------------------------------------
# Configuration / Result Types
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class RateLimitConfig:
    """
    Limits per window.

    Attributes:
        messages_per_minute: per-session limit over the last 60 s
        messages_per_hour: per-session limit over the last 3600 s
        visitor_messages_per_hour: limit across all sessions of one visitor
    """

    messages_per_minute: int = 10
    messages_per_hour: int = 100
    visitor_messages_per_hour: int = 100

    def __post_init__(self) -> None:
        for name in ("messages_per_minute", "messages_per_hour", "visitor_messages_per_hour"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")


@dataclass(frozen=True)
class RateLimitDecision:
    """
    Result of one check.

    Attributes:
        allowed: True if the message was admitted (and counted)
        retry_after: Seconds until the denying window frees a slot (0 if allowed)
        remaining: Smallest remaining quota across windows after this call
        reset_at: When the tightest window frees its oldest slot
        reason: Window that denied the message (None if allowed)
        quotas: Per-window usage
    """

    allowed: bool
    retry_after: int
    remaining: int
    reset_at: Optional[datetime]
    reason: Optional[str] = None
    quotas: Tuple[UsageQuota, ...] = ()


@dataclass(frozen=True)
class _Window:
    name: str
    seconds: int
    limit: int
    per_visitor: bool = False


# -----------------------------------------------------------------------------
# Rate Limiter Service
# -----------------------------------------------------------------------------
class SlidingWindowRateLimiter:
    """
    Sliding-window limiter keyed by session (and visitor).

    Typical use:
        decision = limiter.check_rate_limit(session_id, visitor_key)
        if not decision.allowed:
            raise RateLimitedError(..., retry_after=decision.retry_after)
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
        max_keys: int = _DEFAULT_MAX_KEYS,
    ) -> None:
        self._config = config or RateLimitConfig()
        self._clock = clock
        self._max_keys = max_keys
        self._windows: Tuple[_Window, ...] = (
            _Window(REASON_PER_MINUTE, _MINUTE, self._config.messages_per_minute),
            _Window(REASON_PER_HOUR, _HOUR, self._config.messages_per_hour),
            _Window(
                REASON_VISITOR_PER_HOUR,
                _HOUR,
                self._config.visitor_messages_per_hour,
                per_visitor=True,
            ),
        )
        self._events: "OrderedDict[str, Deque[float]]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    def check_rate_limit(
        self, session_id: str, visitor_key: Optional[str] = None
    ) -> RateLimitDecision:
        """Admit and count one message, or deny without counting it."""
        session_key = f"session:{session_id}"
        visitor = f"visitor:{visitor_key}" if visitor_key else None

        with self._lock:
            now = self._clock()
            session_log = self._log_for(session_key, now)
            visitor_log = self._log_for(visitor, now) if visitor else None

            quotas = []
            denied: Optional[Tuple[_Window, float]] = None
            for window in self._windows:
                log = visitor_log if window.per_visitor else session_log
                if log is None:
                    continue
                used = _count_since(log, now - window.seconds)
                oldest = _oldest_since(log, now - window.seconds)
                reset_ts = (oldest + window.seconds) if oldest is not None else None
                quotas.append((window, used, reset_ts))
                if used >= window.limit and denied is None:
                    denied = (window, reset_ts if reset_ts is not None else now)

            if denied is not None:
                window, reset_ts = denied
                retry_after = max(1, math.ceil(reset_ts - now))
                decision = RateLimitDecision(
                    allowed=False,
                    retry_after=retry_after,
                    remaining=0,
                    reset_at=_to_datetime(reset_ts),
                    reason=window.name,
                    quotas=self._quotas(quotas),
                )
            else:
                session_log.append(now)
                if visitor_log is not None:
                    visitor_log.append(now)
                quotas = [
                    (w, used + 1, reset_ts if reset_ts is not None else now + w.seconds)
                    for (w, used, reset_ts) in quotas
                ]
                tightest = min(quotas, key=lambda q: q[0].limit - q[1])
                decision = RateLimitDecision(
                    allowed=True,
                    retry_after=0,
                    remaining=max(0, tightest[0].limit - tightest[1]),
                    reset_at=_to_datetime(tightest[2]),
                    quotas=self._quotas(quotas),
                )

        if not decision.allowed:
            record_throttled(decision.reason or "unknown")
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "reason": decision.reason,
                    "retry_after": decision.retry_after,
                },
            )
        return decision

    def forget(self, session_id: str) -> None:
        """Drop a closed session's counters (visitor counters are kept)."""
        with self._lock:
            self._events.pop(f"session:{session_id}", None)

    # ---------------------------------------------------------------------
    # Helpers (caller holds the lock)
    # ---------------------------------------------------------------------
    def _log_for(self, key: str, now: float) -> Deque[float]:
        log = self._events.get(key)
        if log is None:
            log = deque()
            self._events[key] = log
            self._evict_if_needed()
        else:
            self._events.move_to_end(key, last=True)
        # Everything older than the longest window is irrelevant
        horizon = now - _HOUR
        while log and log[0] <= horizon:
            log.popleft()
        return log

    def _evict_if_needed(self) -> None:
        while len(self._events) > self._max_keys:
            self._events.popitem(last=False)

    @staticmethod
    def _quotas(entries) -> Tuple[UsageQuota, ...]:
        return tuple(
            UsageQuota(
                limit=window.limit,
                used=used,
                reset_at=_to_datetime(reset_ts),
                resource=window.name,
            )
            for (window, used, reset_ts) in entries
        )


def _count_since(log: Deque[float], start: float) -> int:
    return sum(1 for ts in log if ts > start)


def _oldest_since(log: Deque[float], start: float) -> Optional[float]:
    for ts in log:
        if ts > start:
            return ts
    return None


def _to_datetime(ts: Optional[float]) -> Optional[datetime]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)
