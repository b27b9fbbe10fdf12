"""
===============================================================================
FILE: crosscutting/metrics.py
===============================================================================

CRC CARD (Module)
-------------------------------------------------------------------------------
Name:
    Metrics (Prometheus), low-coupling observability

Responsibilities:
    - Define Prometheus metrics on a dedicated registry.
    - Provide small stable helpers to record events and durations.
    - Keep cardinality low (no session ids, no subject ids, no message text).
    - Build the /metrics response.

Collaborators:
    - crosscutting.middleware: HTTP latency and counts.
    - application.usecases.send_message: stage timings, fallbacks.
    - application.safety: injection detections, rejections, throttles.
    - infrastructure.services.resilience: circuit transitions.
===============================================================================
"""

from __future__ import annotations

import re
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_registry = CollectorRegistry()

# ------------------------
# HTTP
# ------------------------
_requests_total = Counter(
    "portal_chat_requests_total",
    "Total HTTP requests",
    ["endpoint", "method", "status"],
    registry=_registry,
)

_request_latency = Histogram(
    "portal_chat_request_latency_seconds",
    "HTTP request latency (seconds)",
    ["endpoint", "method"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=_registry,
)

# ------------------------
# Chat stages
# ------------------------
_embed_latency = Histogram(
    "portal_chat_embed_latency_seconds",
    "Query embedding latency (seconds)",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    registry=_registry,
)

_retrieve_latency = Histogram(
    "portal_chat_retrieve_latency_seconds",
    "Vector search latency (seconds)",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25),
    registry=_registry,
)

_llm_latency = Histogram(
    "portal_chat_llm_latency_seconds",
    "Language model latency (seconds)",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
    registry=_registry,
)

_index_builds_total = Counter(
    "portal_chat_index_builds_total",
    "Index builds by outcome",
    ["status"],
    registry=_registry,
)

# ------------------------
# Safety / quality
# ------------------------
_prompt_injection_detected_total = Counter(
    "portal_chat_prompt_injection_detected_total",
    "Prompt injection detections by pattern and direction",
    ["pattern", "direction"],
    registry=_registry,
)

_input_rejected_total = Counter(
    "portal_chat_input_rejected_total",
    "Inbound messages rejected by sanitization",
    ["reason"],
    registry=_registry,
)

_throttled_total = Counter(
    "portal_chat_throttled_total",
    "Requests throttled by rate limits or session caps",
    ["reason"],
    registry=_registry,
)

_fallback_answers_total = Counter(
    "portal_chat_fallback_answers_total",
    "Answers served from the fallback template",
    ["cause"],
    registry=_registry,
)

_sources_returned_count = Histogram(
    "portal_chat_sources_returned_count",
    "Number of source sections attached to an answer",
    buckets=(0, 1, 2, 3, 5, 8),
    registry=_registry,
)

# ------------------------
# Sessions / providers
# ------------------------
_sessions_created_total = Counter(
    "portal_chat_sessions_created_total",
    "Chat sessions created",
    registry=_registry,
)

_sessions_active = Gauge(
    "portal_chat_sessions_active",
    "Chat sessions currently ACTIVE",
    registry=_registry,
)

_circuit_state_changes_total = Counter(
    "portal_chat_circuit_state_changes_total",
    "Circuit breaker transitions",
    ["provider", "state"],
    registry=_registry,
)


# -----------------------------------------------------------------------------
# Public API (recording helpers)
# -----------------------------------------------------------------------------


def record_request_metrics(
    endpoint: str,
    method: str,
    status_code: int,
    latency_seconds: float,
) -> None:
    """Record HTTP metrics.

    - endpoint is normalized to keep cardinality bounded.
    - status is grouped as 2xx/4xx/5xx.
    """
    normalized = _normalize_endpoint(endpoint)
    _requests_total.labels(
        endpoint=normalized,
        method=method,
        status=_status_bucket(status_code),
    ).inc()
    _request_latency.labels(endpoint=normalized, method=method).observe(
        latency_seconds
    )


def record_stage_metrics(
    embed_seconds: Optional[float] = None,
    retrieve_seconds: Optional[float] = None,
    llm_seconds: Optional[float] = None,
) -> None:
    """Record chat pipeline timings."""
    if embed_seconds is not None:
        _embed_latency.observe(embed_seconds)
    if retrieve_seconds is not None:
        _retrieve_latency.observe(retrieve_seconds)
    if llm_seconds is not None:
        _llm_latency.observe(llm_seconds)


def record_index_build(status: str) -> None:
    _index_builds_total.labels(status=status).inc()


def record_prompt_injection_detected(pattern: str, direction: str = "input") -> None:
    _prompt_injection_detected_total.labels(pattern=pattern, direction=direction).inc()


def record_input_rejected(reason: str) -> None:
    _input_rejected_total.labels(reason=reason).inc()


def record_throttled(reason: str) -> None:
    _throttled_total.labels(reason=reason).inc()


def record_fallback_answer(cause: str) -> None:
    _fallback_answers_total.labels(cause=cause).inc()


def observe_sources_returned_count(count: int) -> None:
    _sources_returned_count.observe(count)


def record_session_created() -> None:
    _sessions_created_total.inc()
    _sessions_active.inc()


def record_session_closed() -> None:
    """ACTIVE -> ENDED or EXPIRED."""
    _sessions_active.dec()


def record_circuit_state_change(provider: str, state: str) -> None:
    _circuit_state_changes_total.labels(provider=provider, state=state).inc()


def _normalize_endpoint(path: str) -> str:
    """Normalize paths to avoid high cardinality.

    Replaces subject and session identifiers with placeholders.
    """
    path = re.sub(r"/subjects/[^/]+", "/subjects/{subject_id}", path)
    path = re.sub(r"/sessions/[^/]+", "/sessions/{session_id}", path)
    path = re.sub(r"/\d+", "/{id}", path)
    return path


def _status_bucket(code: int) -> str:
    """Group status codes for low cardinality."""
    if 200 <= code < 300:
        return "2xx"
    if 400 <= code < 500:
        return "4xx"
    if 500 <= code < 600:
        return "5xx"
    return "other"


# -----------------------------------------------------------------------------
# /metrics exposure
# -----------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Build the body and content-type for /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST
