"""
===============================================================================
CRC CARD: application/analytics.py (chat analytics)
===============================================================================

Responsibilities:
  - Build ChatEvents with a consistent shape (type/subject/session/metadata).
  - Emit through the AnalyticsSink port, best-effort: a failing sink never
    breaks the chat flow.
  - Summarize a subject's chat activity (sessions, ratings, messages,
    response times, recent sessions).

Collaborators:
  - domain.analytics.ChatEvent / ChatEventType
  - domain.services.AnalyticsSink
  - domain.repositories.ChatEventRepository / ChatSessionRepository
  - crosscutting.logger.logger

Security:
  - Events never carry raw message text; only ids, counters and labels.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from ..crosscutting.logger import logger
from ..domain.analytics import ChatEvent, ChatEventType
from ..domain.entities import ChatSession, SessionStatus
from ..domain.repositories import ChatEventRepository, ChatSessionRepository
from ..domain.services import AnalyticsSink

_RECENT_SESSIONS_LIMIT = 10


def _sanitize(value: Any) -> Any:
    """Coerce metadata into JSON-friendly values; anything else is stringified."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(k): _sanitize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(v) for v in value]
    return str(value)


def emit_chat_event(
    sink: AnalyticsSink | None,
    event_type: ChatEventType,
    *,
    subject_id: str,
    session_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    """
    Emit an analytics event.

    Rule: if sink is None or the write fails, no exception is raised.
    """
    if sink is None:
        return

    event = ChatEvent(
        id=uuid4().hex,
        event_type=event_type,
        subject_id=subject_id,
        session_id=session_id,
        metadata=_sanitize(metadata or {}),
        created_at=datetime.now(timezone.utc),
    )

    try:
        sink.emit(event)
    except Exception as exc:
        logger.warning(
            "Analytics event write failed",
            extra={"event_type": event_type.value, "error": str(exc)},
        )


# -----------------------------------------------------------------------------
# Summary (read side)
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    status: str
    message_count: int
    created_at: datetime
    ended_at: Optional[datetime]
    rating: Optional[int]
    personality: str


@dataclass(frozen=True)
class ChatAnalyticsSummary:
    subject_id: str
    total_sessions: int
    completed_sessions: int
    average_rating: Optional[float]
    total_messages: int
    average_messages_per_session: float
    total_queries: int
    average_response_ms: Optional[float]
    throttled_count: int
    rejected_count: int
    recent_sessions: list[SessionSummary] = field(default_factory=list)


def _summarize_session(session: ChatSession) -> SessionSummary:
    return SessionSummary(
        session_id=session.session_id,
        status=session.status.value,
        message_count=session.message_count,
        created_at=session.created_at,
        ended_at=session.ended_at,
        rating=session.rating,
        personality=session.personality,
    )


class ChatAnalyticsService:
    """R: Aggregate per-subject chat analytics from sessions and events."""

    def __init__(
        self,
        *,
        sessions: ChatSessionRepository,
        events: ChatEventRepository,
        recent_limit: int = _RECENT_SESSIONS_LIMIT,
    ):
        self._sessions = sessions
        self._events = events
        self._recent_limit = recent_limit

    def summary(self, subject_id: str) -> ChatAnalyticsSummary:
        sessions = self._sessions.list_by_subject(subject_id)
        completed = [s for s in sessions if s.status is SessionStatus.ENDED]
        ratings = [s.rating for s in sessions if s.rating is not None]
        total_messages = sum(s.message_count for s in sessions)

        sent = self._events.list_events(subject_id, ChatEventType.MESSAGE_SENT)
        durations = [
            float(e.metadata["response_ms"])
            for e in sent
            if isinstance(e.metadata.get("response_ms"), (int, float))
        ]

        return ChatAnalyticsSummary(
            subject_id=subject_id,
            total_sessions=len(sessions),
            completed_sessions=len(completed),
            average_rating=round(sum(ratings) / len(ratings), 2) if ratings else None,
            total_messages=total_messages,
            average_messages_per_session=(
                round(total_messages / len(sessions), 2) if sessions else 0.0
            ),
            total_queries=len(sent),
            average_response_ms=(
                round(sum(durations) / len(durations), 1) if durations else None
            ),
            throttled_count=len(
                self._events.list_events(subject_id, ChatEventType.THROTTLED)
            ),
            rejected_count=len(
                self._events.list_events(subject_id, ChatEventType.MESSAGE_REJECTED)
            ),
            recent_sessions=[
                _summarize_session(s) for s in sessions[: self._recent_limit]
            ],
        )
