"""
===============================================================================
CRC CARD: schemas/chat.py
===============================================================================
Module:
    HTTP schemas for chat sessions, messages and analytics

Responsibilities:
    - Request/response DTOs for the chat endpoints.
    - Validate personality, rating and feedback at the edge.
    - Convert use-case results into JSON-friendly shapes (from_result).

Collaborators:
    - crosscutting.config.get_settings (limits)
    - application.usecases (result types)
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from .....application.analytics import ChatAnalyticsSummary
from .....application.usecases import CreateSessionResult, SendMessageResult
from .....crosscutting.config import get_settings
from .....domain.entities import ChatSession, ChatTurn

_settings = get_settings()

Personality = Literal["professional", "friendly", "concise"]


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------
class SendMessageReq(BaseModel):
    """Request for one chat turn.

    The message length is enforced by the safety layer (not here) so that
    too-long messages are rejected with the INPUT_REJECTED contract.
    """

    message: str = Field(..., max_length=_settings.max_message_chars * 4)
    session_id: str | None = Field(default=None, max_length=64)
    visitor_id: str | None = Field(default=None, max_length=128)
    personality: Personality | None = None


class CreateSessionReq(BaseModel):
    visitor_id: str | None = Field(default=None, max_length=128)
    personality: Personality | None = None


class EndSessionReq(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = Field(default=None, max_length=2000)

    @field_validator("feedback")
    @classmethod
    def strip_feedback(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------
class ConfidenceRes(BaseModel):
    value: float
    level: str
    factors: dict[str, float] = Field(default_factory=dict)


class RateLimitRes(BaseModel):
    remaining: int
    reset_time: datetime | None = None


class SendMessageRes(BaseModel):
    """Chat answer.

    status:
        ok, low_confidence, degraded (model unavailable) or filtered
        (output withheld by the safety scan).
    """

    text: str
    sources: list[str]
    confidence: ConfidenceRes
    low_confidence: bool
    status: str
    session_id: str
    session_created: bool = False
    suggested_questions: list[str] = Field(default_factory=list)
    rate_limiting: RateLimitRes

    @classmethod
    def from_result(cls, result: SendMessageResult) -> "SendMessageRes":
        return cls(
            text=result.text,
            sources=list(result.sources),
            confidence=ConfidenceRes(**result.confidence.to_dict()),
            low_confidence=result.low_confidence,
            status=result.status,
            session_id=result.session_id,
            session_created=result.session_created,
            suggested_questions=list(result.suggested_questions),
            rate_limiting=RateLimitRes(
                remaining=result.rate_limiting.remaining,
                reset_time=result.rate_limiting.reset_time,
            ),
        )


class SessionRes(BaseModel):
    session_id: str
    subject_id: str
    personality: str
    status: str
    message_count: int
    created_at: datetime
    last_activity_at: datetime
    ended_at: datetime | None = None
    rating: int | None = None

    @classmethod
    def from_entity(cls, session: ChatSession) -> "SessionRes":
        return cls(
            session_id=session.session_id,
            subject_id=session.subject_id,
            personality=session.personality,
            status=session.status.value,
            message_count=session.message_count,
            created_at=session.created_at,
            last_activity_at=session.last_activity_at,
            ended_at=session.ended_at,
            rating=session.rating,
        )


class CreateSessionRes(BaseModel):
    session: SessionRes
    suggested_questions: list[str]
    index_ready: bool

    @classmethod
    def from_result(cls, result: CreateSessionResult) -> "CreateSessionRes":
        return cls(
            session=SessionRes.from_entity(result.session),
            suggested_questions=list(result.suggested_questions),
            index_ready=result.index_ready,
        )


class TurnRes(BaseModel):
    role: str
    text: str
    timestamp: datetime
    sources: list[str] = Field(default_factory=list)
    confidence: float | None = None
    low_confidence: bool = False

    @classmethod
    def from_entity(cls, turn: ChatTurn) -> "TurnRes":
        return cls(
            role=turn.role.value,
            text=turn.text,
            timestamp=turn.timestamp,
            sources=list(turn.sources),
            confidence=turn.confidence,
            low_confidence=turn.low_confidence,
        )


class HistoryRes(BaseModel):
    session: SessionRes
    turns: list[TurnRes]


class SessionSummaryRes(BaseModel):
    session_id: str
    status: str
    message_count: int
    created_at: datetime
    ended_at: datetime | None = None
    rating: int | None = None
    personality: str


class AnalyticsRes(BaseModel):
    subject_id: str
    total_sessions: int
    completed_sessions: int
    average_rating: float | None = None
    total_messages: int
    average_messages_per_session: float
    total_queries: int
    average_response_ms: float | None = None
    throttled_count: int
    rejected_count: int
    recent_sessions: list[SessionSummaryRes] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, summary: ChatAnalyticsSummary) -> "AnalyticsRes":
        return cls(
            subject_id=summary.subject_id,
            total_sessions=summary.total_sessions,
            completed_sessions=summary.completed_sessions,
            average_rating=summary.average_rating,
            total_messages=summary.total_messages,
            average_messages_per_session=summary.average_messages_per_session,
            total_queries=summary.total_queries,
            average_response_ms=summary.average_response_ms,
            throttled_count=summary.throttled_count,
            rejected_count=summary.rejected_count,
            recent_sessions=[
                SessionSummaryRes(**vars(s)) for s in summary.recent_sessions
            ],
        )
