"""
USE CASE: End Chat Session

ACTIVE -> ENDED with an optional satisfaction rating (1-5) and feedback.
Idempotent: ending an ended (or expired) session returns it unchanged.
The session's rate-limit counters are released once it is terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...context import set_chat_context
from ...domain.entities import ChatSession
from ..chat_session_manager import ChatSessionManager
from ..rate_limiting import SlidingWindowRateLimiter


@dataclass(frozen=True)
class EndSessionInput:
    session_id: str
    rating: Optional[int] = None
    feedback: Optional[str] = None


class EndSessionUseCase:
    def __init__(
        self,
        sessions: ChatSessionManager,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ) -> None:
        self._sessions = sessions
        self._limiter = rate_limiter

    def execute(self, input_data: EndSessionInput) -> ChatSession:
        session = self._sessions.end_session(
            input_data.session_id,
            rating=input_data.rating,
            feedback=input_data.feedback,
        )
        set_chat_context(session_id=session.session_id, subject_id=session.subject_id)
        if self._limiter is not None and session.status.is_terminal:
            self._limiter.forget(session.session_id)
        return session
