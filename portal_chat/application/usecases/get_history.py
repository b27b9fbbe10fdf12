"""
USE CASE: Get Chat History

Returns the turns of a session in append order. Expired sessions raise
ExpiredError (lazy expiry happens on this access too); ended sessions
still expose their history.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ...context import set_chat_context
from ...domain.entities import ChatSession, ChatTurn
from ..chat_session_manager import ChatSessionManager


@dataclass(frozen=True)
class GetHistoryResult:
    session: ChatSession

    @property
    def turns(self) -> Tuple[ChatTurn, ...]:
        return self.session.history


class GetHistoryUseCase:
    def __init__(self, sessions: ChatSessionManager) -> None:
        self._sessions = sessions

    def execute(self, session_id: str) -> GetHistoryResult:
        session = self._sessions.get_session(session_id)
        set_chat_context(session_id=session.session_id, subject_id=session.subject_id)
        return GetHistoryResult(session=session)
