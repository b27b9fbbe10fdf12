"""
===============================================================================
USE CASE: Create Chat Session
===============================================================================

Business Goal:
    Open a chat with a subject's CV assistant and hand the visitor a few
    starter questions.

Rules:
    - The visitor session cap is enforced by ChatSessionManager
      (ResourceExhaustedError).
    - Suggested questions only mention sections present in the index.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from ...context import set_chat_context
from ...domain.entities import ChatSession
from ...domain.repositories import VectorStore
from ..chat_session_manager import ChatSessionManager
from ..suggested_questions import suggest_questions


@dataclass(frozen=True)
class CreateSessionInput:
    subject_id: str
    visitor_id: Optional[str] = None
    personality: Optional[str] = None


@dataclass(frozen=True)
class CreateSessionResult:
    session: ChatSession
    suggested_questions: Tuple[str, ...]
    index_ready: bool


class CreateSessionUseCase:
    def __init__(self, sessions: ChatSessionManager, vector_store: VectorStore) -> None:
        self._sessions = sessions
        self._store = vector_store

    def execute(self, input_data: CreateSessionInput) -> CreateSessionResult:
        session = self._sessions.create_session(
            input_data.subject_id,
            visitor_id=input_data.visitor_id,
            personality=input_data.personality,
        )
        set_chat_context(session_id=session.session_id, subject_id=session.subject_id)
        return CreateSessionResult(
            session=session,
            suggested_questions=tuple(suggest_questions(self._store, session.subject_id)),
            index_ready=self._store.get_index(session.subject_id) is not None,
        )
