"""
============================================================
CRC CARD - infrastructure/repositories/in_memory/session_repository.py
============================================================
Class: InMemoryChatSessionRepository

Responsibilities:
  - Keep chat sessions in memory (by session_id).
  - Return snapshots (copies) so callers never mutate stored state.
  - Index ACTIVE sessions per visitor key (cap checks stay O(k)).
  - Retain closed sessions for a bounded time and count, then evict them.
  - List sessions per subject for analytics (newest first).

Collaborators:
  - domain.entities.ChatSession
  - domain.repositories.ChatSessionRepository (contract)
  - threading.Lock (thread-safety)

Constraints / Notes:
  - Pure repository: no lifecycle rules (ChatSessionManager owns those).
  - A visitor key is the visitor_id, or the session_id for anonymous sessions.
  - Closed sessions are evicted in close order: oldest first.
============================================================
"""

from __future__ import annotations

from collections import deque
from dataclasses import replace
from datetime import datetime
from threading import Lock
from typing import Deque, Dict, List, Optional, Set

from ....domain.entities import ChatSession, SessionStatus
from ....domain.repositories import ChatSessionRepository


def _visitor_key(session: ChatSession) -> str:
    return session.visitor_id or session.session_id


class InMemoryChatSessionRepository(ChatSessionRepository):
    """Thread-safe in-memory session store."""

    def __init__(self, max_closed_sessions: int = 10000):
        if max_closed_sessions <= 0:
            raise ValueError("max_closed_sessions must be > 0")
        self._lock = Lock()
        self._sessions: Dict[str, ChatSession] = {}
        self._active_by_visitor: Dict[str, Set[str]] = {}
        self._closed: Deque[str] = deque()
        self._max_closed = max_closed_sessions

    def add(self, session: ChatSession) -> None:
        with self._lock:
            if session.session_id in self._sessions:
                raise ValueError(f"session {session.session_id} already exists")
            self._sessions[session.session_id] = replace(session)
            if session.is_active:
                self._index_active(session)
            else:
                self._track_closed(session.session_id)

    def get(self, session_id: str) -> Optional[ChatSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def save(self, session: ChatSession) -> None:
        with self._lock:
            stored = self._sessions.get(session.session_id)
            if stored is None:
                raise KeyError(session.session_id)
            self._sessions[session.session_id] = replace(session)
            if stored.is_active and not session.is_active:
                self._unindex_active(stored)
                self._track_closed(session.session_id)

    def list_active(self) -> List[ChatSession]:
        with self._lock:
            return [
                replace(s)
                for s in self._sessions.values()
                if s.status is SessionStatus.ACTIVE
            ]

    def list_active_for_visitor(self, visitor_key: str) -> List[ChatSession]:
        with self._lock:
            ids = self._active_by_visitor.get(visitor_key, ())
            return [replace(self._sessions[sid]) for sid in ids]

    def count_active_for_visitor(self, visitor_key: str) -> int:
        with self._lock:
            return len(self._active_by_visitor.get(visitor_key, ()))

    def purge_closed(self, closed_before: datetime) -> int:
        """Evict closed sessions whose ended_at is before the cutoff."""
        removed = 0
        with self._lock:
            while self._closed:
                head = self._sessions.get(self._closed[0])
                if (
                    head is not None
                    and head.ended_at is not None
                    and head.ended_at >= closed_before
                ):
                    break
                if self._sessions.pop(self._closed.popleft(), None) is not None:
                    removed += 1
        return removed

    def list_by_subject(
        self, subject_id: str, limit: Optional[int] = None
    ) -> List[ChatSession]:
        with self._lock:
            sessions = [
                replace(s)
                for s in self._sessions.values()
                if s.subject_id == subject_id
            ]

        sessions.sort(key=lambda s: s.created_at, reverse=True)
        if limit is None or limit <= 0:
            return sessions
        return sessions[:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    # Caller holds self._lock for the helpers below
    def _index_active(self, session: ChatSession) -> None:
        self._active_by_visitor.setdefault(_visitor_key(session), set()).add(
            session.session_id
        )

    def _unindex_active(self, session: ChatSession) -> None:
        key = _visitor_key(session)
        ids = self._active_by_visitor.get(key)
        if ids is None:
            return
        ids.discard(session.session_id)
        if not ids:
            del self._active_by_visitor[key]

    def _track_closed(self, session_id: str) -> None:
        self._closed.append(session_id)
        while len(self._closed) > self._max_closed:
            self._sessions.pop(self._closed.popleft(), None)
