"""
===============================================================================
SERVICE: Chat Session Manager (lifecycle state machine)
===============================================================================

Business Goal:
    Own every transition of a ChatSession:
        ACTIVE -> EXPIRED  (inactivity > TTL, checked lazily on access and
                            optionally by a periodic sweep)
        ACTIVE -> ENDED    (explicit, idempotent)
    Terminal states never transition again.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    ChatSessionManager

Responsibilities:
    - Create sessions, enforcing the per-visitor cap of ACTIVE sessions.
    - Load sessions (NotFoundError / ExpiredError).
    - Append turns under a per-session lock; an exchange (user + assistant)
      is appended as one unit or not at all.
    - End sessions with optional rating and feedback.
    - Evict closed sessions once their retention window has passed.
    - Emit analytics events and session metrics.

Collaborators:
    - domain.repositories.ChatSessionRepository
    - domain.services.AnalyticsSink (via application.analytics)
    - crosscutting.metrics

Constraints:
    - History is append-only; turns are immutable.
    - The repository returns copies: every change goes load -> mutate -> save
      while holding the session's lock.
===============================================================================
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Sequence
from uuid import uuid4

from ..crosscutting.config import PERSONALITIES
from ..crosscutting.exceptions import (
    START_NEW_SESSION_HINT,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    ResourceExhaustedError,
)
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_session_closed, record_session_created
from ..domain.analytics import ChatEventType
from ..domain.entities import ChatSession, ChatTurn, SessionStatus
from ..domain.repositories import ChatSessionRepository
from ..domain.services import AnalyticsSink
from ..domain.value_objects import SessionFeedback
from .analytics import emit_chat_event


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def visitor_key_for(session: ChatSession) -> str:
    """Sessions opened without a visitor key count as their own visitor."""
    return session.visitor_id or session.session_id


class ChatSessionManager:
    """
    R: Single owner of session state transitions.

    Parameters:
      - ttl_seconds: inactivity before a session expires
      - max_sessions_per_visitor: concurrent ACTIVE sessions per visitor
      - retention_seconds: how long closed sessions stay readable
      - clock: injectable "now" (UTC) for tests
    """

    def __init__(
        self,
        repository: ChatSessionRepository,
        *,
        ttl_seconds: int = 1800,
        max_sessions_per_visitor: int = 5,
        retention_seconds: int = 86400,
        default_personality: str = "professional",
        analytics: Optional[AnalyticsSink] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_sessions_per_visitor <= 0:
            raise ValueError("max_sessions_per_visitor must be > 0")
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")
        self._repo = repository
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_per_visitor = max_sessions_per_visitor
        self._retention = timedelta(seconds=retention_seconds)
        self._default_personality = default_personality
        self._analytics = analytics
        self._clock = clock

        self._locks_guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._create_lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------
    def create_session(
        self,
        subject_id: str,
        visitor_id: Optional[str] = None,
        personality: Optional[str] = None,
    ) -> ChatSession:
        if not subject_id or not subject_id.strip():
            raise ValueError("subject_id is required")
        persona = (personality or self._default_personality).strip().lower()
        if persona not in PERSONALITIES:
            raise ValueError(f"personality must be one of {sorted(PERSONALITIES)}")

        # Cap check + insert must not interleave with another create
        with self._create_lock:
            self.purge_closed()
            if visitor_id:
                self._expire_idle_for_visitor(visitor_id)
                active = self._repo.count_active_for_visitor(visitor_id)
                if active >= self._max_per_visitor:
                    logger.warning(
                        "Visitor session cap reached",
                        extra={
                            "subject_id": subject_id,
                            "active_sessions": active,
                            "limit": self._max_per_visitor,
                        },
                    )
                    raise ResourceExhaustedError(
                        f"Too many active chat sessions (limit {self._max_per_visitor}). "
                        "End an existing chat before starting a new one."
                    )

            now = self._clock()
            session = ChatSession(
                session_id=uuid4().hex,
                subject_id=subject_id,
                visitor_id=visitor_id,
                personality=persona,
                created_at=now,
                last_activity_at=now,
            )
            self._repo.add(session)

        record_session_created()
        logger.info(
            "Chat session created",
            extra={
                "session_id": session.session_id,
                "subject_id": subject_id,
                "personality": persona,
            },
        )
        emit_chat_event(
            self._analytics,
            ChatEventType.SESSION_CREATED,
            subject_id=subject_id,
            session_id=session.session_id,
            metadata={"personality": persona, "has_visitor_id": visitor_id is not None},
        )
        return session

    def get_session(self, session_id: str) -> ChatSession:
        """Load a session; expires it on access when idle beyond the TTL."""
        session = self._load(session_id)
        if session.is_active and session.is_idle_beyond(self._ttl, now=self._clock()):
            with self._lock_for(session_id):
                session = self._load(session_id)
                if session.is_active and session.is_idle_beyond(
                    self._ttl, now=self._clock()
                ):
                    self._expire(session)
        if session.status is SessionStatus.EXPIRED:
            raise ExpiredError(f"This chat session has expired. {START_NEW_SESSION_HINT}")
        return session

    def append_turn(self, session_id: str, turn: ChatTurn) -> ChatSession:
        return self._append(session_id, (turn,))

    def append_exchange(
        self, session_id: str, user_turn: ChatTurn, assistant_turn: ChatTurn
    ) -> ChatSession:
        """Append a question and its answer together (both or neither)."""
        return self._append(session_id, (user_turn, assistant_turn))

    def end_session(
        self,
        session_id: str,
        rating: Optional[int] = None,
        feedback: Optional[str] = None,
    ) -> ChatSession:
        """
        ACTIVE -> ENDED. Idempotent: ending a terminal session returns it as is.

        A session found idle beyond the TTL is expired instead.
        """
        survey = SessionFeedback(rating=rating, comment=(feedback or None))

        with self._lock_for(session_id):
            session = self._load(session_id)
            if session.status.is_terminal:
                return session

            now = self._clock()
            if session.is_idle_beyond(self._ttl, now=now):
                return self._expire(session)

            session.close(SessionStatus.ENDED, at=now)
            if not survey.is_empty:
                session.rating = survey.rating
                session.feedback = survey.comment
            self._repo.save(session)
            self._drop_lock(session_id)

        record_session_closed()
        logger.info(
            "Chat session ended",
            extra={
                "session_id": session_id,
                "subject_id": session.subject_id,
                "message_count": session.message_count,
                "rating": session.rating,
            },
        )
        emit_chat_event(
            self._analytics,
            ChatEventType.SESSION_ENDED,
            subject_id=session.subject_id,
            session_id=session_id,
            metadata={
                "message_count": session.message_count,
                "rating": session.rating,
                "has_feedback": bool(session.feedback),
                "duration_seconds": (
                    session.duration.total_seconds() if session.duration else None
                ),
            },
        )
        return session

    def sweep_expired(self) -> int:
        """Expire every idle ACTIVE session. Best-effort; returns the count."""
        expired = 0
        for candidate in self._repo.list_active():
            if not candidate.is_idle_beyond(self._ttl, now=self._clock()):
                continue
            with self._lock_for(candidate.session_id):
                session = self._repo.get(candidate.session_id)
                if (
                    session is not None
                    and session.is_active
                    and session.is_idle_beyond(self._ttl, now=self._clock())
                ):
                    self._expire(session)
                    expired += 1
        if expired:
            logger.info("Expired idle chat sessions", extra={"count": expired})
        self.purge_closed()
        return expired

    def purge_closed(self) -> int:
        """Drop ENDED/EXPIRED sessions closed longer ago than the retention window."""
        purged = self._repo.purge_closed(self._clock() - self._retention)
        if purged:
            logger.info("Purged closed chat sessions", extra={"count": purged})
        return purged

    def active_session_count(self, visitor_key: str) -> int:
        return self._repo.count_active_for_visitor(visitor_key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _append(self, session_id: str, turns: Sequence[ChatTurn]) -> ChatSession:
        if not turns:
            raise ValueError("at least one turn is required")

        with self._lock_for(session_id):
            session = self._load(session_id)

            if session.status is SessionStatus.EXPIRED:
                raise ExpiredError(f"This chat session has expired. {START_NEW_SESSION_HINT}")
            if session.status is SessionStatus.ENDED:
                raise InvalidStateError(
                    f"This chat session has ended. {START_NEW_SESSION_HINT}"
                )

            # Idleness is measured up to when the first turn arrived
            if session.is_idle_beyond(self._ttl, now=turns[0].timestamp):
                self._expire(session)
                raise ExpiredError(f"This chat session has expired. {START_NEW_SESSION_HINT}")

            session.append(*turns, at=max(self._clock(), turns[-1].timestamp))
            self._repo.save(session)
            return session

    def _load(self, session_id: str) -> ChatSession:
        session = self._repo.get(session_id) if session_id else None
        if session is None:
            raise NotFoundError(f"Chat session not found. {START_NEW_SESSION_HINT}")
        return session

    def _expire(self, session: ChatSession) -> ChatSession:
        """Caller holds the session lock."""
        session.close(SessionStatus.EXPIRED, at=self._clock())
        self._repo.save(session)
        self._drop_lock(session.session_id)
        record_session_closed()
        logger.info(
            "Chat session expired",
            extra={"session_id": session.session_id, "subject_id": session.subject_id},
        )
        emit_chat_event(
            self._analytics,
            ChatEventType.SESSION_EXPIRED,
            subject_id=session.subject_id,
            session_id=session.session_id,
            metadata={"message_count": session.message_count},
        )
        return session

    def _expire_idle_for_visitor(self, visitor_id: str) -> None:
        now = self._clock()
        for session in self._repo.list_active_for_visitor(visitor_id):
            if session.is_idle_beyond(self._ttl, now=now):
                with self._lock_for(session.session_id):
                    current = self._repo.get(session.session_id)
                    if current is not None and current.is_active:
                        self._expire(current)

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session_id, threading.Lock())

    def _drop_lock(self, session_id: str) -> None:
        # Terminal sessions never append again; a late caller just gets a fresh lock
        with self._locks_guard:
            self._locks.pop(session_id, None)


class SessionSweeper:
    """
    R: Optional background thread calling sweep_expired() periodically.

    Not required for correctness: expiry is also checked on every access.
    """

    def __init__(self, manager: ChatSessionManager, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._manager = manager
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name="session-sweeper", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._manager.sweep_expired()
            except Exception:
                logger.exception("Session sweep failed")
