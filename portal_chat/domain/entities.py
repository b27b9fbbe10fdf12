"""
===============================================================================
CRC CARD: domain/entities.py
===============================================================================

Module:
    Domain entities (ContentChunk, VectorIndex, ChatSession, RetrievalResult)

Responsibilities:
    - Define the core chat structures, free of infrastructure.
    - Keep simple invariants close to the data (dimension checks,
      append-only history, terminal session states).

Collaborators:
    - domain.repositories: persist/retrieve these entities.
    - application: builds and consumes them.
    - interfaces/api: serializes them into response schemas.

Principles:
    - No FastAPI, SDK or storage imports.
    - Chunks, indexes, turns and retrieval results are immutable.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


def _utcnow() -> datetime:
    """UTC now (internal helper)."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# CV content
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CVSection:
    """
    One semantic section of a CV as delivered by the content store.

    `name` is the section category ("experience", "skills", ...); `items`
    are the bullets/paragraphs in document order.
    """

    name: str
    items: Tuple[str, ...]


@dataclass(frozen=True)
class ContentChunk:
    """
    Retrievable unit of CV text with its embedding.

    Immutable: a CV update supersedes the whole batch of chunks of a subject.
    """

    chunk_id: str
    subject_id: str
    source_section: str
    text: str
    embedding: Tuple[float, ...]
    position: int
    entities: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def dimension(self) -> int:
        return len(self.embedding)


@dataclass(frozen=True)
class VectorIndex:
    """
    Fully built, immutable snapshot of a subject's chunks.

    Invariants:
      - all chunks share `dimension`
      - all chunks belong to `subject_id`
    """

    subject_id: str
    chunks: Tuple[ContentChunk, ...]
    embedding_model: str
    dimension: int
    generation: int = 1
    built_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.dimension <= 0:
            raise ValueError("dimension must be greater than 0")
        for chunk in self.chunks:
            if chunk.dimension != self.dimension:
                raise ValueError(
                    f"chunk {chunk.chunk_id} has dimension {chunk.dimension}, "
                    f"index expects {self.dimension}"
                )
            if chunk.subject_id != self.subject_id:
                raise ValueError(
                    f"chunk {chunk.chunk_id} belongs to another subject"
                )

    @property
    def sections(self) -> Tuple[str, ...]:
        """Distinct sections in first-appearance order."""
        seen: Dict[str, None] = {}
        for chunk in self.chunks:
            seen.setdefault(chunk.source_section, None)
        return tuple(seen)


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk with its cosine similarity against the query."""

    chunk: ContentChunk
    similarity: float


@dataclass(frozen=True)
class RetrievalResult:
    """
    Ephemeral result of one retrieval.

    `sources` lists the sections of the chunks that made it into `context`,
    in first-use order.
    """

    matches: Tuple[ScoredChunk, ...]
    context: str
    sources: Tuple[str, ...]
    low_confidence: bool
    index_generation: Optional[int] = None
    chunks_used: int = 0

    @property
    def top_similarity(self) -> float:
        return self.matches[0].similarity if self.matches else 0.0


# ---------------------------------------------------------------------------
# Chat sessions
# ---------------------------------------------------------------------------


class SessionStatus(str, Enum):
    """Lifecycle: ACTIVE -> EXPIRED | ENDED (both terminal)."""

    ACTIVE = "active"
    EXPIRED = "expired"
    ENDED = "ended"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatTurn:
    """One message in a session history. Never mutated once appended."""

    role: TurnRole
    text: str
    timestamp: datetime = field(default_factory=_utcnow)
    sources: Tuple[str, ...] = ()
    confidence: Optional[float] = None
    low_confidence: bool = False


@dataclass
class ChatSession:
    """
    Conversation between one visitor and one subject's assistant.

    Notes:
      - `history` is a tuple that only grows (append-only).
      - Only ChatSessionManager mutates sessions; callers get copies.
    """

    session_id: str
    subject_id: str
    visitor_id: Optional[str] = None
    personality: str = "professional"
    status: SessionStatus = SessionStatus.ACTIVE
    history: Tuple[ChatTurn, ...] = ()
    created_at: datetime = field(default_factory=_utcnow)
    last_activity_at: datetime = field(default_factory=_utcnow)
    ended_at: Optional[datetime] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @property
    def message_count(self) -> int:
        return len(self.history)

    def is_idle_beyond(self, ttl: timedelta, *, now: datetime) -> bool:
        """True when inactivity strictly exceeds the TTL."""
        return now - self.last_activity_at > ttl

    def append(self, *turns: ChatTurn, at: datetime) -> None:
        """Append turns as one unit and touch activity."""
        self.history = self.history + tuple(turns)
        self.last_activity_at = at

    def close(self, status: SessionStatus, *, at: datetime) -> None:
        """Move an ACTIVE session to a terminal state."""
        if not status.is_terminal:
            raise ValueError("close() requires a terminal status")
        if self.status.is_terminal:
            raise ValueError(f"session already {self.status.value}")
        self.status = status
        self.ended_at = at

    @property
    def duration(self) -> Optional[timedelta]:
        if self.ended_at is None:
            return None
        return self.ended_at - self.created_at
