"""
CRC - domain/repositories.py

Name
- Domain Repository Interfaces (Protocols)

Responsibilities
- Define storage contracts for vector indexes, chat sessions and
  analytics events.
- Keep application code independent from the storage backend.

Collaborators
- domain.entities: ContentChunk, VectorIndex, ScoredChunk, ChatSession
- domain.analytics: ChatEvent, ChatEventType
- infrastructure.repositories.in_memory: implementations

Constraints
- Pure interfaces only.
- Implementations return snapshots; callers never share mutable state.
"""

from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from .analytics import ChatEvent, ChatEventType
from .entities import ChatSession, ContentChunk, ScoredChunk, VectorIndex


class VectorStore(Protocol):
    """
    R: Per-subject chunk collections with cosine nearest-neighbor search.

    Implementations must provide:
      - Atomic whole-index replacement (readers see old or new, never a mix)
      - Deterministic ordering (similarity desc, then document position)
    """

    def upsert_index(
        self, subject_id: str, chunks: Sequence[ContentChunk], embedding_model: str
    ) -> VectorIndex:
        """R: Replace the subject's index atomically and return the new snapshot."""
        ...

    def query(
        self,
        subject_id: str,
        query_embedding: Sequence[float],
        top_k: int,
        similarity_threshold: float,
    ) -> List[ScoredChunk]:
        """R: Top-k chunks with similarity >= threshold; [] when no index."""
        ...

    def get_index(self, subject_id: str) -> Optional[VectorIndex]:
        """R: Current snapshot or None."""
        ...

    def delete_index(self, subject_id: str) -> bool:
        """R: Remove the subject's data; True if something was removed."""
        ...


class ChatSessionRepository(Protocol):
    """
    R: Session persistence keyed by session_id.

    Locking and lifecycle rules live in ChatSessionManager.
    """

    def add(self, session: ChatSession) -> None: ...

    def get(self, session_id: str) -> Optional[ChatSession]: ...

    def save(self, session: ChatSession) -> None: ...

    def list_active(self) -> List[ChatSession]: ...

    def list_active_for_visitor(self, visitor_key: str) -> List[ChatSession]: ...

    def count_active_for_visitor(self, visitor_key: str) -> int: ...

    def purge_closed(self, closed_before: datetime) -> int:
        """R: Evict closed sessions that ended before the cutoff; returns the count."""
        ...

    def list_by_subject(
        self, subject_id: str, limit: Optional[int] = None
    ) -> List[ChatSession]:
        """R: Sessions of a subject, newest first."""
        ...


class ChatEventRepository(Protocol):
    """R: Read side of the analytics sink."""

    def list_events(
        self,
        subject_id: str,
        event_type: Optional[ChatEventType] = None,
        limit: Optional[int] = None,
    ) -> List[ChatEvent]: ...
