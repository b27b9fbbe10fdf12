"""
===============================================================================
CRC CARD: domain/services.py
===============================================================================

Module:
    External service ports (Protocols)

Responsibilities:
    - Define contracts for the embedding provider, the language model,
      the CV content store and the analytics sink.
    - Keep application code independent of provider SDKs.

Collaborators:
    - infrastructure/services/*: concrete adapters (Google, fakes).
    - infrastructure/repositories/in_memory/*: content store and sink.
    - application: consumes these ports.

Rules:
    - Interfaces only, no implementation.
===============================================================================
"""

from __future__ import annotations

from typing import List, Protocol

from .analytics import ChatEvent
from .entities import CVSection


class EmbeddingService(Protocol):
    """Contract for embedding generation."""

    @property
    def model_id(self) -> str:
        """Model/version identifier; indexes are only comparable within one."""
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Document embeddings (indexing)."""
        ...

    def embed_query(self, query: str) -> list[float]:
        """Single query embedding (retrieval)."""
        ...


class LLMService(Protocol):
    """Contract for text generation."""

    @property
    def model_id(self) -> str: ...

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """Generate a completion for a fully built prompt."""
        ...


class CVContentStore(Protocol):
    """Source of structured CV content, keyed by subject."""

    def get_structured_content(self, subject_id: str) -> List[CVSection]:
        """Return the sections of a subject's CV (empty list if unknown)."""
        ...


class AnalyticsSink(Protocol):
    """Receives chat analytics events."""

    def emit(self, event: ChatEvent) -> None: ...
