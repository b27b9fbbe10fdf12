"""
===============================================================================
CRC CARD: domain/__init__.py
===============================================================================

Module:
    Domain layer exports (public domain API)

Responsibilities:
    - Centralize exports for clean imports in application/interfaces.
    - Keep the domain surface area stable.

Rules:
    - Re-export contracts/entities only; never import infrastructure here.
===============================================================================
"""

from .analytics import ChatEvent, ChatEventType
from .entities import (
    ChatSession,
    ChatTurn,
    ContentChunk,
    CVSection,
    RetrievalResult,
    ScoredChunk,
    SessionStatus,
    TurnRole,
    VectorIndex,
)
from .repositories import ChatEventRepository, ChatSessionRepository, VectorStore
from .services import AnalyticsSink, CVContentStore, EmbeddingService, LLMService
from .value_objects import (
    ConfidenceScore,
    RetrievalOptions,
    SessionFeedback,
    UsageQuota,
    calculate_confidence,
)

__all__ = [
    # Entities
    "ContentChunk",
    "CVSection",
    "VectorIndex",
    "ScoredChunk",
    "RetrievalResult",
    "ChatSession",
    "ChatTurn",
    "SessionStatus",
    "TurnRole",
    "ChatEvent",
    "ChatEventType",
    # Ports
    "VectorStore",
    "ChatSessionRepository",
    "ChatEventRepository",
    "EmbeddingService",
    "LLMService",
    "CVContentStore",
    "AnalyticsSink",
    # Value Objects
    "RetrievalOptions",
    "ConfidenceScore",
    "UsageQuota",
    "SessionFeedback",
    "calculate_confidence",
]
