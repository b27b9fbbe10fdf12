# =============================================================================
# FILE: domain/value_objects.py
# =============================================================================
"""
===============================================================================
DOMAIN: Value Objects (Immutable Domain Primitives)
===============================================================================

Contents:
    - RetrievalOptions: validated retrieval configuration (top_k, threshold,
      context budget)
    - ConfidenceScore: answer confidence derived from retrieval similarity
    - UsageQuota: rate-limit window usage
    - SessionFeedback: satisfaction rating + free-text feedback

Principles:
    - Immutability (frozen dataclasses)
    - Validation in the constructor
    - No side effects
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Final, Optional, Sequence

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
_MIN_CONFIDENCE: Final[float] = 0.0
_MAX_CONFIDENCE: Final[float] = 1.0
_MIN_RATING: Final[int] = 1
_MAX_RATING: Final[int] = 5
_MAX_FEEDBACK_CHARS: Final[int] = 2000


# -----------------------------------------------------------------------------
# Retrieval Options
# -----------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RetrievalOptions:
    """
    Retrieval configuration, validated once at construction.

    Attributes:
        top_k: Maximum number of chunks returned by the vector store
        similarity_threshold: Minimum cosine similarity [0, 1]
        max_context_chars: Hard budget for the assembled context block
    """

    top_k: int = 5
    similarity_threshold: float = 0.7
    max_context_chars: int = 4000

    def __post_init__(self) -> None:
        if self.top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {self.top_k}")
        if not (0.0 <= self.similarity_threshold <= 1.0):
            raise ValueError(
                "similarity_threshold must be between 0 and 1, "
                f"got {self.similarity_threshold}"
            )
        if self.max_context_chars < 1:
            raise ValueError(
                f"max_context_chars must be >= 1, got {self.max_context_chars}"
            )


# -----------------------------------------------------------------------------
# Confidence Score
# -----------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ConfidenceScore:
    """
    Confidence of an answer, computed from retrieval evidence (never from
    what the model says about itself).

    Levels (for UI):
        - "high" (>=0.8)
        - "medium" (0.5-0.79)
        - "low" (<0.5)
    """

    value: float
    factors: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not (_MIN_CONFIDENCE <= self.value <= _MAX_CONFIDENCE):
            raise ValueError(
                f"Confidence score must be between {_MIN_CONFIDENCE} and {_MAX_CONFIDENCE}, "
                f"got {self.value}"
            )

    @property
    def level(self) -> str:
        if self.value >= 0.8:
            return "high"
        if self.value >= 0.5:
            return "medium"
        return "low"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": round(self.value, 2),
            "level": self.level,
            "factors": self.factors,
        }


def calculate_confidence(
    *,
    similarities_used: Sequence[float],
    top_k: int,
) -> ConfidenceScore:
    """
    Compute a ConfidenceScore from the similarities of the chunks that made
    it into the context.

    Factors:
        - top_similarity: best match (60%)
        - mean_similarity: average over used chunks (30%)
        - coverage: used chunks vs min(3, top_k) (10%)
    """
    if not similarities_used:
        return ConfidenceScore(
            value=0.0,
            factors={"top_similarity": 0.0, "mean_similarity": 0.0, "coverage": 0.0},
        )

    clamped = [min(1.0, max(0.0, float(s))) for s in similarities_used]
    top = max(clamped)
    mean = sum(clamped) / len(clamped)
    coverage = min(1.0, len(clamped) / max(1, min(3, top_k)))

    score = top * 0.6 + mean * 0.3 + coverage * 0.1
    score = min(_MAX_CONFIDENCE, max(_MIN_CONFIDENCE, score))

    return ConfidenceScore(
        value=round(score, 4),
        factors={
            "top_similarity": round(top, 4),
            "mean_similarity": round(mean, 4),
            "coverage": round(coverage, 2),
        },
    )


# -----------------------------------------------------------------------------
# Usage Quota (Rate Limiting)
# -----------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UsageQuota:
    """
    Usage of one rate-limit window.

    Attributes:
        limit: Maximum allowed in the window
        used: Amount used so far (after the current request if allowed)
        reset_at: When the oldest counted event leaves the window
        resource: Window name ("messages_per_minute", ...)
    """

    limit: int
    used: int
    reset_at: Optional[datetime] = None
    resource: str = "messages"

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def is_exceeded(self) -> bool:
        return self.used >= self.limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource": self.resource,
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat() if self.reset_at else None,
        }


# -----------------------------------------------------------------------------
# Session Feedback
# -----------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SessionFeedback:
    """Satisfaction rating (1-5) and optional comment left when ending a chat."""

    rating: Optional[int] = None
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        if self.rating is not None and not (
            _MIN_RATING <= self.rating <= _MAX_RATING
        ):
            raise ValueError(
                f"rating must be between {_MIN_RATING} and {_MAX_RATING}, got {self.rating}"
            )
        if self.comment is not None and len(self.comment) > _MAX_FEEDBACK_CHARS:
            raise ValueError(
                f"feedback must be at most {_MAX_FEEDBACK_CHARS} characters"
            )

    @property
    def is_empty(self) -> bool:
        return self.rating is None and not self.comment
