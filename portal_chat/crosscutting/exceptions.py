"""
===============================================================================
MODULE: Typed chat errors (internal taxonomy)
===============================================================================

Every internal error carries:
- a stable error_code
- an error_id for correlation with logs
- a human message that never contains provider text or secrets

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Component:
  PortalChatError + subclasses

Responsibilities:
  - Standardize errors that are later mapped to HTTP problem responses
  - Carry retry hints (RateLimitedError.retry_after)

Collaborators:
  - api/exception_handlers.py (maps to AppHTTPException)
  - application/usecases/send_message.py (downgrades generation errors)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

START_NEW_SESSION_HINT = "Please start a new chat session."


@dataclass(frozen=True)
class ErrorResponse:
    """Minimal error structure for consistent responses."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class PortalChatError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Class:
      PortalChatError

    Responsibilities:
      - Base for internal chat errors
      - Provide error_code + error_id + message

    Collaborators:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "PORTAL_CHAT_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


# -----------------------------------------------------------------------------
# Indexing
# -----------------------------------------------------------------------------
class InvalidContentError(PortalChatError):
    """Structured CV content is empty or malformed. Never retried."""

    error_code: str = "INVALID_CONTENT"


# -----------------------------------------------------------------------------
# Providers
# -----------------------------------------------------------------------------
class ProviderError(PortalChatError):
    """Base for external provider failures (after retry)."""

    error_code: str = "PROVIDER_ERROR"


class EmbeddingProviderError(ProviderError):
    """Embedding call failed or timed out."""

    error_code: str = "EMBEDDING_PROVIDER_ERROR"


class GenerationProviderError(ProviderError):
    """Language-model call failed or timed out."""

    error_code: str = "GENERATION_PROVIDER_ERROR"


class CircuitOpenError(ProviderError):
    """The provider circuit is open; the call was not attempted."""

    error_code: str = "CIRCUIT_OPEN"

    def __init__(self, provider: str, retry_after: float):
        self.provider = provider
        self.retry_after = retry_after
        super().__init__(f"{provider} provider temporarily unavailable")


# -----------------------------------------------------------------------------
# Safety and capacity
# -----------------------------------------------------------------------------
class ResourceExhaustedError(PortalChatError):
    """Concurrent-session cap reached for a visitor."""

    error_code: str = "RESOURCE_EXHAUSTED"


class RateLimitedError(PortalChatError):
    """Message rate exceeded; retry_after is in seconds."""

    error_code: str = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: int, reason: str = ""):
        self.retry_after = max(1, int(retry_after))
        self.reason = reason
        super().__init__(message)


class InputRejectedError(PortalChatError):
    """Inbound message rejected by sanitization (length or injection)."""

    error_code: str = "INPUT_REJECTED"

    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__(message)


# -----------------------------------------------------------------------------
# Session lifecycle
# -----------------------------------------------------------------------------
class SessionError(PortalChatError):
    """Base for lifecycle violations, all surfaced as "start a new session"."""

    error_code: str = "SESSION_ERROR"


class NotFoundError(SessionError):
    error_code: str = "NOT_FOUND"


class ExpiredError(SessionError):
    error_code: str = "SESSION_EXPIRED"


class InvalidStateError(SessionError):
    error_code: str = "INVALID_STATE"


class EmbeddingModelMismatchError(InvalidStateError):
    """Index was built with another embedding model; a re-index is required."""

    error_code: str = "EMBEDDING_MODEL_MISMATCH"
