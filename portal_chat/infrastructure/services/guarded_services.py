"""
Name: Guarded Provider Services (Decorators)

Responsibilities:
  - Wrap any EmbeddingService / LLMService with a ProviderCallPolicy
    (timeout + retry + circuit breaker).
  - Translate every provider failure into the chat error taxonomy
    (EmbeddingProviderError / GenerationProviderError) without leaking
    provider text to callers.

Patterns:
  - Decorator: the guarded service implements the same port it wraps.

Collaborators:
  - infrastructure.services.resilience.ProviderCallPolicy
  - crosscutting.exceptions
"""

from __future__ import annotations

from typing import Sequence

from ...crosscutting.exceptions import (
    CircuitOpenError,
    EmbeddingProviderError,
    GenerationProviderError,
)
from ...crosscutting.logger import logger
from ...domain.services import EmbeddingService, LLMService
from .resilience import ProviderCallPolicy, ProviderTimeoutError


class GuardedEmbeddingService(EmbeddingService):
    """R: EmbeddingService decorator applying the provider call policy."""

    def __init__(self, provider: EmbeddingService, policy: ProviderCallPolicy):
        self._provider = provider
        self._policy = policy

    @property
    def model_id(self) -> str:
        return self._provider.model_id

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        return self._guarded("embed_batch", self._provider.embed_batch, list(texts))

    def embed_query(self, query: str) -> list[float]:
        return self._guarded("embed_query", self._provider.embed_query, query)

    def close(self) -> None:
        self._policy.shutdown()

    def _guarded(self, operation: str, fn, arg):
        try:
            return self._policy.call(fn, arg)
        except EmbeddingProviderError:
            raise
        except CircuitOpenError as exc:
            raise EmbeddingProviderError(
                "Embedding provider temporarily unavailable", original_error=exc
            ) from exc
        except ProviderTimeoutError as exc:
            logger.error(
                "Embedding call timed out",
                extra={"operation": operation, "model_id": self.model_id},
            )
            raise EmbeddingProviderError(
                "Embedding provider timed out", original_error=exc
            ) from exc
        except Exception as exc:
            logger.error(
                "Embedding call failed",
                exc_info=True,
                extra={
                    "operation": operation,
                    "model_id": self.model_id,
                    "error_type": type(exc).__name__,
                },
            )
            raise EmbeddingProviderError(
                "Failed to call embedding provider", original_error=exc
            ) from exc


class GuardedLLMService(LLMService):
    """R: LLMService decorator applying the provider call policy."""

    def __init__(self, provider: LLMService, policy: ProviderCallPolicy):
        self._provider = provider
        self._policy = policy

    @property
    def model_id(self) -> str:
        return self._provider.model_id

    def close(self) -> None:
        self._policy.shutdown()

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        try:
            return self._policy.call(
                self._provider.complete, prompt, max_tokens, temperature
            )
        except GenerationProviderError:
            raise
        except CircuitOpenError as exc:
            raise GenerationProviderError(
                "Language model temporarily unavailable", original_error=exc
            ) from exc
        except ProviderTimeoutError as exc:
            raise GenerationProviderError(
                "Language model timed out", original_error=exc
            ) from exc
        except Exception as exc:
            logger.error(
                "Language model call failed",
                exc_info=True,
                extra={"model_id": self.model_id, "error_type": type(exc).__name__},
            )
            raise GenerationProviderError(
                "Failed to call language model", original_error=exc
            ) from exc
