"""
Infrastructure Services (Facade)

Public surface of the provider adapters and resilience utilities:
  - Adapters: GoogleEmbeddingService, GoogleLLMService
  - Test doubles: FakeEmbeddingService, FakeLLMService
  - Decorators: GuardedEmbeddingService, GuardedLLMService
  - Resilience: ProviderCallPolicy, CircuitBreaker, retry helpers
"""

from .fake_embedding_service import FakeEmbeddingService  # noqa: F401
from .fake_llm_service import FakeLLMService  # noqa: F401
from .google_embedding_service import GoogleEmbeddingService  # noqa: F401
from .google_llm_service import GoogleLLMService  # noqa: F401
from .guarded_services import GuardedEmbeddingService, GuardedLLMService  # noqa: F401
from .resilience import (  # noqa: F401
    CircuitBreaker,
    CircuitState,
    ProviderCallPolicy,
    ProviderTimeoutError,
)
from .retry import (  # noqa: F401
    PERMANENT_HTTP_CODES,
    TRANSIENT_HTTP_CODES,
    create_retry_decorator,
    is_transient_error,
)

__all__ = [
    "FakeEmbeddingService",
    "FakeLLMService",
    "GoogleEmbeddingService",
    "GoogleLLMService",
    "GuardedEmbeddingService",
    "GuardedLLMService",
    "CircuitBreaker",
    "CircuitState",
    "ProviderCallPolicy",
    "ProviderTimeoutError",
    "is_transient_error",
    "create_retry_decorator",
    "TRANSIENT_HTTP_CODES",
    "PERMANENT_HTTP_CODES",
]
