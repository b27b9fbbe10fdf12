"""
===============================================================================
CRC CARD: portal_chat/container.py (Composition Root / manual DI)
===============================================================================
Responsibilities:
  - Compose stores, providers, policies and use cases (DIP).
  - Expose factories for FastAPI (Depends) and for tests.
  - Keep singletons with lru_cache for stateful resources (stores, breakers,
    provider thread pools).
  - Centralize runtime decisions based on Settings.

Collaborators:
  - portal_chat.crosscutting.config.get_settings
  - portal_chat.domain.* (ports)
  - portal_chat.infrastructure.* (implementations)
  - portal_chat.application.* (services and use cases)

Notes:
  - No business logic here.
  - No FastAPI imports here (factories only).
  - Indexing and retrieval share ONE embedding service instance: the
    embedding space is consistent by construction, and
    verify_embedding_consistency() fails startup otherwise.
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache

from .application.analytics import ChatAnalyticsService
from .application.chat_session_manager import ChatSessionManager, SessionSweeper
from .application.content_indexer import ContentIndexer
from .application.prompt_builder import PromptBuilder
from .application.rate_limiting import RateLimitConfig, SlidingWindowRateLimiter
from .application.retrieval_engine import RetrievalEngine
from .application.safety import SafetyGuard
from .application.usecases import (
    CreateSessionUseCase,
    EndSessionUseCase,
    GetHistoryUseCase,
    ResponseGenerator,
)
from .crosscutting.config import get_settings
from .crosscutting.logger import logger
from .domain.services import EmbeddingService, LLMService
from .domain.value_objects import RetrievalOptions
from .infrastructure.repositories.in_memory import (
    InMemoryAnalyticsSink,
    InMemoryChatSessionRepository,
    InMemoryCVContentStore,
    InMemoryVectorStore,
)
from .infrastructure.services import (
    CircuitBreaker,
    FakeEmbeddingService,
    FakeLLMService,
    GoogleEmbeddingService,
    GoogleLLMService,
    GuardedEmbeddingService,
    GuardedLLMService,
    ProviderCallPolicy,
)
from .infrastructure.text import CVChunker

# =============================================================================
# Stores (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@lru_cache(maxsize=1)
def get_session_repository() -> InMemoryChatSessionRepository:
    return InMemoryChatSessionRepository(
        max_closed_sessions=get_settings().max_closed_sessions
    )


@lru_cache(maxsize=1)
def get_content_store() -> InMemoryCVContentStore:
    return InMemoryCVContentStore()


@lru_cache(maxsize=1)
def get_analytics_sink() -> InMemoryAnalyticsSink:
    return InMemoryAnalyticsSink()


# =============================================================================
# External providers (singletons, always behind the call policy)
# =============================================================================


def _provider_policy(name: str, timeout_seconds: float) -> ProviderCallPolicy:
    settings = get_settings()
    return ProviderCallPolicy(
        name,
        timeout_seconds=timeout_seconds,
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        breaker=CircuitBreaker(
            name,
            failure_threshold=settings.circuit_failure_threshold,
            reset_timeout=settings.circuit_reset_seconds,
        ),
    )


@lru_cache(maxsize=1)
def get_embedding_service() -> EmbeddingService:
    """Embedding provider (fake in tests/CI) wrapped with timeout + retry + breaker."""
    settings = get_settings()
    provider: EmbeddingService
    if settings.fake_embeddings:
        provider = FakeEmbeddingService()
    else:
        provider = GoogleEmbeddingService(
            settings.google_api_key, model_id=settings.embedding_model
        )
    return GuardedEmbeddingService(
        provider, _provider_policy("embedding", settings.embedding_timeout_seconds)
    )


@lru_cache(maxsize=1)
def get_llm_service() -> LLMService:
    """Language model (fake in tests/CI) wrapped with timeout + retry + breaker."""
    settings = get_settings()
    provider: LLMService
    if settings.fake_llm:
        provider = FakeLLMService()
    else:
        provider = GoogleLLMService(settings.google_api_key, model_id=settings.llm_model)
    return GuardedLLMService(
        provider, _provider_policy("llm", settings.llm_timeout_seconds)
    )


# =============================================================================
# Application services (singletons: they own locks and counters)
# =============================================================================


@lru_cache(maxsize=1)
def get_content_indexer() -> ContentIndexer:
    settings = get_settings()
    return ContentIndexer(
        embedding_service=get_embedding_service(),
        vector_store=get_vector_store(),
        content_store=get_content_store(),
        analytics=get_analytics_sink(),
        chunker=CVChunker(max_chunk_chars=settings.max_chunk_chars),
        min_chunk_tokens=settings.min_chunk_tokens,
    )


def get_retrieval_options() -> RetrievalOptions:
    settings = get_settings()
    return RetrievalOptions(
        top_k=settings.retrieval_top_k,
        similarity_threshold=settings.similarity_threshold,
        max_context_chars=settings.max_context_chars,
    )


@lru_cache(maxsize=1)
def get_retrieval_engine() -> RetrievalEngine:
    return RetrievalEngine(
        embedding_service=get_embedding_service(),
        vector_store=get_vector_store(),
        default_options=get_retrieval_options(),
    )


@lru_cache(maxsize=1)
def get_session_manager() -> ChatSessionManager:
    settings = get_settings()
    return ChatSessionManager(
        get_session_repository(),
        ttl_seconds=settings.session_ttl_seconds,
        max_sessions_per_visitor=settings.max_sessions_per_visitor,
        retention_seconds=settings.session_retention_seconds,
        default_personality=settings.default_personality,
        analytics=get_analytics_sink(),
    )


@lru_cache(maxsize=1)
def get_rate_limiter() -> SlidingWindowRateLimiter:
    settings = get_settings()
    return SlidingWindowRateLimiter(
        RateLimitConfig(
            messages_per_minute=settings.rate_limit_per_minute,
            messages_per_hour=settings.rate_limit_per_hour,
            visitor_messages_per_hour=settings.rate_limit_per_hour,
        )
    )


@lru_cache(maxsize=1)
def get_safety_guard() -> SafetyGuard:
    settings = get_settings()
    return SafetyGuard(
        max_message_chars=settings.max_message_chars,
        injection_threshold=settings.injection_risk_threshold,
    )


def get_session_sweeper() -> SessionSweeper | None:
    """Background sweep, only when an interval is configured."""
    interval = get_settings().session_sweep_interval_seconds
    if interval <= 0:
        return None
    return SessionSweeper(get_session_manager(), interval)


def verify_embedding_consistency() -> None:
    """Fail fast when indexing and retrieval would use different embedding models."""
    index_model = get_content_indexer().embedding_model
    query_model = get_retrieval_engine().embedding_model
    if index_model != query_model:
        raise RuntimeError(
            f"Embedding model mismatch: indexing uses {index_model!r}, "
            f"retrieval uses {query_model!r}"
        )
    logger.info("Embedding configuration verified", extra={"model_id": index_model})


# =============================================================================
# Use cases (factory per request)
# =============================================================================


def get_response_generator() -> ResponseGenerator:
    settings = get_settings()
    return ResponseGenerator(
        sessions=get_session_manager(),
        rate_limiter=get_rate_limiter(),
        safety=get_safety_guard(),
        retrieval=get_retrieval_engine(),
        llm_service=get_llm_service(),
        vector_store=get_vector_store(),
        prompt_builder=PromptBuilder(max_history_turns=settings.max_history_turns),
        retrieval_options=get_retrieval_options(),
        analytics=get_analytics_sink(),
        auto_create_sessions=settings.auto_create_sessions,
        llm_on_low_confidence=settings.llm_on_low_confidence,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )


def get_create_session_use_case() -> CreateSessionUseCase:
    return CreateSessionUseCase(get_session_manager(), get_vector_store())


def get_history_use_case() -> GetHistoryUseCase:
    return GetHistoryUseCase(get_session_manager())


def get_end_session_use_case() -> EndSessionUseCase:
    return EndSessionUseCase(get_session_manager(), get_rate_limiter())


def get_analytics_service() -> ChatAnalyticsService:
    return ChatAnalyticsService(
        sessions=get_session_repository(), events=get_analytics_sink()
    )


def shutdown_providers() -> None:
    """Release provider thread pools (application shutdown)."""
    for factory in (get_embedding_service, get_llm_service):
        if factory.cache_info().currsize:
            service = factory()
            close = getattr(service, "close", None)
            if close is not None:
                close()


def reset_container() -> None:
    """Clear every cached singleton (tests)."""
    for factory in (
        get_vector_store,
        get_session_repository,
        get_content_store,
        get_analytics_sink,
        get_embedding_service,
        get_llm_service,
        get_content_indexer,
        get_retrieval_engine,
        get_session_manager,
        get_rate_limiter,
        get_safety_guard,
    ):
        factory.cache_clear()
