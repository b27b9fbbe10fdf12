"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure a fake-provider test environment before the package loads
  - Provide a concept-based embedding stub (predictable similarities)
  - Provide a manual clock for TTL and rate-limit tests
  - Wire the chat services the same way the container does

Collaborators:
  - pytest: Test framework
  - portal_chat.application / infrastructure: services under test

Notes:
  - Fixtures are auto-discovered by pytest
  - Every fixture builds fresh state (no shared singletons between tests)
"""

import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Sequence

import pytest

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("FAKE_LLM", "1")
os.environ.setdefault("FAKE_EMBEDDINGS", "1")
os.environ.setdefault("LOG_JSON", "false")

from portal_chat.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

from portal_chat.application.chat_session_manager import ChatSessionManager  # noqa: E402
from portal_chat.application.content_indexer import ContentIndexer  # noqa: E402
from portal_chat.application.rate_limiting import (  # noqa: E402
    RateLimitConfig,
    SlidingWindowRateLimiter,
)
from portal_chat.application.retrieval_engine import RetrievalEngine  # noqa: E402
from portal_chat.application.safety import SafetyGuard  # noqa: E402
from portal_chat.application.usecases import ResponseGenerator  # noqa: E402
from portal_chat.domain.services import EmbeddingService, LLMService  # noqa: E402
from portal_chat.domain.value_objects import RetrievalOptions  # noqa: E402
from portal_chat.infrastructure.repositories.in_memory import (  # noqa: E402
    InMemoryAnalyticsSink,
    InMemoryChatSessionRepository,
    InMemoryCVContentStore,
    InMemoryVectorStore,
)
from portal_chat.infrastructure.services import FakeLLMService  # noqa: E402


def pytest_configure(config) -> None:
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line("markers", "api: HTTP tests through the TestClient")


# ============================================================================
# Embedding stub
# ============================================================================

_CONCEPTS = {
    "skills": {
        "skilled", "skills", "python", "go", "typescript", "programming",
        "languages", "language", "code", "coding",
    },
    "experience": {
        "worked", "work", "experience", "engineer", "acme", "company", "job",
    },
    "education": {
        "mba", "degree", "university", "studied", "education", "school",
    },
    "projects": {"project", "projects", "built", "open", "source"},
}
_AXES = tuple(_CONCEPTS)
_WORD = re.compile(r"[a-z]+")


class ConceptEmbeddingService(EmbeddingService):
    """
    R: One axis per concept plus a small constant axis.

    Texts about the same concept are near-parallel (similarity close to 1);
    texts about nothing known only share the constant axis.
    """

    def __init__(self, model_id: str = "concept-test-v1"):
        self._model_id = model_id
        self.batch_calls: List[List[str]] = []
        self.query_calls: List[str] = []

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dimension(self) -> int:
        return len(_AXES) + 1

    def _embed(self, text: str) -> List[float]:
        words = _WORD.findall(text.lower())
        vector = [float(sum(w in _CONCEPTS[axis] for w in words)) for axis in _AXES]
        vector.append(0.1)
        return vector

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.batch_calls.append(list(texts))
        return [self._embed(t) for t in texts]

    def embed_query(self, query: str) -> List[float]:
        self.query_calls.append(query)
        return self._embed(query)


class RecordingLLM(LLMService):
    """R: Wraps FakeLLMService and keeps every prompt it receives."""

    def __init__(self, answer: str | None = None, error: Exception | None = None):
        self._inner = FakeLLMService()
        self._answer = answer
        self._error = error
        self.prompts: List[str] = []

    @property
    def model_id(self) -> str:
        return self._inner.model_id

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        self.prompts.append(prompt)
        if self._error is not None:
            raise self._error
        if self._answer is not None:
            return self._answer
        return self._inner.complete(prompt, max_tokens, temperature)


class ManualClock:
    """R: Settable clock exposing both datetime and epoch-seconds views."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def timestamp(self) -> float:
        return self.current.timestamp()

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


# ============================================================================
# Sample data
# ============================================================================

SUBJECT_ID = "ada"

SCENARIO_CV = [
    {"name": "Experience", "items": ["Worked at Acme as engineer"]},
    {"name": "Skills", "items": ["Skilled in Python and Go"]},
    {"name": "Education", "items": ["MBA from State University"]},
]


@pytest.fixture
def scenario_cv():
    return [dict(section) for section in SCENARIO_CV]


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def embedding_service() -> ConceptEmbeddingService:
    return ConceptEmbeddingService()


# ============================================================================
# Wired services
# ============================================================================


@dataclass
class ChatStack:
    store: InMemoryVectorStore
    sessions_repo: InMemoryChatSessionRepository
    analytics: InMemoryAnalyticsSink
    content_store: InMemoryCVContentStore
    embeddings: ConceptEmbeddingService
    llm: RecordingLLM
    indexer: ContentIndexer
    retrieval: RetrievalEngine
    sessions: ChatSessionManager
    limiter: SlidingWindowRateLimiter
    safety: SafetyGuard
    generator: ResponseGenerator


def build_stack(
    clock: ManualClock,
    *,
    embeddings: ConceptEmbeddingService | None = None,
    llm: RecordingLLM | None = None,
    rate_limits: RateLimitConfig | None = None,
    options: RetrievalOptions | None = None,
    auto_create_sessions: bool = True,
    llm_on_low_confidence: bool = False,
) -> ChatStack:
    embeddings = embeddings or ConceptEmbeddingService()
    llm = llm or RecordingLLM()
    store = InMemoryVectorStore()
    sessions_repo = InMemoryChatSessionRepository()
    analytics = InMemoryAnalyticsSink()
    content_store = InMemoryCVContentStore()
    options = options or RetrievalOptions()

    indexer = ContentIndexer(
        embedding_service=embeddings,
        vector_store=store,
        content_store=content_store,
        analytics=analytics,
    )
    retrieval = RetrievalEngine(
        embedding_service=embeddings, vector_store=store, default_options=options
    )
    sessions = ChatSessionManager(
        sessions_repo, ttl_seconds=1800, analytics=analytics, clock=clock.now
    )
    limiter = SlidingWindowRateLimiter(rate_limits, clock=clock.timestamp)
    safety = SafetyGuard()
    generator = ResponseGenerator(
        sessions=sessions,
        rate_limiter=limiter,
        safety=safety,
        retrieval=retrieval,
        llm_service=llm,
        vector_store=store,
        retrieval_options=options,
        analytics=analytics,
        auto_create_sessions=auto_create_sessions,
        llm_on_low_confidence=llm_on_low_confidence,
    )
    return ChatStack(
        store=store,
        sessions_repo=sessions_repo,
        analytics=analytics,
        content_store=content_store,
        embeddings=embeddings,
        llm=llm,
        indexer=indexer,
        retrieval=retrieval,
        sessions=sessions,
        limiter=limiter,
        safety=safety,
        generator=generator,
    )


@pytest.fixture
def stack(clock) -> ChatStack:
    return build_stack(clock)


@pytest.fixture
def indexed_stack(stack, scenario_cv) -> ChatStack:
    stack.indexer.build_index(SUBJECT_ID, scenario_cv)
    return stack


@pytest.fixture
def make_stack(clock):
    """Factory fixture: build_stack bound to the test clock."""

    def _make(**kwargs) -> ChatStack:
        return build_stack(clock, **kwargs)

    return _make


@pytest.fixture
def recording_llm():
    """Factory fixture for RecordingLLM (canned answer or error)."""
    return RecordingLLM


@pytest.fixture
def subject_id() -> str:
    return SUBJECT_ID
