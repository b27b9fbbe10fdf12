"""
===============================================================================
USE CASE: Send Message (ResponseGenerator: one request-response cycle)
===============================================================================

Business Goal:
    Answer a visitor question about a subject's CV:
      1) Validate (or open) the chat session
      2) Rate limit, then sanitize the message (rejections never reach
         retrieval)
      3) Retrieve CV context
      4) Build the prompt (persona + context/notice + recent turns + question)
      5) Call the language model (timeout + token cap in the guarded service)
      6) Post-process: sources, confidence from retrieval, output scan
      7) Append the user and assistant turns together
      8) Return text, sources, confidence, session id and quota

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    ResponseGenerator

Responsibilities:
    - Drive the flow above with explicit error types.
    - Use the fixed fallback answer when retrieval is low confidence
      (the model is not called, unless configured otherwise).
    - Downgrade generation failures to a graceful answer with
      status="degraded" (logged and counted).
    - Emit analytics (message_sent / throttled / message_rejected).

Collaborators:
    - ChatSessionManager, SlidingWindowRateLimiter, SafetyGuard
    - RetrievalEngine, PromptBuilder
    - domain.services.LLMService (guarded: timeout + retry + breaker)
    - crosscutting.metrics / crosscutting.timing / context

Error Mapping:
    - NotFoundError / ExpiredError / InvalidStateError: session lifecycle
    - RateLimitedError: throttled (retry_after)
    - InputRejectedError: empty, too long or prompt injection
    - EmbeddingProviderError / EmbeddingModelMismatchError: retrieval
    - GenerationProviderError: never raised (degraded answer instead)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Final, Optional, Tuple

from ...context import set_chat_context
from ...crosscutting.exceptions import (
    START_NEW_SESSION_HINT,
    GenerationProviderError,
    InputRejectedError,
    InvalidStateError,
    NotFoundError,
    RateLimitedError,
)
from ...crosscutting.logger import logger
from ...crosscutting.metrics import (
    observe_sources_returned_count,
    record_fallback_answer,
    record_stage_metrics,
)
from ...crosscutting.timing import StageTimings
from ...domain.analytics import ChatEventType
from ...domain.entities import ChatSession, ChatTurn, RetrievalResult, TurnRole
from ...domain.repositories import VectorStore
from ...domain.services import AnalyticsSink, LLMService
from ...domain.value_objects import ConfidenceScore, RetrievalOptions, calculate_confidence
from ..analytics import emit_chat_event
from ..chat_session_manager import ChatSessionManager, visitor_key_for
from ..prompt_builder import DEGRADED_ANSWER, PromptBuilder, fallback_answer
from ..rate_limiting import RateLimitDecision, SlidingWindowRateLimiter
from ..retrieval_engine import RetrievalEngine
from ..safety import (
    REASON_EMPTY,
    REASON_PROMPT_INJECTION,
    REASON_TOO_LONG,
    SafetyGuard,
)
from ..suggested_questions import suggest_questions

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------
STATUS_OK: Final[str] = "ok"
STATUS_LOW_CONFIDENCE: Final[str] = "low_confidence"
STATUS_DEGRADED: Final[str] = "degraded"
STATUS_FILTERED: Final[str] = "filtered"

_STAGE_LLM: Final[str] = "llm"

_REJECTION_MESSAGES: Final[dict[str, str]] = {
    REASON_EMPTY: "Message cannot be empty.",
    REASON_TOO_LONG: "Message is too long. Please keep it under {limit} characters.",
    REASON_PROMPT_INJECTION: "I can only answer questions about my CV.",
}


@dataclass(frozen=True)
class SendMessageInput:
    """
    Input DTO.

    Attributes:
        subject_id: Whose CV is being asked about
        message: Raw visitor text (untrusted)
        session_id: Existing session; None opens one when policy allows
        visitor_id: Stable visitor key (session cap, visitor quota)
        personality: Persona for a newly opened session
    """

    subject_id: str
    message: str
    session_id: Optional[str] = None
    visitor_id: Optional[str] = None
    personality: Optional[str] = None


@dataclass(frozen=True)
class RateLimitInfo:
    remaining: int
    reset_time: Optional[datetime]


@dataclass(frozen=True)
class SendMessageResult:
    text: str
    sources: Tuple[str, ...]
    confidence: ConfidenceScore
    low_confidence: bool
    session_id: str
    rate_limiting: RateLimitInfo
    status: str = STATUS_OK
    session_created: bool = False
    suggested_questions: Tuple[str, ...] = ()
    timings: dict = field(default_factory=dict)


class ResponseGenerator:
    """Orchestrates one chat request-response cycle."""

    def __init__(
        self,
        *,
        sessions: ChatSessionManager,
        rate_limiter: SlidingWindowRateLimiter,
        safety: SafetyGuard,
        retrieval: RetrievalEngine,
        llm_service: LLMService,
        vector_store: VectorStore,
        prompt_builder: Optional[PromptBuilder] = None,
        retrieval_options: Optional[RetrievalOptions] = None,
        analytics: Optional[AnalyticsSink] = None,
        auto_create_sessions: bool = True,
        llm_on_low_confidence: bool = False,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> None:
        self._sessions = sessions
        self._limiter = rate_limiter
        self._safety = safety
        self._retrieval = retrieval
        self._llm = llm_service
        self._store = vector_store
        self._prompts = prompt_builder or PromptBuilder()
        self._options = retrieval_options or RetrievalOptions()
        self._analytics = analytics
        self._auto_create = auto_create_sessions
        self._llm_on_low_confidence = llm_on_low_confidence
        self._max_tokens = max_tokens
        self._temperature = temperature

    def send_message(self, input_data: SendMessageInput) -> SendMessageResult:
        timings = StageTimings()

        # ---------------------------------------------------------------------
        # 1) Session
        # ---------------------------------------------------------------------
        session, created = self._resolve_session(input_data)
        set_chat_context(session_id=session.session_id, subject_id=session.subject_id)

        # ---------------------------------------------------------------------
        # 2) Throttle, then sanitize
        # ---------------------------------------------------------------------
        decision = self._check_rate_limit(session)
        clean = self._sanitize(session, input_data.message)
        received_at = self._sessions.now()

        # ---------------------------------------------------------------------
        # 3) Retrieval (EmbeddingProviderError propagates)
        # ---------------------------------------------------------------------
        retrieval = self._retrieval.retrieve(
            session.subject_id, clean, self._options, timings=timings
        )

        # ---------------------------------------------------------------------
        # 4-6) Generation + post-processing
        # ---------------------------------------------------------------------
        text, status = self._answer(session, clean, retrieval, timings)

        if status == STATUS_OK:
            sources = retrieval.sources
            confidence = calculate_confidence(
                similarities_used=[m.similarity for m in retrieval.matches],
                top_k=self._options.top_k,
            )
        else:
            sources = ()
            confidence = calculate_confidence(similarities_used=[], top_k=self._options.top_k)

        # ---------------------------------------------------------------------
        # 7) Append both turns as one unit
        # ---------------------------------------------------------------------
        user_turn = ChatTurn(role=TurnRole.USER, text=clean, timestamp=received_at)
        assistant_turn = ChatTurn(
            role=TurnRole.ASSISTANT,
            text=text,
            timestamp=self._sessions.now(),
            sources=sources,
            confidence=confidence.value,
            low_confidence=retrieval.low_confidence,
        )
        self._sessions.append_exchange(session.session_id, user_turn, assistant_turn)

        # ---------------------------------------------------------------------
        # 8) Observability + result
        # ---------------------------------------------------------------------
        observe_sources_returned_count(len(sources))
        timing_data = timings.to_dict()
        emit_chat_event(
            self._analytics,
            ChatEventType.MESSAGE_SENT,
            subject_id=session.subject_id,
            session_id=session.session_id,
            metadata={
                "status": status,
                "low_confidence": retrieval.low_confidence,
                "chunks_used": retrieval.chunks_used,
                "sources": len(sources),
                "confidence": confidence.value,
                "response_ms": timing_data["total_ms"],
            },
        )
        logger.info(
            "Chat message answered",
            extra={
                "status": status,
                "low_confidence": retrieval.low_confidence,
                "chunks_used": retrieval.chunks_used,
                "confidence": confidence.value,
                **timing_data,
            },
        )

        return SendMessageResult(
            text=text,
            sources=tuple(sources),
            confidence=confidence,
            low_confidence=retrieval.low_confidence,
            session_id=session.session_id,
            rate_limiting=RateLimitInfo(
                remaining=decision.remaining, reset_time=decision.reset_at
            ),
            status=status,
            session_created=created,
            suggested_questions=(
                tuple(suggest_questions(self._store, session.subject_id)) if created else ()
            ),
            timings=timing_data,
        )

    # =========================================================================
    # Steps
    # =========================================================================
    def _resolve_session(self, input_data: SendMessageInput) -> Tuple[ChatSession, bool]:
        if input_data.session_id:
            session = self._sessions.get_session(input_data.session_id)
            if session.subject_id != input_data.subject_id:
                # Sessions are scoped to one subject; do not reveal others
                raise NotFoundError(f"Chat session not found. {START_NEW_SESSION_HINT}")
            if not session.is_active:
                raise InvalidStateError(
                    f"This chat session has ended. {START_NEW_SESSION_HINT}"
                )
            return session, False

        if not self._auto_create:
            raise InvalidStateError(f"A chat session is required. {START_NEW_SESSION_HINT}")

        session = self._sessions.create_session(
            input_data.subject_id,
            visitor_id=input_data.visitor_id,
            personality=input_data.personality,
        )
        return session, True

    def _check_rate_limit(self, session: ChatSession) -> RateLimitDecision:
        decision = self._limiter.check_rate_limit(
            session.session_id, visitor_key_for(session)
        )
        if decision.allowed:
            return decision

        emit_chat_event(
            self._analytics,
            ChatEventType.THROTTLED,
            subject_id=session.subject_id,
            session_id=session.session_id,
            metadata={"reason": decision.reason, "retry_after": decision.retry_after},
        )
        raise RateLimitedError(
            f"Too many messages. Please wait {decision.retry_after} seconds.",
            retry_after=decision.retry_after,
            reason=decision.reason or "",
        )

    def _sanitize(self, session: ChatSession, raw: str) -> str:
        result = self._safety.sanitize_input(raw)
        if not result.rejected:
            return result.clean

        emit_chat_event(
            self._analytics,
            ChatEventType.MESSAGE_REJECTED,
            subject_id=session.subject_id,
            session_id=session.session_id,
            metadata={
                "reason": result.reason,
                "patterns": list(result.patterns),
                "risk_score": result.risk_score,
            },
        )
        template = _REJECTION_MESSAGES.get(result.reason or "", "Message rejected.")
        raise InputRejectedError(
            template.format(limit=self._safety.max_message_chars),
            reason=result.reason or "rejected",
        )

    def _answer(
        self,
        session: ChatSession,
        question: str,
        retrieval: RetrievalResult,
        timings: StageTimings,
    ) -> Tuple[str, str]:
        sections = self._indexed_sections(session.subject_id)

        if retrieval.low_confidence and not self._llm_on_low_confidence:
            record_fallback_answer("low_confidence")
            return fallback_answer(sections), STATUS_LOW_CONFIDENCE

        prompt = self._prompts.build(
            question=question,
            context=retrieval.context,
            history=session.history,
            personality=session.personality,
        )

        try:
            with timings.measure(_STAGE_LLM):
                raw_answer = self._llm.complete(
                    prompt, self._max_tokens, self._temperature
                )
        except GenerationProviderError as exc:
            record_fallback_answer("generation_error")
            logger.error(
                "Generation failed, answering with fallback",
                extra={"error_id": exc.error_id, "error_code": exc.error_code},
            )
            return DEGRADED_ANSWER, STATUS_DEGRADED
        finally:
            record_stage_metrics(llm_seconds=timings.seconds(_STAGE_LLM))

        scan = self._safety.scan_output(
            raw_answer, forbidden_fragments=self._prompts.leak_markers
        )
        if scan.rejected:
            record_fallback_answer("output_rejected")
            return fallback_answer(sections), STATUS_FILTERED

        if retrieval.low_confidence:
            return scan.clean, STATUS_LOW_CONFIDENCE
        return scan.clean, STATUS_OK

    def _indexed_sections(self, subject_id: str) -> Tuple[str, ...]:
        index = self._store.get_index(subject_id)
        return index.sections if index is not None else ()
