"""
===============================================================================
CRC CARD: portal_chat/interfaces/api/http/routers/chat.py
===============================================================================
Name:
    Chat Router

Responsibilities:
    - HTTP endpoints for sendMessage, createSession, getHistory, endSession.
    - Per-subject analytics summary.
    - Map DTOs <-> use-case inputs/results. Errors propagate as typed
      exceptions and are rendered by api.exception_handlers.
    - Every session gets a visitor key: the body visitor_id, or the hashed
      client IP for anonymous callers (session cap + visitor quota).

Collaborators:
    - application.usecases: ResponseGenerator, CreateSessionUseCase,
      GetHistoryUseCase, EndSessionUseCase
    - application.analytics.ChatAnalyticsService
    - schemas.chat
    - crosscutting.client_identity.resolve_visitor_key
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from .....application.analytics import ChatAnalyticsService
from .....application.usecases import (
    CreateSessionInput,
    CreateSessionUseCase,
    EndSessionInput,
    EndSessionUseCase,
    GetHistoryUseCase,
    ResponseGenerator,
    SendMessageInput,
)
from .....crosscutting.client_identity import resolve_visitor_key
from .....container import (
    get_analytics_service,
    get_create_session_use_case,
    get_end_session_use_case,
    get_history_use_case,
    get_response_generator,
)
from ..schemas.chat import (
    AnalyticsRes,
    CreateSessionReq,
    CreateSessionRes,
    EndSessionReq,
    HistoryRes,
    SendMessageReq,
    SendMessageRes,
    SessionRes,
    TurnRes,
)

router = APIRouter()


@router.post(
    "/subjects/{subject_id}/chat/messages",
    response_model=SendMessageRes,
    tags=["chat"],
)
def send_message(
    subject_id: str,
    req: SendMessageReq,
    request: Request,
    response: Response,
    generator: ResponseGenerator = Depends(get_response_generator),
):
    """Answer a visitor question about the subject's CV."""
    result = generator.send_message(
        SendMessageInput(
            subject_id=subject_id,
            message=req.message,
            session_id=req.session_id,
            visitor_id=resolve_visitor_key(request, req.visitor_id),
            personality=req.personality,
        )
    )
    response.headers["X-RateLimit-Remaining"] = str(result.rate_limiting.remaining)
    return SendMessageRes.from_result(result)


@router.post(
    "/subjects/{subject_id}/chat/sessions",
    response_model=CreateSessionRes,
    status_code=201,
    tags=["chat"],
)
def create_session(
    subject_id: str,
    request: Request,
    req: CreateSessionReq | None = None,
    use_case: CreateSessionUseCase = Depends(get_create_session_use_case),
):
    req = req or CreateSessionReq()
    result = use_case.execute(
        CreateSessionInput(
            subject_id=subject_id,
            visitor_id=resolve_visitor_key(request, req.visitor_id),
            personality=req.personality,
        )
    )
    return CreateSessionRes.from_result(result)


@router.get(
    "/chat/sessions/{session_id}/history",
    response_model=HistoryRes,
    tags=["chat"],
)
def get_history(
    session_id: str,
    use_case: GetHistoryUseCase = Depends(get_history_use_case),
):
    result = use_case.execute(session_id)
    return HistoryRes(
        session=SessionRes.from_entity(result.session),
        turns=[TurnRes.from_entity(t) for t in result.turns],
    )


@router.post(
    "/chat/sessions/{session_id}/end",
    response_model=SessionRes,
    tags=["chat"],
)
def end_session(
    session_id: str,
    req: EndSessionReq | None = None,
    use_case: EndSessionUseCase = Depends(get_end_session_use_case),
):
    """Close a session (idempotent). Rating and feedback are optional."""
    req = req or EndSessionReq()
    session = use_case.execute(
        EndSessionInput(
            session_id=session_id, rating=req.rating, feedback=req.feedback
        )
    )
    return SessionRes.from_entity(session)


@router.get(
    "/subjects/{subject_id}/chat/analytics",
    response_model=AnalyticsRes,
    tags=["analytics"],
)
def chat_analytics(
    subject_id: str,
    service: ChatAnalyticsService = Depends(get_analytics_service),
):
    return AnalyticsRes.from_summary(service.summary(subject_id))
