"""
===============================================================================
CRC CARD: portal_chat/api/exception_handlers.py (centralized error mapping)
===============================================================================
Responsibilities:
  - Translate chat errors into RFC 7807 responses with stable codes.
  - Log with request_id + error_id for correlation.
  - Never leak provider text or internals for untyped errors.

Mapping:
  NotFoundError            -> 404 NOT_FOUND
  ExpiredError             -> 410 SESSION_EXPIRED
  InvalidStateError        -> 409 INVALID_STATE
  RateLimitedError         -> 429 RATE_LIMITED (+ Retry-After)
  ResourceExhaustedError   -> 429 RESOURCE_EXHAUSTED
  InvalidContentError      -> 422 INVALID_CONTENT
  InputRejectedError       -> 422 INPUT_REJECTED
  EmbeddingProviderError   -> 503 EMBEDDING_ERROR
  GenerationProviderError  -> 503 LLM_ERROR (only outside send_message)
  ProviderError            -> 503 SERVICE_UNAVAILABLE
  PortalChatError          -> 500 INTERNAL_ERROR
  Exception                -> 500 INTERNAL_ERROR (generic detail in production)

Collaborators:
  - crosscutting.error_responses: AppHTTPException, ErrorCode, app_exception_handler
  - crosscutting.exceptions: PortalChatError and subclasses
===============================================================================
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
)
from ..crosscutting.exceptions import (
    EmbeddingProviderError,
    ExpiredError,
    GenerationProviderError,
    InputRejectedError,
    InvalidContentError,
    InvalidStateError,
    NotFoundError,
    PortalChatError,
    ProviderError,
    RateLimitedError,
    ResourceExhaustedError,
)
from ..crosscutting.logger import logger

# Most specific first: handlers are looked up along the MRO anyway
_MAPPING: tuple[tuple[type[PortalChatError], ErrorCode, int], ...] = (
    (NotFoundError, ErrorCode.NOT_FOUND, 404),
    (ExpiredError, ErrorCode.SESSION_EXPIRED, 410),
    (InvalidStateError, ErrorCode.INVALID_STATE, 409),
    (RateLimitedError, ErrorCode.RATE_LIMITED, 429),
    (ResourceExhaustedError, ErrorCode.RESOURCE_EXHAUSTED, 429),
    (InvalidContentError, ErrorCode.INVALID_CONTENT, 422),
    (InputRejectedError, ErrorCode.INPUT_REJECTED, 422),
    (EmbeddingProviderError, ErrorCode.EMBEDDING_ERROR, 503),
    (GenerationProviderError, ErrorCode.LLM_ERROR, 503),
    (ProviderError, ErrorCode.SERVICE_UNAVAILABLE, 503),
)


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def _resolve(exc: PortalChatError) -> tuple[ErrorCode, int]:
    for exc_type, code, status_code in _MAPPING:
        if isinstance(exc, exc_type):
            return code, status_code
    return ErrorCode.INTERNAL_ERROR, 500


async def portal_chat_error_handler(
    request: Request, exc: PortalChatError
) -> JSONResponse:
    request_id = _request_id_from(request)
    code, status_code = _resolve(exc)

    log = logger.error if status_code >= 500 else logger.info
    log(
        "Chat error",
        extra={
            "code": code.value,
            "error_code": exc.error_code,
            "error_id": exc.error_id,
            "status_code": status_code,
        },
    )

    errors: list[dict] = [{"error_id": exc.error_id, "request_id": request_id}]
    headers: dict[str, str] | None = None

    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}
        errors[0]["retry_after"] = exc.retry_after
        errors[0]["reason"] = exc.reason
    elif isinstance(exc, InputRejectedError):
        errors[0]["reason"] = exc.reason

    app_exc = AppHTTPException(
        status_code=status_code,
        code=code,
        detail=exc.message,
        errors=errors,
        headers=headers,
    )
    return await app_exception_handler(request, app_exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Untyped errors: full log, generic response."""
    request_id = _request_id_from(request)
    logger.error(
        "Unhandled exception",
        exc_info=True,
        extra={"request_id": request_id, "error_type": type(exc).__name__},
    )
    detail = "Internal error." if get_settings().is_production() else str(exc)
    app_exc = AppHTTPException(
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR,
        detail=detail,
        errors=[{"request_id": request_id}],
    )
    return await app_exception_handler(request, app_exc)


def register_exception_handlers(app) -> None:
    """
    Register handlers on the FastAPI app.

    AppHTTPException keeps RFC 7807; Exception is the last-resort fallback.
    """
    app.add_exception_handler(PortalChatError, portal_chat_error_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers"]
