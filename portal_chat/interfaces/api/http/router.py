"""
===============================================================================
CRC CARD: router.py (root router / composition)
===============================================================================
Responsibilities:
  - Define the root APIRouter included by FastAPI (app.include_router).
  - Centralize RFC 7807 responses for OpenAPI.
  - Compose feature routers (chat, indexing).

Patterns:
  - Composition over inheritance: the root router composes sub-routers.
  - Factory: build_router() keeps composition testable without import-time
    side effects.

Notes:
  - Included from portal_chat/api/main.py with prefix="/v1".
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter

from ....crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from .routers.chat import router as chat_router
from .routers.indexing import router as indexing_router


def build_router() -> APIRouter:
    """Build the v1 root router."""
    api_router = APIRouter(responses=OPENAPI_ERROR_RESPONSES)

    api_router.include_router(chat_router)
    api_router.include_router(indexing_router)

    return api_router


router = build_router()

__all__ = ["router", "build_router"]
