"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Initialize FastAPI application with metadata (title, version)
  - Configure middleware (CORS, request context)
  - Mount chat and indexing routers under the /v1 prefix
  - Expose health check and metrics endpoints
  - Start and stop the session sweeper and provider pools

Collaborators:
  - FastAPI: ASGI web framework
  - CORSMiddleware: Cross-Origin Resource Sharing handler
  - RequestContextMiddleware: Request ID and logging context
  - interfaces.api.http.router: chat and indexing endpoints
  - container: startup checks and shutdown hooks

Constraints:
  - CORS configurable via ALLOWED_ORIGINS env var (comma-separated)
  - No authentication (out of scope for the chat core)

Notes:
  - Middleware order matters: RequestContext -> CORS -> routes
  - /healthz follows Kubernetes health check convention
  - /metrics exposes Prometheus metrics when METRICS_ENABLED=true
  - Env validation happens at startup (lifespan), not import time
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..container import (
    get_session_repository,
    get_session_sweeper,
    get_vector_store,
    shutdown_providers,
    verify_embedding_consistency,
)
from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from ..crosscutting.middleware import RequestContextMiddleware
from ..interfaces.api.http.router import router
from .exception_handlers import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle. Validates settings and embedding wiring."""
    settings = get_settings()
    verify_embedding_consistency()

    sweeper = get_session_sweeper()
    if sweeper is not None:
        sweeper.start()

    logger.info(
        "Portal Chat API starting up",
        extra={
            "fake_llm": settings.fake_llm,
            "fake_embeddings": settings.fake_embeddings,
            "embedding_model": settings.embedding_model,
            "llm_model": settings.llm_model,
            "session_ttl_seconds": settings.session_ttl_seconds,
            "rate_limit_per_minute": settings.rate_limit_per_minute,
            "rate_limit_per_hour": settings.rate_limit_per_hour,
        },
    )
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.stop()
        shutdown_providers()
        logger.info("Portal Chat API shutting down")


def _get_allowed_origins() -> list[str]:
    """Get CORS origins from settings, with fallback for import-time errors."""
    try:
        return get_settings().get_allowed_origins_list()
    except Exception:
        # Tests that don't set env vars
        return ["http://localhost:3000"]


app = FastAPI(
    title="Portal Chat API",
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "chat", "description": "CV chat sessions and messages"},
        {"name": "indexing", "description": "Build and delete a subject's CV index"},
        {"name": "analytics", "description": "Per-subject chat analytics"},
    ],
)

# R: Middleware order (bottom = first to execute):
# 1. CORSMiddleware - handles preflight
# 2. RequestContextMiddleware - sets request_id
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_allowed_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-Id"],
    expose_headers=["X-Request-Id", "Retry-After", "X-RateLimit-Remaining"],
)

app.include_router(router, prefix="/v1")

register_exception_handlers(app)


@app.get("/healthz")
def healthz(request: Request):
    """
    R: Liveness plus a light view of in-memory state.

    Returns:
        ok: always True when the process serves requests
        active_sessions: sessions currently ACTIVE
        indexed_subjects: subjects with a published index
        request_id: Correlation ID for this request
    """
    return {
        "ok": True,
        "active_sessions": len(get_session_repository().list_active()),
        "indexed_subjects": len(get_vector_store().subject_ids()),
        "request_id": getattr(request.state, "request_id", None),
    }


@app.get("/metrics")
def metrics():
    """R: Expose Prometheus metrics (404 when disabled)."""
    if not get_settings().metrics_enabled:
        return Response(status_code=404)
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)
