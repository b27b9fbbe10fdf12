"""
===============================================================================
CRC CARD: portal_chat/context.py (request-scoped context)
===============================================================================

Responsibilities:
  - Keep request-scoped context in ContextVars (thread and async safe).
  - Correlate logs and metrics without threading parameters through the stack.
  - Minimal helpers: set_*(), get_context_dict(), clear_context().

Collaborators:
  - crosscutting.middleware: sets request_id/method/path per request.
  - crosscutting.logger: enriches records with get_context_dict().
  - application.usecases.send_message: sets session_id/subject_id.

Constraints:
  - Primitive values only (str) so records serialize safely.
  - Empty defaults ("") instead of None.
===============================================================================
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Final

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
http_method_var: ContextVar[str] = ContextVar("http_method", default="")
http_path_var: ContextVar[str] = ContextVar("http_path", default="")

# Chat correlation (never message content)
session_id_var: ContextVar[str] = ContextVar("session_id", default="")
subject_id_var: ContextVar[str] = ContextVar("subject_id", default="")

_CTX_REQUEST_ID: Final[str] = "request_id"
_CTX_METHOD: Final[str] = "method"
_CTX_PATH: Final[str] = "path"
_CTX_SESSION_ID: Final[str] = "session_id"
_CTX_SUBJECT_ID: Final[str] = "subject_id"


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = ""
) -> None:
    """Set the minimal request context. Empty strings mean "not available"."""
    request_id_var.set(request_id or "")
    http_method_var.set(method or "")
    http_path_var.set(path or "")


def set_chat_context(*, session_id: str = "", subject_id: str = "") -> None:
    """Set chat identifiers for log correlation."""
    if session_id:
        session_id_var.set(session_id)
    if subject_id:
        subject_id_var.set(subject_id)


def get_context_dict() -> dict[str, str]:
    """Return the current context as a dict, omitting empty keys."""
    ctx: dict[str, str] = {}

    if val := request_id_var.get():
        ctx[_CTX_REQUEST_ID] = val
    if val := http_method_var.get():
        ctx[_CTX_METHOD] = val
    if val := http_path_var.get():
        ctx[_CTX_PATH] = val
    if val := session_id_var.get():
        ctx[_CTX_SESSION_ID] = val
    if val := subject_id_var.get():
        ctx[_CTX_SUBJECT_ID] = val

    return ctx


def clear_context() -> None:
    """Clear the context at the end of a request so values never leak."""
    request_id_var.set("")
    http_method_var.set("")
    http_path_var.set("")
    session_id_var.set("")
    subject_id_var.set("")
