"""
===============================================================================
CRC CARD - crosscutting/client_identity.py
===============================================================================
Name:
    Client Identity

Responsibilities:
    - Derive a stable visitor key for callers that do not send a visitor_id.
    - Hash the client IP so raw addresses never reach sessions, logs or
      analytics.

Collaborators:
    - starlette Request (client address, headers)
    - crosscutting.config.get_settings (trust_forwarded_for)

Notes:
    - X-Forwarded-For is only honored when the deployment sits behind a
      trusted proxy; otherwise any caller could pick its own key.
===============================================================================
"""

from __future__ import annotations

import hashlib

from starlette.requests import Request

from .config import get_settings

_UNKNOWN_CLIENT = "unknown"


def client_ip(request: Request, *, trust_forwarded_for: bool = False) -> str:
    # R: Proxy header first (original client is the leftmost entry)
    if trust_forwarded_for:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            ip = forwarded_for.split(",")[0].strip()
            if ip:
                return ip

    # R: Direct peer address
    client = request.client
    if client and client.host:
        return client.host

    return _UNKNOWN_CLIENT


def get_client_identifier(request: Request) -> str:
    """Visitor key for anonymous callers: ``ip:<sha256 prefix>``."""
    ip = client_ip(request, trust_forwarded_for=get_settings().trust_forwarded_for)
    digest = hashlib.sha256(ip.encode("utf-8")).hexdigest()[:16]
    return f"ip:{digest}"


def resolve_visitor_key(request: Request, visitor_id: str | None) -> str:
    """Explicit visitor_id wins; otherwise the caller's hashed IP."""
    if visitor_id and visitor_id.strip():
        return visitor_id.strip()
    return get_client_identifier(request)
