"""
===============================================================================
CRC CARD: portal_chat/interfaces/api/http/routers/__init__.py
===============================================================================

Name:
    Routers Package (HTTP)

Responsibilities:
    - Expose feature routers to be composed by router.py.

Notes:
    - No endpoints here. Re-exports only.
===============================================================================
"""

from .chat import router as chat_router
from .indexing import router as indexing_router

__all__ = [
    "chat_router",
    "indexing_router",
]
