"""
Name: ASGI Entrypoint (portal_chat.main)

Responsibilities:
  - Re-export the FastAPI app for ASGI servers and tooling
  - Keep the import path used by uvicorn and tests stable

Notes/Constraints:
  - No configuration or IO here; run with `uvicorn portal_chat.main:app`
"""

from portal_chat.api.main import app

__all__ = ["app"]
