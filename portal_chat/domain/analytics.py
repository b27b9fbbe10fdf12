"""
===============================================================================
CRC CARD: domain/analytics.py
===============================================================================

Module:
    Chat analytics models (domain)

Responsibilities:
    - Define the analytics event emitted by the chat core (ChatEvent).
    - Keep the event contract independent from any sink implementation.

Collaborators:
    - domain.services.AnalyticsSink: receives events.
    - application/analytics.py: builds and emits events (best-effort).

Notes:
    - Append-only; events never carry raw message text.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ChatEventType(str, Enum):
    SESSION_CREATED = "session_created"
    SESSION_ENDED = "session_ended"
    SESSION_EXPIRED = "session_expired"
    MESSAGE_SENT = "message_sent"
    THROTTLED = "throttled"
    MESSAGE_REJECTED = "message_rejected"
    INDEX_BUILT = "index_built"
    INDEX_DELETED = "index_deleted"


@dataclass(slots=True)
class ChatEvent:
    """Analytics event (ids and counters only)."""

    id: str
    event_type: ChatEventType
    subject_id: str
    session_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
