"""
============================================================
CRC CARD - infrastructure/repositories/in_memory/analytics_sink.py
============================================================
Class: InMemoryAnalyticsSink

Responsibilities:
  - Receive chat analytics events (append-only).
  - Keep a bounded buffer per subject (deque(maxlen)).
  - Serve the read side used by the analytics summary.

Collaborators:
  - domain.analytics.ChatEvent / ChatEventType
  - domain.services.AnalyticsSink, domain.repositories.ChatEventRepository
  - threading.Lock
============================================================
"""

from __future__ import annotations

from collections import deque
from threading import Lock
from typing import Deque, Dict, List, Optional

from ....domain.analytics import ChatEvent, ChatEventType
from ....domain.repositories import ChatEventRepository
from ....domain.services import AnalyticsSink


class InMemoryAnalyticsSink(AnalyticsSink, ChatEventRepository):
    """In-memory, thread-safe analytics sink. Oldest events drop first."""

    def __init__(self, max_events_per_subject: int = 10_000):
        if max_events_per_subject <= 0:
            raise ValueError("max_events_per_subject must be > 0")
        self._max_events = max_events_per_subject
        self._lock = Lock()
        self._events: Dict[str, Deque[ChatEvent]] = {}

    def emit(self, event: ChatEvent) -> None:
        with self._lock:
            dq = self._events.get(event.subject_id)
            if dq is None:
                dq = deque(maxlen=self._max_events)
                self._events[event.subject_id] = dq
            dq.append(event)

    def list_events(
        self,
        subject_id: str,
        event_type: Optional[ChatEventType] = None,
        limit: Optional[int] = None,
    ) -> List[ChatEvent]:
        with self._lock:
            events = list(self._events.get(subject_id, []))

        if event_type is not None:
            events = [e for e in events if e.event_type is event_type]

        if limit is None or limit <= 0:
            return events
        return events[-limit:]
