"""
In-memory CV content store.

Holds the structured sections of each subject's CV. Stands in for the
external profile service in local development and tests.
"""

from __future__ import annotations

from threading import Lock
from typing import Dict, List, Sequence

from ....domain.entities import CVSection
from ....domain.services import CVContentStore


class InMemoryCVContentStore(CVContentStore):
    def __init__(self):
        self._lock = Lock()
        self._content: Dict[str, tuple[CVSection, ...]] = {}

    def put(self, subject_id: str, sections: Sequence[CVSection]) -> None:
        with self._lock:
            self._content[subject_id] = tuple(sections)

    def remove(self, subject_id: str) -> None:
        with self._lock:
            self._content.pop(subject_id, None)

    def get_structured_content(self, subject_id: str) -> List[CVSection]:
        with self._lock:
            return list(self._content.get(subject_id, ()))
