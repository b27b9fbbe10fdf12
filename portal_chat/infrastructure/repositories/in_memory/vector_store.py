"""
============================================================
CRC CARD - infrastructure/repositories/in_memory/vector_store.py
============================================================
Class: InMemoryVectorStore

Responsibilities:
  - Keep one immutable index snapshot per subject.
  - Replace a subject's index atomically (copy-on-write + reference swap).
  - Answer cosine nearest-neighbor queries over L2-normalized float64 vectors.
  - Delete a subject's data on request.

Collaborators:
  - domain.entities.ContentChunk / VectorIndex / ScoredChunk
  - domain.repositories.VectorStore (contract)
  - numpy (vectorized similarity)
  - threading.Lock (guards the subject -> snapshot map)

Constraints / Notes:
  - Snapshots are built outside the lock; only the swap happens under it,
    so readers always hold either the old or the new snapshot.
  - Queries never lock while scoring: they read one snapshot reference.
  - Ordering: similarity desc, ties by document position (stable).
  - Similarities are rounded to 12 decimals before comparison.
============================================================
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional, Sequence

import numpy as np

from ....domain.entities import ContentChunk, ScoredChunk, VectorIndex
from ....domain.repositories import VectorStore

_SIMILARITY_DECIMALS = 12


def _l2_normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    # Zero vectors stay zero (similarity 0 against anything)
    norms[norms == 0.0] = 1.0
    return matrix / norms


@dataclass(frozen=True)
class _Snapshot:
    index: VectorIndex
    matrix: np.ndarray  # (n_chunks, dimension), normalized, read-only
    positions: np.ndarray


class InMemoryVectorStore(VectorStore):
    """
    Thread-safe in-memory vector store.

    Mental model:
    - _snapshots works like a table: subject_id -> _Snapshot
    - A rebuild prepares a complete _Snapshot first, then swaps the reference.
    """

    def __init__(self):
        self._lock = Lock()
        self._snapshots: Dict[str, _Snapshot] = {}
        self._generations = itertools.count(1)

    def upsert_index(
        self, subject_id: str, chunks: Sequence[ContentChunk], embedding_model: str
    ) -> VectorIndex:
        if not chunks:
            raise ValueError("cannot publish an empty index")

        dimension = chunks[0].dimension
        index = VectorIndex(
            subject_id=subject_id,
            chunks=tuple(chunks),
            embedding_model=embedding_model,
            dimension=dimension,
            generation=next(self._generations),
        )

        matrix = _l2_normalize_rows(
            np.array([c.embedding for c in index.chunks], dtype=np.float64)
        )
        matrix.setflags(write=False)
        positions = np.array([c.position for c in index.chunks], dtype=np.int64)
        positions.setflags(write=False)
        snapshot = _Snapshot(index=index, matrix=matrix, positions=positions)

        with self._lock:
            self._snapshots[subject_id] = snapshot

        return index

    def _snapshot(self, subject_id: str) -> Optional[_Snapshot]:
        with self._lock:
            return self._snapshots.get(subject_id)

    def get_index(self, subject_id: str) -> Optional[VectorIndex]:
        snapshot = self._snapshot(subject_id)
        return snapshot.index if snapshot else None

    def query(
        self,
        subject_id: str,
        query_embedding: Sequence[float],
        top_k: int,
        similarity_threshold: float,
    ) -> List[ScoredChunk]:
        if top_k <= 0:
            return []

        snapshot = self._snapshot(subject_id)
        if snapshot is None:
            return []

        q = np.asarray(query_embedding, dtype=np.float64)
        if q.shape != (snapshot.index.dimension,):
            raise ValueError(
                f"query dimension {q.shape[0] if q.ndim else 0} does not match "
                f"index dimension {snapshot.index.dimension}"
            )

        q_norm = np.linalg.norm(q)
        if q_norm == 0.0:
            return []

        sims = np.round(snapshot.matrix @ (q / q_norm), _SIMILARITY_DECIMALS)
        candidates = np.nonzero(sims >= similarity_threshold)[0]
        if candidates.size == 0:
            return []

        # lexsort: last key is primary (similarity desc), then position asc
        order = np.lexsort((snapshot.positions[candidates], -sims[candidates]))
        selected = candidates[order][:top_k]

        chunks = snapshot.index.chunks
        return [ScoredChunk(chunk=chunks[i], similarity=float(sims[i])) for i in selected]

    def delete_index(self, subject_id: str) -> bool:
        with self._lock:
            return self._snapshots.pop(subject_id, None) is not None

    def subject_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._snapshots)
