"""
Name: Fake Embedding Service (deterministic, offline)

Responsibilities:
  - Produce deterministic embeddings without network access (tests/CI/dev).
  - Keep lexical overlap meaningful: texts sharing words get similar vectors
    (hashed bag-of-words), so retrieval behaves plausibly offline.
  - Expose a stable model_id for the embedding-consistency check.

Collaborators:
  - domain.services.EmbeddingService (contract)
  - hashlib (stable hashing)
"""

from __future__ import annotations

import hashlib
import re
from typing import List, Sequence

from ...crosscutting.exceptions import EmbeddingProviderError
from ...crosscutting.logger import logger
from ...domain.services import EmbeddingService

# Same dimensionality as Google text-embedding-004
DEFAULT_EMBEDDING_DIMENSION = 768

_TOKEN_RE = re.compile(r"[a-z0-9+#]+")


def _tokens(text: str) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())


def _bucket_and_sign(token: str, dimension: int) -> tuple[int, float]:
    digest = hashlib.sha256(token.encode("utf-8")).digest()
    bucket = int.from_bytes(digest[:8], "big") % dimension
    sign = 1.0 if digest[8] & 1 else -1.0
    return bucket, sign


def _build_embedding(text: str, dimension: int) -> List[float]:
    """R: Hashed bag-of-words vector (not normalized; the store normalizes)."""
    vector = [0.0] * dimension
    for token in _tokens(text):
        bucket, sign = _bucket_and_sign(token, dimension)
        vector[bucket] += sign
    return vector


class FakeEmbeddingService(EmbeddingService):
    """
    R: Deterministic EmbeddingService for tests/CI.

    Not semantic: only word overlap counts.
    """

    MODEL_ID = "fake-embedding-v1"

    def __init__(
        self,
        *,
        dimension: int = DEFAULT_EMBEDDING_DIMENSION,
        model_id: str = MODEL_ID,
    ) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be > 0")
        self._dimension = dimension
        self._model_id = model_id
        logger.debug(
            "FakeEmbeddingService initialized",
            extra={"dimension": self._dimension, "model_id": self._model_id},
        )

    @property
    def model_id(self) -> str:
        return self._model_id

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        for idx, t in enumerate(texts):
            if not (t or "").strip():
                raise EmbeddingProviderError(
                    f"Batch text at index {idx} must not be empty"
                )
        return [_build_embedding(text, self._dimension) for text in texts]

    def embed_query(self, query: str) -> List[float]:
        if not (query or "").strip():
            raise EmbeddingProviderError("Query must not be empty")
        return _build_embedding(query, self._dimension)
