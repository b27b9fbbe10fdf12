"""
Name: Google Embedding Service (Adapter)

Responsibilities:
  - Implement EmbeddingService with the Google GenAI SDK.
  - Batch document embeddings (API limit: 10 per request).
  - Use distinct task types for documents vs queries.
  - Validate response shape and dimensionality.

Collaborators:
  - google.genai.Client (models.embed_content)
  - crosscutting.exceptions.EmbeddingProviderError (malformed responses)

Notes:
  - Transport errors propagate unchanged so the provider call policy can
    classify them (transient vs permanent); see guarded_services.py.
"""

from __future__ import annotations

from typing import Iterator, Sequence

from google import genai

from ...crosscutting.exceptions import EmbeddingProviderError
from ...crosscutting.logger import logger
from ...domain.services import EmbeddingService


def _batched(items: Sequence[str], batch_size: int) -> Iterator[list[str]]:
    """R: Yield items in fixed-size batches (preserves ordering)."""
    if batch_size <= 0:
        raise ValueError("batch_size must be > 0")
    for i in range(0, len(items), batch_size):
        yield list(items[i : i + batch_size])


class GoogleEmbeddingService(EmbeddingService):
    """R: Google text-embedding implementation of EmbeddingService."""

    MODEL_ID = "text-embedding-004"
    EXPECTED_DIMENSIONS = 768
    BATCH_LIMIT = 10
    TASK_DOCUMENT = "retrieval_document"
    TASK_QUERY = "retrieval_query"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: genai.Client | None = None,
        model_id: str | None = None,
        batch_limit: int | None = None,
        expected_dimensions: int | None = EXPECTED_DIMENSIONS,
    ):
        """
        R: Initialize Google Embedding Service.

        Args:
            api_key: Google API key (injected by the container)
            client: Optional pre-built genai.Client (tests)
            model_id: Override model id (default: text-embedding-004)
            batch_limit: Override API batch limit (default: 10)
            expected_dimensions: Validate vector length (None skips)
        """
        resolved_key = (api_key or "").strip()
        if not resolved_key and client is None:
            logger.error("GoogleEmbeddingService: GOOGLE_API_KEY not configured")
            raise EmbeddingProviderError("GOOGLE_API_KEY not configured")

        self._model_id = (model_id or self.MODEL_ID).strip()
        self._batch_limit = batch_limit or self.BATCH_LIMIT
        self._expected_dimensions = expected_dimensions
        self._client = client or genai.Client(api_key=resolved_key)

        logger.info(
            "GoogleEmbeddingService initialized",
            extra={
                "model_id": self._model_id,
                "batch_limit": self._batch_limit,
                "expected_dimensions": self._expected_dimensions,
            },
        )

    @property
    def model_id(self) -> str:
        return self._model_id

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """R: Embeddings for multiple texts (indexing mode)."""
        if not texts:
            return []

        results: list[list[float]] = []
        for batch in _batched(texts, self._batch_limit):
            results.extend(self._embed(contents=batch, task_type=self.TASK_DOCUMENT))

        logger.info(
            "GoogleEmbeddingService: Embedded texts",
            extra={"model_id": self._model_id, "text_count": len(texts)},
        )
        return results

    def embed_query(self, query: str) -> list[float]:
        """R: Embedding for a single query (search mode)."""
        if not (query or "").strip():
            raise EmbeddingProviderError("Query must not be empty")
        return self._embed(contents=[query], task_type=self.TASK_QUERY)[0]

    def _embed(self, *, contents: Sequence[str], task_type: str) -> list[list[float]]:
        resp = self._client.models.embed_content(
            model=self._model_id,
            contents=list(contents),
            config={"task_type": task_type},
        )

        embeddings = getattr(resp, "embeddings", None) or []
        if len(embeddings) != len(contents):
            raise EmbeddingProviderError(
                f"Embedding response size mismatch: expected {len(contents)}, got {len(embeddings)}",
            )

        vectors: list[list[float]] = []
        for idx, embedding in enumerate(embeddings):
            values = getattr(embedding, "values", None)
            if not values:
                raise EmbeddingProviderError(f"Empty embedding response at index {idx}")
            vector = list(values)
            if (
                self._expected_dimensions is not None
                and len(vector) != self._expected_dimensions
            ):
                raise EmbeddingProviderError(
                    "Unexpected embedding dimensionality: "
                    f"expected {self._expected_dimensions}, got {len(vector)}",
                )
            vectors.append(vector)

        return vectors
