"""
===============================================================================
SERVICE: Retrieval Engine (query -> bounded, attributed context)
===============================================================================

CRC CARD
--------
Class:
    RetrievalEngine

Responsibilities:
    - Embed the query with the SAME embedding service used for indexing.
    - Refuse to compare vectors from different embedding models
      (EmbeddingModelMismatchError).
    - Query the vector store (top_k + similarity threshold).
    - Assemble the context block through ContextBuilder.
    - Flag low confidence when nothing clears the threshold.
    - Record stage timings (embed / retrieve).

Collaborators:
    - domain.services.EmbeddingService
    - domain.repositories.VectorStore
    - application.context_builder.ContextBuilder
    - crosscutting.metrics / crosscutting.timing

Errors:
    - EmbeddingProviderError: propagated (retry already happened in the
      guarded provider).
    - EmbeddingModelMismatchError: index built with another model.
    - InvalidContentError: query embedding has the wrong dimension.
===============================================================================
"""

from __future__ import annotations

from typing import Optional

from ..crosscutting.exceptions import EmbeddingModelMismatchError, InvalidContentError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_stage_metrics
from ..crosscutting.timing import StageTimings
from ..domain.entities import RetrievalResult
from ..domain.repositories import VectorStore
from ..domain.services import EmbeddingService
from ..domain.value_objects import RetrievalOptions
from .context_builder import ContextBuilder

_STAGE_EMBED = "embed"
_STAGE_RETRIEVE = "retrieve"


class RetrievalEngine:
    """R: Turn a visitor question into a RetrievalResult for one subject."""

    def __init__(
        self,
        *,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        default_options: Optional[RetrievalOptions] = None,
    ):
        self._embeddings = embedding_service
        self._store = vector_store
        self._default_options = default_options or RetrievalOptions()

    @property
    def embedding_model(self) -> str:
        return self._embeddings.model_id

    def retrieve(
        self,
        subject_id: str,
        query_text: str,
        options: Optional[RetrievalOptions] = None,
        *,
        timings: Optional[StageTimings] = None,
    ) -> RetrievalResult:
        opts = options or self._default_options
        timings = timings or StageTimings()

        index = self._store.get_index(subject_id)
        if index is None:
            logger.info("No index for subject", extra={"subject_id": subject_id})
            return RetrievalResult(matches=(), context="", sources=(), low_confidence=True)

        if index.embedding_model != self.embedding_model:
            logger.error(
                "Embedding model mismatch",
                extra={
                    "subject_id": subject_id,
                    "index_model": index.embedding_model,
                    "query_model": self.embedding_model,
                },
            )
            raise EmbeddingModelMismatchError(
                "The CV index was built with a different embedding model; "
                "rebuild the index before chatting."
            )

        with timings.measure(_STAGE_EMBED):
            query_embedding = self._embeddings.embed_query(query_text)

        with timings.measure(_STAGE_RETRIEVE):
            try:
                matches = self._store.query(
                    subject_id,
                    query_embedding,
                    opts.top_k,
                    opts.similarity_threshold,
                )
            except ValueError as exc:
                raise InvalidContentError(
                    "Query embedding does not match the index dimension",
                    original_error=exc,
                ) from exc

        record_stage_metrics(
            embed_seconds=timings.seconds(_STAGE_EMBED),
            retrieve_seconds=timings.seconds(_STAGE_RETRIEVE),
        )

        if not matches:
            logger.info(
                "No chunk cleared the similarity threshold",
                extra={
                    "subject_id": subject_id,
                    "threshold": opts.similarity_threshold,
                    "index_generation": index.generation,
                },
            )
            return RetrievalResult(
                matches=(),
                context="",
                sources=(),
                low_confidence=True,
                index_generation=index.generation,
            )

        built = ContextBuilder(max_chars=opts.max_context_chars).build(matches)

        logger.info(
            "Retrieval completed",
            extra={
                "subject_id": subject_id,
                "matches": len(matches),
                "chunks_used": len(built.used),
                "context_chars": len(built.text),
                "top_similarity": round(matches[0].similarity, 4),
                "index_generation": index.generation,
            },
        )

        return RetrievalResult(
            matches=tuple(built.used),
            context=built.text,
            sources=built.sources,
            # Budget too small for even the best chunk
            low_confidence=not built.used,
            index_generation=index.generation,
            chunks_used=len(built.used),
        )
