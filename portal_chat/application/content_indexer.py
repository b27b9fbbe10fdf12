"""
===============================================================================
SERVICE: Content Indexer (Validate -> Chunk -> Embed -> Swap)
===============================================================================

What this service guarantees:
  1) Empty or malformed CV content never reaches the embedding provider
     (InvalidContentError, nothing is called).
  2) Entries too short to retrieve meaningfully, and duplicates, are skipped
     and reported, never silently dropped.
  3) The subject's index is replaced atomically: the old index stays
     queryable until the new one is complete.
  4) Builds for the same subject are serialized; generations only grow.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Class:
    ContentIndexer

Responsibilities:
    - Coerce structured content into CVSections.
    - Chunk via CVChunker, filter (too_short / duplicate).
    - Embed in batch via EmbeddingService.
    - Attach prompt-injection metadata per chunk (detector), count patterns.
    - Publish through VectorStore.upsert_index.
    - Rebuild from the CV content store; delete on privacy requests.
    - Emit analytics (index_built / index_deleted) and metrics.

Collaborators:
    - infrastructure.text.CVChunker
    - domain.services.EmbeddingService, CVContentStore, AnalyticsSink
    - domain.repositories.VectorStore
    - application.prompt_injection_detector.detect
===============================================================================
"""

from __future__ import annotations

import hashlib
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Final, List, Mapping, Optional, Sequence

from ..crosscutting.exceptions import EmbeddingProviderError, InvalidContentError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_index_build, record_prompt_injection_detected
from ..domain.analytics import ChatEventType
from ..domain.entities import ContentChunk, CVSection
from ..domain.repositories import VectorStore
from ..domain.services import AnalyticsSink, CVContentStore, EmbeddingService
from ..infrastructure.text import ChunkDraft, CVChunker
from .analytics import emit_chat_event
from .prompt_injection_detector import detect

SKIP_TOO_SHORT: Final[str] = "too_short"
SKIP_DUPLICATE: Final[str] = "duplicate"

_WHITESPACE: Final[re.Pattern] = re.compile(r"\s+")


@dataclass(frozen=True)
class SkippedContent:
    section: str
    text: str
    reason: str


@dataclass(frozen=True)
class IndexBuildResult:
    subject_id: str
    chunk_count: int
    generation: int
    embedding_model: str
    dimension: int
    skipped: List[SkippedContent] = field(default_factory=list)
    flagged_chunks: int = 0


def _chunk_id(subject_id: str, draft: ChunkDraft) -> str:
    digest = hashlib.sha256(
        f"{subject_id}\x1f{draft.section}\x1f{draft.text}".encode("utf-8")
    ).hexdigest()
    return f"{draft.position:04d}-{digest[:16]}"


def _dedupe_key(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip().casefold()


def coerce_sections(structured_content: Any) -> List[CVSection]:
    """
    Accept CVSection objects or mappings {"name": str, "items": [str, ...]}.

    Raises:
        InvalidContentError: empty input or wrong shapes.
    """
    if not structured_content or isinstance(structured_content, (str, bytes, Mapping)):
        raise InvalidContentError("CV content must be a non-empty list of sections")

    sections: List[CVSection] = []
    for i, raw in enumerate(structured_content):
        if isinstance(raw, CVSection):
            name, items = raw.name, raw.items
        elif isinstance(raw, Mapping):
            name, items = raw.get("name"), raw.get("items")
        else:
            raise InvalidContentError(f"Section #{i} is not a mapping")

        if not isinstance(name, str) or not name.strip():
            raise InvalidContentError(f"Section #{i} has no name")
        if isinstance(items, str):
            items = [items]
        if not isinstance(items, (list, tuple)) or not all(
            isinstance(item, str) for item in items
        ):
            raise InvalidContentError(f"Section '{name}' items must be strings")

        sections.append(CVSection(name=name.strip(), items=tuple(items)))
    return sections


class ContentIndexer:
    """
    R: Build and replace a subject's vector index from structured CV content.
    """

    def __init__(
        self,
        *,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        content_store: Optional[CVContentStore] = None,
        analytics: Optional[AnalyticsSink] = None,
        chunker: Optional[CVChunker] = None,
        min_chunk_tokens: int = 3,
    ):
        self._embeddings = embedding_service
        self._store = vector_store
        self._content_store = content_store
        self._analytics = analytics
        self._chunker = chunker or CVChunker()
        self._min_chunk_tokens = max(0, min_chunk_tokens)
        self._guard = threading.Lock()
        self._build_locks: Dict[str, threading.Lock] = {}

    @property
    def embedding_model(self) -> str:
        return self._embeddings.model_id

    def build_index(self, subject_id: str, structured_content: Any) -> IndexBuildResult:
        if not subject_id or not subject_id.strip():
            raise InvalidContentError("subject_id is required")

        sections = coerce_sections(structured_content)

        with self._lock_for(subject_id):
            try:
                result = self._build(subject_id, sections)
            except Exception:
                record_index_build("failed")
                raise

        record_index_build("success")
        emit_chat_event(
            self._analytics,
            ChatEventType.INDEX_BUILT,
            subject_id=subject_id,
            metadata={
                "chunk_count": result.chunk_count,
                "skipped": len(result.skipped),
                "generation": result.generation,
                "embedding_model": result.embedding_model,
            },
        )
        return result

    def reindex_from_store(self, subject_id: str) -> IndexBuildResult:
        if self._content_store is None:
            raise InvalidContentError("No CV content store configured")
        sections = self._content_store.get_structured_content(subject_id)
        if not sections:
            raise InvalidContentError(f"No CV content found for subject {subject_id}")
        return self.build_index(subject_id, sections)

    def delete_index(self, subject_id: str) -> bool:
        with self._lock_for(subject_id):
            removed = self._store.delete_index(subject_id)
        if removed:
            logger.info("Index deleted", extra={"subject_id": subject_id})
            emit_chat_event(
                self._analytics, ChatEventType.INDEX_DELETED, subject_id=subject_id
            )
        return removed

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------
    def _lock_for(self, subject_id: str) -> threading.Lock:
        with self._guard:
            return self._build_locks.setdefault(subject_id, threading.Lock())

    def _build(self, subject_id: str, sections: Sequence[CVSection]) -> IndexBuildResult:
        drafts = self._chunker.chunk(sections)
        kept, skipped = self._filter(drafts)

        if not kept:
            raise InvalidContentError(
                "CV content has no indexable text "
                f"({len(skipped)} entries skipped)"
            )

        texts = [d.text for d in kept]
        embeddings = self._embeddings.embed_batch(texts)
        if len(embeddings) != len(kept):
            raise EmbeddingProviderError(
                "Embedding provider returned an unexpected number of vectors"
            )

        model_id = self._embeddings.model_id
        chunks: List[ContentChunk] = []
        flagged = 0
        for draft, vector in zip(kept, embeddings):
            detection = detect(draft.text)
            metadata: Dict[str, Any] = {}
            if detection.patterns:
                metadata.update(detection.to_metadata())
                for pattern in detection.patterns:
                    record_prompt_injection_detected(pattern, direction="content")
            if detection.has_signals:
                flagged += 1
            chunks.append(
                ContentChunk(
                    chunk_id=_chunk_id(subject_id, draft),
                    subject_id=subject_id,
                    source_section=draft.section,
                    text=draft.text,
                    embedding=tuple(float(x) for x in vector),
                    position=draft.position,
                    entities=draft.entities,
                    metadata=metadata,
                )
            )

        try:
            index = self._store.upsert_index(subject_id, chunks, model_id)
        except ValueError as exc:
            # Mixed vector sizes from the provider
            raise EmbeddingProviderError(
                "Embedding provider returned inconsistent dimensions",
                original_error=exc,
            ) from exc

        logger.info(
            "Index built",
            extra={
                "subject_id": subject_id,
                "chunk_count": len(chunks),
                "skipped": len(skipped),
                "flagged_chunks": flagged,
                "generation": index.generation,
                "embedding_model": model_id,
                "dimension": index.dimension,
            },
        )

        return IndexBuildResult(
            subject_id=subject_id,
            chunk_count=len(chunks),
            generation=index.generation,
            embedding_model=model_id,
            dimension=index.dimension,
            skipped=skipped,
            flagged_chunks=flagged,
        )

    def _filter(self, drafts: Sequence[ChunkDraft]):
        kept: List[ChunkDraft] = []
        skipped: List[SkippedContent] = []
        seen: set[str] = set()

        for draft in drafts:
            if len(draft.text.split()) < self._min_chunk_tokens:
                skipped.append(SkippedContent(draft.section, draft.text, SKIP_TOO_SHORT))
                continue
            key = _dedupe_key(draft.text)
            if key in seen:
                skipped.append(SkippedContent(draft.section, draft.text, SKIP_DUPLICATE))
                continue
            seen.add(key)
            kept.append(draft)

        return kept, skipped
