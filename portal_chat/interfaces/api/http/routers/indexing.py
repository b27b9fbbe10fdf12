"""
===============================================================================
CRC CARD: portal_chat/interfaces/api/http/routers/indexing.py
===============================================================================
Name:
    Indexing Router

Responsibilities:
    - Build (or replace) a subject's CV index from structured sections.
    - Rebuild from the stored CV content (refresh after an update).
    - Delete the index and stored content (privacy requests).

Collaborators:
    - application.content_indexer.ContentIndexer
    - infrastructure InMemoryCVContentStore (structured content source)
    - schemas.indexing
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from .....application.content_indexer import ContentIndexer, coerce_sections
from .....container import get_content_indexer, get_content_store
from .....infrastructure.repositories.in_memory import InMemoryCVContentStore
from ..schemas.indexing import BuildIndexReq, IndexBuildRes, IndexDeletedRes

router = APIRouter()


@router.put(
    "/subjects/{subject_id}/index",
    response_model=IndexBuildRes,
    tags=["indexing"],
)
def build_index(
    subject_id: str,
    req: BuildIndexReq,
    indexer: ContentIndexer = Depends(get_content_indexer),
    content_store: InMemoryCVContentStore = Depends(get_content_store),
):
    """Replace the subject's index. The previous index serves until the swap."""
    sections = coerce_sections([s.model_dump() for s in req.sections])
    result = indexer.build_index(subject_id, sections)
    content_store.put(subject_id, sections)
    return IndexBuildRes.from_result(result)


@router.post(
    "/subjects/{subject_id}/index/refresh",
    response_model=IndexBuildRes,
    tags=["indexing"],
)
def refresh_index(
    subject_id: str,
    indexer: ContentIndexer = Depends(get_content_indexer),
):
    return IndexBuildRes.from_result(indexer.reindex_from_store(subject_id))


@router.delete(
    "/subjects/{subject_id}/index",
    response_model=IndexDeletedRes,
    tags=["indexing"],
)
def delete_index(
    subject_id: str,
    indexer: ContentIndexer = Depends(get_content_indexer),
    content_store: InMemoryCVContentStore = Depends(get_content_store),
):
    deleted = indexer.delete_index(subject_id)
    content_store.remove(subject_id)
    return IndexDeletedRes(subject_id=subject_id, deleted=deleted)
