"""
===============================================================================
CRC CARD: schemas/indexing.py
===============================================================================
Module:
    HTTP schemas for building and deleting a subject's CV index

Responsibilities:
    - Accept structured CV content (sections with text items).
    - Report chunk counts, skipped entries and the index generation.

Collaborators:
    - application.content_indexer.IndexBuildResult
===============================================================================
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from .....application.content_indexer import IndexBuildResult


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------
class CVSectionReq(BaseModel):
    """One CV section, e.g. {"name": "experience", "items": ["..."]}."""

    name: str = Field(..., min_length=1, max_length=100)
    items: list[str] = Field(default_factory=list, max_length=500)


class BuildIndexReq(BaseModel):
    sections: list[CVSectionReq] = Field(..., max_length=50)


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------
class SkippedRes(BaseModel):
    section: str
    text: str
    reason: str


class IndexBuildRes(BaseModel):
    subject_id: str
    chunk_count: int
    generation: int
    embedding_model: str
    dimension: int
    flagged_chunks: int = 0
    skipped: list[SkippedRes] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: IndexBuildResult) -> "IndexBuildRes":
        return cls(
            subject_id=result.subject_id,
            chunk_count=result.chunk_count,
            generation=result.generation,
            embedding_model=result.embedding_model,
            dimension=result.dimension,
            flagged_chunks=result.flagged_chunks,
            skipped=[
                SkippedRes(section=s.section, text=s.text, reason=s.reason)
                for s in result.skipped
            ],
        )


class IndexDeletedRes(BaseModel):
    subject_id: str
    deleted: bool
