"""Text processing strategies (CV chunking)."""

from .cv_chunker import ChunkDraft, CVChunker, normalize_section_name

__all__ = ["ChunkDraft", "CVChunker", "normalize_section_name"]
