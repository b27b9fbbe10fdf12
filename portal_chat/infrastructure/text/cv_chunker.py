"""
===============================================================================
CRC CARD - infrastructure/text/cv_chunker.py
===============================================================================
Class:
  CVChunker (Strategy)

Responsibilities:
  - Turn CV sections into retrievable text units: one per bullet/paragraph.
  - Pack long entries at sentence boundaries up to max_chunk_chars; only a
    single oversized sentence is split (at word boundaries).
  - Tag each unit with its section, document position and entity hints
    (capitalized names such as companies, skills, schools).

Collaborators:
  - domain.entities.CVSection (input)
  - application.content_indexer.ContentIndexer (consumer)
===============================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, Iterable, Sequence

from ...domain.entities import CVSection

_PARAGRAPH_BREAK: Final[re.Pattern] = re.compile(r"\n\s*\n")
_SENTENCE_END: Final[re.Pattern] = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE: Final[re.Pattern] = re.compile(r"[ \t]+")
_BULLET_PREFIX: Final[re.Pattern] = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")
_ENTITY: Final[re.Pattern] = re.compile(r"\b[A-Z][A-Za-z0-9+#&.-]*[A-Za-z0-9+#]|\b[A-Z]\b")
_SECTION_NAME: Final[re.Pattern] = re.compile(r"[^a-z0-9]+")

_ENTITY_STOPWORDS: Final[frozenset[str]] = frozenset(
    {"I", "A", "An", "The", "In", "At", "On", "And", "Or", "For", "With", "As", "My"}
)


@dataclass(frozen=True)
class ChunkDraft:
    """Text unit ready to be embedded."""

    section: str
    text: str
    position: int
    entities: tuple[str, ...] = ()


def normalize_section_name(name: str) -> str:
    """'Work Experience' -> 'work_experience'."""
    return _SECTION_NAME.sub("_", (name or "").strip().lower()).strip("_")


def extract_entities(text: str) -> tuple[str, ...]:
    """Capitalized tokens, excluding sentence-initial words and stopwords."""
    found: dict[str, None] = {}
    for sentence in _SENTENCE_END.split(text):
        for i, match in enumerate(_ENTITY.finditer(sentence)):
            token = match.group(0).rstrip(".")
            if i == 0 and match.start() == 0:
                continue
            if token in _ENTITY_STOPWORDS:
                continue
            found.setdefault(token, None)
    return tuple(found)


class CVChunker:
    """
    Section-aware CV chunker.

    Parameters:
      - max_chunk_chars: upper bound for a chunk (characters)
    """

    def __init__(self, max_chunk_chars: int = 1200) -> None:
        if max_chunk_chars <= 0:
            raise ValueError("max_chunk_chars must be > 0")
        self.max_chunk_chars = max_chunk_chars

    def chunk(self, sections: Sequence[CVSection]) -> list[ChunkDraft]:
        drafts: list[ChunkDraft] = []
        position = 0
        for section in sections:
            name = normalize_section_name(section.name)
            for item in section.items:
                for text in self._split_item(item):
                    drafts.append(
                        ChunkDraft(
                            section=name,
                            text=text,
                            position=position,
                            entities=extract_entities(text),
                        )
                    )
                    position += 1
        return drafts

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------
    def _split_item(self, item: str) -> Iterable[str]:
        for paragraph in _PARAGRAPH_BREAK.split(item or ""):
            lines = [
                _WHITESPACE.sub(" ", _BULLET_PREFIX.sub("", line)).strip()
                for line in paragraph.splitlines()
            ]
            text = " ".join(line for line in lines if line)
            if not text:
                continue
            if len(text) <= self.max_chunk_chars:
                yield text
            else:
                yield from self._pack_sentences(text)

    def _pack_sentences(self, text: str) -> list[str]:
        chunks: list[str] = []
        current = ""
        for sentence in _SENTENCE_END.split(text):
            sentence = sentence.strip()
            if not sentence:
                continue
            for piece in self._split_oversized(sentence):
                candidate = f"{current} {piece}".strip() if current else piece
                if len(candidate) > self.max_chunk_chars and current:
                    chunks.append(current)
                    current = piece
                else:
                    current = candidate
        if current:
            chunks.append(current)
        return chunks

    def _split_oversized(self, sentence: str) -> list[str]:
        if len(sentence) <= self.max_chunk_chars:
            return [sentence]

        pieces: list[str] = []
        current = ""
        for word in sentence.split(" "):
            candidate = f"{current} {word}".strip() if current else word
            if len(candidate) > self.max_chunk_chars and current:
                pieces.append(current)
                current = word
            else:
                current = candidate
        if current:
            pieces.append(current)
        return pieces
