"""
Name: Context Builder (RAG grounding assembler)

What it is
----------
Builds the CONTEXT block handed to the language model:
  - one line per chunk, annotated with its section: "[skills] Python, Go"
  - chunks in the order received (already ranked by similarity)
  - strict total size limit (max_chars), separators included
  - basic prompt-injection mitigation (chunks flagged at index time are marked)

Patterns
--------
- Assembler: turns domain entities into prompt text.
- Policy: size budget and suspicious-content marking.

CRC
---
Class: ContextBuilder
Responsibilities:
  - Format chunks with their section label
  - Stop at the first chunk that does not fit (later chunks are not considered)
  - Report which chunks were used, so sources match the context exactly
Collaborators:
  - domain.entities.ScoredChunk
  - application.prompt_injection_detector.is_flagged
Constraints:
  - Context is UNTRUSTED input (treated as data by the prompt)
  - One chunk per line: chunk text never introduces line breaks
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..crosscutting.logger import logger
from ..domain.entities import ScoredChunk
from .prompt_injection_detector import is_flagged

SUSPICIOUS_MARKER = "[suspicious content filtered]"
_LINE_SEPARATOR = "\n"
_LINE_BREAKS = re.compile(r"\s*[\r\n]+\s*")
_FLAG_THRESHOLD = 0.5


@dataclass(frozen=True)
class BuiltContext:
    text: str
    used: Tuple[ScoredChunk, ...]

    @property
    def sources(self) -> Tuple[str, ...]:
        """Sections of the used chunks, first-use order, no duplicates."""
        seen: dict[str, None] = {}
        for match in self.used:
            seen.setdefault(match.chunk.source_section, None)
        return tuple(seen)


def format_chunk_line(match: ScoredChunk) -> str:
    chunk = match.chunk
    text = _LINE_BREAKS.sub(" ", chunk.text).strip()
    if is_flagged(chunk.metadata, _FLAG_THRESHOLD):
        text = f"{SUSPICIOUS_MARKER} {text}"
    return f"[{chunk.source_section}] {text}"


class ContextBuilder:
    """
    R: Assemble the bounded, attributed context block.

    Parameters:
      - max_chars: hard budget for the whole block
    """

    def __init__(self, max_chars: int = 4000):
        if max_chars <= 0:
            raise ValueError("max_chars must be > 0")
        self.max_chars = max_chars

    def build(self, matches: Sequence[ScoredChunk]) -> BuiltContext:
        lines: List[str] = []
        used: List[ScoredChunk] = []
        total = 0

        for match in matches:
            line = format_chunk_line(match)
            extra = len(line) + (len(_LINE_SEPARATOR) if lines else 0)
            if total + extra > self.max_chars:
                logger.debug(
                    "Context budget reached",
                    extra={
                        "chunks_used": len(used),
                        "chunks_dropped": len(matches) - len(used),
                        "max_chars": self.max_chars,
                    },
                )
                break
            lines.append(line)
            used.append(match)
            total += extra

        return BuiltContext(text=_LINE_SEPARATOR.join(lines), used=tuple(used))
