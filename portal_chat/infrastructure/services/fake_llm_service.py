"""
Name: Fake LLM Service (deterministic, offline)

Responsibilities:
  - Return a stable completion derived from the prompt (tests/CI/dev).
  - Echo the first annotated context line so answers stay grounded offline.
  - Honor max_tokens approximately (4 chars per token).
"""

from __future__ import annotations

import hashlib
import re

from ...crosscutting.exceptions import GenerationProviderError
from ...crosscutting.logger import logger
from ...domain.services import LLMService

_CHARS_PER_TOKEN = 4
_CONTEXT_LINE_RE = re.compile(r"^\[([a-z][a-z _-]*)\] (.+)$", re.MULTILINE)
_QUESTION_RE = re.compile(r"^Visitor question: (.+)$", re.MULTILINE)


def _build_answer(prompt: str) -> str:
    digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:12]
    question_match = _QUESTION_RE.search(prompt)
    question = question_match.group(1).strip() if question_match else ""

    context_match = _CONTEXT_LINE_RE.search(prompt)
    if context_match:
        section, text = context_match.group(1), context_match.group(2).strip()
        return f"From my {section}: {text} (simulated {digest})"
    return f"Simulated answer ({digest}) to: {question}"


class FakeLLMService(LLMService):
    """R: Deterministic LLMService for tests/CI."""

    MODEL_ID = "fake-llm-v1"

    def __init__(self) -> None:
        logger.debug("FakeLLMService initialized", extra={"model_id": self.MODEL_ID})

    @property
    def model_id(self) -> str:
        return self.MODEL_ID

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        if not (prompt or "").strip():
            raise GenerationProviderError("Prompt must not be empty")
        answer = _build_answer(prompt)
        return answer[: max(1, max_tokens) * _CHARS_PER_TOKEN]
