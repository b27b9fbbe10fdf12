"""
Name: Google LLM Service (Adapter)

Responsibilities:
  - Implement LLMService.complete with Gemini via the Google GenAI SDK.
  - Apply the output token cap and temperature per request.
  - Fail on empty completions (treated as a provider error).

Collaborators:
  - google.genai.Client (models.generate_content)
  - google.genai.types.GenerateContentConfig

Notes:
  - Prompt assembly lives in application/prompt_builder.py.
  - Transport errors propagate unchanged to the provider call policy.
"""

from __future__ import annotations

from google import genai
from google.genai import types

from ...crosscutting.exceptions import GenerationProviderError
from ...crosscutting.logger import logger
from ...domain.services import LLMService


class GoogleLLMService(LLMService):
    """R: Google Gemini implementation of LLMService."""

    DEFAULT_MODEL_ID = "gemini-1.5-flash"

    def __init__(
        self,
        api_key: str | None = None,
        *,
        client: genai.Client | None = None,
        model_id: str | None = None,
    ) -> None:
        resolved_key = (api_key or "").strip()
        if not resolved_key and client is None:
            logger.error("GoogleLLMService: GOOGLE_API_KEY not configured")
            raise GenerationProviderError("GOOGLE_API_KEY not configured")

        self._client = client or genai.Client(api_key=resolved_key)
        self._model_id = (model_id or self.DEFAULT_MODEL_ID).strip()

        logger.info("GoogleLLMService initialized", extra={"model_id": self._model_id})

    @property
    def model_id(self) -> str:
        return self._model_id

    def complete(self, prompt: str, max_tokens: int, temperature: float) -> str:
        if not (prompt or "").strip():
            raise GenerationProviderError("Prompt must not be empty")

        response = self._client.models.generate_content(
            model=self._model_id,
            contents=prompt,
            config=types.GenerateContentConfig(
                max_output_tokens=max_tokens,
                temperature=temperature,
            ),
        )
        text = (getattr(response, "text", "") or "").strip()
        if not text:
            raise GenerationProviderError("Empty completion from language model")

        logger.info(
            "GoogleLLMService: Response generated",
            extra={"model_id": self._model_id, "answer_chars": len(text)},
        )
        return text
