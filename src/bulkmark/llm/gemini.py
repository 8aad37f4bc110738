"""Google Gemini LLM provider."""

import time
from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from ..exceptions import LLMError
from .base import LLMProvider

_DEFAULT_MAX_OUTPUT = 16_384

# FinishReason.MAX_TOKENS in the generativelanguage API
_FINISH_MAX_TOKENS = 2


def _finish_reason_name(reason) -> str:
    name = getattr(reason, "name", None)
    if name:
        return name
    return "MAX_TOKENS" if reason == _FINISH_MAX_TOKENS else str(reason)


class GeminiProvider(LLMProvider):
    name = "Gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.5-flash"):
        genai.configure(api_key=api_key)
        self._model_name = model
        self._max_output = _DEFAULT_MAX_OUTPUT

    @property
    def max_input_tokens(self) -> int:
        return 900_000

    @property
    def default_max_output_tokens(self) -> int:
        return self._max_output

    def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        tokens = min(
            max_output_tokens or self._max_output,
            self._max_output,
        )
        model = genai.GenerativeModel(
            self._model_name,
            system_instruction=system_prompt,
        )
        last_error = None
        for attempt in range(3):
            try:
                response = model.generate_content(
                    user_prompt,
                    generation_config={"max_output_tokens": tokens},
                )
                break
            except google_exceptions.ResourceExhausted as e:
                last_error = e
                if attempt < 2:
                    time.sleep(2 ** (attempt + 1))
            except google_exceptions.GoogleAPIError as e:
                raise LLMError(f"Gemini API error: {e}") from e
        else:
            raise LLMError(f"Rate limited after 3 attempts: {last_error}")

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            raise LLMError("No response from Gemini")
        candidate = candidates[0]
        if _finish_reason_name(candidate.finish_reason) == "MAX_TOKENS":
            raise self._truncated(tokens)
        parts = getattr(candidate.content, "parts", None) or []
        text = "".join(getattr(part, "text", "") for part in parts)
        if not text.strip():
            raise LLMError("No response from Gemini")
        return text.strip()
