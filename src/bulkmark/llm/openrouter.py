"""OpenRouter provider (OpenAI-compatible router)."""

from .openai import OpenAIProvider

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(OpenAIProvider):
    name = "OpenRouter"

    def __init__(self, api_key: str, model: str = "openai/gpt-4o-mini"):
        super().__init__(api_key=api_key, model=model, base_url=OPENROUTER_BASE_URL)
        # The router speaks the classic max_tokens parameter for every model
        self._use_max_completion_tokens = False

    @property
    def max_input_tokens(self) -> int:
        return 120_000
