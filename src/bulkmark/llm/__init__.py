"""LLM provider factory."""

from typing import Optional

from ..exceptions import ConfigError, TruncatedResponseError
from ..services import get_service
from .anthropic import AnthropicProvider
from .base import LLMProvider
from .gemini import GeminiProvider
from .openai import OpenAIProvider
from .openrouter import OpenRouterProvider

_PROVIDERS = {
    "google": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "openrouter": OpenRouterProvider,
}


def get_llm_provider(
    service_id: str,
    api_key: str,
    model: Optional[str] = None,
) -> LLMProvider:
    """Create and return the provider for a service id."""
    service = get_service(service_id)
    provider_cls = _PROVIDERS.get(service.id)
    if provider_cls is None:
        raise ConfigError(f"Unsupported service: {service_id}")
    return provider_cls(api_key=api_key, model=model or service.default_model)


def call_provider(
    service_id: str,
    api_key: str,
    system_prompt: str,
    user_prompt: str,
    max_output_tokens: Optional[int] = None,
    model: Optional[str] = None,
) -> str:
    """One request/response exchange with the given provider."""
    provider = get_llm_provider(service_id, api_key, model=model)
    return provider.generate(system_prompt, user_prompt, max_output_tokens=max_output_tokens)


def check_api_key(service_id: str, api_key: str, model: Optional[str] = None) -> bool:
    """Send a tiny prompt to check the key works.

    Raises LLMError when the provider rejects the key.
    """
    try:
        call_provider(service_id, api_key, "Reply with one word.", "Hi", max_output_tokens=5, model=model)
    except TruncatedResponseError:
        # Hitting the 5-token budget still proves the key was accepted
        pass
    return True


__all__ = [
    "LLMProvider",
    "call_provider",
    "check_api_key",
    "get_llm_provider",
]
