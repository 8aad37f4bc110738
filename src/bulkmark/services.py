"""Supported AI services and their credential settings."""

from dataclasses import dataclass

from .exceptions import ConfigError


@dataclass(frozen=True)
class ServiceConfig:
    """Static description of one AI provider."""

    id: str
    name: str
    storage_key: str  # key under which the API key is stored
    env_var: str
    default_model: str
    key_prefix: str

    def validate_key(self, key: str) -> bool:
        """Check the key format before saving it."""
        return key.startswith(self.key_prefix) and len(key) >= 30


SERVICES: dict[str, ServiceConfig] = {
    "google": ServiceConfig(
        id="google",
        name="Google",
        storage_key="geminiApiKey",
        env_var="GEMINI_API_KEY",
        default_model="gemini-2.5-flash",
        key_prefix="AI",
    ),
    "openai": ServiceConfig(
        id="openai",
        name="OpenAI",
        storage_key="openaiApiKey",
        env_var="OPENAI_API_KEY",
        default_model="gpt-4o-mini",
        key_prefix="sk-",
    ),
    "anthropic": ServiceConfig(
        id="anthropic",
        name="Anthropic",
        storage_key="anthropicApiKey",
        env_var="ANTHROPIC_API_KEY",
        default_model="claude-haiku-4-5-20251001",
        key_prefix="sk-ant-",
    ),
    "openrouter": ServiceConfig(
        id="openrouter",
        name="OpenRouter",
        storage_key="openrouterApiKey",
        env_var="OPENROUTER_API_KEY",
        default_model="openai/gpt-4o-mini",
        key_prefix="sk-or-",
    ),
}

DEFAULT_SERVICE_ID = "google"
SELECTED_SERVICE_STORAGE_KEY = "selectedService"


def get_service(service_id: str) -> ServiceConfig:
    """Look up a service, raising ConfigError for unknown ids."""
    service = SERVICES.get(service_id)
    if service is None:
        raise ConfigError(f"Unknown service: {service_id}")
    return service


def get_service_ids() -> list[str]:
    return list(SERVICES)
