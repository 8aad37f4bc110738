"""Configuration loading and validation."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigError
from .services import SERVICES

_DEFAULT_KEEPALIVE_SECONDS = 20.0


@dataclass
class Config:
    """Application configuration."""

    data_dir: Path = field(default_factory=lambda: Path.home() / ".bulkmark")
    bookmarks_file: Optional[Path] = None
    provider: str = ""
    model: str = ""
    keepalive_interval: float = _DEFAULT_KEEPALIVE_SECONDS
    verbose: bool = False
    # API keys picked up from the environment, keyed by storage key
    env_api_keys: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate required configuration."""
        if self.provider and self.provider not in SERVICES:
            raise ConfigError(
                f"Unknown LLM provider: {self.provider}. "
                f"Use one of: {', '.join(SERVICES)}."
            )
        if self.keepalive_interval <= 0:
            raise ConfigError("keepalive_interval must be positive.")
        if self.bookmarks_file is None:
            raise ConfigError(
                "BULKMARK_BOOKMARKS_FILE is required. Set it in .env, the "
                "environment, or pass --bookmarks."
            )
        if not self.bookmarks_file.is_file():
            raise ConfigError(f"Bookmarks file not found: {self.bookmarks_file}")


def _env_api_keys() -> dict[str, str]:
    keys = {}
    for service in SERVICES.values():
        value = os.getenv(service.env_var, "")
        if value:
            keys[service.storage_key] = value
    return keys


def load_config(
    data_dir: Optional[str] = None,
    bookmarks_file: Optional[str] = None,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    keepalive_interval: Optional[float] = None,
    verbose: bool = False,
    validate: bool = True,
) -> Config:
    """Load config from .env and apply CLI overrides."""
    load_dotenv()

    bookmarks = bookmarks_file or os.getenv("BULKMARK_BOOKMARKS_FILE", "")
    if keepalive_interval is None:
        try:
            keepalive_interval = float(
                os.getenv("BULKMARK_KEEPALIVE_SECONDS", _DEFAULT_KEEPALIVE_SECONDS)
            )
        except ValueError as e:
            raise ConfigError(f"BULKMARK_KEEPALIVE_SECONDS is not a number: {e}") from e

    config = Config(
        data_dir=Path(data_dir) if data_dir else Path(
            os.getenv("BULKMARK_DATA_DIR", str(Path.home() / ".bulkmark"))
        ),
        bookmarks_file=Path(bookmarks).expanduser() if bookmarks else None,
        provider=provider or os.getenv("BULKMARK_PROVIDER", ""),
        model=model or os.getenv("BULKMARK_MODEL", ""),
        keepalive_interval=keepalive_interval,
        verbose=verbose,
        env_api_keys=_env_api_keys(),
    )

    if validate:
        config.validate()
    return config
