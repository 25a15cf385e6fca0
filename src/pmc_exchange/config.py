"""Configuration management for pmc-exchange.

Settings come from a JSON config file (``config.json`` by default), from
environment variables with the ``PMC_EXCHANGE_`` prefix, or from a ``.env``
file. Values in the config file take precedence.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from pmc_exchange.exceptions import ConfigurationError

DEFAULT_CONFIG_PATH = Path("config.json")


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the PMC_EXCHANGE_ prefix (e.g., PMC_EXCHANGE_EMAIL).
    """

    model_config = SettingsConfigDict(
        env_prefix="PMC_EXCHANGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Exchange account
    username: str = Field(description="Account user name (e.g. DOMAIN\\user or UPN)")
    password: SecretStr = Field(description="Account password")
    email: str = Field(description="Primary SMTP address, used for autodiscovery")

    ews_url: str | None = Field(
        default=None,
        description="EWS endpoint. When set, autodiscovery is skipped.",
    )
    auth_type: str = Field(
        default="NTLM",
        description="HTTP authentication scheme for EWS (NTLM or basic)",
    )

    # Autodiscovery
    autodiscover_timeout: int = Field(
        default=30,
        description="Timeout for each autodiscover request in seconds",
    )
    max_autodiscover_redirects: int = Field(
        default=10,
        description="Maximum number of autodiscover redirects to follow",
    )

    # Paging
    folder_page_size: int = Field(
        default=10,
        description="Number of folders requested per folder-tree page",
    )
    item_page_size: int = Field(
        default=1000,
        description="Number of items requested per search page",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )


def _read_config_file(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Unable to read config file {config_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a JSON object")
    return data


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from a JSON config file and the environment.

    The config file is optional; when it does not exist only the environment
    is consulted.

    Args:
        config_path: Path to the JSON config file. Defaults to ``config.json``.

    Returns:
        Settings: Validated application settings.

    Raises:
        ConfigurationError: If the file is malformed or required keys are missing.
    """
    data = _read_config_file(config_path or DEFAULT_CONFIG_PATH)
    try:
        return Settings(**data)
    except ValidationError as exc:
        missing = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
        raise ConfigurationError(f"Invalid configuration, check: {', '.join(missing)}") from exc


@lru_cache
def get_settings(config_path: Path | None = None) -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return load_settings(config_path)
