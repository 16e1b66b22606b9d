"""Configuration management for Memory Bridge."""

import re
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from memory_bridge.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    MAX_BUFFER_SIZE,
    MIN_FLUSH_SIZE,
    OVERLAP_SIZE,
    RECALL_MAX_TOKENS,
    SILENCE_WINDOW_SECONDS,
)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class Settings(BaseSettings):
    """Application settings loaded from host config and environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MEMORY_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Remote decision-memory service
    api_key: SecretStr = Field(default=SecretStr(""), description="Memory service API key")
    api_url: str = Field(
        default="http://localhost:3000", description="Base URL of the memory service"
    )
    request_timeout: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT, gt=0, description="HTTP timeout in seconds"
    )

    # Hook gating
    auto_capture: bool = Field(default=True, description="Buffer conversations for extraction")
    auto_recall: bool = Field(default=True, description="Inject past decisions into prompts")

    # Capture buffering
    silence_window_seconds: float = Field(default=SILENCE_WINDOW_SECONDS, gt=0)
    max_buffer_size: int = Field(default=MAX_BUFFER_SIZE, ge=2)
    overlap_size: int = Field(default=OVERLAP_SIZE, ge=0)
    min_flush_size: int = Field(default=MIN_FLUSH_SIZE, ge=1)
    capture_source: str = Field(default="openclaw", description="Source tag sent with batches")

    # Recall
    recall_max_tokens: int = Field(default=RECALL_MAX_TOKENS, gt=0)

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def has_api_key(self) -> bool:
        """Check whether an API key was provided."""
        return bool(self.api_key.get_secret_value())


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def resolve_settings(host_config: Mapping[str, Any] | None = None, **overrides: Any) -> Settings:
    """Build settings with host-provided values taking priority over the environment.

    Host configuration keys may be camelCase (``apiKey``, ``autoCapture``) or
    snake_case. Empty strings and ``None`` are treated as unset so the
    environment fallback applies.
    """
    values: dict[str, Any] = {}
    for key, value in (host_config or {}).items():
        if value is None or value == "":
            continue
        values[_snake_case(key)] = value
    values.update(overrides)
    return Settings(**values)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
