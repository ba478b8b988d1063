"""Configuration management for autoreply."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging_utils import configure_logging


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="AUTOREPLY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        protected_namespaces=(),
    )

    # Model Configuration
    model: str = Field(default="openai:gpt-4o-mini", description="Primary model as provider:model")
    model_fallbacks: list[str] = Field(default_factory=list, description="Fallback models tried in order")
    api_key: Optional[str] = Field(None, description="API key for the LLM provider")
    api_base: Optional[str] = Field(None, description="Optional API base URL")
    max_tokens: int = Field(default=4000, description="Maximum tokens for responses")
    timeout_seconds: float = Field(default=600, description="Timeout for one agent run in seconds")

    # Context window
    context_tokens: Optional[int] = Field(None, description="Context window override for every model")
    context_token_overrides: dict[str, int] = Field(
        default_factory=dict, description="Context window size per model name"
    )

    # Reply Configuration
    typing_interval_seconds: float = Field(default=6, description="Seconds between typing signals")
    typing_ttl_seconds: float = Field(default=120, description="Force-stop typing after this many idle seconds")
    response_prefix: Optional[str] = Field(None, description="Prefix prepended to every delivered text")
    verbose: Literal["off", "on"] = Field(default="off", description="Surface verbose notices to the user")

    # Session Configuration
    session_store_path: Optional[Path] = Field(None, description="JSON file backing the session store")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")


def get_settings(**overrides: object) -> Settings:
    """Get application settings.

    Args:
        overrides: Explicit values taking precedence over environment and .env

    Returns:
        Settings instance
    """
    settings = Settings(**overrides)  # type: ignore[arg-type]

    configure_logging(level=settings.log_level)

    return settings
