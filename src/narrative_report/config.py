"""
Narrative Report Generator - Configuration Module

Centralized configuration management with Pydantic settings.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"


class LogFormat(str, Enum):
    """Log output formats."""
    JSON = "json"
    CONSOLE = "console"


class LLMConfig(BaseSettings):
    """LLM provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    # Anthropic settings
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    anthropic_model: str = Field(
        default="claude-sonnet-4-5-20250929",
        alias="ANTHROPIC_MODEL"
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com/v1",
        alias="ANTHROPIC_BASE_URL"
    )
    anthropic_version: str = Field(default="2023-06-01", alias="ANTHROPIC_VERSION")

    # OpenAI settings
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o", alias="OPENAI_MODEL")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        alias="OPENAI_BASE_URL"
    )

    # Call parameters
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, alias="LLM_TEMPERATURE")
    max_tokens: int = Field(default=16000, gt=0, alias="LLM_MAX_TOKENS")
    timeout: float = Field(default=120.0, gt=0, alias="LLM_TIMEOUT")
    max_retries: int = Field(default=2, ge=0, alias="LLM_MAX_RETRIES")
    retry_delay: float = Field(default=2.0, ge=0, alias="LLM_RETRY_DELAY")

    @field_validator("anthropic_api_key", "openai_api_key", mode="before")
    @classmethod
    def blank_key_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def active_provider(self) -> Optional[LLMProvider]:
        """Provider selected by the available credentials, if any."""
        if self.anthropic_api_key:
            return LLMProvider.ANTHROPIC
        if self.openai_api_key:
            return LLMProvider.OPENAI
        return None

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class GenerationConfig(BaseSettings):
    """Report generation policy."""

    model_config = SettingsConfigDict(
        env_prefix="GENERATION_",
        extra="ignore"
    )

    safe_input_limit: int = Field(default=100_000, gt=0)
    max_tokens_per_chunk: int = Field(default=25_000, gt=0)
    max_output_tokens: int = Field(default=16_000, gt=0)
    temperature: float = Field(default=0.4, ge=0.0, le=2.0)
    coherence_temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    coherence_max_tokens: int = Field(default=16_000, gt=0)
    chunk_delay: float = Field(default=1.0, ge=0.0)
    chunk_separator: str = Field(default="\n\n---\n\n")


class TokenizerConfig(BaseSettings):
    """Token estimation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENIZER_",
        extra="ignore"
    )

    # Empty string disables exact tokenization
    encoding: str = Field(default="cl100k_base")


class LogConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        extra="ignore"
    )

    level: str = Field(default="INFO")
    format: LogFormat = Field(default=LogFormat.CONSOLE)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return str(v).upper()


class AppConfig(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    log: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AppConfig":
        """Load configuration from environment file."""
        if env_file and Path(env_file).exists():
            from dotenv import load_dotenv
            load_dotenv(env_file)

        return cls(
            llm=LLMConfig(),
            generation=GenerationConfig(),
            tokenizer=TokenizerConfig(),
            log=LogConfig(),
        )


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """Load application configuration."""
    return AppConfig.from_env(env_file)


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get global configuration instance."""
    global _config
    if _config is None:
        _config = load_config(".env")
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next access reloads it."""
    global _config
    _config = None
