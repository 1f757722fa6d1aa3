"""
Narrative Report Generator - Client Selection

Chooses the provider from the available credentials and keeps one shared,
lazily created client handle.
"""

from __future__ import annotations

from typing import Optional

import structlog

from ..config import LLMConfig, LLMProvider, get_config
from ..errors import ConfigurationError
from .anthropic_client import AnthropicClient
from .base import LLMClient
from .openai_client import OpenAIClient

logger = structlog.get_logger(__name__)


def create_llm_client(config: Optional[LLMConfig] = None, **kwargs) -> LLMClient:
    """
    Build a client for the configured provider.

    Anthropic is preferred when both keys are present.

    Raises:
        ConfigurationError: If neither API key is configured
    """
    config = config or get_config().llm
    provider = config.active_provider

    if provider == LLMProvider.ANTHROPIC:
        client: LLMClient = AnthropicClient.from_config(config, **kwargs)
    elif provider == LLMProvider.OPENAI:
        client = OpenAIClient.from_config(config, **kwargs)
    else:
        raise ConfigurationError(
            "No LLM API key configured (set ANTHROPIC_API_KEY or OPENAI_API_KEY)"
        )

    logger.info("LLM client created", provider=client.provider, model=client.default_model)
    return client


# Singleton client instance
_client: Optional[LLMClient] = None


def get_llm_client(config: Optional[LLMConfig] = None) -> LLMClient:
    """Get or create the shared LLM client."""
    global _client
    if _client is None:
        _client = create_llm_client(config)
    return _client


async def reset_llm_client() -> None:
    """Close and forget the shared client."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
