"""
LLM provider adapters.

Provides:
- LLMClient: chat completion capability (Protocol)
- AnthropicClient / OpenAIClient: httpx-based provider adapters
- create_llm_client / get_llm_client: credential-based selection
- call_with_retry: shared exponential backoff
"""

from .anthropic_client import AnthropicClient
from .base import LLMClient, normalize_messages
from .factory import create_llm_client, get_llm_client, reset_llm_client
from .openai_client import OpenAIClient
from .retry import call_with_retry

__all__ = [
    "LLMClient",
    "AnthropicClient",
    "OpenAIClient",
    "create_llm_client",
    "get_llm_client",
    "reset_llm_client",
    "call_with_retry",
    "normalize_messages",
]
