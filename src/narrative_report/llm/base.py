"""
Narrative Report Generator - LLM Client Interface

The capability every provider adapter implements, plus helpers the adapters
share.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

import httpx

from ..errors import MalformedResponseError
from ..models import ChatMessage, CompletionOptions, CompletionResult

MessageLike = Union[ChatMessage, Mapping[str, Any]]


@runtime_checkable
class LLMClient(Protocol):
    """Chat completion capability shared by all providers."""

    provider: str
    default_model: str

    async def generate_completion(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """
        Run one chat completion.

        Args:
            messages: Chat messages (system, user, assistant)
            options: Per-call overrides for model, max tokens, temperature, timeout

        Returns:
            Trimmed completion text and token usage

        Raises:
            LLMError: After retries are exhausted or on a non-retryable failure
        """
        ...

    async def aclose(self) -> None:
        """Release the underlying HTTP transport."""
        ...


def normalize_messages(messages: Sequence[MessageLike]) -> list[ChatMessage]:
    """Accept ChatMessage objects or ``{"role", "content"}`` dicts."""
    return [
        m if isinstance(m, ChatMessage) else ChatMessage(role=m["role"], content=m["content"])
        for m in messages
    ]


def error_detail(response: httpx.Response) -> tuple[Optional[str], str]:
    """
    Extract ``(error_type, message)`` from a provider error response.

    Both providers answer with ``{"error": {"type": ..., "message": ...}}``;
    anything else falls back to the raw body.
    """
    try:
        data = response.json()
    except ValueError:
        return None, response.text[:500]

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("type"), str(error.get("message") or response.text[:500])
    if isinstance(error, str):
        return None, error
    return None, response.text[:500]


def usage_counts(data: Mapping[str, Any], provider: str, *fields: str) -> list[int]:
    """
    Read integer token counts from the response ``usage`` object.

    A missing ``usage`` counts as zero; a usage that is not an object of
    numbers is a malformed response.
    """
    usage = data.get("usage") or {}
    if not isinstance(usage, dict):
        raise MalformedResponseError("Response usage is not an object", provider)
    try:
        return [int(usage.get(name) or 0) for name in fields]
    except (TypeError, ValueError) as e:
        raise MalformedResponseError("Response usage has non-numeric counts", provider) from e
