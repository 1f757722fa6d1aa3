"""
Narrative Report Generator - Anthropic Client

Messages API adapter over httpx.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
import structlog

from ..config import LLMConfig
from ..errors import LLMError, LLMTimeoutError, MalformedResponseError, PermanentLLMError, TransientLLMError
from ..models import CompletionOptions, CompletionResult, Usage
from .base import MessageLike, error_detail, normalize_messages, usage_counts
from .retry import call_with_retry

logger = structlog.get_logger(__name__)

PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504, 529}
RETRYABLE_ERROR_TYPES = {"rate_limit_error", "overloaded_error"}


def classify_error(response: httpx.Response) -> LLMError:
    """Map an Anthropic error response onto the retryable/permanent split."""
    error_type, message = error_detail(response)
    if response.status_code in RETRYABLE_STATUS or error_type in RETRYABLE_ERROR_TYPES:
        return TransientLLMError(message, PROVIDER, status_code=response.status_code)
    return PermanentLLMError(message, PROVIDER, status_code=response.status_code)


def parse_response(data: Any) -> CompletionResult:
    """Extract the first text block and usage from a Messages API response."""
    blocks = data.get("content") if isinstance(data, dict) else None
    if not isinstance(blocks, list):
        raise MalformedResponseError("Response has no content blocks", PROVIDER)

    text = next(
        (b.get("text") for b in blocks if isinstance(b, dict) and b.get("type") == "text"),
        None,
    )
    if not isinstance(text, str):
        raise MalformedResponseError("Response has no text block", PROVIDER)

    input_tokens, output_tokens = usage_counts(data, PROVIDER, "input_tokens", "output_tokens")

    return CompletionResult(
        content=text.strip(),
        usage=Usage(
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        ),
    )


class AnthropicClient:
    """
    Anthropic Messages API client.

    System messages are sent in the top-level ``system`` field; the HTTP
    client is created on first use and reused across calls.
    """

    provider = PROVIDER

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = "https://api.anthropic.com/v1",
        api_version: str = "2023-06-01",
        max_tokens: int = 16000,
        temperature: float = 0.7,
        timeout: float = 120.0,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not api_key:
            raise ValueError("Anthropic API key is required")
        self.api_key = api_key
        self.default_model = model
        self.base_url = base_url
        self.api_version = api_version
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._transport = transport
        self._sleep = sleep
        self._http: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: LLMConfig, **kwargs) -> "AnthropicClient":
        return cls(
            api_key=config.anthropic_api_key or "",
            model=config.anthropic_model,
            base_url=config.anthropic_base_url,
            api_version=config.anthropic_version,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            max_attempts=config.max_attempts,
            retry_delay=config.retry_delay,
            **kwargs,
        )

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
                headers={
                    "x-api-key": self.api_key,
                    "anthropic-version": self.api_version,
                    "Content-Type": "application/json",
                },
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "AnthropicClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def generate_completion(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        options = options or CompletionOptions()
        chat = normalize_messages(messages)
        model = options.model or self.default_model
        timeout = options.timeout or self.timeout

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": options.max_tokens or self.max_tokens,
            "temperature": self.temperature if options.temperature is None else options.temperature,
            "messages": [
                {"role": m.role, "content": m.content} for m in chat if m.role != "system"
            ],
        }
        system = "\n\n".join(m.content for m in chat if m.role == "system")
        if system:
            payload["system"] = system

        start = time.perf_counter()
        result = await call_with_retry(
            lambda: self._send(payload, timeout),
            provider=self.provider,
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay,
            sleep=self._sleep,
        )

        logger.info(
            "LLM completion received",
            provider=self.provider,
            model=model,
            prompt_tokens=result.usage.prompt_tokens,
            completion_tokens=result.usage.completion_tokens,
            latency_ms=round((time.perf_counter() - start) * 1000),
        )
        return result

    async def _send(self, payload: dict[str, Any], timeout: float) -> CompletionResult:
        try:
            response = await self._get_http().post("/messages", json=payload, timeout=timeout)
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Request timed out after {timeout}s", self.provider) from e
        except httpx.TransportError as e:
            raise TransientLLMError(f"Connection failed: {e}", self.provider) from e
        except httpx.RequestError as e:
            raise PermanentLLMError(f"Request failed: {e}", self.provider) from e

        if response.status_code >= 400:
            raise classify_error(response)

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Response is not valid JSON", self.provider) from e
        return parse_response(data)
