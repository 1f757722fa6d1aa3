"""
Narrative Report Generator - OpenAI Client

Chat Completions adapter over httpx. The request timeout is enforced on the
client side by cancelling the in-flight request.
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

PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o"
RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def classify_error(response: httpx.Response) -> LLMError:
    """Map an OpenAI error response onto the retryable/permanent split."""
    _, message = error_detail(response)
    if response.status_code in RETRYABLE_STATUS:
        return TransientLLMError(message, PROVIDER, status_code=response.status_code)
    return PermanentLLMError(message, PROVIDER, status_code=response.status_code)


def parse_response(data: Any) -> CompletionResult:
    """Extract the first choice's message content and usage."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError("Invalid response structure", PROVIDER) from e
    if not isinstance(content, str):
        raise MalformedResponseError("Response message has no text content", PROVIDER)

    prompt_tokens, completion_tokens, total_tokens = usage_counts(
        data, PROVIDER, "prompt_tokens", "completion_tokens", "total_tokens"
    )
    return CompletionResult(
        content=content.strip(),
        usage=Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
        ),
    )


class OpenAIClient:
    """OpenAI Chat Completions client."""

    provider = PROVIDER

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: str = "https://api.openai.com/v1",
        max_tokens: int = 16000,
        temperature: float = 0.7,
        timeout: float = 120.0,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not api_key:
            raise ValueError("OpenAI API key is required")
        self.api_key = api_key
        self.default_model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._transport = transport
        self._sleep = sleep
        self._http: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config: LLMConfig, **kwargs) -> "OpenAIClient":
        return cls(
            api_key=config.openai_api_key or "",
            model=config.openai_model,
            base_url=config.openai_base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            max_attempts=config.max_attempts,
            retry_delay=config.retry_delay,
            **kwargs,
        )

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            # No transport-level read timeout; _send cancels the request instead
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(None, connect=30.0),
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "OpenAIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def generate_completion(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        options = options or CompletionOptions()
        model = options.model or self.default_model
        timeout = options.timeout or self.timeout

        payload = {
            "model": model,
            "messages": [
                {"role": m.role, "content": m.content} for m in normalize_messages(messages)
            ],
            "max_tokens": options.max_tokens or self.max_tokens,
            "temperature": self.temperature if options.temperature is None else options.temperature,
        }

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
            response = await asyncio.wait_for(
                self._get_http().post("/chat/completions", json=payload),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"Request aborted after {timeout}s", self.provider) from e
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Request timed out: {e}", self.provider) from e
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
