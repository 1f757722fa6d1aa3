"""
Narrative Report Generator - Token Counting

Token estimates used for budgeting prompts and chunks. Exact counts come
from tiktoken when an encoding is available; otherwise one token is
approximated as four characters.
"""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Optional, Union

import structlog
import tiktoken

from .models import ChatMessage

logger = structlog.get_logger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 4
CONVERSATION_OVERHEAD_TOKENS = 2

MessageLike = Union[ChatMessage, Mapping[str, Any]]


def approximate_tokens(text: str) -> int:
    """Character-based estimate: ``ceil(len / 4)``."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TokenCounter:
    """
    Token counter with lazy tiktoken loading.

    The encoding is loaded on first use and at most once; if it is disabled
    or cannot be loaded every count uses the character approximation.
    """

    def __init__(self, encoding_name: Optional[str] = "cl100k_base"):
        self.encoding_name = encoding_name or None
        self._encoding = None
        self._load_attempted = self.encoding_name is None

    @property
    def exact(self) -> bool:
        """Whether exact tokenization is in use."""
        return self._get_encoding() is not None

    def _get_encoding(self):
        if self._encoding is not None or self._load_attempted:
            return self._encoding
        self._load_attempted = True
        try:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        except Exception as e:
            logger.warning(
                "Tokenizer unavailable, using character estimate",
                encoding=self.encoding_name,
                error=str(e),
            )
            self._encoding = None
        return self._encoding

    def count(self, text: str) -> int:
        """Number of tokens in ``text`` (0 for empty text)."""
        if not text:
            return 0
        encoding = self._get_encoding()
        if encoding is not None:
            try:
                return len(encoding.encode(text, disallowed_special=()))
            except Exception as e:
                logger.debug("Tokenizer failed on input", error=str(e))
        return approximate_tokens(text)

    def count_messages(self, messages: Iterable[MessageLike]) -> int:
        """Token estimate for a chat message list including per-message overhead."""
        total = 0
        for message in messages:
            if isinstance(message, ChatMessage):
                role, content = message.role, message.content
            else:
                role, content = message.get("role", ""), message.get("content", "")
            total += MESSAGE_OVERHEAD_TOKENS
            total += self.count(role)
            total += self.count(content)
        return total + CONVERSATION_OVERHEAD_TOKENS


# Shared counter instance
_counter: Optional[TokenCounter] = None


def get_token_counter() -> TokenCounter:
    """Get or create the shared token counter from configuration."""
    global _counter
    if _counter is None:
        from .config import get_config
        _counter = TokenCounter(get_config().tokenizer.encoding)
    return _counter


def set_token_counter(counter: Optional[TokenCounter]) -> None:
    """Replace (or clear, with ``None``) the shared token counter."""
    global _counter
    _counter = counter


def count_tokens(text: str) -> int:
    """Count tokens with the shared counter."""
    return get_token_counter().count(text)


def count_messages_tokens(messages: Iterable[MessageLike]) -> int:
    """Count chat message tokens with the shared counter."""
    return get_token_counter().count_messages(messages)
