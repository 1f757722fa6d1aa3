"""
Narrative Report Generator - Errors

Exception hierarchy shared by the LLM clients and the generation pipeline.
"""

from __future__ import annotations

from typing import Optional


class ReportGeneratorError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ReportGeneratorError):
    """Raised when no usable LLM credentials are configured."""


class LLMError(ReportGeneratorError):
    """Error returned by (or while talking to) an LLM provider."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.provider} API error ({self.status_code}): {self.message}"
        return f"{self.provider} API error: {self.message}"


class TransientLLMError(LLMError):
    """Rate limit, overload or server hiccup; worth retrying."""

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None):
        super().__init__(message, provider, status_code=status_code, retryable=True)


class LLMTimeoutError(TransientLLMError):
    """Request was aborted after the client-side timeout."""


class PermanentLLMError(LLMError):
    """Authentication failure, bad request or similar; never retried."""

    def __init__(self, message: str, provider: str, status_code: Optional[int] = None):
        super().__init__(message, provider, status_code=status_code, retryable=False)


class MalformedResponseError(PermanentLLMError):
    """Provider answered, but without the expected content field."""


class GenerationError(ReportGeneratorError):
    """Report generation failed; no result was produced."""


class GenerationCancelledError(GenerationError):
    """Report generation was cancelled by the caller."""


class StyleAnalysisError(ReportGeneratorError):
    """Style analysis output could not be interpreted."""
