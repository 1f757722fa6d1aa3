"""
Narrative Report Generator - Style Analyzer

Extracts writing-style patterns from a reference document so later reports
can imitate it.
"""

from __future__ import annotations

import json
import re

import structlog
from pydantic import ValidationError

from .errors import StyleAnalysisError
from .llm.base import LLMClient
from .models import ChatMessage, CompletionOptions, StyleAnalysis
from .prompts import STYLE_ANALYSIS_PROMPT

logger = structlog.get_logger(__name__)

MAX_REFERENCE_CHARS = 50_000
JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_style_analysis(content: str) -> StyleAnalysis:
    """Pull the JSON object out of a model reply and validate it."""
    match = JSON_OBJECT.search(content)
    if not match:
        raise StyleAnalysisError("Could not find a JSON object in the style analysis reply")

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise StyleAnalysisError(f"Style analysis reply is not valid JSON: {e}") from e

    try:
        return StyleAnalysis.model_validate(data)
    except ValidationError as e:
        raise StyleAnalysisError(f"Style analysis has unexpected shape: {e}") from e


async def analyze_style(client: LLMClient, text: str) -> StyleAnalysis:
    """
    Analyze the writing style of a reference text.

    Args:
        client: LLM client
        text: Extracted reference document text (truncated to 50 000 chars)

    Returns:
        Parsed style analysis

    Raises:
        StyleAnalysisError: If the reply cannot be parsed
        LLMError: If the provider call fails
    """
    truncated = text[:MAX_REFERENCE_CHARS]
    if len(text) > MAX_REFERENCE_CHARS:
        logger.info("Reference text truncated", original_chars=len(text), kept_chars=MAX_REFERENCE_CHARS)

    result = await client.generate_completion(
        [
            ChatMessage(role="system", content=STYLE_ANALYSIS_PROMPT),
            ChatMessage(role="user", content=f"TEXT ATT ANALYSERA:\n\n{truncated}"),
        ],
        CompletionOptions(temperature=0.3, max_tokens=4000),
    )

    analysis = parse_style_analysis(result.content)
    logger.info(
        "Style analyzed",
        tonality=analysis.tonality,
        phrases=len(analysis.common_phrases),
        tokens=result.usage.total_tokens,
    )
    return analysis
