"""
Narrative Report Generator - Section Regenerator

Rewrites a single report section, optionally steered by user feedback.
"""

from typing import Optional

import structlog

from .llm.base import LLMClient
from .models import ChatMessage, CompletionOptions, CompletionResult, Organization, StyleProfile
from .prompts import build_section_prompts

logger = structlog.get_logger(__name__)


async def regenerate_section(
    client: LLMClient,
    organization: Organization,
    section_title: str,
    section_input: Optional[str] = None,
    current_text: Optional[str] = None,
    feedback: Optional[str] = None,
    style_profile: Optional[StyleProfile] = None,
    model: Optional[str] = None,
) -> CompletionResult:
    """
    Regenerate one section of a report.

    Returns the new section text together with the provider's usage.
    """
    system_prompt, user_prompt = build_section_prompts(
        organization=organization,
        section_title=section_title,
        section_input=section_input,
        current_text=current_text,
        feedback=feedback,
        style_profile=style_profile,
    )

    result = await client.generate_completion(
        [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=user_prompt),
        ],
        CompletionOptions(model=model, max_tokens=8000, temperature=0.7),
    )

    logger.info(
        "Section regenerated",
        org_id=organization.id,
        section=section_title,
        with_feedback=bool(feedback),
        tokens=result.usage.total_tokens,
    )
    return result
