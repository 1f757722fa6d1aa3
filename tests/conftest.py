"""
Pytest configuration and shared fixtures.
"""
import json
from unittest.mock import AsyncMock

import httpx
import pytest
import structlog

from narrative_report.config import GenerationConfig, reset_config
from narrative_report.models import (
    CompletionResult,
    Organization,
    ReportTemplate,
    StyleProfile,
    TemplateSection,
    Usage,
)
from narrative_report.tokens import TokenCounter, set_token_counter


@pytest.fixture(autouse=True)
def env_setup(monkeypatch, tmp_path):
    """Isolated environment: no API keys, no .env, character-based token counts."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("TOKENIZER_ENCODING", "")
    reset_config()
    set_token_counter(TokenCounter(None))
    yield
    reset_config()
    set_token_counter(None)
    structlog.reset_defaults()


@pytest.fixture
def counter():
    """Token counter using the character approximation."""
    return TokenCounter(None)


@pytest.fixture
def generation_config():
    """Default generation policy without inter-chunk delay."""
    return GenerationConfig(chunk_delay=0)


@pytest.fixture
def mock_llm_client():
    """Mock LLM client for testing without API calls."""
    client = AsyncMock()
    client.provider = "mock"
    client.default_model = "mock-model"
    client.generate_completion.return_value = CompletionResult(
        content="GENERATED",
        usage=Usage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
    )
    return client


@pytest.fixture
def no_sleep():
    """Recording replacement for asyncio.sleep."""
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep


@pytest.fixture
def sample_organization():
    return Organization(
        id="org-1",
        name="Testföreningen",
        org_type="association",
        sector="Idrott",
        style_profile=StyleProfile(tonality="semi-formal"),
    )


@pytest.fixture
def sample_template():
    return ReportTemplate(
        id="tpl-1",
        name="Verksamhetsberättelse",
        sections=[
            TemplateSection(id="intro", title="Inledning", level=1, order=1),
            TemplateSection(
                id="activities",
                title="Verksamhet",
                level=1,
                order=2,
                ai_instructions="Beskriv årets aktiviteter kronologiskt",
            ),
            TemplateSection(id="events", title="Evenemang", level=2, parent_id="activities", order=3),
            TemplateSection(id="economy", title="Ekonomi", level=1, order=4),
        ],
    )


@pytest.fixture
def sample_sections_content():
    return {
        "intro": {"raw_input": "Föreningen hade ett bra år med många nya medlemmar."},
        "activities": {"raw_input": "Vi ordnade träningar varje vecka.\n\nSommarlägret samlade 40 barn."},
        "economy": {"raw_input": "Årets resultat blev ett överskott på 12 000 kr."},
    }


def _json_response(status_code, payload, headers=None):
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode("utf-8"),
        headers={"content-type": "application/json", **(headers or {})},
    )


@pytest.fixture
def json_response():
    """Factory for httpx responses carrying a JSON body."""
    return _json_response


@pytest.fixture
def anthropic_payload():
    """Factory for Messages API response bodies."""
    def build(text="Hej", input_tokens=10, output_tokens=5):
        return {
            "id": "msg_1",
            "type": "message",
            "role": "assistant",
            "content": [{"type": "text", "text": text}],
            "usage": {"input_tokens": input_tokens, "output_tokens": output_tokens},
        }
    return build


@pytest.fixture
def openai_payload():
    """Factory for Chat Completions response bodies."""
    def build(text="Hej", prompt_tokens=10, completion_tokens=5):
        return {
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        }
    return build
