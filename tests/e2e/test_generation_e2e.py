"""
E2E Tests - Report generation through provider adapters and the CLI

Provider HTTP traffic is served by httpx.MockTransport; no network access.
"""
import json
from unittest.mock import AsyncMock

import httpx
import pytest
import yaml
from typer.testing import CliRunner

from narrative_report import cli
from narrative_report.config import GenerationConfig
from narrative_report.generator import ReportGenerator, generate_report
from narrative_report.llm import AnthropicClient, OpenAIClient
from narrative_report.models import (
    CompletionResult,
    Organization,
    ProcessingMethod,
    ReportTemplate,
    StyleProfile,
    TemplateSection,
    Usage,
)
from narrative_report.prompts import build_system_prompt

runner = CliRunner()


@pytest.fixture
def request_file(tmp_path, sample_sections_content):
    data = {
        "organization": {
            "id": "org-1",
            "name": "Testföreningen",
            "org_type": "association",
            "style_profile": {"tonality": "formal"},
        },
        "template": {
            "id": "tpl-1",
            "name": "Verksamhetsberättelse",
            "sections": [
                {"id": "intro", "title": "Inledning", "level": 1, "order": 1},
                {"id": "activities", "title": "Verksamhet", "level": 1, "order": 2},
                {"id": "economy", "title": "Ekonomi", "level": 1, "order": 3},
            ],
        },
        "sections_content": {
            "intro": sample_sections_content["intro"]["raw_input"],
            "activities": sample_sections_content["activities"],
            "economy": sample_sections_content["economy"]["raw_input"],
        },
    }
    path = tmp_path / "request.yaml"
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
    return path


@pytest.mark.e2e
@pytest.mark.asyncio
class TestGenerationThroughProviders:
    """ReportGenerator driving real adapters over a mocked transport"""

    async def test_single_pass_with_anthropic(
        self, sample_organization, sample_template, sample_sections_content,
        counter, no_sleep, json_response, anthropic_payload,
    ):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return json_response(200, anthropic_payload("Verksamhetsberättelse 2024", 100, 50))

        client = AnthropicClient(api_key="k", transport=httpx.MockTransport(handler), sleep=no_sleep)
        generator = ReportGenerator(client, GenerationConfig(chunk_delay=0), counter)

        result = await generator.generate(sample_organization, sample_template, sample_sections_content)
        await client.aclose()

        assert result.content == "Verksamhetsberättelse 2024"
        assert result.metadata.processing_method == ProcessingMethod.SINGLE_PASS
        assert result.metadata.total_tokens == 150
        assert result.metadata.model == client.default_model
        assert len(requests) == 1
        assert requests[0]["temperature"] == 0.4
        assert "Testföreningen" in requests[0]["system"]

    async def test_chunked_with_coherence_and_retry_over_openai(
        self, sample_organization, counter, no_sleep, json_response, openai_payload,
    ):
        template = ReportTemplate(
            id="big",
            sections=[TemplateSection(id=f"s{i}", title=f"Del {i}", order=i) for i in range(3)],
        )
        system_tokens = counter.count(build_system_prompt(sample_organization, template))
        config = GenerationConfig(
            safe_input_limit=system_tokens + 100,
            max_tokens_per_chunk=system_tokens + 500,
            chunk_delay=0,
        )
        replies = iter([
            json_response(429, {"error": {"message": "Rate limit"}}),
            json_response(200, openai_payload("A")),
            json_response(200, openai_payload("B")),
            json_response(200, openai_payload("C")),
            json_response(200, openai_payload("ABC", 40, 30)),
        ])
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return next(replies)

        client = OpenAIClient(api_key="k", transport=httpx.MockTransport(handler), sleep=no_sleep)
        generator = ReportGenerator(client, config, counter)

        result = await generator.generate(
            sample_organization, template, {f"s{i}": "z" * 1600 for i in range(3)}
        )
        await client.aclose()

        assert result.content == "ABC"
        assert result.metadata.processing_method == ProcessingMethod.CHUNKED_WITH_COHERENCE_PASS
        assert result.metadata.chunks == 3
        assert result.metadata.total_tokens == 3 * 15 + 70
        assert no_sleep.delays == [2.0]
        assert len(bodies) == 5
        assert bodies[-1]["temperature"] == 0.5
        assert "A\n\n---\n\nB\n\n---\n\nC" in bodies[-1]["messages"][1]["content"]


@pytest.mark.e2e
@pytest.mark.asyncio
class TestFoundationReportScenario:
    """Small foundation report generated in one pass"""

    async def test_single_pass_derives_total_tokens(self):
        client = AsyncMock()
        client.provider = "mock"
        client.default_model = "mock-model"
        client.generate_completion.return_value = CompletionResult(
            content="GENERATED",
            usage=Usage(prompt_tokens=100, completion_tokens=50),
        )
        organization = Organization(id="org-2", name="Testföreningen", org_type="foundation")
        template = ReportTemplate(
            id="tpl-2",
            sections=[
                TemplateSection(id="summary", title="Sammanfattning", order=1),
                TemplateSection(id="activities", title="Verksamhet", order=2),
            ],
        )

        result = await generate_report(
            client,
            organization,
            template,
            {"summary": "Stiftelsen delade ut tre stipendier.", "activities": "Två seminarier hölls."},
            style_profile=StyleProfile(tonality="formal"),
        )

        assert result.content == "GENERATED"
        assert result.metadata.chunks == 1
        assert result.metadata.total_tokens == 150
        assert result.metadata.processing_method == ProcessingMethod.SINGLE_PASS
        assert client.generate_completion.await_count == 1

        messages, _ = client.generate_completion.call_args.args
        assert "stiftelse" in messages[0].content.lower()
        assert "formellt" in messages[0].content
        assert "Sammanfattning:\nStiftelsen delade ut tre stipendier." in messages[1].content


@pytest.mark.e2e
class TestCli:
    """Tests for the narrative-report command line"""

    def fake_factory(self, handler, no_sleep):
        def create(config=None, **kwargs):
            return AnthropicClient(api_key="k", transport=httpx.MockTransport(handler), sleep=no_sleep)
        return create

    def test_generate_writes_report_and_metadata(
        self, request_file, tmp_path, monkeypatch, no_sleep, json_response, anthropic_payload,
    ):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return json_response(200, anthropic_payload("# Verksamhetsberättelse\n\nText.", 120, 80))

        monkeypatch.setattr(cli, "create_llm_client", self.fake_factory(handler, no_sleep))
        output = tmp_path / "out" / "report.md"
        metadata = tmp_path / "out" / "metadata.json"

        result = runner.invoke(
            cli.app,
            ["generate", "--input", str(request_file), "--output", str(output), "--metadata", str(metadata)],
        )

        assert result.exit_code == 0, result.output
        assert output.read_text(encoding="utf-8") == "# Verksamhetsberättelse\n\nText.\n"
        stored = json.loads(metadata.read_text(encoding="utf-8"))
        assert stored["tokens_used"] == 200
        assert stored["processing_method"] == "single_pass"
        assert "formellt" in seen[0]["system"]
        assert "Sommarlägret samlade 40 barn." in seen[0]["messages"][0]["content"]

    def test_generate_without_credentials_fails(self, request_file, tmp_path):
        output = tmp_path / "report.md"

        result = runner.invoke(cli.app, ["generate", "--input", str(request_file), "--output", str(output)])

        assert result.exit_code == 1
        assert not output.exists()

    def test_generate_provider_error_fails(self, request_file, tmp_path, monkeypatch, no_sleep, json_response):
        def handler(request):
            return json_response(401, {"error": {"type": "authentication_error", "message": "bad key"}})

        monkeypatch.setattr(cli, "create_llm_client", self.fake_factory(handler, no_sleep))
        output = tmp_path / "report.md"

        result = runner.invoke(cli.app, ["generate", "--input", str(request_file), "--output", str(output)])

        assert result.exit_code == 1
        assert not output.exists()

    def test_generate_rejects_invalid_input(self, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("organization:\n  id: x\n", encoding="utf-8")

        result = runner.invoke(cli.app, ["generate", "--input", str(bad)])

        assert result.exit_code == 1

    def test_generate_missing_input_file(self, tmp_path):
        result = runner.invoke(cli.app, ["generate", "--input", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1

    def test_analyze_style_prints_json(self, tmp_path, monkeypatch, no_sleep, json_response, anthropic_payload):
        reply = json.dumps({"tonality": "formal", "common_phrases": ["under året"]})

        def handler(request):
            return json_response(200, anthropic_payload(f"Analys:\n{reply}"))

        monkeypatch.setattr(cli, "create_llm_client", self.fake_factory(handler, no_sleep))
        reference = tmp_path / "reference.txt"
        reference.write_text("Styrelsen har under året arbetat aktivt.", encoding="utf-8")

        result = runner.invoke(cli.app, ["analyze-style", "--input", str(reference)])

        assert result.exit_code == 0
        assert '"tonality": "formal"' in result.stdout

    def test_analyze_style_writes_file(self, tmp_path, monkeypatch, no_sleep, json_response, anthropic_payload):
        def handler(request):
            return json_response(200, anthropic_payload('{"tonality": "conversational"}'))

        monkeypatch.setattr(cli, "create_llm_client", self.fake_factory(handler, no_sleep))
        reference = tmp_path / "reference.txt"
        reference.write_text("Vi hade kul!", encoding="utf-8")
        output = tmp_path / "style.json"

        result = runner.invoke(cli.app, ["analyze-style", "-i", str(reference), "-o", str(output)])

        assert result.exit_code == 0
        assert json.loads(output.read_text(encoding="utf-8"))["tonality"] == "conversational"

    def test_count_tokens(self, tmp_path, request_file):
        notes = tmp_path / "notes.txt"
        notes.write_text("a" * 400, encoding="utf-8")

        result = runner.invoke(cli.app, ["count-tokens", str(notes), str(request_file)])

        assert result.exit_code == 0

    def test_count_tokens_missing_file(self, tmp_path):
        result = runner.invoke(cli.app, ["count-tokens", str(tmp_path / "nope.txt")])

        assert result.exit_code == 1

    def test_info(self):
        result = runner.invoke(cli.app, ["info"])

        assert result.exit_code == 0
