"""
Narrative Report Generator - Report Generator

Turns section notes into a finished report. Small inputs go to the model in
a single call; larger ones are chunked, generated part by part and, when
more than two parts were needed, merged by a final coherence pass.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import structlog

from .chunker import Chunk, ChunkEntry, DocumentChunker
from .config import GenerationConfig, get_config
from .errors import GenerationCancelledError, GenerationError, LLMError
from .llm.base import LLMClient
from .models import (
    ChatMessage,
    CompletionOptions,
    CompletionResult,
    GenerationMetadata,
    GenerationResult,
    Organization,
    ProcessingMethod,
    ReportTemplate,
    SectionContent,
    SectionInput,
    StyleAnalysis,
    StyleProfile,
    Usage,
)
from .prompts import ChunkInfo, build_coherence_prompt, build_system_prompt, build_user_prompt
from .tokens import TokenCounter, get_token_counter

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[str, int, int], None]
SectionsContentLike = Mapping[str, Union[SectionContent, Mapping[str, Any], str, None]]


class GenerationState(str, Enum):
    """Stages of a single generation run."""
    IDLE = "idle"
    ESTIMATING = "estimating"
    SINGLE_PASS = "single_pass"
    CHUNKING = "chunking"
    CHUNK_LOOP = "chunk_loop"
    COHERENCE_PASS = "coherence_pass"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _Run:
    """Mutable bookkeeping for one invocation; never shared between calls."""
    log: Any
    state: GenerationState = GenerationState.IDLE
    usage: Usage = field(default_factory=Usage)

    def transition(self, state: GenerationState, **context) -> None:
        self.log.debug("Generation state changed", previous=self.state.value, state=state.value, **context)
        self.state = state


def _as_section_content(value: Union[SectionContent, Mapping[str, Any], str, None]) -> SectionContent:
    if isinstance(value, SectionContent):
        return value
    if value is None:
        return SectionContent()
    if isinstance(value, str):
        return SectionContent(raw_input=value)
    return SectionContent.model_validate(value)


def collect_section_inputs(
    template: ReportTemplate,
    sections_content: SectionsContentLike,
) -> list[SectionInput]:
    """
    Pair section notes with template titles.

    Sections follow template order; content for ids the template does not
    know is appended afterwards with the id as title. Blank notes are
    skipped.
    """
    contents = {key: _as_section_content(value) for key, value in sections_content.items()}
    inputs: list[SectionInput] = []
    seen: set[str] = set()

    for section in template.ordered_sections:
        seen.add(section.id)
        content = contents.get(section.id)
        if content is None or not content.raw_input.strip():
            continue
        inputs.append(SectionInput(section_id=section.id, title=section.title, raw_text=content.raw_input))

    for section_id, content in contents.items():
        if section_id in seen or not content.raw_input.strip():
            continue
        inputs.append(SectionInput(section_id=section_id, title=section_id, raw_text=content.raw_input))

    return inputs


def render_sections(sections: list[SectionInput]) -> str:
    """Flatten sections into ``title:\\ntext`` blocks."""
    return Chunk(tuple(ChunkEntry(title=s.title, text=s.raw_text) for s in sections)).render()


class ReportGenerator:
    """
    Orchestrates report generation against one LLM client.

    The instance holds no per-run state, so one generator can serve
    concurrent requests as long as the client can.
    """

    def __init__(
        self,
        client: LLMClient,
        config: Optional[GenerationConfig] = None,
        token_counter: Optional[TokenCounter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize report generator.

        Args:
            client: LLM client used for every call
            config: Generation policy (global configuration if omitted)
            token_counter: Token counter (shared counter if omitted)
            sleep: Coroutine used for the pause between chunk calls
        """
        self.client = client
        self.config = config or get_config().generation
        self.counter = token_counter or get_token_counter()
        self._sleep = sleep

    async def generate(
        self,
        organization: Organization,
        template: ReportTemplate,
        sections_content: SectionsContentLike,
        style_profile: Optional[StyleProfile] = None,
        reference_analysis: Optional[StyleAnalysis] = None,
        model: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        """
        Generate a complete report.

        Args:
            organization: Organization the report is written for
            template: Report template (outline and titles)
            sections_content: Notes per section id
            style_profile: Style to apply (organization profile if omitted)
            reference_analysis: Latest analysis of a reference document
            model: Model override passed to the client
            on_progress: Called with (step, current, total)
            cancel_event: When set, generation stops before the next call

        Returns:
            Generated content and metadata

        Raises:
            GenerationError: If a primary LLM call fails
            GenerationCancelledError: If ``cancel_event`` was set
        """
        run = _Run(log=logger.bind(org_id=organization.id, template_id=template.id))
        start = time.perf_counter()

        try:
            run.transition(GenerationState.ESTIMATING)
            style_profile = style_profile or organization.style_profile
            system_prompt = build_system_prompt(
                organization=organization,
                template=template,
                style_profile=style_profile,
                reference_analysis=reference_analysis,
            )
            sections = collect_section_inputs(template, sections_content)
            content_text = render_sections(sections)

            system_tokens = self.counter.count(system_prompt)
            content_tokens = self.counter.count(content_text)
            options = CompletionOptions(
                model=model,
                max_tokens=self.config.max_output_tokens,
                temperature=self.config.temperature,
            )

            run.log.info(
                "Starting report generation",
                sections=len(sections),
                system_tokens=system_tokens,
                content_tokens=content_tokens,
                safe_input_limit=self.config.safe_input_limit,
            )

            if system_tokens + content_tokens <= self.config.safe_input_limit:
                content, chunk_count, method = await self._single_pass(
                    run, system_prompt, content_text, options, on_progress, cancel_event
                )
            else:
                content, chunk_count, method = await self._chunked(
                    run, system_prompt, sections, system_tokens, options, on_progress, cancel_event
                )

            run.transition(GenerationState.DONE)

        except GenerationError:
            run.transition(GenerationState.FAILED)
            raise
        except LLMError as e:
            run.transition(GenerationState.FAILED)
            run.log.error("Report generation failed", error=str(e))
            raise GenerationError(f"Report generation failed: {e}") from e
        except asyncio.CancelledError:
            run.transition(GenerationState.FAILED)
            run.log.warning("Report generation task cancelled")
            raise

        elapsed_ms = round((time.perf_counter() - start) * 1000)
        result = GenerationResult(
            content=content,
            metadata=GenerationMetadata(
                model=model or self.client.default_model,
                chunks=chunk_count,
                total_tokens=run.usage.total_tokens,
                prompt_tokens=run.usage.prompt_tokens,
                completion_tokens=run.usage.completion_tokens,
                processing_method=method,
                generation_time_ms=elapsed_ms,
            ),
        )

        run.log.info(
            "Report generated",
            processing_method=method.value,
            chunks=chunk_count,
            total_tokens=run.usage.total_tokens,
            generation_time_ms=elapsed_ms,
        )
        return result

    async def _single_pass(
        self,
        run: _Run,
        system_prompt: str,
        content_text: str,
        options: CompletionOptions,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[asyncio.Event],
    ) -> tuple[str, int, ProcessingMethod]:
        run.transition(GenerationState.SINGLE_PASS)
        self._check_cancelled(cancel_event)
        self._report(on_progress, "Genererar rapport...", 1, 1)

        result = await self._complete(system_prompt, build_user_prompt(content_text), options)
        run.usage = run.usage + result.usage
        return result.content, 1, ProcessingMethod.SINGLE_PASS

    async def _chunked(
        self,
        run: _Run,
        system_prompt: str,
        sections: list[SectionInput],
        system_tokens: int,
        options: CompletionOptions,
        on_progress: Optional[ProgressCallback],
        cancel_event: Optional[asyncio.Event],
    ) -> tuple[str, int, ProcessingMethod]:
        run.transition(GenerationState.CHUNKING)
        chunks = DocumentChunker(self.counter).chunk(
            sections,
            reserved_tokens=system_tokens,
            max_tokens_per_chunk=self.config.max_tokens_per_chunk,
        )
        total = len(chunks)

        run.transition(GenerationState.CHUNK_LOOP, chunks=total)
        outputs: list[str] = []
        for index, chunk in enumerate(chunks):
            self._check_cancelled(cancel_event)
            self._report(on_progress, f"Bearbetar del {index + 1} av {total}...", index + 1, total)

            user_prompt = build_user_prompt(chunk.render(), ChunkInfo(current=index + 1, total=total))
            result = await self._complete(system_prompt, user_prompt, options)
            outputs.append(result.content)
            run.usage = run.usage + result.usage
            run.log.info("Chunk generated", chunk=index + 1, chunks=total, tokens=result.usage.total_tokens)

            if index < total - 1 and self.config.chunk_delay > 0:
                await self._sleep(self.config.chunk_delay)

        content = self.config.chunk_separator.join(outputs)
        if total <= 2:
            return content, total, ProcessingMethod.CHUNKED

        self._check_cancelled(cancel_event)
        run.transition(GenerationState.COHERENCE_PASS)
        self._report(on_progress, "Slutgiltig sammanslagning...", total, total)

        coherence_options = options.model_copy(
            update={
                "temperature": self.config.coherence_temperature,
                "max_tokens": self.config.coherence_max_tokens,
            }
        )
        try:
            result = await self._complete(system_prompt, build_coherence_prompt(content), coherence_options)
        except Exception as e:
            run.log.warning("Coherence pass failed, keeping joined chunks", error=str(e), error_type=type(e).__name__)
            return content, total, ProcessingMethod.CHUNKED

        run.usage = run.usage + result.usage
        return result.content, total, ProcessingMethod.CHUNKED_WITH_COHERENCE_PASS

    async def _complete(self, system_prompt: str, user_prompt: str, options: CompletionOptions) -> CompletionResult:
        return await self.client.generate_completion(
            [
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            options,
        )

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelledError("Report generation was cancelled")

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], step: str, current: int, total: int) -> None:
        if on_progress is not None:
            on_progress(step, current, total)


async def generate_report(
    client: LLMClient,
    organization: Organization,
    template: ReportTemplate,
    sections_content: SectionsContentLike,
    style_profile: Optional[StyleProfile] = None,
    reference_analysis: Optional[StyleAnalysis] = None,
    model: Optional[str] = None,
    config: Optional[GenerationConfig] = None,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> GenerationResult:
    """Generate a report with a one-off :class:`ReportGenerator`."""
    generator = ReportGenerator(client, config=config)
    return await generator.generate(
        organization=organization,
        template=template,
        sections_content=sections_content,
        style_profile=style_profile,
        reference_analysis=reference_analysis,
        model=model,
        on_progress=on_progress,
        cancel_event=cancel_event,
    )
