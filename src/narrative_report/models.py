"""
Narrative Report Generator - Data Models

Pydantic models for organizations, templates, style profiles, LLM exchanges
and generation results.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Enums
# =============================================================================

class Tonality(str, Enum):
    """Overall register of the generated report."""
    FORMAL = "formal"
    SEMI_FORMAL = "semi-formal"
    CONVERSATIONAL = "conversational"


class OrgType(str, Enum):
    """Kind of organization the report is written for."""
    ASSOCIATION = "association"
    FOUNDATION = "foundation"
    COOPERATIVE = "cooperative"
    COMPANY = "company"
    MUNICIPALITY = "municipality"
    FAITH = "faith"
    UNION = "union"
    OTHER = "other"


class VocabularyLevel(str, Enum):
    SIMPLE = "simple"
    PROFESSIONAL = "professional"
    ACADEMIC = "academic"


class ReportStatus(str, Enum):
    """Lifecycle status of a stored report."""
    DRAFT = "draft"
    GENERATING = "generating"
    REVIEW = "review"
    FINAL = "final"


class ProcessingMethod(str, Enum):
    """How a report was produced from its input."""
    SINGLE_PASS = "single_pass"
    CHUNKED = "chunked"
    CHUNKED_WITH_COHERENCE_PASS = "chunked_with_coherence_pass"


class AIAction(str, Enum):
    """Audited LLM actions."""
    GENERATE_REPORT = "generate_report"
    ANALYZE_REFERENCE = "analyze_reference"
    REGENERATE_SECTION = "regenerate_section"


# =============================================================================
# Style
# =============================================================================

class StyleProfile(BaseModel):
    """Organization-level writing preferences."""
    model_config = ConfigDict(frozen=True)

    tonality: Optional[str] = Field(None, description="formal | semi-formal | conversational")
    formality_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    avg_sentence_length: Optional[float] = None
    vocabulary_level: Optional[VocabularyLevel] = None
    active_voice_preference: Optional[bool] = None
    custom_instructions: Optional[str] = None
    extracted_patterns: dict[str, Any] = Field(default_factory=dict)

    @field_validator("tonality", mode="before")
    @classmethod
    def tonality_value(cls, v):
        if isinstance(v, Enum):
            return v.value
        return v

    def with_custom_instructions(self, instructions: Optional[str]) -> "StyleProfile":
        """Return a copy overriding the custom instructions when given."""
        if not instructions:
            return self
        return self.model_copy(update={"custom_instructions": instructions})


class StyleAnalysis(BaseModel):
    """Style patterns extracted from an uploaded reference document."""
    model_config = ConfigDict(extra="ignore")

    tonality: Optional[str] = None
    formality_score: Optional[float] = None
    avg_sentence_length: Optional[float] = None
    vocabulary_level: Optional[str] = None
    common_phrases: list[str] = Field(default_factory=list)
    section_patterns: list[Any] = Field(default_factory=list)
    vocabulary_characteristics: Optional[str] = None
    analysis_summary: Optional[str] = None
    person_reference: Optional[str] = None
    tense_preference: Optional[str] = None
    active_voice_ratio: Optional[float] = None
    paragraph_style: Optional[str] = None
    use_of_subheadings: Optional[bool] = None
    number_presentation: Optional[str] = None
    section_transition_style: Optional[str] = None

    @field_validator("common_phrases", mode="before")
    @classmethod
    def none_is_empty(cls, v):
        return v or []


# =============================================================================
# Organization, Template & Report
# =============================================================================

class Organization(BaseModel):
    """Organization the report belongs to."""
    id: str
    name: str = Field(..., min_length=1)
    org_type: str = Field(default=OrgType.OTHER.value)
    sector: Optional[str] = None
    style_profile: StyleProfile = Field(default_factory=StyleProfile)
    subscription_plan: str = "free"
    reports_used_this_year: int = Field(default=0, ge=0)

    @field_validator("org_type", mode="before")
    @classmethod
    def org_type_value(cls, v):
        if isinstance(v, Enum):
            return v.value
        return v or OrgType.OTHER.value

    @field_validator("style_profile", mode="before")
    @classmethod
    def none_is_default_profile(cls, v):
        return v if v is not None else StyleProfile()


class TemplateSection(BaseModel):
    """One heading in a report template."""
    id: str
    title: str
    level: int = Field(default=1, ge=1, le=3)
    parent_id: Optional[str] = None
    order: int = 0
    description: Optional[str] = None
    placeholder: Optional[str] = None
    required: bool = False
    ai_instructions: Optional[str] = None


class ReportTemplate(BaseModel):
    """Report structure as an ordered list of sections."""
    id: str
    name: str = ""
    sections: list[TemplateSection] = Field(default_factory=list)

    @property
    def ordered_sections(self) -> list[TemplateSection]:
        """Sections sorted by their ``order`` field (stable)."""
        return sorted(self.sections, key=lambda s: s.order)

    def find_section(self, section_id: str) -> Optional[TemplateSection]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None


class SectionContent(BaseModel):
    """User-authored notes for one section of a report."""
    raw_input: str = ""
    is_locked: bool = False
    last_edited: Optional[datetime] = None

    @field_validator("raw_input", mode="before")
    @classmethod
    def none_is_blank(cls, v):
        return v or ""


class SectionInput(BaseModel):
    """A non-empty block of notes ready for generation."""
    section_id: str
    title: str
    raw_text: str


class ReportRecord(BaseModel):
    """Stored report as read from persistence."""
    id: str
    org_id: str
    template_id: Optional[str] = None
    sections_content: dict[str, SectionContent] = Field(default_factory=dict)
    generated_content: Optional[str] = None
    status: ReportStatus = ReportStatus.DRAFT


# =============================================================================
# LLM exchange
# =============================================================================

class ChatMessage(BaseModel):
    """Single chat message sent to a provider."""
    role: str = Field(..., pattern=r"^(system|user|assistant)$")
    content: str


class CompletionOptions(BaseModel):
    """Per-call overrides; unset values fall back to client defaults."""
    model: Optional[str] = None
    max_tokens: Optional[int] = Field(None, gt=0)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    timeout: Optional[float] = Field(None, gt=0)


class Usage(BaseModel):
    """Token usage reported by a provider."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @model_validator(mode="after")
    def fill_total(self) -> "Usage":
        if not self.total_tokens:
            self.total_tokens = self.prompt_tokens + self.completion_tokens
        return self

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class CompletionResult(BaseModel):
    """Trimmed completion text plus usage."""
    content: str
    usage: Usage = Field(default_factory=Usage)


# =============================================================================
# Generation results
# =============================================================================

class GenerationMetadata(BaseModel):
    """How a report was produced."""
    model: str
    chunks: int = Field(..., ge=1)
    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    processing_method: ProcessingMethod
    generation_time_ms: int = 0


class GenerationResult(BaseModel):
    """Final output of one generation call."""
    model_config = ConfigDict(frozen=True)

    content: str
    metadata: GenerationMetadata

    def to_report_metadata(self, generated_at: Optional[datetime] = None) -> dict[str, Any]:
        """Metadata in the shape stored on the report record."""
        generated_at = generated_at or datetime.now(timezone.utc)
        return {
            "model": self.metadata.model,
            "tokens_used": self.metadata.total_tokens,
            "chunks": self.metadata.chunks,
            "processing_method": self.metadata.processing_method.value,
            "generated_at": generated_at.isoformat(),
            "generation_time_ms": self.metadata.generation_time_ms,
        }


class GenerationRequest(BaseModel):
    """Everything needed for one generation run, as read from an input file."""
    organization: Organization
    template: ReportTemplate
    sections_content: dict[str, SectionContent] = Field(default_factory=dict)
    style_profile: Optional[StyleProfile] = None
    reference_analysis: Optional[StyleAnalysis] = None
    model: Optional[str] = None

    @field_validator("sections_content", mode="before")
    @classmethod
    def plain_text_is_raw_input(cls, v):
        if not v:
            return {}
        return {
            key: {"raw_input": value} if isinstance(value, str) or value is None else value
            for key, value in v.items()
        }


class AIUsageRecord(BaseModel):
    """Audit entry for a single LLM-backed action."""
    org_id: str
    report_id: Optional[str] = None
    user_id: str
    action: AIAction
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    duration_ms: Optional[int] = None


def build_usage_record(
    result: GenerationResult,
    org_id: str,
    user_id: str,
    report_id: Optional[str] = None,
) -> AIUsageRecord:
    """Audit record for a completed report generation."""
    return AIUsageRecord(
        org_id=org_id,
        report_id=report_id,
        user_id=user_id,
        action=AIAction.GENERATE_REPORT,
        model=result.metadata.model,
        tokens_input=result.metadata.prompt_tokens,
        tokens_output=result.metadata.completion_tokens,
        duration_ms=result.metadata.generation_time_ms,
    )
