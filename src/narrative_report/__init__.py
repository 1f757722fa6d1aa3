"""
Narrative Report Generator

LLM-backed generation of narrative annual reports for organizations.

Main components:
- ReportGenerator: single-pass / chunked / coherence-pass orchestration
- DocumentChunker: token-budgeted, lossless splitting of section notes
- Prompt builders: system, user, chunk-context and coherence prompts
- LLM clients: Anthropic and OpenAI adapters with retry
- TokenCounter: tiktoken-based counting with a length fallback
"""

__version__ = "0.1.0"

from .chunker import Chunk, ChunkEntry, DocumentChunker, chunk_sections
from .config import AppConfig, get_config, load_config
from .errors import (
    ConfigurationError,
    GenerationCancelledError,
    GenerationError,
    LLMError,
    ReportGeneratorError,
    StyleAnalysisError,
)
from .generator import GenerationState, ReportGenerator, collect_section_inputs, generate_report
from .llm import AnthropicClient, LLMClient, OpenAIClient, create_llm_client, get_llm_client
from .models import (
    GenerationMetadata,
    GenerationResult,
    Organization,
    ProcessingMethod,
    ReportTemplate,
    SectionContent,
    StyleAnalysis,
    StyleProfile,
    TemplateSection,
    build_usage_record,
)
from .section_regenerator import regenerate_section
from .style_analyzer import analyze_style
from .tokens import TokenCounter, count_messages_tokens, count_tokens

__all__ = [
    "__version__",
    # Generation
    "ReportGenerator",
    "GenerationState",
    "generate_report",
    "collect_section_inputs",
    "regenerate_section",
    "analyze_style",
    # Chunking & tokens
    "Chunk",
    "ChunkEntry",
    "DocumentChunker",
    "chunk_sections",
    "TokenCounter",
    "count_tokens",
    "count_messages_tokens",
    # LLM
    "LLMClient",
    "AnthropicClient",
    "OpenAIClient",
    "create_llm_client",
    "get_llm_client",
    # Models
    "Organization",
    "ReportTemplate",
    "TemplateSection",
    "SectionContent",
    "StyleProfile",
    "StyleAnalysis",
    "GenerationResult",
    "GenerationMetadata",
    "ProcessingMethod",
    "build_usage_record",
    # Config & errors
    "AppConfig",
    "get_config",
    "load_config",
    "ReportGeneratorError",
    "ConfigurationError",
    "LLMError",
    "GenerationError",
    "GenerationCancelledError",
    "StyleAnalysisError",
]
