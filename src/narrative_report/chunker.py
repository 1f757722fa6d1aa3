"""
Narrative Report Generator - Document Chunker

Splits an ordered set of titled sections into groups that fit a token
budget. Sections are packed greedily in input order; a section too large for
a chunk of its own is split on paragraph boundaries into numbered parts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Union

import structlog

from .models import SectionInput
from .tokens import TokenCounter, get_token_counter

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TOKENS_PER_CHUNK = 25_000
PART_LABEL = "{title} (del {part})"
PARAGRAPH_BREAK = re.compile(r"\n{2,}")

SectionsLike = Union[
    Mapping[str, str],
    Iterable[tuple[str, str]],
    Iterable[SectionInput],
]


@dataclass(frozen=True)
class ChunkEntry:
    """A section, or one part of a split section, inside a chunk."""
    title: str
    text: str
    part: Optional[int] = None

    @property
    def label(self) -> str:
        if self.part is None:
            return self.title
        return PART_LABEL.format(title=self.title, part=self.part)

    @property
    def budget_text(self) -> str:
        """Text whose token count is charged against the chunk budget."""
        return f"{self.label}:\n{self.text}"

    def render(self) -> str:
        return f"{self.label}:\n{self.text}"


@dataclass(frozen=True)
class Chunk:
    """Ordered group of entries sent to the model in one call."""
    entries: tuple[ChunkEntry, ...] = ()

    def __iter__(self) -> Iterator[ChunkEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def render(self) -> str:
        """Prompt text: ``label:\\ntext`` blocks separated by blank lines."""
        return "\n\n".join(entry.render() for entry in self.entries)

    def as_mapping(self) -> dict[str, str]:
        """Label to text mapping (duplicate labels collapse)."""
        return {entry.label: entry.text for entry in self.entries}

    def estimated_tokens(self, reserved_tokens: int = 0, counter: Optional[TokenCounter] = None) -> int:
        counter = counter or get_token_counter()
        return reserved_tokens + sum(counter.count(e.budget_text) for e in self.entries)


def normalize_sections(sections: SectionsLike) -> list[tuple[str, str]]:
    """Turn supported section containers into ``(title, text)`` pairs."""
    if isinstance(sections, Mapping):
        return [(str(title), text or "") for title, text in sections.items()]

    pairs = []
    for item in sections:
        if isinstance(item, SectionInput):
            pairs.append((item.title, item.raw_text))
        else:
            title, text = item
            pairs.append((title, text or ""))
    return pairs


def paragraph_pieces(text: str) -> list[str]:
    """
    Split text at paragraph breaks, keeping each break attached to the
    paragraph before it so that ``"".join(pieces) == text``.
    """
    pieces = []
    start = 0
    for match in PARAGRAPH_BREAK.finditer(text):
        pieces.append(text[start:match.end()])
        start = match.end()
    if start < len(text) or not pieces:
        pieces.append(text[start:])
    return pieces


class DocumentChunker:
    """
    Token-budget-aware section packer.

    Every chunk's cost is ``reserved_tokens`` plus the token count of each
    entry's ``label:\\ntext``; it never exceeds ``max_tokens_per_chunk``
    except when a single paragraph is larger than the budget by itself.
    """

    def __init__(self, counter: Optional[TokenCounter] = None):
        self.counter = counter or get_token_counter()

    def entry_tokens(self, entry: ChunkEntry) -> int:
        return self.counter.count(entry.budget_text)

    def chunk(
        self,
        sections: SectionsLike,
        reserved_tokens: int = 0,
        max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
    ) -> list[Chunk]:
        """
        Partition sections into chunks.

        Args:
            sections: Ordered sections (mapping, pairs or SectionInput list)
            reserved_tokens: Tokens already used by each call (system prompt)
            max_tokens_per_chunk: Budget per chunk including reserved tokens

        Returns:
            At least one chunk; a single empty chunk for empty input
        """
        if reserved_tokens < 0:
            raise ValueError("reserved_tokens must be >= 0")
        if max_tokens_per_chunk <= 0:
            raise ValueError("max_tokens_per_chunk must be > 0")

        chunks: list[Chunk] = []
        current: list[ChunkEntry] = []
        current_tokens = reserved_tokens

        for title, text in normalize_sections(sections):
            entry = ChunkEntry(title=title, text=text)
            entry_tokens = self.entry_tokens(entry)

            if reserved_tokens + entry_tokens > max_tokens_per_chunk:
                if current:
                    chunks.append(Chunk(tuple(current)))
                    current = []
                    current_tokens = reserved_tokens
                chunks.extend(
                    self._split_section(title, text, reserved_tokens, max_tokens_per_chunk)
                )
                continue

            if current and current_tokens + entry_tokens > max_tokens_per_chunk:
                chunks.append(Chunk(tuple(current)))
                current = []
                current_tokens = reserved_tokens

            current.append(entry)
            current_tokens += entry_tokens

        if current:
            chunks.append(Chunk(tuple(current)))

        logger.debug(
            "Sections chunked",
            chunks=len(chunks) or 1,
            reserved_tokens=reserved_tokens,
            max_tokens_per_chunk=max_tokens_per_chunk,
        )
        return chunks or [Chunk()]

    def _split_section(
        self,
        title: str,
        text: str,
        reserved_tokens: int,
        max_tokens_per_chunk: int,
    ) -> list[Chunk]:
        """Split one oversized section into single-entry part chunks."""
        parts: list[str] = []
        current = ""

        for piece in paragraph_pieces(text):
            candidate = ChunkEntry(title=title, text=current + piece, part=len(parts) + 1)
            if current and reserved_tokens + self.entry_tokens(candidate) > max_tokens_per_chunk:
                parts.append(current)
                current = ""
            current += piece

        if current or not parts:
            parts.append(current)

        chunks = []
        for number, part_text in enumerate(parts, start=1):
            entry = ChunkEntry(title=title, text=part_text, part=number)
            cost = reserved_tokens + self.entry_tokens(entry)
            if cost > max_tokens_per_chunk:
                logger.warning(
                    "Paragraph exceeds chunk budget, kept whole",
                    section=title,
                    part=number,
                    tokens=cost,
                    max_tokens=max_tokens_per_chunk,
                )
            chunks.append(Chunk((entry,)))

        logger.info("Oversized section split", section=title, parts=len(parts))
        return chunks


def chunk_sections(
    sections: SectionsLike,
    reserved_tokens: int = 0,
    max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
    counter: Optional[TokenCounter] = None,
) -> list[Chunk]:
    """Chunk sections with a fresh :class:`DocumentChunker`."""
    return DocumentChunker(counter).chunk(sections, reserved_tokens, max_tokens_per_chunk)


def reassemble(chunks: Sequence[Chunk]) -> list[tuple[str, str]]:
    """Rebuild ``(title, text)`` pairs from chunks, joining split parts."""
    sections: list[tuple[str, str]] = []
    for chunk in chunks:
        for entry in chunk:
            if entry.part is not None and entry.part > 1 and sections and sections[-1][0] == entry.title:
                title, text = sections[-1]
                sections[-1] = (title, text + entry.text)
            else:
                sections.append((entry.title, entry.text))
    return sections
