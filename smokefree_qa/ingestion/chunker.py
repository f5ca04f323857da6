"""Fixed-window text chunker for Korean regulation documents."""

import bisect
import logging
import math
import re

from smokefree_qa.config import ChunkingConfig
from smokefree_qa.models.chunk import Chunk, ChunkLocation, ChunkMetadata
from smokefree_qa.models.parsed import ParsedDocument
from smokefree_qa.retrieval.vocabulary import find_domain_keywords

logger = logging.getLogger(__name__)

PAGE_MARKER = re.compile(r"\[PAGE_(\d+)\]")

# Chapter / section headings, then named regulations and guidelines.
SECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"제\d+장\s*[^.\n]+"),
    re.compile(r"제\d+절\s*[^.\n]+"),
    re.compile(r"[가-힣]{2,}\s*규정"),
    re.compile(r"[가-힣]{2,}\s*지침"),
)

# Articles, paragraphs and parenthesised headings.
SUBSECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"제\d+조\s*[^.\n]+"),
    re.compile(r"제\d+항\s*[^.\n]+"),
    re.compile(r"\([가-힣]+\)\s*[^.\n]+"),
)

MAX_HEADING_LENGTH = 80


def estimate_tokens(text: str) -> int:
    """Estimate token count for a text string.

    Uses roughly four characters per token, which is close enough for
    mixed Korean/English text when sizing prompts.

    Args:
        text: The text to estimate tokens for.

    Returns:
        Estimated token count.
    """
    return math.ceil(len(text) / 4)


def _first_match(patterns: tuple[re.Pattern[str], ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group().strip()[:MAX_HEADING_LENGTH]
    return None


def extract_section(content: str) -> str | None:
    """Return the first chapter/section heading found in ``content``."""
    return _first_match(SECTION_PATTERNS, content)


def extract_subsection(content: str) -> str | None:
    """Return the first article/paragraph heading found in ``content``."""
    return _first_match(SUBSECTION_PATTERNS, content)


class RegulationChunker:
    """Splits parsed documents into overlapping, sentence-aligned chunks.

    Each window is ``chunk_size`` characters. When the window does not
    reach the end of the text it is cut back to the last ``.`` provided
    that boundary lies past ``sentence_snap_ratio`` of the window. The
    next window starts ``overlap`` characters before the previous cut.

    Args:
        config: ChunkingConfig with chunk_size, overlap and
                sentence_snap_ratio settings.

    Raises:
        ValueError: If overlap is not smaller than chunk_size.
    """

    def __init__(self, config: ChunkingConfig) -> None:
        if config.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= config.overlap < config.chunk_size:
            raise ValueError(
                f"overlap ({config.overlap}) must be in [0, chunk_size={config.chunk_size})"
            )
        self._config = config

    def chunk(self, document: ParsedDocument, id_offset: int = 0) -> list[Chunk]:
        """Split a parsed document into chunks.

        Args:
            document: The parsed document to chunk.
            id_offset: Number added to the running counter when building
                chunk ids, so ids stay unique across a multi-document corpus.

        Returns:
            List of Chunk objects in document order.
        """
        text = document.raw_text
        if not text.strip():
            return []

        pages = self._page_markers(text)
        size = self._config.chunk_size
        chunks: list[Chunk] = []
        start = 0

        while start < len(text):
            end = min(start + size, len(text))
            window = text[start:end]

            if end < len(text):
                last_period = window.rfind(".")
                if last_period > size * self._config.sentence_snap_ratio:
                    window = window[: last_period + 1]

            content = window.strip()
            if content:
                chunk_index = len(chunks)
                chunks.append(
                    Chunk(
                        id=f"chunk_{id_offset + chunk_index:03d}",
                        content=content,
                        metadata=ChunkMetadata(
                            source=document.title,
                            title=document.title,
                            chunk_index=chunk_index,
                            start_position=start,
                            end_position=start + len(window),
                            page_number=self._page_for(pages, start, start + len(window)),
                        ),
                        keywords=find_domain_keywords(content),
                        location=ChunkLocation(
                            document=document.title,
                            section=extract_section(content),
                            subsection=extract_subsection(content),
                        ),
                    )
                )

            if start + len(window) >= len(text):
                break
            start += max(len(window) - self._config.overlap, 1)

        logger.debug("Chunked '%s' into %d chunks", document.title, len(chunks))
        return chunks

    def _page_markers(self, text: str) -> list[tuple[int, int]]:
        """Return ``(position, page_number)`` for every page marker."""
        return [(m.start(), int(m.group(1))) for m in PAGE_MARKER.finditer(text)]

    def _page_for(self, pages: list[tuple[int, int]], start: int, end: int) -> int | None:
        """Find the page a span begins on.

        Uses the nearest marker at or before ``start``; if the span opens
        before the first marker, the first marker inside the span.
        """
        if not pages:
            return None
        positions = [position for position, _ in pages]
        idx = bisect.bisect_right(positions, start) - 1
        if idx >= 0:
            return pages[idx][1]
        if positions[0] < end:
            return pages[0][1]
        return None
