"""
Chunking of section text into token-bounded, overlapping chunks.

Runs in-process with no model cost. Token counts are estimated at four
characters per token, which is good enough to keep chunks inside embedding
model context windows.
"""

import math
import re
from typing import List, Optional, Tuple

from common.core.telemetry import get_logger, trace_span
from packages.retrieval.models.domain.chunk import Chapter, Chunk, TextSegment
from packages.retrieval.models.domain.vectorize import ChunkerConfig

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4
LOCATION_PREFIX_CHARS = 40

# Break before a markdown heading or on a blank line
_SECTION_SPLIT = re.compile(r"\n(?=#{1,6}\s)|\n{2,}")
_WHITESPACE = re.compile(r"\s+")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def split_sections(content: str) -> List[str]:
    """Split content into paragraph / heading sections, dropping blanks."""
    sections = (part.strip() for part in _SECTION_SPLIT.split(content))
    return [section for section in sections if section]


def validate_config(config: ChunkerConfig) -> None:
    if config.target_tokens <= 0:
        raise ValueError("target_tokens must be positive")
    if config.min_tokens < 0:
        raise ValueError("min_tokens must not be negative")
    if not 0 <= config.overlap_ratio < 1:
        raise ValueError("overlap_ratio must be in [0, 1)")


def _overlap_tail(text: str, overlap_tokens: int) -> str:
    if overlap_tokens <= 0:
        return ""
    overlap_chars = overlap_tokens * CHARS_PER_TOKEN
    return text[-overlap_chars:] if len(text) > overlap_chars else text


def locate_chunk(
    content: str, segments: List[TextSegment], fallback: str
) -> Tuple[str, str]:
    """
    Find the start and end locations of a chunk from the segments it overlaps.

    A segment matches when the first 40 characters of its normalized text occur
    in the normalized chunk. Segments shorter than the overlap window can match
    chunks they do not really belong to.
    """
    normalized_content = _normalize(content)
    start: Optional[str] = None
    end: Optional[str] = None

    for segment in segments:
        prefix = _normalize(segment.text)[:LOCATION_PREFIX_CHARS]
        if prefix and prefix in normalized_content:
            if start is None:
                start = segment.location
            end = segment.location

    if start is None:
        return fallback, fallback
    return start, end


class ChunkingService:
    """Greedy section accumulation with a character-level overlap tail."""

    def __init__(self, default_config: Optional[ChunkerConfig] = None):
        self.default_config = default_config or ChunkerConfig()

    @trace_span
    def chunk(
        self,
        content: str,
        document_id: str,
        section_index: int,
        section_title: str,
        config: Optional[ChunkerConfig] = None,
        segments: Optional[List[TextSegment]] = None,
        section_location: str = "",
    ) -> List[Chunk]:
        """
        Chunk one section's text.

        Args:
            content: Section text
            document_id: Owning document
            section_index: Index of the section in the document
            section_title: Title of the section
            config: Chunk sizing, defaults to the service's config
            segments: Location-tagged runs of the same text
            section_location: Location used when no segment matches

        Returns:
            Chunks in reading order, ids ``{document_id}-{section_index}-{n}``
        """
        config = config or self.default_config
        validate_config(config)
        segments = segments or []

        texts: List[str] = []
        current_text = ""
        current_tokens = 0

        for section in split_sections(content):
            section_tokens = estimate_tokens(section)

            if (
                current_tokens + section_tokens > config.target_tokens
                and current_tokens >= config.min_tokens
            ):
                texts.append(current_text)
                overlap_tokens = math.floor(current_tokens * config.overlap_ratio)
                current_text = _overlap_tail(current_text, overlap_tokens) + section
                current_tokens = estimate_tokens(current_text)
            else:
                current_text = f"{current_text}\n\n{section}" if current_text else section
                current_tokens += section_tokens

        if current_text and current_tokens >= config.min_tokens:
            texts.append(current_text)

        chunks = []
        for n, text in enumerate(texts):
            start_location, end_location = locate_chunk(text, segments, section_location)
            chunks.append(
                Chunk(
                    id=f"{document_id}-{section_index}-{n}",
                    document_id=document_id,
                    section_index=section_index,
                    section_title=section_title,
                    content=text,
                    token_count=estimate_tokens(text),
                    start_location=start_location,
                    end_location=end_location,
                )
            )
        return chunks

    def chunk_chapters(
        self,
        chapters: List[Chapter],
        document_id: str,
        config: Optional[ChunkerConfig] = None,
    ) -> List[Chunk]:
        chunks: List[Chunk] = []
        for chapter in chapters:
            chunks.extend(
                self.chunk(
                    chapter.content,
                    document_id,
                    chapter.index,
                    chapter.title,
                    config=config,
                    segments=chapter.segments,
                    section_location=chapter.location,
                )
            )
        logger.info(f"Chunked {len(chapters)} sections of {document_id} into {len(chunks)} chunks")
        return chunks
