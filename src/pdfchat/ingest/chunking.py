"""Chunking utilities for breaking text into embedding-friendly units."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from pdfchat.errors import ConfigurationError

from .models import Segment

_SENTENCE_END_RE = re.compile(r"[.!?](?=\s)")
_WHITESPACE_RE = re.compile(r"\s")
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChunkingConfig:
    chunk_chars: int = 1000
    overlap_chars: int = 200

    def __post_init__(self) -> None:
        if self.chunk_chars <= 0:
            raise ConfigurationError("chunk size must be a positive integer")
        if self.overlap_chars < 0:
            raise ConfigurationError("chunk overlap must be a non-negative integer")
        if self.overlap_chars >= self.chunk_chars:
            raise ConfigurationError(
                f"chunk overlap ({self.overlap_chars}) must be smaller than "
                f"chunk size ({self.chunk_chars})"
            )


class SemanticTextChunker:
    """Split text into overlapping windows, preferring semantic boundaries.

    A window ends at the last paragraph break it contains, otherwise at the
    last sentence end, otherwise after the last whitespace character. If none
    of those lies far enough into the window, the window is cut at exactly
    ``chunk_chars``. The next window starts ``overlap_chars`` before the end
    of the previous one, so neighbouring segments share exactly that many
    characters. Segments are verbatim slices of the input.
    """

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()
        # A break must land past the overlap or the next window would not advance.
        self._min_paragraph_break = max(self.config.chunk_chars // 3, self.config.overlap_chars + 1)
        self._min_break = max(self.config.chunk_chars // 4, self.config.overlap_chars + 1)

    def chunk(self, text: str, metadata: Optional[Mapping[str, str]] = None) -> List[Segment]:
        if not text:
            return []

        base_metadata = dict(metadata or {})
        text_length = len(text)
        segments: List[Segment] = []
        start = 0

        while True:
            end = self._find_break(text, start)
            segments.append(self._make_segment(text, start, end, len(segments), base_metadata))
            LOGGER.debug("Chunk %s offsets %s-%s", len(segments) - 1, start, end)
            if end >= text_length:
                break
            start = end - self.config.overlap_chars

        return segments

    def _find_break(self, text: str, start: int) -> int:
        tentative_end = start + self.config.chunk_chars
        if tentative_end >= len(text):
            return len(text)

        window = text[start:tentative_end]

        paragraph_break = window.rfind("\n\n")
        if paragraph_break != -1 and paragraph_break + 2 >= self._min_paragraph_break:
            return start + paragraph_break + 2

        sentence_break = self._last_match_end(_SENTENCE_END_RE, window)
        if sentence_break is not None and sentence_break >= self._min_break:
            return start + sentence_break

        word_break = self._last_match_end(_WHITESPACE_RE, window)
        if word_break is not None and word_break >= self._min_break:
            return start + word_break

        return tentative_end

    @staticmethod
    def _last_match_end(pattern: re.Pattern[str], window: str) -> int | None:
        last = None
        for match in pattern.finditer(window):
            last = match.end()
        return last

    @staticmethod
    def _make_segment(
        text: str,
        start: int,
        end: int,
        index: int,
        base_metadata: Dict[str, str],
    ) -> Segment:
        metadata = dict(base_metadata)
        metadata.update(
            {
                "chunk_index": str(index),
                "char_start": str(start),
                "char_end": str(end),
            }
        )
        return Segment(text=text[start:end], start_offset=start, metadata=metadata)


def chunk_text(text: str, size: int = 1000, overlap: int = 200) -> List[Segment]:
    """Convenience wrapper chunking *text* with an ad-hoc configuration."""

    return SemanticTextChunker(ChunkingConfig(chunk_chars=size, overlap_chars=overlap)).chunk(text)
