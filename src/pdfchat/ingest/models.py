"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass(frozen=True, slots=True)
class Segment:
    """A bounded slice of document text, the unit of retrieval."""

    text: str
    start_offset: int
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def end_offset(self) -> int:
        return self.start_offset + len(self.text)


@dataclass(slots=True)
class PDFExtractionResult:
    """Plain text recovered from a PDF along with its page count."""

    text: str
    page_count: int


@dataclass(slots=True)
class IngestedDocument:
    """Chunked representation of one uploaded document."""

    file_name: str
    segments: List[Segment]
    page_count: int
    char_count: int
    duration_seconds: float
