"""High level ingestion pipeline entry point."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Mapping, Optional

from pdfchat.errors import ValidationError
from pdfchat.telemetry import traced_duration

from .chunking import ChunkingConfig, SemanticTextChunker
from .extractors import PDFExtractor
from .models import IngestedDocument
from .normalization import normalize_text

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IngestPipelineConfig:
    chunk_chars: int = 1000
    overlap_chars: int = 200


class IngestPipeline:
    """Pipeline orchestrating document extraction, normalisation and chunking."""

    def __init__(self, config: Optional[IngestPipelineConfig] = None) -> None:
        self.config = config or IngestPipelineConfig()
        self.pdf_extractor = PDFExtractor()
        self.chunker = SemanticTextChunker(
            ChunkingConfig(chunk_chars=self.config.chunk_chars, overlap_chars=self.config.overlap_chars)
        )

    def ingest(
        self,
        file_bytes: bytes,
        file_name: str,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> IngestedDocument:
        """Process an uploaded PDF and return embedding-ready segments."""

        started = time.perf_counter()
        LOGGER.info("Processing file %s (%d bytes)", file_name, len(file_bytes))

        with traced_duration("ingest.extract", logger=LOGGER, file=file_name, size_bytes=len(file_bytes)):
            result = self.pdf_extractor.extract(file_bytes)
        text = normalize_text(result.text)
        if not text:
            raise ValidationError("No text content found in PDF")

        segment_metadata = {"file_name": file_name}
        segment_metadata.update(metadata or {})
        segments = self.chunker.chunk(text, segment_metadata)
        LOGGER.info("Generated %s chunks for file %s", len(segments), file_name)

        return IngestedDocument(
            file_name=file_name,
            segments=segments,
            page_count=result.page_count,
            char_count=len(text),
            duration_seconds=time.perf_counter() - started,
        )
