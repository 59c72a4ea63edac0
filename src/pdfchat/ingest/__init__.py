"""Document ingestion: PDF extraction, normalisation and chunking."""
from __future__ import annotations

from .chunking import ChunkingConfig, SemanticTextChunker, chunk_text
from .extractors import PDFExtractor, looks_like_pdf
from .models import IngestedDocument, PDFExtractionResult, Segment
from .normalization import normalize_text
from .pipeline import IngestPipeline, IngestPipelineConfig

__all__ = [
    "ChunkingConfig",
    "IngestPipeline",
    "IngestPipelineConfig",
    "IngestedDocument",
    "PDFExtractionResult",
    "PDFExtractor",
    "Segment",
    "SemanticTextChunker",
    "chunk_text",
    "looks_like_pdf",
    "normalize_text",
]
