"""Extract plain text from uploaded PDF documents."""
from __future__ import annotations

import io
import logging
from typing import List

from pdfminer.high_level import extract_pages
from pdfminer.layout import LTTextContainer

from pdfchat.errors import ExtractionError

from .models import PDFExtractionResult

LOGGER = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
# Readers tolerate leading garbage before the header within the first kilobyte.
_MAGIC_SEARCH_WINDOW = 1024


def looks_like_pdf(data: bytes) -> bool:
    """Return ``True`` when *data* carries a PDF header."""

    return PDF_MAGIC in data[:_MAGIC_SEARCH_WINDOW]


class PDFExtractor:
    """Extract text from PDF documents using pdfminer.six layout analysis."""

    def extract(self, data: bytes) -> PDFExtractionResult:
        """Return the document text with pages separated by a blank line.

        Raises :class:`ExtractionError` for empty, non-PDF, or corrupt input.
        An image-only PDF is not an error here and yields an empty string.
        """

        if not data:
            raise ExtractionError("Uploaded file is empty")
        if not looks_like_pdf(data):
            raise ExtractionError("Only PDF files are allowed")

        try:
            pages = self._extract_pages(data)
        except ExtractionError:
            raise
        except Exception as exc:
            LOGGER.warning("pdfminer failed to parse uploaded document: %s", exc)
            raise ExtractionError("Failed to read PDF document", cause=exc) from exc

        LOGGER.debug("Extracted %d pages from PDF", len(pages))
        return PDFExtractionResult(text="\n\n".join(pages), page_count=len(pages))

    @staticmethod
    def _extract_pages(data: bytes) -> List[str]:
        pages: List[str] = []
        for page_layout in extract_pages(io.BytesIO(data)):
            parts = [
                element.get_text()
                for element in page_layout
                if isinstance(element, LTTextContainer)
            ]
            pages.append("".join(parts))
        return pages


__all__ = ["PDFExtractor", "looks_like_pdf"]
