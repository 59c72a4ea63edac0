"""Clean up text recovered from PDF layout analysis."""
from __future__ import annotations

import re
import unicodedata

_PAGE_BREAK_RE = re.compile(r"\f+")
_LINE_PADDING_RE = re.compile(r"[ \t\v]*\n[ \t\v]*")
_HYPHENATED_WRAP_RE = re.compile(r"(\w)-\n(?=[a-zà-ÿа-я])")
_WRAPPED_LINE_RE = re.compile(r"(?<!\n)\n(?!\n)")
_SPACES_RE = re.compile(r"[ \t\v]+")
_MULTIPLE_NEWLINES_RE = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """Turn pdfminer output into plain paragraphs.

    Page breaks (form feeds) become paragraph breaks, words hyphenated at a
    line end are rejoined, and lines wrapped inside a paragraph are joined
    with a single space. Blank lines between paragraphs are kept as ``\\n\\n``.
    """

    normalized = unicodedata.normalize("NFC", text)
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _PAGE_BREAK_RE.sub("\n\n", normalized)
    normalized = _LINE_PADDING_RE.sub("\n", normalized)
    normalized = _HYPHENATED_WRAP_RE.sub(r"\1", normalized)
    normalized = _WRAPPED_LINE_RE.sub(" ", normalized)
    normalized = _SPACES_RE.sub(" ", normalized)
    normalized = _MULTIPLE_NEWLINES_RE.sub("\n\n", normalized)
    return normalized.strip()
