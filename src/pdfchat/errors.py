"""Error taxonomy shared by the pipeline and the HTTP layer."""
from __future__ import annotations


class PdfChatError(RuntimeError):
    """Base class for errors that may be reported to API callers."""

    status_code = 500

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.__cause__ = cause


class ConfigurationError(PdfChatError):
    """Raised at startup when the service is configured inconsistently."""


class ValidationError(PdfChatError):
    """Raised when request input is missing or malformed."""

    status_code = 400


class ExtractionError(PdfChatError):
    """Raised when an uploaded document cannot be parsed."""

    status_code = 400


class NotFoundError(PdfChatError):
    """Raised when a collection id is not registered."""

    status_code = 404


class EmbeddingError(PdfChatError):
    """Raised when the embedding provider fails."""


class StoreError(PdfChatError):
    """Raised for logical or data errors reported by the vector store."""


class StoreUnavailableError(PdfChatError):
    """Raised when the vector store backend cannot be reached."""


class GenerationError(PdfChatError):
    """Raised when the completion provider fails."""


__all__ = [
    "ConfigurationError",
    "EmbeddingError",
    "ExtractionError",
    "GenerationError",
    "NotFoundError",
    "PdfChatError",
    "StoreError",
    "StoreUnavailableError",
    "ValidationError",
]
