"""Vector store helpers backed by pluggable backends."""

from __future__ import annotations

from functools import lru_cache

from pdfchat.config import Settings, get_settings
from pdfchat.errors import ConfigurationError, StoreError, StoreUnavailableError

from .base import CollectionHandle, SearchResult, VectorStore
from .chroma_store import ChromaStore
from .memory_store import InMemoryVectorStore


def collection_name_for(collection_id: str) -> str:
    """Return the backend collection name used for an uploaded document."""

    return f"collection_{collection_id}"


def create_vector_store(settings: Settings) -> VectorStore:
    """Build the backend selected by ``VECTOR_STORE``."""

    backend = settings.vector_store
    if backend == "chroma":
        return ChromaStore(
            host=settings.chroma_host,
            port=settings.chroma_port,
            persist_dir=settings.chroma_persist_dir,
            retry_attempts=settings.store_retry_attempts,
        )
    if backend in {"memory", "mock"}:
        return InMemoryVectorStore()
    raise ConfigurationError(f"Unsupported VECTOR_STORE backend: {backend!r}")


@lru_cache()
def get_vector_store() -> VectorStore:
    """Return a lazily initialised vector store instance based on configuration."""

    return create_vector_store(get_settings())


def reset_vector_store_cache() -> None:
    """Clear the cached vector store (primarily for testing)."""

    get_vector_store.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "ChromaStore",
    "CollectionHandle",
    "InMemoryVectorStore",
    "SearchResult",
    "StoreError",
    "StoreUnavailableError",
    "VectorStore",
    "collection_name_for",
    "create_vector_store",
    "get_vector_store",
    "reset_vector_store_cache",
]
