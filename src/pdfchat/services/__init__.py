"""Service layer wiring the pipeline components together."""

from .rag import ChatEvent, CollectionInfo, IngestResult, RAGService, get_rag_service

__all__ = ["ChatEvent", "CollectionInfo", "IngestResult", "RAGService", "get_rag_service"]
