from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import closing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional

from pdfchat.config import get_settings
from pdfchat.embeddings import EmbeddingClient, get_embedding_client
from pdfchat.errors import PdfChatError, ValidationError
from pdfchat.generation import AnswerGenerator
from pdfchat.ingest import IngestPipeline, IngestPipelineConfig
from pdfchat.llm_provider import get_llm
from pdfchat.logging_config import AUDIT_LOGGER_NAME
from pdfchat.registry import SessionRegistry, get_session_registry
from pdfchat.telemetry import emit_exception, emit_ingest_event, emit_retriever_event
from pdfchat.vectorstore import (
    CollectionHandle,
    SearchResult,
    VectorStore,
    collection_name_for,
    get_vector_store,
)

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

SOURCE_PREVIEW_CHARS = 200
CHAT_ERROR_MESSAGE = "Failed to process question"


@dataclass(slots=True)
class IngestResult:
    """Structured result returned from :meth:`RAGService.ingest`."""

    collection_id: str
    file_name: str
    chunk_count: int
    page_count: int
    duration_seconds: float


@dataclass(slots=True)
class CollectionInfo:
    collection_id: str
    document_count: int
    status: str = "active"


@dataclass(slots=True)
class ChatEvent:
    """One Server-Sent Event of a chat answer stream."""

    type: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **self.payload}

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.as_dict(), ensure_ascii=False)}\n\n"


def serialise_source(result: SearchResult) -> Dict[str, Any]:
    return {
        "content": result.text[:SOURCE_PREVIEW_CHARS] + "...",
        "metadata": dict(result.metadata),
    }


class RAGService:
    """Document-to-answer orchestration: upload, retrieval and streamed chat."""

    def __init__(
        self,
        *,
        pipeline: IngestPipeline,
        embedding_client: EmbeddingClient,
        vector_store: VectorStore,
        generator: AnswerGenerator,
        registry: SessionRegistry,
        default_top_k: int = 4,
    ) -> None:
        self.pipeline = pipeline
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.generator = generator
        self.registry = registry
        self.default_top_k = default_top_k

    def ingest(self, file_bytes: bytes, file_name: str) -> IngestResult:
        """Parse, chunk, embed and store one PDF under a fresh collection id.

        The id is registered only after every segment is stored; on any
        failure the registry is left as it was.
        """

        collection_id = str(uuid.uuid4())
        emit_ingest_event(
            "ingest.file.start",
            collection_id=collection_id,
            file_name=file_name,
            size_bytes=len(file_bytes),
        )
        self.registry.begin(collection_id)
        try:
            handle, document = self._ingest(collection_id, file_bytes, file_name)
        except PdfChatError as error:
            self.registry.discard(collection_id)
            emit_exception(module=f"{__name__}.ingest", error=error, collection_id=collection_id)
            raise
        except Exception as error:
            self.registry.discard(collection_id)
            LOGGER.exception("Unexpected failure while ingesting %s", file_name)
            raise PdfChatError("Failed to process document", cause=error) from error

        self.registry.register(collection_id, handle)
        emit_ingest_event(
            "ingest.file.complete",
            collection_id=collection_id,
            file_name=file_name,
            size_bytes=len(file_bytes),
            duration_ms=document.duration_seconds * 1000.0,
            pages=document.page_count,
            chunks=len(document.segments),
        )
        AUDIT_LOGGER.info(
            {
                "event": "upload",
                "collection_id": collection_id,
                "file_name": file_name,
                "chunk_count": len(document.segments),
            }
        )
        return IngestResult(
            collection_id=collection_id,
            file_name=file_name,
            chunk_count=len(document.segments),
            page_count=document.page_count,
            duration_seconds=document.duration_seconds,
        )

    def _ingest(self, collection_id: str, file_bytes: bytes, file_name: str):
        started = time.perf_counter()
        document = self.pipeline.ingest(
            file_bytes,
            file_name,
            metadata={
                "collection_id": collection_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )
        texts = [segment.text for segment in document.segments]
        vectors = self.embedding_client.embed_batch(texts)
        handle = self.vector_store.create_or_get_collection(collection_name_for(collection_id))
        self.vector_store.insert(
            handle,
            ids=[f"{collection_id}-{index}" for index in range(len(texts))],
            texts=texts,
            vectors=vectors,
            metadatas=[segment.metadata for segment in document.segments],
        )
        document.duration_seconds = time.perf_counter() - started
        return handle, document

    def resolve(self, collection_id: str) -> CollectionHandle:
        """Return the handle registered for *collection_id* or raise ``NotFoundError``."""

        return self.registry.lookup(collection_id)

    def retrieve(
        self,
        handle: CollectionHandle,
        question: str,
        top_k: Optional[int] = None,
    ) -> List[SearchResult]:
        if not question or not question.strip():
            raise ValidationError("Question is required")
        k = top_k or self.default_top_k
        started = time.perf_counter()
        vector = self.embedding_client.embed_query(question)
        results = self.vector_store.query(handle, vector, k)
        emit_retriever_event(
            query=question,
            top_k=k,
            results=[{"id": item.id, "distance": item.distance} for item in results],
            duration_ms=(time.perf_counter() - started) * 1000.0,
            collection_id=handle.name,
        )
        return results

    def chat_events(
        self,
        handle: CollectionHandle,
        question: str,
        top_k: Optional[int] = None,
    ) -> Iterator[ChatEvent]:
        """Yield ``start``, one ``answer`` per streamed increment, then ``end``.

        Each ``answer`` event carries the cumulative answer text, the latest
        ``delta`` and the retrieved sources. A failure after ``start`` yields
        a single ``error`` event and ends the stream without ``end``.
        """

        yield ChatEvent("start", {"message": "Processing your question..."})
        try:
            results = self.retrieve(handle, question, top_k)
            sources = [serialise_source(result) for result in results]
            answer = ""
            with closing(self.generator.stream_answer(question, results)) as deltas:
                for delta in deltas:
                    answer += delta
                    yield ChatEvent("answer", {"answer": answer, "delta": delta, "sources": sources})
        except PdfChatError as error:
            emit_exception(module=f"{__name__}.chat", error=error, collection_id=handle.name)
            yield ChatEvent("error", {"error": CHAT_ERROR_MESSAGE})
            return
        except Exception as error:
            LOGGER.exception("Unexpected failure while answering for %s", handle.name)
            yield ChatEvent("error", {"error": CHAT_ERROR_MESSAGE})
            return

        AUDIT_LOGGER.info(
            {
                "event": "chat",
                "collection": handle.name,
                "question": question,
                "sources": [result.id for result in results],
            }
        )
        yield ChatEvent("end")

    def collection_info(self, collection_id: str) -> CollectionInfo:
        handle = self.resolve(collection_id)
        return CollectionInfo(
            collection_id=collection_id,
            document_count=self.vector_store.count(handle),
        )


@lru_cache()
def get_rag_service() -> RAGService:
    """FastAPI dependency returning the shared :class:`RAGService` instance."""

    settings = get_settings()
    return RAGService(
        pipeline=IngestPipeline(
            IngestPipelineConfig(chunk_chars=settings.chunk_size, overlap_chars=settings.chunk_overlap)
        ),
        embedding_client=get_embedding_client(),
        vector_store=get_vector_store(),
        generator=AnswerGenerator(
            get_llm(),
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        ),
        registry=get_session_registry(),
        default_top_k=settings.retrieval_top_k,
    )
