"""HTTP routes for uploading documents and chatting with them."""
from __future__ import annotations

import logging
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from pdfchat.config import Settings, get_settings
from pdfchat.errors import NotFoundError, PdfChatError
from pdfchat.services.rag import RAGService, get_rag_service

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["rag"])

NO_DOCUMENT_MESSAGE = "No document loaded. Please upload a document first."
COLLECTION_INFO_ERROR_MESSAGE = "Failed to get collection info"
PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf", "application/octet-stream"}


class HealthResponse(BaseModel):
    status: str
    message: str


class UploadResponse(BaseModel):
    """Response body returned from the upload endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    collection_id: str = Field(..., alias="collectionId")
    chunks_count: int = Field(..., alias="chunksCount")


class ChatRequest(BaseModel):
    """Request body accepted by the chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    question: Optional[str] = Field(None, description="User question to ask about the document.")
    collection_id: Optional[str] = Field(None, alias="collectionId")
    top_k: Optional[int] = Field(None, alias="topK", ge=1, le=20)


class CollectionInfoResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    collection_id: str = Field(..., alias="collectionId")
    document_count: int = Field(..., alias="documentCount")
    status: str


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Liveness probe."""

    return HealthResponse(status="OK", message="RAG Server is running")


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    document: Optional[UploadFile] = File(None),
    rag_service: RAGService = Depends(get_rag_service),
    settings: Settings = Depends(get_settings),
) -> UploadResponse:
    """Chunk, embed and store an uploaded PDF under a new collection id."""

    if document is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    content_type = (document.content_type or "").split(";")[0].strip().lower()
    if content_type and content_type not in PDF_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")

    file_bytes = await document.read()
    if len(file_bytes) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    file_name = document.filename or "document.pdf"
    try:
        result = await run_in_threadpool(rag_service.ingest, file_bytes, file_name)
    except PdfChatError as exc:
        if exc.status_code >= 500:
            LOGGER.error("Upload of %s failed: %s", file_name, exc)
            raise HTTPException(status_code=500, detail="Failed to process document") from exc
        raise

    return UploadResponse(
        success=True,
        message="Document processed successfully",
        collection_id=result.collection_id,
        chunks_count=result.chunk_count,
    )


@router.post("/chat")
def chat(
    request: ChatRequest = Body(...),
    rag_service: RAGService = Depends(get_rag_service),
) -> StreamingResponse:
    """Answer a question about an uploaded document as a Server-Sent Event stream."""

    question = (request.question or "").strip()
    if not question:
        raise HTTPException(status_code=400, detail="Question is required")
    if not request.collection_id:
        raise HTTPException(status_code=400, detail=NO_DOCUMENT_MESSAGE)

    try:
        handle = rag_service.resolve(request.collection_id)
    except NotFoundError as exc:
        LOGGER.info("Chat rejected: %s", exc)
        raise HTTPException(status_code=400, detail=NO_DOCUMENT_MESSAGE) from exc

    def event_stream() -> Iterator[str]:
        for event in rag_service.chat_events(handle, question, request.top_k):
            yield event.to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/collection/{collection_id}", response_model=CollectionInfoResponse)
def collection_info(
    collection_id: str,
    rag_service: RAGService = Depends(get_rag_service),
) -> Any:
    """Report how many segments a registered collection holds."""

    try:
        info = rag_service.collection_info(collection_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="No collection found") from exc
    except PdfChatError as exc:
        if exc.status_code < 500:
            raise
        LOGGER.error("Collection info for %s failed: %s", collection_id, exc)
        raise HTTPException(status_code=500, detail=COLLECTION_INFO_ERROR_MESSAGE) from exc
    return CollectionInfoResponse(
        collection_id=info.collection_id,
        document_count=info.document_count,
        status=info.status,
    )
