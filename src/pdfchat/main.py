import logging
from typing import Any, Callable, Optional, TypeVar

from fastapi import FastAPI, HTTPException, Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from pdfchat.api import router as rag_router
from pdfchat.config import Settings, get_settings
from pdfchat.embeddings import get_embedding_client
from pdfchat.errors import PdfChatError
from pdfchat.ingest import ChunkingConfig
from pdfchat.llm_provider import get_llm_status
from pdfchat.logging_config import configure_logging
from pdfchat.telemetry import emit_app_startup_event
from pdfchat.vectorstore import get_vector_store

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

INTERNAL_ERROR_MESSAGE = "Internal server error"


def _error_response(status_code: int, message: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _handle_pdfchat_error(request: Request, exc: PdfChatError) -> JSONResponse:
    if exc.status_code >= 500:
        LOGGER.error("Request to %s failed: %s", request.url.path, exc)
        return _error_response(exc.status_code, INTERNAL_ERROR_MESSAGE)
    return _error_response(exc.status_code, exc.message)


async def _handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, exc.detail)


async def _handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    LOGGER.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
    return _error_response(400, "Invalid request")


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled error on %s", request.url.path)
    return _error_response(500, INTERNAL_ERROR_MESSAGE)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application.

    Raises :class:`~pdfchat.errors.ConfigurationError` when the chunking
    parameters are inconsistent, so a bad deployment fails at startup.
    """

    settings = settings or get_settings()
    ChunkingConfig(chunk_chars=settings.chunk_size, overlap_chars=settings.chunk_overlap)
    configure_logging(level=settings.log_level, log_dir=settings.log_dir)

    application = FastAPI(title="PDF Chat RAG API")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.include_router(rag_router)
    application.add_exception_handler(PdfChatError, _handle_pdfchat_error)
    application.add_exception_handler(StarletteHTTPException, _handle_http_exception)
    application.add_exception_handler(RequestValidationError, _handle_validation_error)
    application.add_exception_handler(Exception, _handle_unexpected_error)

    @application.on_event("startup")
    async def _emit_startup() -> None:
        emit_app_startup_event()

    def _resolve_dependency(factory: Callable[[], T]) -> T:
        """Resolve a dependency while respecting FastAPI overrides."""

        override: Any | None = application.dependency_overrides.get(factory)
        resolved: Any = override if override is not None else factory
        return resolved() if callable(resolved) else resolved

    @application.get("/readyz", response_class=PlainTextResponse)
    def readiness_probe() -> str:
        """Readiness probe that ensures external dependencies are available."""

        errors: list[str] = []

        try:
            embedding_client = _resolve_dependency(get_embedding_client)
            embedding_client.embed_query("__readyz__")
        except Exception as exc:
            errors.append(f"embedding_client_unavailable: {exc}")

        try:
            store = _resolve_dependency(get_vector_store)
            heartbeat = getattr(store, "heartbeat", None)
            if callable(heartbeat):
                heartbeat()
        except Exception as exc:
            errors.append(f"vector_store_unavailable: {exc}")

        if errors:
            raise HTTPException(status_code=503, detail="; ".join(errors))
        return "ok"

    @application.get("/healthz/model")
    def model_healthcheck() -> dict[str, object]:
        """Expose which completion backend is active."""

        status = get_llm_status()
        payload: dict[str, object] = {
            "ready": status.ready,
            "provider": status.provider,
            "name": status.model_name,
        }
        if status.error:
            payload["reason"] = status.error
        return payload

    return application


app = create_app()
