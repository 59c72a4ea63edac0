"""Structured lifecycle events emitted through the standard logging tree."""

from __future__ import annotations

import logging
import os
import platform
import socket
import sys
import time
import traceback
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

LOGGER = logging.getLogger("pdfchat.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "EMBEDDING_PROVIDER",
    "EMBEDDING_MODEL",
    "LLM_PROVIDER",
    "LLM_MODEL",
    "LLM_TEMPERATURE",
    "LLM_MAX_TOKENS",
    "VECTOR_STORE",
    "CHROMA_HOST",
    "CHROMA_PORT",
    "CHROMA_PERSIST_DIR",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "RETRIEVAL_TOP_K",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    collection_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if collection_id:
        event["collection_id"] = collection_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    payload = {
        "pid": os.getpid(),
        "hostname": socket.gethostname(),
        "cwd": str(Path.cwd()),
    }
    log_event(LOGGER, "app.startup", details=details, extra=payload)


def emit_ingest_event(
    step: str,
    *,
    file_name: str,
    collection_id: str,
    size_bytes: int | None = None,
    duration_ms: float | None = None,
    pages: int | None = None,
    chunks: int | None = None,
) -> None:
    details = {
        "file": file_name,
        "size_bytes": size_bytes,
        "duration_ms": duration_ms,
        "pages": pages,
        "chunks": chunks,
    }
    log_event(LOGGER, step, collection_id=collection_id, details=details)


def emit_embeddings_event(
    *, model: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "model": model,
        "count": count,
        "duration_ms": round(duration_ms, 3),
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "error" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, details=details)


def emit_vectorstore_event(
    step: str,
    *,
    collection: str,
    count: int,
    backend: str,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {
        "collection": collection,
        "count": count,
        "backend": backend,
    }
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, duration_ms=duration_ms, details=details, exc=error)


def emit_retriever_event(
    *,
    query: str,
    top_k: int,
    results: list[dict[str, Any]],
    duration_ms: float,
    collection_id: str | None = None,
) -> None:
    details = {
        "query_preview": query[:120],
        "top_k": top_k,
        "results": results,
    }
    log_event(
        LOGGER,
        "retriever.search",
        collection_id=collection_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_prompt_event(
    *,
    system_prompt: str,
    sources: Iterable[str],
    context_chars: int,
) -> None:
    details = {
        "system_prompt_preview": system_prompt[:120],
        "sources": list(sources),
        "context_chars": context_chars,
    }
    log_event(LOGGER, "prompt.compose", details=details)


def emit_inference_request(
    *,
    req_id: str,
    model: str,
    prompt_len: int,
    temperature: float,
    max_tokens: int | None,
) -> None:
    details = {
        "model": model,
        "prompt_len": prompt_len,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    log_event(LOGGER, "inference.request", req_id=req_id, details=details)


def emit_inference_result(
    *,
    req_id: str,
    duration_ms: float,
    model_used: str,
    answer_preview: str,
    fallback: bool,
    completed: bool,
    chunks_streamed: int,
) -> None:
    details = {
        "model_used": model_used,
        "answer_preview": answer_preview[:120],
        "fallback": fallback,
        "completed": completed,
        "chunks_streamed": chunks_streamed,
    }
    log_event(
        LOGGER,
        "inference.result",
        req_id=req_id,
        duration_ms=duration_ms,
        details=details,
    )


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    collection_id: str | None = None,
) -> None:
    log_event(
        LOGGER,
        "exception",
        level="error",
        req_id=req_id,
        collection_id=collection_id,
        details={"module": module},
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_inference_request",
    "emit_inference_result",
    "emit_ingest_event",
    "emit_prompt_event",
    "emit_retriever_event",
    "emit_vectorstore_event",
    "log_event",
    "traced_duration",
]
