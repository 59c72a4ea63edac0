"""Backend-neutral vector store contract."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from pdfchat.errors import StoreError, StoreUnavailableError
from pdfchat.telemetry import emit_vectorstore_event

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CollectionHandle:
    """Reference to a named collection inside a vector store backend."""

    name: str
    native: Any = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class SearchResult:
    """Single nearest-neighbour hit."""

    id: str
    text: str
    metadata: Dict[str, Any]
    distance: float


class VectorStore:
    """Collection CRUD and nearest-neighbour lookup over a vector database.

    Subclasses implement the ``_create_or_get``, ``_upsert``, ``_query`` and
    ``_count`` hooks and translate backend exceptions into
    :class:`StoreError` or :class:`StoreUnavailableError`. Every hook call
    is retried on :class:`StoreUnavailableError` with jittered exponential
    backoff, up to ``retry_attempts`` attempts in total.
    """

    backend_name = "unknown"

    def __init__(
        self,
        *,
        retry_attempts: int = 3,
        retry_initial_wait: float = 0.5,
        retry_max_wait: float = 5.0,
    ) -> None:
        self._retry_attempts = max(1, retry_attempts)
        self._retry_initial_wait = retry_initial_wait
        self._retry_max_wait = retry_max_wait

    def create_or_get_collection(self, name: str) -> CollectionHandle:
        """Return the collection called *name*, creating it when missing."""

        if not name or not name.strip():
            raise StoreError("Collection name must not be empty")
        return self._with_retry(self._create_or_get, name)

    def insert(
        self,
        handle: CollectionHandle,
        ids: Sequence[str],
        texts: Sequence[str],
        vectors: Sequence[Sequence[float]],
        metadatas: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> None:
        """Upsert index-aligned ``(id, text, vector)`` triples into *handle*."""

        if metadatas is None:
            metadatas = [{} for _ in ids]
        if not (len(ids) == len(texts) == len(vectors) == len(metadatas)):
            raise StoreError(
                "ids, texts, vectors and metadatas must have the same length "
                f"(got {len(ids)}, {len(texts)}, {len(vectors)}, {len(metadatas)})"
            )
        if not ids:
            return
        dimensions = {len(vector) for vector in vectors}
        if len(dimensions) != 1:
            raise StoreError(f"Embedding dimensions differ within one batch: {sorted(dimensions)}")

        started = time.perf_counter()
        try:
            self._with_retry(
                self._upsert,
                handle,
                list(ids),
                list(texts),
                [[float(value) for value in vector] for vector in vectors],
                [dict(metadata) for metadata in metadatas],
            )
        except (StoreError, StoreUnavailableError) as error:
            emit_vectorstore_event(
                "vectorstore.add",
                collection=handle.name,
                count=len(ids),
                backend=self.backend_name,
                error=error,
            )
            raise
        emit_vectorstore_event(
            "vectorstore.add",
            collection=handle.name,
            count=len(ids),
            backend=self.backend_name,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

    def query(self, handle: CollectionHandle, vector: Sequence[float], k: int) -> List[SearchResult]:
        """Return at most *k* neighbours of *vector*, nearest first."""

        if k <= 0:
            return []
        started = time.perf_counter()
        try:
            results = self._with_retry(self._query, handle, [float(value) for value in vector], k)
        except (StoreError, StoreUnavailableError) as error:
            emit_vectorstore_event(
                "vectorstore.query",
                collection=handle.name,
                count=0,
                backend=self.backend_name,
                error=error,
            )
            raise
        emit_vectorstore_event(
            "vectorstore.query",
            collection=handle.name,
            count=len(results),
            backend=self.backend_name,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return results

    def count(self, handle: CollectionHandle) -> int:
        """Return the number of entries stored in *handle*."""

        return self._with_retry(self._count, handle)

    def _with_retry(self, operation: Callable[..., T], *args: Any) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=self._retry_initial_wait, max=self._retry_max_wait)
            + wait_random(0, self._retry_initial_wait),
            retry=retry_if_exception_type(StoreUnavailableError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(operation, *args)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        LOGGER.warning(
            "Vector store unavailable (attempt %d/%d): %s",
            retry_state.attempt_number,
            self._retry_attempts,
            error,
        )

    def _create_or_get(self, name: str) -> CollectionHandle:
        raise NotImplementedError

    def _upsert(
        self,
        handle: CollectionHandle,
        ids: List[str],
        texts: List[str],
        vectors: List[List[float]],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        raise NotImplementedError

    def _query(self, handle: CollectionHandle, vector: List[float], k: int) -> List[SearchResult]:
        raise NotImplementedError

    def _count(self, handle: CollectionHandle) -> int:
        raise NotImplementedError
