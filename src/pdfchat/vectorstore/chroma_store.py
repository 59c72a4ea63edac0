"""Chroma vector store adapter."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import chromadb
import httpx
from chromadb.errors import ChromaError

from pdfchat.errors import StoreError, StoreUnavailableError

from .base import CollectionHandle, SearchResult, VectorStore

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from chromadb.api import ClientAPI

LOGGER = logging.getLogger(__name__)

DEFAULT_DISTANCE_METRIC = "cosine"

_UNAVAILABLE_ERRORS = (httpx.TransportError, ConnectionError, TimeoutError)


def _translate(error: Exception, action: str) -> Exception:
    if isinstance(error, (StoreError, StoreUnavailableError)):
        return error
    if isinstance(error, _UNAVAILABLE_ERRORS):
        return StoreUnavailableError(f"Chroma is unreachable while trying to {action}", cause=error)
    if isinstance(error, (ChromaError, ValueError, TypeError)):
        return StoreError(f"Chroma rejected request to {action}: {error}", cause=error)
    return StoreError(f"Chroma failed to {action}: {error}", cause=error)


class ChromaStore(VectorStore):
    """Adapter around a Chroma server (HTTP) or an embedded persistent client.

    The client is created lazily on first use so the service can boot while
    the database is still starting up.
    """

    backend_name = "chroma"

    def __init__(
        self,
        *,
        client: Optional["ClientAPI"] = None,
        host: str = "localhost",
        port: int = 8000,
        persist_dir: str | Path | None = None,
        distance_metric: str = DEFAULT_DISTANCE_METRIC,
        retry_attempts: int = 3,
        retry_initial_wait: float = 0.5,
        retry_max_wait: float = 5.0,
    ) -> None:
        super().__init__(
            retry_attempts=retry_attempts,
            retry_initial_wait=retry_initial_wait,
            retry_max_wait=retry_max_wait,
        )
        self.host = host
        self.port = port
        self.persist_dir = Path(persist_dir) if persist_dir else None
        self.distance_metric = distance_metric
        self._client = client
        self._client_lock = threading.Lock()
        self._collections: Dict[str, Any] = {}

    def _get_client(self) -> "ClientAPI":
        with self._client_lock:
            if self._client is None:
                try:
                    if self.persist_dir is not None:
                        self.persist_dir.mkdir(parents=True, exist_ok=True)
                        self._client = chromadb.PersistentClient(path=str(self.persist_dir))
                    else:
                        self._client = chromadb.HttpClient(host=self.host, port=self.port)
                except Exception as exc:
                    raise StoreUnavailableError(
                        f"Failed to initialise Chroma client ({self.describe()})", cause=exc
                    ) from exc
            return self._client

    def describe(self) -> str:
        if self.persist_dir is not None:
            return f"persistent:{self.persist_dir}"
        return f"http://{self.host}:{self.port}"

    def _create_or_get(self, name: str) -> CollectionHandle:
        client = self._get_client()
        try:
            collection = client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": self.distance_metric},
            )
        except Exception as exc:
            raise _translate(exc, f"open collection '{name}'") from exc
        self._collections[name] = collection
        return CollectionHandle(name=name, native=collection)

    def _collection_for(self, handle: CollectionHandle) -> Any:
        collection = handle.native or self._collections.get(handle.name)
        if collection is None:
            collection = self._create_or_get(handle.name).native
        return collection

    def _upsert(
        self,
        handle: CollectionHandle,
        ids: List[str],
        texts: List[str],
        vectors: List[List[float]],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        collection = self._collection_for(handle)
        # Chroma rejects empty metadata dicts.
        metadata_list: Optional[List[Dict[str, Any]]] = metadatas if all(metadatas) else None
        try:
            collection.upsert(
                ids=ids,
                embeddings=vectors,
                documents=texts,
                metadatas=metadata_list,
            )
        except Exception as exc:
            raise _translate(exc, f"upsert into '{handle.name}'") from exc

    def _query(self, handle: CollectionHandle, vector: List[float], k: int) -> List[SearchResult]:
        collection = self._collection_for(handle)
        try:
            available = collection.count()
            if available == 0:
                return []
            result = collection.query(
                query_embeddings=[vector],
                n_results=min(k, available),
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise _translate(exc, f"query '{handle.name}'") from exc

        ids = (result.get("ids") or [[]])[0]
        documents = (result.get("documents") or [[]])[0]
        metadatas = (result.get("metadatas") or [[]])[0]
        distances = (result.get("distances") or [[]])[0]

        neighbours: List[SearchResult] = []
        for item_id, document, metadata, distance in zip(ids, documents, metadatas, distances):
            neighbours.append(
                SearchResult(
                    id=str(item_id),
                    text=document or "",
                    metadata=dict(metadata or {}),
                    distance=float(distance) if distance is not None else 0.0,
                )
            )
        return neighbours

    def _count(self, handle: CollectionHandle) -> int:
        collection = self._collection_for(handle)
        try:
            return int(collection.count())
        except Exception as exc:
            raise _translate(exc, f"count '{handle.name}'") from exc

    def heartbeat(self) -> None:
        """Raise :class:`StoreUnavailableError` when the database does not respond."""

        client = self._get_client()
        try:
            client.heartbeat()
        except Exception as exc:
            raise StoreUnavailableError("Chroma heartbeat failed", cause=exc) from exc


__all__ = ["ChromaStore"]
