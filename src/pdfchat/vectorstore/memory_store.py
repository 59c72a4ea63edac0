"""Simple in-memory vector store for tests and offline development."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from pdfchat.errors import StoreError

from .base import CollectionHandle, SearchResult, VectorStore

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class _StoredItem:
    """Internal representation of a stored vector."""

    id: str
    embedding: List[float]
    document: str
    metadata: dict


class InMemoryVectorStore(VectorStore):
    """Process-local store ranking neighbours by Euclidean distance."""

    backend_name = "memory"

    def __init__(self, *, retry_attempts: int = 1) -> None:
        super().__init__(retry_attempts=retry_attempts)
        self._collections: Dict[str, Dict[str, _StoredItem]] = {}
        self._lock = threading.Lock()

    def _create_or_get(self, name: str) -> CollectionHandle:
        with self._lock:
            self._collections.setdefault(name, {})
        return CollectionHandle(name=name)

    def _items(self, name: str) -> Dict[str, _StoredItem]:
        try:
            return self._collections[name]
        except KeyError as exc:
            raise StoreError(f"Collection '{name}' does not exist", cause=exc) from exc

    def _upsert(
        self,
        handle: CollectionHandle,
        ids: List[str],
        texts: List[str],
        vectors: List[List[float]],
        metadatas: List[Dict[str, Any]],
    ) -> None:
        with self._lock:
            items = self._items(handle.name)
            expected = _dimension_of(items)
            if expected is not None and len(vectors[0]) != expected:
                raise StoreError(
                    f"Embedding dimension {len(vectors[0])} does not match collection "
                    f"'{handle.name}' dimension {expected}"
                )
            for item_id, document, embedding, metadata in zip(ids, texts, vectors, metadatas):
                items[item_id] = _StoredItem(
                    id=item_id,
                    embedding=list(embedding),
                    document=document,
                    metadata=dict(metadata),
                )

    def _query(self, handle: CollectionHandle, vector: List[float], k: int) -> List[SearchResult]:
        with self._lock:
            items = list(self._items(handle.name).values())
        if not items:
            return []

        expected = len(items[0].embedding)
        if len(vector) != expected:
            raise StoreError(
                f"Query dimension {len(vector)} does not match collection "
                f"'{handle.name}' dimension {expected}"
            )

        scored = sorted(
            ((_euclidean_distance(vector, item.embedding), item) for item in items),
            key=lambda pair: pair[0],
        )
        return [
            SearchResult(
                id=item.id,
                text=item.document,
                metadata=dict(item.metadata),
                distance=distance,
            )
            for distance, item in scored[:k]
        ]

    def _count(self, handle: CollectionHandle) -> int:
        with self._lock:
            return len(self._items(handle.name))


def _dimension_of(items: Dict[str, _StoredItem]) -> int | None:
    for item in items.values():
        return len(item.embedding)
    return None


def _euclidean_distance(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    return sum((a - b) ** 2 for a, b in zip(vec_a, vec_b)) ** 0.5


__all__ = ["InMemoryVectorStore"]
