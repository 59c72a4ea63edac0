"""Process-wide mapping from collection id to vector store handle."""
from __future__ import annotations

import enum
import logging
import threading
from typing import Dict

from pdfchat.errors import NotFoundError
from pdfchat.vectorstore import CollectionHandle

LOGGER = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    EMPTY = "empty"
    PROCESSING = "processing"
    READY = "ready"


class SessionRegistry:
    """Track which uploaded documents can be chatted with.

    A collection id moves ``EMPTY -> PROCESSING`` when its upload starts,
    ``PROCESSING -> READY`` once every segment is stored, and back to
    ``EMPTY`` if the upload fails. Only ``READY`` ids resolve in
    :meth:`lookup`, so chats never observe a partially populated collection.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: Dict[str, CollectionHandle] = {}
        self._processing: set[str] = set()

    def begin(self, collection_id: str) -> None:
        with self._lock:
            self._processing.add(collection_id)
        LOGGER.debug("Collection %s is processing", collection_id)

    def register(self, collection_id: str, handle: CollectionHandle) -> None:
        with self._lock:
            self._processing.discard(collection_id)
            self._handles[collection_id] = handle
        LOGGER.info("Registered collection %s as %s", collection_id, handle.name)

    def discard(self, collection_id: str) -> None:
        """Forget an upload that failed before registration."""

        with self._lock:
            self._processing.discard(collection_id)

    def lookup(self, collection_id: str) -> CollectionHandle:
        with self._lock:
            handle = self._handles.get(collection_id)
            processing = collection_id in self._processing
        if handle is not None:
            return handle
        if processing:
            raise NotFoundError(f"Collection {collection_id} is still being processed")
        raise NotFoundError(f"Collection {collection_id} is not registered")

    def state(self, collection_id: str) -> SessionState:
        with self._lock:
            if collection_id in self._handles:
                return SessionState.READY
            if collection_id in self._processing:
                return SessionState.PROCESSING
        return SessionState.EMPTY

    def __contains__(self, collection_id: object) -> bool:
        with self._lock:
            return collection_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


_registry = SessionRegistry()


def get_session_registry() -> SessionRegistry:
    """FastAPI dependency returning the shared :class:`SessionRegistry`."""

    return _registry
