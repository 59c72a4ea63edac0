from __future__ import annotations

import uuid
import warnings
from typing import Any, Dict

import chromadb
import httpx
import pytest

from pdfchat.config import Settings
from pdfchat.errors import ConfigurationError, StoreError, StoreUnavailableError
from pdfchat.vectorstore import (
    ChromaStore,
    CollectionHandle,
    InMemoryVectorStore,
    collection_name_for,
    create_vector_store,
    get_vector_store,
    reset_vector_store_cache,
)


@pytest.fixture()
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def chroma_store() -> ChromaStore:
    return ChromaStore(client=chromadb.EphemeralClient(), retry_attempts=1)


def _unique_name() -> str:
    return collection_name_for(uuid.uuid4().hex)


def test_collection_name_is_derived_from_id() -> None:
    assert collection_name_for("abc") == "collection_abc"


def test_create_or_get_is_idempotent(memory_store: InMemoryVectorStore) -> None:
    first = memory_store.create_or_get_collection("docs")
    memory_store.insert(first, ids=["a"], texts=["alpha"], vectors=[[0.0, 1.0]])

    second = memory_store.create_or_get_collection("docs")

    assert first == second
    assert memory_store.count(second) == 1


def test_query_on_empty_collection_returns_empty(memory_store: InMemoryVectorStore) -> None:
    handle = memory_store.create_or_get_collection("empty")

    assert memory_store.query(handle, [0.1, 0.2], k=4) == []


def test_query_returns_nearest_first_and_at_most_k(memory_store: InMemoryVectorStore) -> None:
    handle = memory_store.create_or_get_collection("docs")
    memory_store.insert(
        handle,
        ids=["far", "near", "middle"],
        texts=["far text", "near text", "middle text"],
        vectors=[[10.0, 10.0], [0.1, 0.0], [2.0, 2.0]],
        metadatas=[{"chunk_index": "0"}, {"chunk_index": "1"}, {"chunk_index": "2"}],
    )

    results = memory_store.query(handle, [0.0, 0.0], k=2)

    assert [result.id for result in results] == ["near", "middle"]
    assert results[0].text == "near text"
    assert results[0].metadata == {"chunk_index": "1"}
    assert results[0].distance <= results[1].distance


def test_duplicate_ids_overwrite(memory_store: InMemoryVectorStore) -> None:
    handle = memory_store.create_or_get_collection("docs")
    memory_store.insert(handle, ids=["x"], texts=["old"], vectors=[[1.0, 0.0]])
    memory_store.insert(handle, ids=["x"], texts=["new"], vectors=[[0.0, 1.0]])

    results = memory_store.query(handle, [0.0, 1.0], k=5)

    assert memory_store.count(handle) == 1
    assert results[0].text == "new"


def test_collections_are_isolated(memory_store: InMemoryVectorStore) -> None:
    first = memory_store.create_or_get_collection("first")
    memory_store.insert(first, ids=["a"], texts=["first doc"], vectors=[[1.0, 0.0]])
    before = memory_store.query(first, [1.0, 0.0], k=4)

    second = memory_store.create_or_get_collection("second")
    memory_store.insert(second, ids=["a", "b"], texts=["second doc", "more"], vectors=[[1.0, 0.0], [0.9, 0.1]])

    assert memory_store.query(first, [1.0, 0.0], k=4) == before
    assert memory_store.count(first) == 1


def test_misaligned_arrays_are_rejected(memory_store: InMemoryVectorStore) -> None:
    handle = memory_store.create_or_get_collection("docs")

    with pytest.raises(StoreError, match="same length"):
        memory_store.insert(handle, ids=["a", "b"], texts=["one"], vectors=[[0.0]])


def test_dimension_mismatch_is_a_hard_error(memory_store: InMemoryVectorStore) -> None:
    handle = memory_store.create_or_get_collection("docs")
    memory_store.insert(handle, ids=["a"], texts=["alpha"], vectors=[[0.0, 1.0]])

    with pytest.raises(StoreError):
        memory_store.insert(handle, ids=["b"], texts=["beta"], vectors=[[0.0, 1.0, 2.0]])
    with pytest.raises(StoreError):
        memory_store.query(handle, [1.0], k=1)
    with pytest.raises(StoreError, match="dimensions differ"):
        memory_store.insert(handle, ids=["c", "d"], texts=["c", "d"], vectors=[[1.0, 0.0], [1.0]])


def test_non_positive_k_returns_nothing(memory_store: InMemoryVectorStore) -> None:
    handle = memory_store.create_or_get_collection("docs")
    memory_store.insert(handle, ids=["a"], texts=["alpha"], vectors=[[0.0, 1.0]])

    assert memory_store.query(handle, [0.0, 1.0], k=0) == []


def test_chroma_round_trip(chroma_store: ChromaStore) -> None:
    name = _unique_name()
    handle = chroma_store.create_or_get_collection(name)
    chroma_store.insert(
        handle,
        ids=["a", "b", "c"],
        texts=["east", "north", "west"],
        vectors=[[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]],
        metadatas=[{"chunk_index": "0"}, {"chunk_index": "1"}, {"chunk_index": "2"}],
    )

    results = chroma_store.query(handle, [0.9, 0.1], k=2)

    assert chroma_store.count(handle) == 3
    assert [result.id for result in results] == ["a", "b"]
    assert results[0].metadata["chunk_index"] == "0"
    assert chroma_store.create_or_get_collection(name) == handle


def test_chroma_empty_collection_query_returns_empty(chroma_store: ChromaStore) -> None:
    handle = chroma_store.create_or_get_collection(_unique_name())

    assert chroma_store.query(handle, [0.5, 0.5], k=4) == []


def test_chroma_caps_k_at_collection_size(chroma_store: ChromaStore) -> None:
    handle = chroma_store.create_or_get_collection(_unique_name())
    chroma_store.insert(handle, ids=["only"], texts=["single"], vectors=[[0.3, 0.7]])

    results = chroma_store.query(handle, [0.3, 0.7], k=10)

    assert [result.id for result in results] == ["only"]


class _UnreachableClient:
    def __init__(self) -> None:
        self.calls = 0

    def get_or_create_collection(self, *, name: str, metadata: Dict[str, Any]):
        self.calls += 1
        raise httpx.ConnectError("connection refused")

    def heartbeat(self) -> int:
        raise httpx.ConnectError("connection refused")


def test_unreachable_chroma_is_retried_then_reported_unavailable() -> None:
    client = _UnreachableClient()
    store = ChromaStore(
        client=client,  # type: ignore[arg-type]
        retry_attempts=3,
        retry_initial_wait=0.0,
        retry_max_wait=0.0,
    )

    with pytest.raises(StoreUnavailableError):
        store.create_or_get_collection("docs")

    assert client.calls == 3


def test_chroma_heartbeat_failure_is_unavailable() -> None:
    store = ChromaStore(client=_UnreachableClient())  # type: ignore[arg-type]

    with pytest.raises(StoreUnavailableError, match="heartbeat"):
        store.heartbeat()


def test_logical_errors_are_not_retried() -> None:
    class RejectingCollection:
        def __init__(self) -> None:
            self.calls = 0

        def upsert(self, **_: Any) -> None:
            self.calls += 1
            raise ValueError("bad embedding")

    collection = RejectingCollection()
    store = ChromaStore(client=object(), retry_attempts=3, retry_initial_wait=0.0)  # type: ignore[arg-type]
    handle = CollectionHandle(name="docs", native=collection)

    with pytest.raises(StoreError, match="rejected"):
        store.insert(handle, ids=["a"], texts=["alpha"], vectors=[[0.0]])

    assert collection.calls == 1


def test_unexpected_chroma_errors_are_not_retried() -> None:
    class FailingCollection:
        def __init__(self) -> None:
            self.calls = 0

        def upsert(self, **_: Any) -> None:
            self.calls += 1
            raise Exception("server error")

    collection = FailingCollection()
    store = ChromaStore(client=object(), retry_attempts=3, retry_initial_wait=0.0)  # type: ignore[arg-type]
    handle = CollectionHandle(name="docs", native=collection)

    with pytest.raises(StoreError, match="server error") as excinfo:
        store.insert(handle, ids=["a"], texts=["alpha"], vectors=[[0.0]])

    assert not isinstance(excinfo.value, StoreUnavailableError)
    assert collection.calls == 1


def test_retry_backoff_emits_no_deprecation_warnings() -> None:
    client = _UnreachableClient()
    store = ChromaStore(
        client=client,  # type: ignore[arg-type]
        retry_attempts=2,
        retry_initial_wait=0.0,
        retry_max_wait=0.0,
    )

    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        with pytest.raises(StoreUnavailableError):
            store.create_or_get_collection("docs")

    assert client.calls == 2


def test_factory_selects_backend() -> None:
    assert isinstance(create_vector_store(Settings(vector_store="memory")), InMemoryVectorStore)
    assert isinstance(create_vector_store(Settings(vector_store="chroma")), ChromaStore)
    with pytest.raises(ConfigurationError):
        create_vector_store(Settings(vector_store="sqlite"))


def test_get_vector_store_is_cached() -> None:
    reset_vector_store_cache()
    try:
        assert get_vector_store() is get_vector_store()
    finally:
        reset_vector_store_cache()
