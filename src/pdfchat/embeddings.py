"""Embedding clients turning text into fixed-length vectors."""
from __future__ import annotations

import hashlib
import logging
import math
import re
import time
from functools import lru_cache
from typing import List, Optional, Sequence

from openai import OpenAI, OpenAIError

from pdfchat.config import Settings, get_settings
from pdfchat.errors import ConfigurationError, EmbeddingError
from pdfchat.telemetry import emit_embeddings_event

LOGGER = logging.getLogger(__name__)

DEFAULT_SENTENCE_TRANSFORMER = "sentence-transformers/all-MiniLM-L6-v2"
HASH_DIMENSION = 256

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class EmbeddingClient:
    """Common interface exposed by embedding backends.

    Subclasses implement :meth:`_embed`. This base class handles telemetry,
    translates provider failures into :class:`EmbeddingError` and checks
    that exactly one vector comes back per input.
    """

    model_name = "unknown"

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Return one vector per input, in input order."""

        if not texts:
            return []
        started = time.perf_counter()
        try:
            vectors = self._embed(list(texts))
        except Exception as error:
            emit_embeddings_event(
                model=self.model_name,
                count=len(texts),
                duration_ms=(time.perf_counter() - started) * 1000.0,
                errors=[str(error)],
            )
            if isinstance(error, EmbeddingError):
                raise
            raise EmbeddingError("Embedding provider request failed", cause=error) from error

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} inputs"
            )

        emit_embeddings_event(
            model=self.model_name,
            count=len(texts),
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return vectors

    def embed_query(self, text: str) -> List[float]:
        """Return the vector for a single query string."""

        return self.embed_batch([text])[0]

    def _embed(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError


class OpenAIEmbeddingClient(EmbeddingClient):
    """Embeddings from the OpenAI HTTP API."""

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        batch_size: int = 2048,
        client: Optional[OpenAI] = None,
    ) -> None:
        if batch_size <= 0:
            raise ConfigurationError("embedding batch size must be a positive integer")
        self.model_name = model
        self.batch_size = batch_size
        if client is None:
            try:
                client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
            except OpenAIError as exc:
                raise ConfigurationError(
                    "OPENAI_API_KEY must be set to use OpenAI embeddings", cause=exc
                ) from exc
        self._client = client

    def _embed(self, texts: List[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = texts[offset : offset + self.batch_size]
            try:
                response = self._client.embeddings.create(model=self.model_name, input=batch)
            except OpenAIError as exc:
                LOGGER.warning("OpenAI embeddings request failed: %s", exc)
                raise EmbeddingError(f"Embedding request failed: {exc}", cause=exc) from exc
            # The API documents ``index`` as the position of the input; do not rely on list order.
            ordered = sorted(response.data, key=lambda item: item.index)
            vectors.extend(list(item.embedding) for item in ordered)
        return vectors


class SentenceTransformerEmbeddingClient(EmbeddingClient):
    """Embeddings computed locally with a sentence-transformers model."""

    def __init__(self, model_name_or_path: str | None = None, *, device: str | None = None) -> None:
        model_path = model_name_or_path or DEFAULT_SENTENCE_TRANSFORMER
        try:
            from sentence_transformers import SentenceTransformer  # type: ignore import-not-found
        except ImportError as exc:
            raise ConfigurationError(
                "EMBEDDING_PROVIDER=sentence-transformers requires the 'sentence-transformers' package",
                cause=exc,
            ) from exc

        try:
            self._model = SentenceTransformer(model_path, device=device)
        except Exception as exc:  # pragma: no cover - depends on model availability
            raise ConfigurationError(
                f"Failed to initialise sentence-transformers model '{model_path}'", cause=exc
            ) from exc
        self.model_name = model_path
        self.dimension = int(self._model.get_sentence_embedding_dimension())

    def _embed(self, texts: List[str]) -> List[List[float]]:
        embeddings = self._model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=True,
        )
        return embeddings.tolist()


class HashEmbeddingClient(EmbeddingClient):
    """Deterministic bag-of-words embeddings for offline development.

    Each lower-cased word token is hashed into one of ``dimension`` buckets
    and the resulting count vector is L2-normalised, so texts sharing words
    end up close together.
    """

    model_name = "hash-bow"

    def __init__(self, dimension: int = HASH_DIMENSION) -> None:
        if dimension <= 0:
            raise ConfigurationError("dimension must be a positive integer")
        self.dimension = dimension

    def _embed(self, texts: List[str]) -> List[List[float]]:
        return [self._vectorize(str(text)) for text in texts]

    def _vectorize(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:8], "big") % self.dimension] += 1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


def create_embedding_client(settings: Settings) -> EmbeddingClient:
    """Build the embedding backend selected by ``EMBEDDING_PROVIDER``."""

    provider = settings.embedding_provider
    if provider == "openai":
        return OpenAIEmbeddingClient(
            model=settings.embedding_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.openai_timeout,
            batch_size=settings.embedding_batch_size,
        )
    if provider in {"sentence-transformers", "local"}:
        model = settings.embedding_model
        if model.startswith("text-embedding-"):
            model = DEFAULT_SENTENCE_TRANSFORMER
        return SentenceTransformerEmbeddingClient(model)
    if provider == "hash":
        return HashEmbeddingClient()
    raise ConfigurationError(f"Unsupported EMBEDDING_PROVIDER: {provider!r}")


@lru_cache()
def get_embedding_client() -> EmbeddingClient:
    """Return a cached embedding client instance."""

    return create_embedding_client(get_settings())


def reset_embedding_client_cache() -> None:
    """Clear the cached embedding client instance (primarily for testing)."""

    get_embedding_client.cache_clear()  # type: ignore[attr-defined]
