"""Runtime configuration read from the environment."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
DEFAULT_TOP_K = 4
DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _optional_str_from_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable snapshot of the service configuration."""

    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_timeout: float = 60.0
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = 2048
    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    llm_temperature: float = 0.7
    llm_max_tokens: Optional[int] = None
    vector_store: str = "chroma"
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_persist_dir: Optional[str] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    retrieval_top_k: int = DEFAULT_TOP_K
    store_retry_attempts: int = 3
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    log_dir: str = "logs"
    log_level: str = "INFO"
    port: int = 3001

    @classmethod
    def from_env(cls) -> "Settings":
        max_tokens = _int_from_env("LLM_MAX_TOKENS", 0)
        return cls(
            openai_api_key=_optional_str_from_env("OPENAI_API_KEY"),
            openai_base_url=_optional_str_from_env("OPENAI_BASE_URL"),
            openai_timeout=_float_from_env("OPENAI_TIMEOUT", 60.0),
            embedding_provider=_str_from_env("EMBEDDING_PROVIDER", "openai").lower(),
            embedding_model=_str_from_env("EMBEDDING_MODEL", "text-embedding-3-small"),
            embedding_batch_size=_int_from_env("EMBEDDING_BATCH_SIZE", 2048),
            llm_provider=_str_from_env("LLM_PROVIDER", "openai").lower(),
            llm_model=_str_from_env("LLM_MODEL", "gpt-4o-mini"),
            llm_temperature=_float_from_env("LLM_TEMPERATURE", 0.7),
            llm_max_tokens=max_tokens if max_tokens > 0 else None,
            vector_store=_str_from_env("VECTOR_STORE", "chroma").lower(),
            chroma_host=_str_from_env("CHROMA_HOST", "localhost"),
            chroma_port=_int_from_env("CHROMA_PORT", 8000),
            chroma_persist_dir=_optional_str_from_env("CHROMA_PERSIST_DIR"),
            chunk_size=_int_from_env("CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
            chunk_overlap=_int_from_env("CHUNK_OVERLAP", DEFAULT_CHUNK_OVERLAP),
            retrieval_top_k=_int_from_env("RETRIEVAL_TOP_K", DEFAULT_TOP_K),
            store_retry_attempts=max(1, _int_from_env("STORE_RETRY_ATTEMPTS", 3)),
            max_upload_bytes=_int_from_env("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
            log_dir=_str_from_env("LOG_DIR", "logs"),
            log_level=_str_from_env("LOG_LEVEL", "INFO").upper(),
            port=_int_from_env("PORT", 3001),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return the cached settings, loading ``.env`` on first use."""

    load_dotenv()
    return Settings.from_env()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
