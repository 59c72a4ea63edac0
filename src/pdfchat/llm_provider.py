"""Streaming chat-completion backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Optional

from openai import OpenAI, OpenAIError

from pdfchat.config import Settings, get_settings
from pdfchat.errors import ConfigurationError, GenerationError

LOGGER = logging.getLogger(__name__)

DEFAULT_STUB_RESPONSE = (
    "The language model is not configured right now, so I cannot answer. Please try again later."
)


@dataclass(slots=True)
class LLMStatus:
    """Structured status information about the configured LLM backend."""

    ready: bool
    model_name: str
    provider: str
    error: Optional[str] = None


class LLM:
    """Common interface exposed by language model implementations."""

    provider = "none"

    def stream(
        self,
        messages: List[Dict[str, str]],
        *,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> Iterator[str]:
        """Yield completion text increments as the backend produces them."""

        raise NotImplementedError

    @property
    def model_name(self) -> str:
        return "stub"

    @property
    def ready(self) -> bool:
        return False

    @property
    def last_error(self) -> Optional[str]:
        return None

    def status(self) -> LLMStatus:
        return LLMStatus(
            ready=self.ready,
            model_name=self.model_name,
            provider=self.provider,
            error=self.last_error,
        )


class OpenAIChatLLM(LLM):
    """Chat completions streamed from the OpenAI HTTP API."""

    provider = "openai"

    def __init__(
        self,
        *,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        client: Optional[OpenAI] = None,
    ) -> None:
        self._model = model
        if client is None:
            try:
                client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)
            except OpenAIError as exc:
                raise ConfigurationError("OPENAI_API_KEY must be set to use OpenAI chat", cause=exc) from exc
        self._client = client

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def ready(self) -> bool:
        return True

    def stream(
        self,
        messages: List[Dict[str, str]],
        *,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> Iterator[str]:
        request: Dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "stream": True,
        }
        if max_tokens is not None:
            request["max_tokens"] = max_tokens

        try:
            response = self._client.chat.completions.create(**request)
            # Leaving the block early (consumer closed the generator) closes the HTTP stream.
            with response:
                for chunk in response:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        yield delta
        except OpenAIError as exc:
            LOGGER.warning("OpenAI chat completion failed: %s", exc)
            raise GenerationError(f"Completion request failed: {exc}", cause=exc) from exc


class LLMStub(LLM):
    """Fallback implementation streaming a fixed explanatory message."""

    provider = "stub"

    def __init__(
        self,
        message: str = DEFAULT_STUB_RESPONSE,
        *,
        reason: str | None = None,
    ) -> None:
        self._message = message
        self._reason = reason or "LLM stub is active (model not configured)."

    def stream(
        self,
        messages: List[Dict[str, str]],
        *,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> Iterator[str]:
        words = self._message.split(" ")
        for index, word in enumerate(words):
            yield word if index == len(words) - 1 else f"{word} "

    @property
    def last_error(self) -> Optional[str]:
        return self._reason


def create_llm(settings: Settings) -> LLM:
    """Build the completion backend selected by ``LLM_PROVIDER``."""

    provider = settings.llm_provider
    if provider == "openai":
        try:
            return OpenAIChatLLM(
                model=settings.llm_model,
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.openai_timeout,
            )
        except ConfigurationError as exc:
            LOGGER.warning("Falling back to the LLM stub: %s", exc)
            return LLMStub(reason=str(exc))
    if provider == "stub":
        return LLMStub()
    raise ConfigurationError(f"Unsupported LLM_PROVIDER: {provider!r}")


@lru_cache()
def get_llm() -> LLM:
    """Return the cached LLM backend."""

    return create_llm(get_settings())


def get_llm_status() -> LLMStatus:
    return get_llm().status()


def reset_llm_cache() -> None:
    """Clear the cached LLM backend (primarily for testing)."""

    get_llm.cache_clear()  # type: ignore[attr-defined]
