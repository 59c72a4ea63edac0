"""Answer generation over retrieved document segments."""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import closing
from typing import Iterator, Optional, Sequence

from pdfchat.errors import GenerationError
from pdfchat.llm_provider import LLM
from pdfchat.prompt_builder import SYSTEM_PROMPT, build_prompt
from pdfchat.telemetry import (
    emit_inference_request,
    emit_inference_result,
    emit_prompt_event,
)
from pdfchat.vectorstore import SearchResult

LOGGER = logging.getLogger(__name__)

NO_CONTEXT_MESSAGE = (
    "I couldn't find relevant information in the document to answer that question."
)


class AnswerGenerator:
    """Turn a question plus retrieved segments into a streamed answer."""

    def __init__(
        self,
        llm: LLM,
        *,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> None:
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens

    def stream_answer(self, question: str, segments: Sequence[SearchResult]) -> Iterator[str]:
        """Yield answer text increments.

        With no segments the canned :data:`NO_CONTEXT_MESSAGE` is yielded and
        the model is never called. Closing the returned iterator early stops
        consumption of the provider stream. Provider failures surface as
        :class:`GenerationError`.
        """

        if not segments:
            emit_inference_result(
                req_id=uuid.uuid4().hex,
                duration_ms=0.0,
                model_used="none",
                answer_preview=NO_CONTEXT_MESSAGE,
                fallback=True,
                completed=True,
                chunks_streamed=1,
            )
            yield NO_CONTEXT_MESSAGE
            return

        prompt = build_prompt(question, segments)
        emit_prompt_event(
            system_prompt=SYSTEM_PROMPT,
            sources=[segment.id for segment in segments],
            context_chars=sum(len(segment.text) for segment in segments),
        )
        req_id = uuid.uuid4().hex
        emit_inference_request(
            req_id=req_id,
            model=self.llm.model_name,
            prompt_len=len(prompt),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        started = time.perf_counter()
        streamed: list[str] = []
        completed = False
        try:
            with closing(
                self.llm.stream(
                    prompt.as_messages(),
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            ) as deltas:
                for delta in deltas:
                    streamed.append(delta)
                    yield delta
            completed = True
        except GenerationError:
            LOGGER.exception("Answer generation failed after %d chunks", len(streamed))
            raise
        finally:
            emit_inference_result(
                req_id=req_id,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                model_used=self.llm.model_name,
                answer_preview="".join(streamed),
                fallback=False,
                completed=completed,
                chunks_streamed=len(streamed),
            )
