from __future__ import annotations

from types import SimpleNamespace
from typing import Dict, Iterator, List, Optional

import httpx
import openai
import pytest

from pdfchat.config import Settings
from pdfchat.errors import GenerationError
from pdfchat.generation import NO_CONTEXT_MESSAGE, AnswerGenerator
from pdfchat.llm_provider import LLM, LLMStub, OpenAIChatLLM, create_llm
from pdfchat.prompt_builder import SYSTEM_PROMPT, build_context_block, build_prompt
from pdfchat.vectorstore import SearchResult


def _segment(text: str, index: int = 0) -> SearchResult:
    return SearchResult(id=f"doc-{index}", text=text, metadata={"chunk_index": str(index)}, distance=0.1)


class FailingLLM(LLM):
    """Streams one increment and then fails like a dropped provider connection."""

    def __init__(self) -> None:
        self.calls = 0

    def stream(
        self,
        messages: List[Dict[str, str]],
        *,
        max_tokens: Optional[int] = None,
        temperature: float = 0.7,
    ) -> Iterator[str]:
        self.calls += 1
        yield "Partial "
        raise GenerationError("Completion request failed: connection reset")


def test_prompt_embeds_context_and_question() -> None:
    prompt = build_prompt(" What color is the sky? ", [_segment("The sky is blue."), _segment("Grass is green.", 1)])

    assert prompt.system == SYSTEM_PROMPT
    assert "[1] The sky is blue." in prompt.user
    assert "[2] Grass is green." in prompt.user
    assert "Question: What color is the sky?" in prompt.user
    assert [message["role"] for message in prompt.as_messages()] == ["system", "user"]


def test_system_prompt_requires_grounded_answers() -> None:
    assert "ONLY" in SYSTEM_PROMPT
    assert "does not provide" in SYSTEM_PROMPT


def test_context_block_skips_blank_segments() -> None:
    block = build_context_block([_segment("   "), _segment("Useful text", 1)])

    assert block == "[2] Useful text"


def test_no_segments_returns_canned_answer_without_calling_model(llm) -> None:
    generator = AnswerGenerator(llm)

    answer = list(generator.stream_answer("What color is the sky?", []))

    assert answer == [NO_CONTEXT_MESSAGE]
    assert llm.calls == []


def test_answer_streams_model_output(llm) -> None:
    generator = AnswerGenerator(llm, temperature=0.2, max_tokens=64)

    answer = "".join(generator.stream_answer("What color is the sky?", [_segment("The sky is blue.")]))

    assert "blue" in answer
    assert len(llm.calls) == 1
    assert llm.calls[0][0]["content"] == SYSTEM_PROMPT


def test_closing_answer_stops_consuming_model(llm) -> None:
    generator = AnswerGenerator(llm)
    stream = generator.stream_answer("Question?", [_segment("one two three four five six")])

    next(stream)
    stream.close()

    assert llm.closed is True


def test_generation_errors_propagate_after_partial_output() -> None:
    generator = AnswerGenerator(FailingLLM())
    stream = generator.stream_answer("Question?", [_segment("context")])

    assert next(stream) == "Partial "
    with pytest.raises(GenerationError):
        next(stream)


class _FakeCompletionStream:
    def __init__(self, pieces: List[Optional[str]]) -> None:
        self._pieces = pieces
        self.closed = False

    def __enter__(self) -> "_FakeCompletionStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.closed = True

    def __iter__(self):
        yield SimpleNamespace(choices=[])
        for piece in self._pieces:
            yield SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=piece))])


class _FakeCompletions:
    def __init__(self, stream: _FakeCompletionStream | None = None, error: Exception | None = None) -> None:
        self.stream = stream
        self.error = error
        self.requests: List[dict] = []

    def create(self, **request: object) -> _FakeCompletionStream:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        assert self.stream is not None
        return self.stream


def _chat_client(completions: _FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_openai_llm_streams_content_deltas() -> None:
    stream = _FakeCompletionStream(["The ", None, "sky ", "is blue."])
    completions = _FakeCompletions(stream=stream)
    llm = OpenAIChatLLM(model="gpt-4o-mini", client=_chat_client(completions))

    pieces = list(llm.stream([{"role": "user", "content": "hi"}], max_tokens=32, temperature=0.1))

    assert pieces == ["The ", "sky ", "is blue."]
    assert stream.closed is True
    assert completions.requests[0]["stream"] is True
    assert completions.requests[0]["max_tokens"] == 32
    assert completions.requests[0]["temperature"] == 0.1


def test_openai_llm_closes_stream_when_consumer_stops() -> None:
    stream = _FakeCompletionStream(["a", "b", "c"])
    llm = OpenAIChatLLM(client=_chat_client(_FakeCompletions(stream=stream)))

    pieces = llm.stream([{"role": "user", "content": "hi"}])
    assert next(pieces) == "a"
    pieces.close()

    assert stream.closed is True


def test_openai_llm_errors_become_generation_errors() -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    completions = _FakeCompletions(error=openai.APITimeoutError(request=request))
    llm = OpenAIChatLLM(client=_chat_client(completions))

    with pytest.raises(GenerationError):
        list(llm.stream([{"role": "user", "content": "hi"}]))


def test_missing_api_key_falls_back_to_stub(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    llm = create_llm(Settings(llm_provider="openai", openai_api_key=None))

    assert isinstance(llm, LLMStub)
    assert llm.status().ready is False
    assert llm.status().error


def test_stub_streams_its_message_word_by_word() -> None:
    pieces = list(LLMStub("one two three").stream([]))

    assert pieces == ["one ", "two ", "three"]
