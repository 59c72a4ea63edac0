"""Shared fixtures wiring the service to offline backends."""
from __future__ import annotations

import json
import os
import tempfile
from typing import Callable, Dict, Iterator, List, Optional

import pytest

# Offline backends for the module-level app built on import of ``pdfchat.main``.
os.environ.setdefault("EMBEDDING_PROVIDER", "hash")
os.environ.setdefault("VECTOR_STORE", "memory")
os.environ.setdefault("LLM_PROVIDER", "stub")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="pdfchat-logs-"))

from pdfchat.embeddings import HashEmbeddingClient  # noqa: E402
from pdfchat.generation import AnswerGenerator  # noqa: E402
from pdfchat.ingest import IngestPipeline, IngestPipelineConfig  # noqa: E402
from pdfchat.llm_provider import LLM  # noqa: E402
from pdfchat.registry import SessionRegistry  # noqa: E402
from pdfchat.services.rag import RAGService  # noqa: E402
from pdfchat.vectorstore import InMemoryVectorStore  # noqa: E402


class ContextEchoLLM(LLM):
    """Streams the context section of the user prompt back word by word."""

    provider = "fake"

    def __init__(self) -> None:
        self.calls: List[List[Dict[str, str]]] = []
        self.closed = False

    @property
    def model_name(self) -> str:
        return "context-echo"

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
        self.calls.append(messages)
        user = messages[-1]["content"]
        context = user.split("Question:")[0].replace("Context:", "").strip()
        try:
            for word in context.split():
                yield f"{word} "
        finally:
            self.closed = True


def _escape_pdf_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(pages: List[List[str]]) -> bytes:
    """Assemble a Helvetica text PDF with one content stream per page."""

    objects: List[bytes] = []
    page_count = len(pages)
    kids = " ".join(f"{4 + index * 2} 0 R" for index in range(page_count))
    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {page_count} >>".encode("ascii"))
    objects.append(b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>")
    for index, lines in enumerate(pages):
        content_id = 5 + index * 2
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Contents {content_id} 0 R /Resources << /Font << /F1 3 0 R >> >> >>"
            ).encode("ascii")
        )
        operations = ["BT", "/F1 10 Tf", "14 TL", "72 750 Td"]
        for line_number, line in enumerate(lines):
            if line_number:
                operations.append("T*")
            operations.append(f"({_escape_pdf_text(line)}) Tj")
        operations.append("ET")
        stream = "\n".join(operations).encode("latin-1")
        objects.append(
            b"<< /Length " + str(len(stream)).encode("ascii") + b" >>\nstream\n" + stream + b"\nendstream"
        )

    output = bytearray(b"%PDF-1.4\n")
    offsets: List[int] = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(output))
        output += f"{number} 0 obj\n".encode("ascii") + body + b"\nendobj\n"

    xref_offset = len(output)
    output += f"xref\n0 {len(objects) + 1}\n".encode("ascii")
    output += b"0000000000 65535 f \n"
    for offset in offsets:
        output += f"{offset:010d} 00000 n \n".encode("ascii")
    output += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_offset}\n%%EOF\n"
    ).encode("ascii")
    return bytes(output)


@pytest.fixture()
def pdf_factory() -> Callable[..., bytes]:
    """Return a builder turning page line lists into PDF bytes."""

    def _factory(*pages: List[str]) -> bytes:
        return build_pdf(list(pages))

    return _factory


@pytest.fixture()
def sky_pdf(pdf_factory: Callable[..., bytes]) -> bytes:
    return pdf_factory(["The sky is blue."])


@pytest.fixture()
def embedding_client() -> HashEmbeddingClient:
    return HashEmbeddingClient()


@pytest.fixture()
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture()
def llm() -> ContextEchoLLM:
    return ContextEchoLLM()


@pytest.fixture()
def rag_service(
    embedding_client: HashEmbeddingClient,
    vector_store: InMemoryVectorStore,
    registry: SessionRegistry,
    llm: ContextEchoLLM,
) -> RAGService:
    return RAGService(
        pipeline=IngestPipeline(IngestPipelineConfig()),
        embedding_client=embedding_client,
        vector_store=vector_store,
        generator=AnswerGenerator(llm),
        registry=registry,
    )


def parse_sse(body: str) -> List[dict]:
    """Decode a ``text/event-stream`` body into its JSON payloads."""

    events = []
    for block in body.split("\n\n"):
        block = block.strip()
        if block.startswith("data: "):
            events.append(json.loads(block[len("data: "):]))
    return events


@pytest.fixture()
def sse_parser() -> Callable[[str], List[dict]]:
    return parse_sse
