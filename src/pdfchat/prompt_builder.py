"""Utilities for constructing grounded prompts from retrieved segments."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from pdfchat.vectorstore import SearchResult

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
_SYSTEM_PROMPT_PATH = _PROMPTS_DIR / "system.txt"
_USER_PROMPT_PATH = _PROMPTS_DIR / "user.md"


def _load_template(path: Path) -> str:
    """Read and trim the contents of a template file."""
    return path.read_text(encoding="utf-8").strip()


SYSTEM_PROMPT = _load_template(_SYSTEM_PROMPT_PATH)
_USER_TEMPLATE = _load_template(_USER_PROMPT_PATH)


@dataclass(slots=True)
class Prompt:
    system: str
    user: str

    def as_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]

    def __len__(self) -> int:
        return len(self.system) + len(self.user)


def build_context_block(segments: Sequence[SearchResult]) -> str:
    sections: List[str] = []
    for index, segment in enumerate(segments, start=1):
        content = segment.text.strip()
        if not content:
            continue
        sections.append(f"[{index}] {content}")
    return "\n\n".join(sections)


def build_prompt(question: str, segments: Sequence[SearchResult]) -> Prompt:
    """Compose the prompt answering *question* from the retrieved *segments*."""

    if question is None:
        raise ValueError("question must not be None")

    user = _USER_TEMPLATE.format(
        context=build_context_block(segments),
        question=question.strip(),
    )
    return Prompt(system=SYSTEM_PROMPT, user=user)


__all__ = ["Prompt", "SYSTEM_PROMPT", "build_context_block", "build_prompt"]
