"""
Answer Orchestrator - Knowledge-grounded question answering

WHAT: Combines a question with assembled source context through the session manager
WHERE: aham/runtime/answer.py - top of the retrieval stack
WHO: CLI ask/chat commands and any UI-level caller
TIME: Dominated by one model query (seconds to tens of seconds)

Attribution is inclusion-level: ``sources_used`` lists every source whose text
was placed in the prompt, whether or not the model drew on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .context import ContextAssembler
from .prompting import compose_answer_prompt
from .session import InferenceSessionManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AnswerResult:
    answer: str
    sources_used: List[str] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    unreadable_sources: List[str] = field(default_factory=list)


class AnswerOrchestrator:
    """Facade over context assembly and the inference session."""

    def __init__(self, session: InferenceSessionManager, assembler: ContextAssembler) -> None:
        self._session = session
        self._assembler = assembler

    @property
    def assembler(self) -> ContextAssembler:
        return self._assembler

    def is_ready(self) -> bool:
        return self._session.is_ready()

    def available_sources(self) -> List[str]:
        return self._assembler.list_sources()

    def answer(self, question: str, selected_ids: Optional[Iterable[str]] = None) -> AnswerResult:
        if not question or not question.strip():
            raise ValueError("question must not be empty")

        loaded = self._assembler.load_context(selected_ids)
        logger.info(f"Answering with sources: {loaded.identifiers or 'none'}")

        result = self._session.query_with_usage(
            compose_answer_prompt(question),
            context=None if loaded.is_empty else loaded.render(),
        )
        return AnswerResult(
            answer=result.text,
            sources_used=loaded.identifiers,
            prompt_tokens=result.prompt_tokens,
            completion_tokens=result.completion_tokens,
            unreadable_sources=[error.identifier for error in loaded.errors],
        )


__all__ = ["AnswerOrchestrator", "AnswerResult"]
