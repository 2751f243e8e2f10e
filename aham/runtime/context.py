"""
Context Assembler - Bounded, fault-tolerant answer context

WHAT: Loads selected knowledge sources and joins them into one context string
WHERE: aham/runtime/context.py - retrieval layer above the knowledge store
WHO: AnswerOrchestrator
TIME: O(total source bytes); no model calls

A missing or unreadable source never fails the whole load: it is logged,
recorded on the result as a PartialContextError and skipped. Only sources
whose text actually made it into the context are reported as included.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .knowledge_store import KnowledgeSourceStore, normalize_source_id
from .models import KnowledgeSource

logger = logging.getLogger(__name__)

SOURCE_SEPARATOR = "\n\n---\n\n"
TRUNCATION_MARKER = "\n[...]"


class PartialContextError(Exception):
    """One knowledge source could not be read; the context proceeds without it."""

    def __init__(self, identifier: str, cause: BaseException) -> None:
        super().__init__(f"Knowledge source {identifier} could not be read: {cause}")
        self.identifier = identifier
        self.cause = cause


def render_source(source: KnowledgeSource) -> str:
    return f"Source: {source.identifier}\n{source.content}"


@dataclass(slots=True)
class LoadedContext:
    sources: List[KnowledgeSource] = field(default_factory=list)
    errors: List[PartialContextError] = field(default_factory=list)
    truncated: bool = False

    @property
    def identifiers(self) -> List[str]:
        return [source.identifier for source in self.sources]

    @property
    def is_empty(self) -> bool:
        return not self.sources

    def render(self) -> str:
        return SOURCE_SEPARATOR.join(render_source(source) for source in self.sources)


class ContextAssembler:
    """Selects, reads and bounds knowledge sources for a single answer."""

    def __init__(self, store: KnowledgeSourceStore, *, max_context_chars: Optional[int] = None) -> None:
        if max_context_chars is not None and max_context_chars <= 0:
            raise ValueError("max_context_chars must be positive")
        self._store = store
        self._max_chars = max_context_chars

    @property
    def store(self) -> KnowledgeSourceStore:
        return self._store

    def list_sources(self) -> List[str]:
        seen: dict[str, None] = {}
        for identifier in self._store.list_identifiers():
            seen.setdefault(identifier, None)
        return list(seen)

    def _select(self, selected_ids: Optional[Iterable[str]]) -> List[str]:
        available = self.list_sources()
        wanted = [normalize_source_id(s) for s in (selected_ids or []) if s and s.strip()]
        if not wanted:
            return available

        known = set(available)
        unknown = [s for s in wanted if s not in known]
        if unknown:
            logger.debug(f"Ignoring unknown knowledge sources: {unknown}")
        chosen = set(wanted)
        return [identifier for identifier in available if identifier in chosen]

    def load_context(self, selected_ids: Optional[Iterable[str]] = None) -> LoadedContext:
        """Load all sources, or only the selected ones; unknown ids are ignored."""

        result = LoadedContext()
        used = 0
        for identifier in self._select(selected_ids):
            try:
                source = self._store.read(identifier)
            except Exception as exc:
                error = PartialContextError(identifier, exc)
                logger.warning(str(error))
                result.errors.append(error)
                continue

            if not source.content:
                logger.debug(f"Skipping empty knowledge source {identifier}")
                continue

            if self._max_chars is not None:
                separator = len(SOURCE_SEPARATOR) if result.sources else 0
                block = len(render_source(source))
                remaining = self._max_chars - used - separator
                if block > remaining:
                    source = self._truncate(source, remaining)
                    result.truncated = True
                    if source is None:
                        break
                    result.sources.append(source)
                    break
                used += separator + block

            result.sources.append(source)

        logger.info(
            f"Context assembled from {len(result.sources)} source(s)"
            + (f", {len(result.errors)} unreadable" if result.errors else "")
        )
        return result

    @staticmethod
    def _truncate(source: KnowledgeSource, budget: int) -> Optional[KnowledgeSource]:
        header = len(f"Source: {source.identifier}\n") + len(TRUNCATION_MARKER)
        room = budget - header
        if room <= 0:
            return None
        logger.info(f"Truncating knowledge source {source.identifier} to {room} chars")
        return KnowledgeSource.snapshot(
            source.identifier,
            source.content[:room].rstrip() + TRUNCATION_MARKER,
            source.origin,
        )


__all__ = [
    "ContextAssembler",
    "LoadedContext",
    "PartialContextError",
    "SOURCE_SEPARATOR",
    "render_source",
]
