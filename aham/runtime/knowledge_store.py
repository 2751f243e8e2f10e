"""
Knowledge Source Store - Directory-backed named text bodies

WHAT: Lists, reads and manages the knowledge sources available as answer context
WHERE: aham/runtime/knowledge_store.py - storage collaborator for the context assembler
WHO: ContextAssembler (reads only); CLI source management (create/rename/delete)
TIME: Listing O(files); reads bounded by file size

Two collections make up the identifier set:
- built-in: ``*.md`` files shipped with the app, read-only
- user: ``*.md`` files created at runtime, editable

Identifiers are file stems. When both collections define the same identifier
the built-in file wins.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol

from .models import KnowledgeSource, SourceOrigin, SourceTag

logger = logging.getLogger(__name__)

SOURCE_SUFFIX = ".md"
_IDENTIFIER_RE = re.compile(r"^[\w][\w .-]*$")


class SourceNotFoundError(KeyError):
    """Raised when a knowledge source identifier does not exist."""


class KnowledgeSourceStore(Protocol):
    """Read contract the context assembler depends on."""

    def list_identifiers(self) -> List[str]:
        """Return every known identifier, built-in first."""

    def read(self, identifier: str) -> KnowledgeSource:
        """Return a snapshot of one source; raise SourceNotFoundError if unknown."""


def normalize_source_id(selector: str) -> str:
    """Map UI selectors such as ``#gig``, ``<gig>``, ``{gig}`` or ``gig.md`` to ``gig``."""

    value = selector.strip()
    value = value.lstrip("#")
    if len(value) >= 2 and (value[0], value[-1]) in {("<", ">"), ("{", "}")}:
        value = value[1:-1]
    if value.endswith(SOURCE_SUFFIX):
        value = value[: -len(SOURCE_SUFFIX)]
    return value.strip()


@dataclass(slots=True)
class DirectoryKnowledgeStore:
    """Knowledge sources stored as markdown files in a built-in and a user directory."""

    builtin_dir: Optional[Path] = None
    user_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.builtin_dir is not None:
            self.builtin_dir = Path(self.builtin_dir).expanduser()
        if self.user_dir is not None:
            self.user_dir = Path(self.user_dir).expanduser()

    # ------------------ listing ------------------
    @staticmethod
    def _scan(directory: Optional[Path]) -> List[str]:
        if directory is None or not directory.is_dir():
            return []
        return sorted(p.stem for p in directory.glob(f"*{SOURCE_SUFFIX}") if p.is_file())

    def builtin_identifiers(self) -> List[str]:
        return self._scan(self.builtin_dir)

    def user_identifiers(self) -> List[str]:
        builtin = set(self.builtin_identifiers())
        return [name for name in self._scan(self.user_dir) if name not in builtin]

    def list_identifiers(self) -> List[str]:
        return self.builtin_identifiers() + self.user_identifiers()

    def source_tags(self) -> List[SourceTag]:
        tags = [SourceTag.for_source(name, "builtin") for name in self.builtin_identifiers()]
        tags.extend(SourceTag.for_source(name, "user") for name in self.user_identifiers())
        return tags

    # ------------------ reads ------------------
    def _locate(self, identifier: str) -> tuple[Path, SourceOrigin]:
        for directory, origin in ((self.builtin_dir, "builtin"), (self.user_dir, "user")):
            if directory is None:
                continue
            path = directory / f"{identifier}{SOURCE_SUFFIX}"
            if path.is_file():
                return path, origin  # type: ignore[return-value]
        raise SourceNotFoundError(identifier)

    def read(self, identifier: str) -> KnowledgeSource:
        path, origin = self._locate(identifier)
        content = path.read_text(encoding="utf-8").strip()
        return KnowledgeSource.snapshot(identifier, content, origin)

    def read_content(self, identifier: str) -> str:
        return self.read(identifier).content

    # ------------------ user sources ------------------
    def _user_path(self, identifier: str) -> Path:
        if self.user_dir is None:
            raise PermissionError("No user source directory configured")
        if not _IDENTIFIER_RE.match(identifier):
            raise ValueError(f"Invalid source identifier: {identifier!r}")
        return self.user_dir / f"{identifier}{SOURCE_SUFFIX}"

    def _guard_builtin(self, identifier: str) -> None:
        if identifier in self.builtin_identifiers():
            raise PermissionError(f"Built-in source {identifier} is read-only")

    def create(self, identifier: str, content: str = "") -> KnowledgeSource:
        identifier = normalize_source_id(identifier)
        self._guard_builtin(identifier)
        path = self._user_path(identifier)
        if path.exists():
            raise FileExistsError(f"Source {identifier} already exists")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.info(f"Created knowledge source {identifier}")
        return KnowledgeSource.snapshot(identifier, content.strip(), "user")

    def write(self, identifier: str, content: str) -> KnowledgeSource:
        self._guard_builtin(identifier)
        path = self._user_path(identifier)
        if not path.is_file():
            raise SourceNotFoundError(identifier)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
        return KnowledgeSource.snapshot(identifier, content.strip(), "user")

    def rename(self, old: str, new: str) -> None:
        old, new = normalize_source_id(old), normalize_source_id(new)
        self._guard_builtin(old)
        self._guard_builtin(new)
        src, dst = self._user_path(old), self._user_path(new)
        if not src.is_file():
            raise SourceNotFoundError(old)
        if dst.exists():
            raise FileExistsError(f"Source {new} already exists")
        src.rename(dst)
        logger.info(f"Renamed knowledge source {old} -> {new}")

    def delete(self, identifier: str) -> None:
        identifier = normalize_source_id(identifier)
        self._guard_builtin(identifier)
        path = self._user_path(identifier)
        if not path.is_file():
            raise SourceNotFoundError(identifier)
        path.unlink()
        logger.info(f"Deleted knowledge source {identifier}")


__all__ = [
    "DirectoryKnowledgeStore",
    "KnowledgeSourceStore",
    "SOURCE_SUFFIX",
    "SourceNotFoundError",
    "normalize_source_id",
]
