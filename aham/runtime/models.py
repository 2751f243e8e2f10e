"""
Runtime Models - Type-safe data structures for entries and knowledge sources

WHAT: Pydantic models for working-set entries, knowledge sources and source tags
WHERE: aham/runtime/models.py - data layer
WHO: Entry store, clustering engine, mutation guard, context assembler
TIME: Model validation <1ms

Entries are free-text notes with zero or more category tags; the first tag is
the routing category and untagged entries route to the uncategorized pool.
Knowledge sources are immutable snapshots of a named text body taken at read
time.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNCATEGORIZED_TAG = "#random"

SourceOrigin = Literal["builtin", "user"]


def generate_entry_id() -> str:
    """Generate a time-ordered entry id with a random suffix."""
    now = datetime.now(timezone.utc)
    return f"{int(now.timestamp() * 1000)}{uuid.uuid4().hex[:9]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Entry(BaseModel):
    """
    A free-text item in the working set.

    Examples:
    - text="buy milk", tags=["errands"]
    - text="idea: podcast about bees", tags=[] (routes to the uncategorized pool)
    """

    id: str = Field(default_factory=generate_entry_id)
    text: str
    timestamp: datetime = Field(default_factory=utc_now)
    tags: List[str] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: List[str]) -> List[str]:
        return [tag.strip() for tag in value if tag and tag.strip()]

    @property
    def routing_tag(self) -> str:
        """First tag, or the uncategorized sentinel when the entry has none."""
        return self.tags[0] if self.tags else UNCATEGORIZED_TAG

    @property
    def is_uncategorized(self) -> bool:
        return self.routing_tag == UNCATEGORIZED_TAG

    def to_record(self) -> Dict[str, Any]:
        """Convert to the JSON record persisted by the entry store."""
        return {
            "id": self.id,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "tags": list(self.tags),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Entry:
        """Create instance from a persisted JSON record."""
        return cls(
            id=str(record["id"]),
            text=str(record.get("text", "")),
            timestamp=datetime.fromisoformat(str(record["timestamp"]).replace("Z", "+00:00")),
            tags=list(record.get("tags") or []),
        )


class KnowledgeSource(BaseModel):
    """Immutable snapshot of one knowledge source as read from the store."""

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(min_length=1)
    content: str
    size: int = Field(default=0, ge=0)
    origin: SourceOrigin = "builtin"

    @classmethod
    def snapshot(cls, identifier: str, content: str, origin: SourceOrigin = "builtin") -> KnowledgeSource:
        return cls(
            identifier=identifier,
            content=content,
            size=len(content.encode("utf-8")),
            origin=origin,
        )


class SourceTag(BaseModel):
    """Display tag for a knowledge source: ``<name>`` built-in, ``{name}`` user-created."""

    model_config = ConfigDict(frozen=True)

    name: str
    origin: SourceOrigin

    @classmethod
    def for_source(cls, identifier: str, origin: SourceOrigin) -> SourceTag:
        if origin == "builtin":
            return cls(name=f"<{identifier}>", origin=origin)
        return cls(name=f"{{{identifier}}}", origin=origin)


__all__ = [
    "Entry",
    "KnowledgeSource",
    "SourceOrigin",
    "SourceTag",
    "UNCATEGORIZED_TAG",
    "generate_entry_id",
    "utc_now",
]
