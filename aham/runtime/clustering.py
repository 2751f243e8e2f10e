"""
Clustering Engine - Tag routing plus model-assisted semantic grouping

WHAT: Partitions entries into tag buckets and clusters the untagged pool with the model
WHERE: aham/runtime/clustering.py - reorganization layer above the session manager
WHO: reorganize_entries (under the mutation guard)
TIME: Deterministic routing O(n log n); semantic step bounded by one model query

Pipeline per invocation: Partition -> RouteDeterministic -> RouteSemantic -> Merge.

The model is asked for a JSON array of ``{"messages": [full text, ...]}``
objects. Its reply is parsed into either ParsedGroups or a ContractViolation;
nothing in the parse step raises. On a violation each pool entry is re-emitted
unchanged as its own singleton, so an entry is never dropped or duplicated.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from .models import UNCATEGORIZED_TAG, Entry
from .prompting import compose_cluster_prompt, render_bullets
from .session import InferenceSessionManager

logger = logging.getLogger(__name__)


class ClusterContractError(ValueError):
    """The model's clustering reply was unparseable or had the wrong shape."""


@dataclass(slots=True)
class Partition:
    deterministic: Dict[str, List[Entry]] = field(default_factory=dict)
    semantic_pool: List[Entry] = field(default_factory=list)


@dataclass(slots=True)
class ClusterGroup:
    """Entries judged similar; rendered back as one uncategorized entry."""

    entries: List[Entry]

    def render(self) -> Entry:
        return Entry(text=render_bullets(e.text for e in self.entries), tags=[UNCATEGORIZED_TAG])


@dataclass(slots=True)
class ParsedGroups:
    groups: List[ClusterGroup]
    repaired: int = 0


@dataclass(slots=True)
class ContractViolation:
    reason: str
    raw: str = ""

    def as_error(self) -> ClusterContractError:
        return ClusterContractError(self.reason)


ParseOutcome = Union[ParsedGroups, ContractViolation]


@dataclass(slots=True)
class GroupingResult:
    entries: List[Entry]
    fallback_used: bool = False
    violation: Optional[ContractViolation] = None


def partition(entries: Sequence[Entry]) -> Partition:
    """Bucket entries by first tag; untagged or sentinel-tagged go to the semantic pool."""

    result = Partition()
    for entry in entries:
        tag = entry.routing_tag
        if tag == UNCATEGORIZED_TAG:
            result.semantic_pool.append(entry)
        else:
            result.deterministic.setdefault(tag, []).append(entry)
    return result


def route_deterministic(buckets: Dict[str, List[Entry]]) -> List[Entry]:
    """One chronological bulleted entry per tag bucket."""

    merged: List[Entry] = []
    for tag, bucket in buckets.items():
        ordered = sorted(bucket, key=lambda e: e.timestamp)
        merged.append(Entry(text=render_bullets(e.text for e in ordered), tags=[tag]))
    return merged


def extract_json_array(text: str) -> Optional[str]:
    """Return the first balanced top-level ``[...]`` in ``text``, ignoring brackets inside strings."""

    start = text.find("[")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    # Truncated reply: the array never closes.
    return None


def _match_key(text: str) -> str:
    return " ".join(text.split()).casefold()


def parse_groups(raw: str, pool: Sequence[Entry]) -> ParseOutcome:
    """Validate the model reply against the clustering contract."""

    snippet = extract_json_array(raw)
    if snippet is None:
        return ContractViolation("no JSON array found in model response", raw)
    try:
        decoded: Any = json.loads(snippet)
    except ValueError as exc:
        return ContractViolation(f"invalid JSON: {exc}", raw)
    except RecursionError:
        return ContractViolation("JSON nested too deeply", raw)
    if not isinstance(decoded, list):
        return ContractViolation("top-level value is not an array", raw)

    unassigned: Dict[str, List[Entry]] = defaultdict(list)
    for entry in pool:
        unassigned[_match_key(entry.text)].append(entry)
    known = set(unassigned)
    position = {entry.id: index for index, entry in enumerate(pool)}

    groups: List[ClusterGroup] = []
    for index, group in enumerate(decoded):
        if not isinstance(group, dict):
            return ContractViolation(f"group {index} is not an object", raw)
        messages = group.get("messages")
        if not isinstance(messages, list):
            return ContractViolation(f"group {index} has no messages array", raw)
        members: List[Entry] = []
        for item in messages:
            if not isinstance(item, str) or not item.strip():
                return ContractViolation(f"group {index} contains an empty or non-string message", raw)
            key = _match_key(item)
            if key not in known:
                return ContractViolation(f"group {index} contains text that matches no entry", raw)
            candidates = unassigned[key]
            # Repeats of an already-assigned text are dropped so no entry is duplicated.
            if candidates:
                members.append(candidates.pop(0))
        if members:
            groups.append(ClusterGroup(members))

    leftovers = [entry for entries in unassigned.values() for entry in entries]
    leftovers.sort(key=lambda e: position[e.id])
    groups.extend(ClusterGroup([entry]) for entry in leftovers)
    return ParsedGroups(groups=groups, repaired=len(leftovers))


def singleton_fallback(pool: Sequence[Entry]) -> List[Entry]:
    return [entry.model_copy(deep=True) for entry in pool]


class ClusteringEngine:
    """Reorganizes a working set into tag groups and semantic clusters."""

    def __init__(self, session: InferenceSessionManager, **query_overrides: Any) -> None:
        self._session = session
        self._query_overrides = query_overrides

    def route_semantic(self, pool: Sequence[Entry]) -> GroupingResult:
        if not pool:
            return GroupingResult(entries=[])
        if len(pool) == 1:
            return GroupingResult(entries=singleton_fallback(pool))

        logger.info(f"Clustering {len(pool)} uncategorized entries with the model")
        prompt = compose_cluster_prompt([entry.text.strip() for entry in pool])
        try:
            raw = self._session.query(prompt, **self._query_overrides)
        except Exception as exc:
            violation = ContractViolation(f"model query failed: {exc}")
            logger.warning(f"Semantic clustering failed, keeping entries as-is: {violation.reason}")
            return GroupingResult(singleton_fallback(pool), fallback_used=True, violation=violation)

        outcome = parse_groups(raw, pool)
        if isinstance(outcome, ContractViolation):
            logger.warning(f"Semantic clustering reply rejected, keeping entries as-is: {outcome.reason}")
            return GroupingResult(singleton_fallback(pool), fallback_used=True, violation=outcome)

        if outcome.repaired:
            logger.info(f"{outcome.repaired} entries omitted by the model kept as singletons")
        rendered = [group.render() for group in outcome.groups]
        logger.info(f"Created {len(rendered)} semantic groups from {len(pool)} entries")
        return GroupingResult(entries=rendered)

    def group(self, entries: Sequence[Entry]) -> GroupingResult:
        """Partition, route both ways and merge into the reorganized working set."""

        parts = partition(entries)
        logger.info(
            f"Grouping {len(entries)} entries: {len(parts.deterministic)} tag bucket(s), "
            f"{len(parts.semantic_pool)} uncategorized"
        )
        deterministic = route_deterministic(parts.deterministic)
        semantic = self.route_semantic(parts.semantic_pool)
        return GroupingResult(
            entries=deterministic + semantic.entries,
            fallback_used=semantic.fallback_used,
            violation=semantic.violation,
        )


__all__ = [
    "ClusterContractError",
    "ClusterGroup",
    "ClusteringEngine",
    "ContractViolation",
    "GroupingResult",
    "ParseOutcome",
    "ParsedGroups",
    "Partition",
    "extract_json_array",
    "parse_groups",
    "partition",
    "route_deterministic",
    "singleton_fallback",
]
