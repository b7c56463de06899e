"""
Fact reconciliation.

The provider re-sends facts as they are refined. Each update carries the
fact's stable id; an update flagged isDiscarded withdraws the fact.

merge_facts() folds one batch into the visible set:
- at most one entry per id
- discarded update => id removed (no tombstone kept)
- any other update => attributes replaced, original position kept
- an id re-added after removal goes to the end

Properties:
- Pure and idempotent
- merge(merge(S, B1), B2) == merge(S, B1 + B2)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from constants import DEFAULT_FACT_GROUP


@dataclass(frozen=True)
class Fact:
    """One clinical fact as seen by the client (wire names are camelCase)."""

    id: str
    text: str = ""
    group: str | None = None
    group_id: str | None = None
    source: str | None = None
    is_discarded: bool = False
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> Fact | None:
        """
        Build from a provider record or a relayed client message entry.

        Returns None for records without an id; they cannot be reconciled.
        """
        fact_id = raw.get("id")
        if fact_id is None or fact_id == "":
            return None
        return cls(
            id=str(fact_id),
            text=str(raw.get("text") or ""),
            group=raw.get("group"),
            group_id=raw.get("groupId"),
            source=raw.get("source"),
            is_discarded=bool(raw.get("isDiscarded")),
            created_at=raw.get("createdAt"),
            updated_at=raw.get("updatedAt"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "group": self.group,
            "groupId": self.group_id,
            "isDiscarded": self.is_discarded,
            "source": self.source,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def merge_facts(
    visible: Iterable[Fact],
    batch: Iterable[Fact],
) -> tuple[Fact, ...]:
    """Apply one batch of fact updates, in list order, to the visible set."""
    # dict keeps insertion order; assigning an existing key keeps its slot
    merged: dict[str, Fact] = {fact.id: fact for fact in visible}

    for fact in batch:
        if fact.is_discarded:
            merged.pop(fact.id, None)
        else:
            merged[fact.id] = fact

    return tuple(merged.values())


def group_facts(facts: Iterable[Fact]) -> dict[str, list[Fact]]:
    """Group visible facts by clinical group, in first-seen group order."""
    grouped: dict[str, list[Fact]] = {}
    for fact in facts:
        grouped.setdefault(fact.group or DEFAULT_FACT_GROUP, []).append(fact)
    return grouped
