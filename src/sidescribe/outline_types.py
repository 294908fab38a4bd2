"""Core types shared by every layer of the outline pipeline.

Type hierarchy:
  Ok[T] / Err[E]  - Strict algebraic Result type
  NodeKind        - turn | heading | paragraph
  Speaker         - user | assistant
  OutlineNode     - One entry of the extracted outline (recursive)
  CachedOutline   - Persisted outline for one conversation

OutlineNode and CachedOutline are plain records: they never hold a live
element reference, so they can cross a storage or process boundary as-is.
Live elements only exist inside the handle table, resolver and tracker.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

# ---------------------------------------------------------------------------
# Result ADT: strict Ok/Err
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Ok[T]:
    """Success case of Result[T, E].

    Usage::

        match parse_address("turn:4/heading:2"):
            case Ok(value=addr): print(addr.turn_index)
            case Err(error=e): print(e.reason)
    """
    value: T


@dataclass(frozen=True, slots=True)
class Err[E]:
    """Failure case of Result[T, E]. Keeps the typed failure reason."""
    error: E


type Result[T, E] = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class NodeKind(StrEnum):
    TURN = "turn"
    HEADING = "heading"
    PARAGRAPH = "paragraph"


class Speaker(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


# ---------------------------------------------------------------------------
# OutlineNode
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class OutlineNode:
    """A node of the outline tree.

    ``children`` preserves document order. ``level`` is the heading rank
    (1-6), 6 for emphasis-derived nodes, 7 for paragraphs and 1 for turns;
    gaps between parent and child levels are allowed.

    ``turn_key`` is only set on turn nodes: a content hash of the prompt and
    response, stable across passes even when the turn index shifts.
    """
    address: str
    label: str
    level: int
    kind: NodeKind
    parent_address: str | None = None
    children: list[OutlineNode] = field(default_factory=list["OutlineNode"])
    speaker: Speaker | None = None
    turn_key: str | None = None

    def walk(self) -> Iterator[OutlineNode]:
        """Yield this node and all descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "address": self.address,
            "label": self.label,
            "level": self.level,
            "kind": str(self.kind),
            "children": [c.to_dict() for c in self.children],
        }
        if self.parent_address is not None:
            out["parent_address"] = self.parent_address
        if self.speaker is not None:
            out["speaker"] = str(self.speaker)
        if self.turn_key is not None:
            out["turn_key"] = self.turn_key
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutlineNode:
        speaker = data.get("speaker")
        return cls(
            address=str(data["address"]),
            label=str(data.get("label", "")),
            level=int(data.get("level", 1)),
            kind=NodeKind(data.get("kind", NodeKind.TURN)),
            parent_address=data.get("parent_address"),
            children=[cls.from_dict(c) for c in data.get("children", [])],
            speaker=Speaker(speaker) if speaker else None,
            turn_key=data.get("turn_key"),
        )


def iter_nodes(roots: list[OutlineNode]) -> Iterator[OutlineNode]:
    """Depth-first, document-order iteration over a forest."""
    for root in roots:
        yield from root.walk()


# ---------------------------------------------------------------------------
# CachedOutline
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class CachedOutline:
    """Persisted outline of one conversation.

    Top-level ``nodes`` are turn nodes. ``turn_count`` mirrors
    ``len(nodes)`` at the time of the last write.
    """
    document_id: str
    nodes: list[OutlineNode]
    first_cached_at: datetime
    last_updated_at: datetime
    turn_count: int
    title: str = ""
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "title": self.title,
            "source": self.source,
            "nodes": [n.to_dict() for n in self.nodes],
            "first_cached_at": self.first_cached_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "turn_count": self.turn_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CachedOutline:
        return cls(
            document_id=str(data["document_id"]),
            nodes=[OutlineNode.from_dict(n) for n in data.get("nodes", [])],
            first_cached_at=datetime.fromisoformat(data["first_cached_at"]),
            last_updated_at=datetime.fromisoformat(data["last_updated_at"]),
            turn_count=int(data.get("turn_count", 0)),
            title=str(data.get("title", "")),
            source=str(data.get("source", "")),
        )
