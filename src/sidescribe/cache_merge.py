"""Merge a freshly extracted outline into a cached one.

Chat UIs materialize only a window of a long conversation, so a fresh pass
may cover turns 40-60 of a 100-turn cache.  The fresh pass defines the
window ``[min, max]`` of turn indices it saw:

    - cached turns outside the window are kept untouched;
    - cached turns inside the window are dropped, and the fresh turns are
      added, so an edited turn is replaced and a deleted one disappears;
    - nodes whose address carries no turn index are passed through from
      the cache unless the fresh pass has the same address;
    - if no fresh node carries a turn index there is no safe window and the
      fresh outline replaces the cache outright.

The result is ordered by turn index.  Nodes without one keep their slot.
"""
from __future__ import annotations

from sidescribe.addressing import parse_turn_index
from sidescribe.outline_types import OutlineNode


def _turn_window(fresh: list[OutlineNode]) -> tuple[int, int] | None:
    indices = [i for i in (parse_turn_index(n.address) for n in fresh) if i is not None]
    if not indices:
        return None
    return min(indices), max(indices)


def _sort_keeping_unindexed_slots(nodes: list[OutlineNode]) -> list[OutlineNode]:
    """Stable sort by turn index; nodes without an index stay in place."""
    indexed = [
        (idx, node) for node in nodes
        if (idx := parse_turn_index(node.address)) is not None
    ]
    indexed.sort(key=lambda pair: pair[0])
    ordered = iter(node for _, node in indexed)
    return [
        node if parse_turn_index(node.address) is None else next(ordered)
        for node in nodes
    ]


def merge_outline(
    cached: list[OutlineNode],
    fresh: list[OutlineNode],
) -> list[OutlineNode]:
    """Reconcile *fresh* (current pass) with *cached* (earlier passes)."""
    if not cached:
        return list(fresh)
    if not fresh:
        return list(cached)

    window = _turn_window(fresh)
    if window is None:
        return list(fresh)
    lo, hi = window

    fresh_addresses = {n.address for n in fresh}
    merged: list[OutlineNode] = []
    for node in cached:
        idx = parse_turn_index(node.address)
        if idx is None:
            if node.address not in fresh_addresses:
                merged.append(node)
        elif idx < lo or idx > hi:
            merged.append(node)

    merged.extend(fresh)
    return _sort_keeping_unindexed_slots(merged)


def window_of(fresh: list[OutlineNode]) -> tuple[int, int] | None:
    """Turn-index window a fresh pass covers, or None if it has none."""
    return _turn_window(fresh)
