"""Flat leveled node list -> nested outline tree.

Stack-walk: for each node in input order, pop ancestors whose level is
greater than or equal to the node's level, attach to the remaining top (or
make it a root), then push it.  Skipped levels are fine (an h1 followed by an
h3 nests the h3 directly under the h1) and runs of equal levels become
siblings.

Stateless: nothing survives between calls.
"""
from __future__ import annotations

from sidescribe.outline_types import OutlineNode


def build_hierarchy(flat_nodes: list[OutlineNode]) -> list[OutlineNode]:
    """Nest *flat_nodes* by level and return the roots.

    Every node's ``children`` is reset and ``parent_address`` rewritten,
    so the same flat list can be fed twice with identical results.
    """
    roots: list[OutlineNode] = []
    stack: list[OutlineNode] = []

    for node in flat_nodes:
        node.children = []
        node.parent_address = None

        # Pop stack until we find a node with level < current level
        while stack and stack[-1].level >= node.level:
            stack.pop()

        if not stack:
            roots.append(node)
        else:
            parent = stack[-1]
            parent.children.append(node)
            node.parent_address = parent.address

        stack.append(node)

    return roots


def flatten(roots: list[OutlineNode]) -> list[OutlineNode]:
    """Document-order list of every node in the forest."""
    out: list[OutlineNode] = []
    for root in roots:
        out.extend(root.walk())
    return out
