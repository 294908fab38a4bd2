"""Explicit address -> element handle table.

Each extraction pass opens a new generation: ``reset()`` drops every entry
and bumps the generation counter, so a ``Handle`` minted by an earlier pass
can never be redeemed against the new table.  Handles are opaque to
callers; only the table maps them back to elements.
"""
from __future__ import annotations

from dataclasses import dataclass

from bs4.element import Tag


@dataclass(frozen=True, slots=True)
class Handle:
    generation: int
    slot: int


class HandleTable:
    """Arena of live elements keyed by address."""

    def __init__(self) -> None:
        self._generation = 0
        self._slots: list[Tag] = []
        self._by_address: dict[str, Handle] = {}

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._by_address)

    def __contains__(self, address: object) -> bool:
        return address in self._by_address

    def reset(self) -> None:
        """Invalidate every handle (start of a new pass)."""
        self._generation += 1
        self._slots = []
        self._by_address = {}

    def register(self, address: str, element: Tag) -> Handle:
        """Record *element* under *address*; a later call for the same
        address replaces the earlier one."""
        handle = Handle(generation=self._generation, slot=len(self._slots))
        self._slots.append(element)
        self._by_address[address] = handle
        return handle

    def element(self, handle: Handle) -> Tag | None:
        """Element behind *handle*, or None if the handle is stale."""
        if handle.generation != self._generation:
            return None
        if not 0 <= handle.slot < len(self._slots):
            return None
        return self._slots[handle.slot]

    def lookup(self, address: str) -> Tag | None:
        handle = self._by_address.get(address)
        return self.element(handle) if handle is not None else None

    def items(self) -> list[tuple[str, Tag]]:
        """(address, element) pairs in registration order."""
        pairs = sorted(self._by_address.items(), key=lambda kv: kv[1].slot)
        return [(address, self._slots[h.slot]) for address, h in pairs]
