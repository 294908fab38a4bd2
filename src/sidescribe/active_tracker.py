"""Active-node tracking from viewport visibility.

The tracker keeps a registry of ``(address, element)`` pairs and the set of
registered addresses whose element currently intersects the viewport.  On
every visibility update it picks the active address:

    threshold = viewport height * threshold fraction (0.15)
    candidates = visible registered elements with top <= threshold
    active = candidate with the largest top (the one that crossed the line
             most recently)

No candidate keeps the previous active address.  Listeners are only
notified when the active address actually changes.

Geometry comes from a ``Viewport``: something that knows the viewport
height and each element's top edge relative to the viewport.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Protocol

from bs4.element import Tag

type ActiveListener = Callable[[str], None]


class Viewport(Protocol):
    @property
    def height(self) -> float: ...

    def top_of(self, element: Tag) -> float | None: ...


class StaticViewport:
    """Viewport with explicitly assigned element positions.

    ``scroll_to(offset)`` shifts every element's reported top, which is how
    tests and offline replays simulate scrolling.
    """

    def __init__(self, height: float) -> None:
        self._height = height
        self._offset = 0.0
        self._tops: dict[int, float] = {}

    @property
    def height(self) -> float:
        return self._height

    def place(self, element: Tag, document_top: float) -> None:
        self._tops[id(element)] = document_top

    def scroll_to(self, offset: float) -> None:
        self._offset = offset

    def top_of(self, element: Tag) -> float | None:
        top = self._tops.get(id(element))
        return None if top is None else top - self._offset


@dataclass(frozen=True, slots=True)
class VisibilityEntry:
    """One intersection signal: *element* entered or left the viewport."""
    element: Tag
    is_intersecting: bool
    ratio: float = 0.0


class ActiveNodeTracker:
    """Picks the single "current" address from visibility signals."""

    def __init__(self, viewport: Viewport, *, threshold_fraction: float = 0.15) -> None:
        self._viewport = viewport
        self._threshold_fraction = threshold_fraction
        self._elements: dict[str, Tag] = {}
        self._visible: dict[str, float] = {}
        self._active: str | None = None
        self._listeners: list[ActiveListener] = []

    @property
    def active_address(self) -> str | None:
        return self._active

    @property
    def registered(self) -> list[str]:
        return list(self._elements)

    @property
    def visible(self) -> dict[str, float]:
        return dict(self._visible)

    def on_active_changed(self, callback: ActiveListener) -> Callable[[], None]:
        """Subscribe; returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # -- registry -----------------------------------------------------------

    def register(self, address: str, element: Tag | None) -> None:
        if element is None:
            return
        self._elements[address] = element

    def clear(self) -> None:
        """Drop every registration and visibility record.

        The last emitted address is kept so that a rebuild does not cause a
        duplicate emission of the same address.
        """
        self._elements.clear()
        self._visible.clear()

    def replace(self, pairs: Iterable[tuple[str, Tag]]) -> None:
        """Clear, then register *pairs* (one extraction pass' worth)."""
        self.clear()
        for address, element in pairs:
            self.register(address, element)

    def address_for_element(self, element: Tag) -> str | None:
        """Address of the nearest registered element that is or contains
        *element*."""
        by_id: dict[int, str] = {}
        for address, registered in self._elements.items():
            by_id.setdefault(id(registered), address)
        node: Tag | None = element
        while node is not None:
            address = by_id.get(id(node))
            if address is not None:
                return address
            node = node.parent
        return None

    # -- visibility ---------------------------------------------------------

    def observe(self, entries: Iterable[VisibilityEntry]) -> str | None:
        """Apply intersection signals and recompute the active address."""
        for entry in entries:
            address = self.address_for_element(entry.element)
            if address is None:
                continue
            if entry.is_intersecting:
                self._visible[address] = entry.ratio
            else:
                self._visible.pop(address, None)
        self._determine_active()
        return self._active

    def _determine_active(self) -> None:
        if not self._visible:
            return
        threshold = self._viewport.height * self._threshold_fraction

        best: str | None = None
        max_top = float("-inf")
        for address in self._visible:
            element = self._elements.get(address)
            if element is None:
                continue
            top = self._viewport.top_of(element)
            if top is None or top > threshold:
                continue
            if top > max_top:
                max_top = top
                best = address

        if best is not None and best != self._active:
            self._active = best
            for listener in list(self._listeners):
                listener(best)
