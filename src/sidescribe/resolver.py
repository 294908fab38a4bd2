"""Address -> live element resolution.

Two tiers:
    1. Handle table - the element recorded for this exact address during
       the last pass, if it is still attached to the current snapshot.
    2. Recompute - look the turn up in the pass's turn map and re-run the
       address kind's query and filter on that turn's content container,
       then index into the result with the address ordinal.

A node that cannot be found any more degrades to its turn root: the caller
still scrolls to the turn (``found=True``) but nothing is highlighted and
``is_exact_match`` is False.  An unknown turn or a malformed address yields
``found=False``.  ``resolve`` never raises.
"""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from bs4 import BeautifulSoup
from bs4.element import Tag

from sidescribe.addressing import Address, parse_address
from sidescribe.handles import HandleTable
from sidescribe.highlight import Highlighter
from sidescribe.html_utils import is_attached
from sidescribe.outline_extractor import select_for_kind
from sidescribe.outline_types import Err
from sidescribe.settings import OutlineSettings
from sidescribe.turn_segmenter import TurnEntry

# Scroll alignment, mirroring scrollIntoView's ``block`` option
BLOCK_START = "start"
BLOCK_CENTER = "center"

type ScrollCallback = Callable[[Tag, str], None]


@dataclass(frozen=True, slots=True)
class Resolution:
    found: bool
    element: Tag | None = None
    is_exact_match: bool = False
    address: str = ""


_NOT_FOUND = Resolution(found=False)


class AddressResolver:
    """Resolves addresses against the most recently bound pass."""

    def __init__(
        self,
        handles: HandleTable,
        *,
        settings: OutlineSettings | None = None,
        highlighter: Highlighter | None = None,
        on_scroll: ScrollCallback | None = None,
    ) -> None:
        self._handles = handles
        self._settings = settings or OutlineSettings()
        self._highlighter = highlighter
        self._on_scroll = on_scroll
        self._soup: BeautifulSoup | None = None
        self._turns: dict[int, TurnEntry] = {}

    def bind(self, soup: BeautifulSoup | None, turns: dict[int, TurnEntry]) -> None:
        """Point the resolver at a new snapshot and its turn map."""
        self._soup = soup
        self._turns = dict(turns)

    def locate(self, address: str) -> Resolution:
        """Find the target without scrolling or highlighting."""
        # Tier 1: cached handle
        cached = self._handles.lookup(address)
        if cached is not None and is_attached(cached, self._soup):
            return Resolution(found=True, element=cached, is_exact_match=True, address=address)

        parsed = parse_address(address)
        if isinstance(parsed, Err):
            return _NOT_FOUND
        addr: Address = parsed.value

        entry = self._turns.get(addr.turn_index)
        if entry is None or not is_attached(entry.element, self._soup):
            return _NOT_FOUND
        turn_hit = Resolution(
            found=True, element=entry.element, is_exact_match=addr.is_turn, address=address,
        )
        if addr.kind is None or addr.ordinal is None:
            return turn_hit

        # Tier 2: re-run the strategy's query + filter
        degraded = Resolution(found=True, element=entry.element, is_exact_match=False, address=address)
        if entry.content is None:
            return degraded
        candidates = select_for_kind(entry.content, addr.kind, self._settings)
        if addr.ordinal >= len(candidates):
            return degraded
        target = candidates[addr.ordinal]
        self._handles.register(address, target)
        return Resolution(found=True, element=target, is_exact_match=True, address=address)

    def resolve(self, address: str) -> Resolution:
        """Locate *address*, then scroll to it and highlight exact hits."""
        result = self.locate(address)
        if not result.found or result.element is None:
            return result

        parsed = parse_address(address)
        is_turn = not isinstance(parsed, Err) and parsed.value.is_turn
        if self._on_scroll is not None:
            block = BLOCK_START if is_turn or not result.is_exact_match else BLOCK_CENTER
            self._on_scroll(result.element, block)
        if result.is_exact_match and self._highlighter is not None:
            self._highlighter.highlight(result.element)
        return result
