"""Address grammar for outline nodes.

Wire format (stable across releases)::

    address  := "turn:" INT [ "/" kind ":" INT ]
    kind     := "heading" | "emphasis" | "paragraph"

``turn:{N}`` names a whole turn; ``N`` is the turn's position in the
combined user/assistant block list of one extraction pass.  The optional
suffix names the ``K``-th element selected by the corresponding extraction
strategy inside that turn.

Addresses double as URL fragments for deep links
(``https://chatgpt.com/c/abc#turn:3/heading:1``).
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import unquote, urlsplit, urlunsplit

from sidescribe.outline_types import Err, Ok, Result


class AddressKind(StrEnum):
    HEADING = "heading"
    EMPHASIS = "emphasis"
    PARAGRAPH = "paragraph"


# INT: ASCII digits only, at most 9 of them.
_INT = r"([0-9]{1,9})"

_ADDRESS_RE = re.compile(
    rf"turn:{_INT}(?:/(heading|emphasis|paragraph):{_INT})?"
)

# Prefix-only match used where only the turn index matters (cache merge).
_TURN_PREFIX_RE = re.compile(rf"turn:{_INT}(?:/|\Z)")


@dataclass(frozen=True, slots=True)
class Address:
    """Decoded address. ``kind``/``ordinal`` are None for turn roots."""

    turn_index: int
    kind: AddressKind | None = None
    ordinal: int | None = None

    def __post_init__(self) -> None:
        if self.turn_index < 0:
            raise ValueError(f"turn_index must be >= 0, got {self.turn_index}")
        if (self.kind is None) != (self.ordinal is None):
            raise ValueError("kind and ordinal must be given together")
        if self.ordinal is not None and self.ordinal < 0:
            raise ValueError(f"ordinal must be >= 0, got {self.ordinal}")

    @property
    def is_turn(self) -> bool:
        return self.kind is None

    @property
    def turn_address(self) -> str:
        return turn_address(self.turn_index)

    def __str__(self) -> str:
        if self.kind is None or self.ordinal is None:
            return turn_address(self.turn_index)
        return node_address(self.turn_index, self.kind, self.ordinal)


@dataclass(frozen=True, slots=True)
class AddressError:
    """Typed failure for address decoding."""

    raw: str
    reason: str


def turn_address(turn_index: int) -> str:
    return f"turn:{turn_index}"


def node_address(turn_index: int, kind: AddressKind, ordinal: int) -> str:
    return f"turn:{turn_index}/{kind}:{ordinal}"


def parse_address(raw: str) -> Result[Address, AddressError]:
    """Decode an address string. Never raises."""
    if not isinstance(raw, str) or not raw:
        return Err(AddressError(raw=str(raw), reason="empty address"))
    m = _ADDRESS_RE.fullmatch(raw.strip())
    if m is None:
        return Err(AddressError(raw=raw, reason="does not match address grammar"))
    turn_index = int(m.group(1))
    if m.group(2) is None:
        return Ok(Address(turn_index=turn_index))
    return Ok(Address(
        turn_index=turn_index,
        kind=AddressKind(m.group(2)),
        ordinal=int(m.group(3)),
    ))


def parse_turn_index(raw: str) -> int | None:
    """Turn index from the ``turn:{N}`` prefix, or None if absent."""
    m = _TURN_PREFIX_RE.match(raw or "")
    return int(m.group(1)) if m else None


# ---------------------------------------------------------------------------
# Deep links
# ---------------------------------------------------------------------------


def deep_link(url: str, address: str) -> str:
    """Return *url* with its fragment replaced by *address*."""
    parts = urlsplit(url)
    return urlunsplit(parts._replace(fragment=address))


def address_from_fragment(url_or_fragment: str) -> str | None:
    """Extract a well-formed address from a URL or a bare ``#fragment``.

    Returns None when the fragment is missing or is not an address.
    """
    if not url_or_fragment:
        return None
    if url_or_fragment.startswith("#"):
        fragment = url_or_fragment[1:]
    elif "://" in url_or_fragment:
        fragment = urlsplit(url_or_fragment).fragment
    else:
        fragment = url_or_fragment
    fragment = unquote(fragment)
    match parse_address(fragment):
        case Ok(value=addr):
            return str(addr)
        case Err():
            return None
