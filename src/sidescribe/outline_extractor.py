"""Per-turn outline extraction: a strict priority cascade of strategies.

Strategy order (first non-empty wins, later strategies never run):
    1. Headings   - every h1..h6, hierarchy from heading rank.
    2. Emphasis   - standalone or colon-terminated ``strong``/``b`` labels,
                    all at level 6 (flat siblings).
    3. Paragraphs - only for long turns; every substantial ``p`` at level 7,
                    returned flat.
    4. Nothing.

The ``select_*`` functions are the single source of truth for what each
strategy picks and in which order.  Addresses carry the position inside
those lists, so the resolver re-runs the same functions to map an address
back to an element.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from bs4.element import Tag

from sidescribe.addressing import AddressKind, node_address
from sidescribe.hierarchy import build_hierarchy
from sidescribe.html_utils import (
    EMPHASIS_TAGS,
    HEADING_TAGS,
    PARAGRAPH_TAGS,
    heading_rank,
    select_in_order,
    text_content,
    trimmed_text,
    truncate,
    truncate_with_ellipsis,
)
from sidescribe.outline_types import NodeKind, OutlineNode
from sidescribe.settings import OutlineSettings

_DEFAULT_SETTINGS = OutlineSettings()


@dataclass(slots=True)
class TurnOutline:
    """Extraction result for one turn.

    ``roots`` is the (already nested) node forest; ``elements`` maps every
    produced address to the tag it was derived from.
    """
    roots: list[OutlineNode] = field(default_factory=list[OutlineNode])
    elements: dict[str, Tag] = field(default_factory=dict[str, Tag])
    strategy: AddressKind | None = None


# ---------------------------------------------------------------------------
# Strategy queries (shared with the resolver)
# ---------------------------------------------------------------------------


def select_headings(container: Tag) -> list[Tag]:
    return select_in_order(container, HEADING_TAGS)


def is_significant_emphasis(
    tag: Tag,
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> bool:
    """Emphasis that reads like a label rather than inline stress.

    Length strictly between the min/max bounds, and either the whole of its
    parent block or terminated by a colon.
    """
    text = trimmed_text(tag)
    if not settings.emphasis_min_chars < len(text) < settings.emphasis_max_chars:
        return False
    parent = tag.parent
    standalone = parent is not None and trimmed_text(parent) == text
    return standalone or text.endswith(":")


def select_emphasis(
    container: Tag,
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> list[Tag]:
    return [
        t for t in select_in_order(container, EMPHASIS_TAGS)
        if is_significant_emphasis(t, settings)
    ]


def select_paragraphs(
    container: Tag,
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> list[Tag]:
    return [
        t for t in select_in_order(container, PARAGRAPH_TAGS)
        if len(trimmed_text(t)) > settings.paragraph_min_chars
    ]


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------


def _heading_strategy(
    container: Tag, turn_index: int, settings: OutlineSettings,
) -> TurnOutline:
    flat: list[OutlineNode] = []
    elements: dict[str, Tag] = {}
    for ordinal, tag in enumerate(select_headings(container)):
        address = node_address(turn_index, AddressKind.HEADING, ordinal)
        label = trimmed_text(tag) or settings.heading_placeholder
        flat.append(OutlineNode(
            address=address,
            label=truncate(label, settings.heading_label_limit),
            level=heading_rank(tag),
            kind=NodeKind.HEADING,
        ))
        elements[address] = tag
    if not flat:
        return TurnOutline()
    return TurnOutline(
        roots=build_hierarchy(flat), elements=elements, strategy=AddressKind.HEADING,
    )


def _emphasis_strategy(
    container: Tag, turn_index: int, settings: OutlineSettings,
) -> TurnOutline:
    flat: list[OutlineNode] = []
    elements: dict[str, Tag] = {}
    for ordinal, tag in enumerate(select_emphasis(container, settings)):
        address = node_address(turn_index, AddressKind.EMPHASIS, ordinal)
        flat.append(OutlineNode(
            address=address,
            label=truncate(trimmed_text(tag), settings.emphasis_label_limit),
            level=settings.emphasis_level,
            kind=NodeKind.HEADING,
        ))
        elements[address] = tag
    if not flat:
        return TurnOutline()
    return TurnOutline(
        roots=build_hierarchy(flat), elements=elements, strategy=AddressKind.EMPHASIS,
    )


def _paragraph_strategy(
    container: Tag, turn_index: int, settings: OutlineSettings,
) -> TurnOutline:
    if len(text_content(container)) <= settings.paragraph_turn_min_chars:
        return TurnOutline()
    roots: list[OutlineNode] = []
    elements: dict[str, Tag] = {}
    for ordinal, tag in enumerate(select_paragraphs(container, settings)):
        address = node_address(turn_index, AddressKind.PARAGRAPH, ordinal)
        text = trimmed_text(tag)
        roots.append(OutlineNode(
            address=address,
            label=truncate(text, settings.paragraph_label_limit) + settings.ellipsis,
            level=settings.paragraph_level,
            kind=NodeKind.PARAGRAPH,
        ))
        elements[address] = tag
    if not roots:
        return TurnOutline()
    # Paragraphs never nest
    return TurnOutline(roots=roots, elements=elements, strategy=AddressKind.PARAGRAPH)


_CASCADE = (_heading_strategy, _emphasis_strategy, _paragraph_strategy)


def extract_turn(
    container: Tag,
    turn_index: int,
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> TurnOutline:
    """Run the strategy cascade on one turn's content container."""
    for strategy in _CASCADE:
        result = strategy(container, turn_index, settings)
        if result.roots:
            return result
    return TurnOutline()


def extract_turn_outline(
    container: Tag,
    turn_index: int,
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> list[OutlineNode]:
    """Root nodes for one turn (see ``extract_turn`` for element mapping)."""
    return extract_turn(container, turn_index, settings).roots


def select_for_kind(
    container: Tag,
    kind: AddressKind,
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> list[Tag]:
    """Re-run the query and filter behind an address kind.

    A ``heading`` address whose turn no longer has headings falls back to
    the emphasis list: the turn may have switched strategy since the
    address was minted.
    """
    if kind is AddressKind.HEADING:
        headings = select_headings(container)
        if headings:
            return headings
        return select_emphasis(container, settings)
    if kind is AddressKind.EMPHASIS:
        return select_emphasis(container, settings)
    return select_paragraphs(container, settings)
