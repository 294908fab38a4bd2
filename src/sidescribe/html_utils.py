"""BeautifulSoup helpers for working with transcript snapshots.

The transcript is an HTML snapshot parsed once per session update.  Tags
from that soup are the "live elements" of the outline: they are what the
resolver hands back and what the tracker observes.

Text semantics follow the browser's ``textContent``: every descendant
string concatenated, untrimmed.  Strategies trim where they need to.

Encoding-safe file reading handles transcripts saved with mixed encodings
(UTF-8 -> CP1252 -> replace fallback).
"""
from __future__ import annotations

from pathlib import Path

from bs4 import BeautifulSoup
from bs4.element import Tag

HEADING_TAGS: list[str] = ["h1", "h2", "h3", "h4", "h5", "h6"]
EMPHASIS_TAGS: list[str] = ["strong", "b"]
PARAGRAPH_TAGS: list[str] = ["p"]


def parse_html(raw_html: str) -> BeautifulSoup:
    """Parse a transcript snapshot with the stdlib-backed ``html.parser``."""
    return BeautifulSoup(raw_html or "", "html.parser")


def text_content(tag: Tag) -> str:
    """Concatenated text of *tag* and its descendants (no separator)."""
    return tag.get_text()


def trimmed_text(tag: Tag) -> str:
    return tag.get_text().strip()


def heading_rank(tag: Tag) -> int:
    """Rank 1-6 of an ``h1``..``h6`` tag."""
    return int(tag.name[1:])


def select_in_order(container: Tag, names: list[str]) -> list[Tag]:
    """All descendants of *container* named in *names*, in document order."""
    return [t for t in container.find_all(names) if isinstance(t, Tag)]


def truncate(text: str, limit: int) -> str:
    return text[:limit]


def truncate_with_ellipsis(text: str, limit: int, marker: str = "...") -> str:
    """Cut to *limit* characters, adding *marker* only when text was cut."""
    return text[:limit] + (marker if len(text) > limit else "")


# ---------------------------------------------------------------------------
# Tree membership
# ---------------------------------------------------------------------------


def is_attached(tag: Tag, root: BeautifulSoup | None) -> bool:
    """True if *tag* is still part of the tree rooted at *root*.

    A tag removed with ``extract()`` loses its parent chain; a tag removed
    with ``decompose()`` is flagged ``decomposed``.  Either way it no longer
    belongs to the current snapshot.
    """
    if root is None or getattr(tag, "decomposed", False):
        return False
    if tag is root:
        return True
    return any(parent is root for parent in tag.parents)


def closest(tag: Tag, selector: str) -> Tag | None:
    """Nearest inclusive ancestor of *tag* matching a CSS *selector*."""
    node: Tag | None = tag
    while node is not None and not isinstance(node, BeautifulSoup):
        if node.css.match(selector):
            return node
        node = node.parent
    return None


def document_order(root: BeautifulSoup, tags: list[Tag]) -> list[Tag]:
    """Sort *tags* by their position in *root*.

    Tags outside the tree are dropped.
    """
    position: dict[int, int] = {}
    for i, el in enumerate(root.descendants):
        position[id(el)] = i
    ordered = [t for t in tags if id(t) in position]
    ordered.sort(key=lambda t: position[id(t)])
    return ordered


# ---------------------------------------------------------------------------
# Saved snapshots
# ---------------------------------------------------------------------------

_SNAPSHOT_ENCODINGS = ("utf-8", "cp1252")


def read_file(fpath: Path) -> str:
    """Read a saved transcript page.

    Browsers save pages as UTF-8, older Windows exports as CP1252; anything
    else decodes with replacement characters.  An unreadable file reads as
    an empty page.
    """
    try:
        raw = fpath.read_bytes()
    except OSError:
        return ""
    for encoding in _SNAPSHOT_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    return raw.decode("utf-8", errors="replace")
