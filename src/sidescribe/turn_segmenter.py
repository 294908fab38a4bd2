"""Turn segmentation: speaker blocks -> turn nodes with extracted children.

Walks the document-ordered speaker blocks once.  A user block only sets the
pending label; the next assistant block produces the turn node, labelled
with that prompt (or a fallback) and carrying the extractor's output as
children.  Turn indices are positions in the combined user/assistant list,
so a turn's address is ``turn:{i}`` where ``i`` is the assistant block's
position.

Indices are only stable within one pass: a block inserted or removed
upstream shifts every later index.  ``turn_key`` gives consumers a
content-derived identity that survives such shifts.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from bs4 import BeautifulSoup
from bs4.element import Tag

from sidescribe.addressing import turn_address
from sidescribe.html_utils import truncate_with_ellipsis
from sidescribe.outline_extractor import extract_turn
from sidescribe.outline_types import NodeKind, OutlineNode, Speaker
from sidescribe.settings import OutlineSettings
from sidescribe.site_profiles import SiteProfile, SpeakerBlock

_DEFAULT_SETTINGS = OutlineSettings()


@dataclass(frozen=True, slots=True)
class TurnEntry:
    """Per-pass turn map entry.

    ``element`` is the block itself (scroll target for the turn root);
    ``content`` is the container the extraction strategies ran on.
    """
    index: int
    speaker: Speaker
    element: Tag
    content: Tag | None


@dataclass(slots=True)
class SegmentedTranscript:
    """Everything one pass learned about the transcript.

    ``elements`` maps each node address to the element it was derived from;
    turn addresses map to the user prompt that labels them when there is
    one, so a click-through lands on the question rather than the answer.
    """
    roots: list[OutlineNode] = field(default_factory=list[OutlineNode])
    turns: dict[int, TurnEntry] = field(default_factory=dict[int, TurnEntry])
    elements: dict[str, Tag] = field(default_factory=dict[str, Tag])


def compute_turn_key(prompt: str, response: str) -> str:
    """Content hash of a turn (null-byte delimited, first 16 hex chars)."""
    payload = "\x00".join([prompt, response])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def segment_blocks(
    blocks: list[SpeakerBlock],
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> SegmentedTranscript:
    """Pair prompts with responses and extract each response's outline."""
    result = SegmentedTranscript()
    pending_label: str | None = None
    pending_block: SpeakerBlock | None = None

    for index, block in enumerate(blocks):
        result.turns[index] = TurnEntry(
            index=index,
            speaker=block.speaker,
            element=block.element,
            content=block.content,
        )

        if block.speaker is Speaker.USER:
            pending_label = truncate_with_ellipsis(
                block.text, settings.user_label_limit, settings.ellipsis,
            ) or None
            pending_block = block if pending_label else None
            continue

        address = turn_address(index)
        turn = OutlineNode(
            address=address,
            label=pending_label or settings.fallback_turn_label,
            level=1,
            kind=NodeKind.TURN,
            speaker=Speaker.ASSISTANT,
            turn_key=compute_turn_key(
                pending_block.text if pending_block else "", block.text,
            ),
        )

        if pending_block is not None:
            result.elements[address] = pending_block.anchor

        if block.content is not None:
            extracted = extract_turn(block.content, index, settings)
            for child in extracted.roots:
                if child.parent_address is None:
                    child.parent_address = address
            turn.children = extracted.roots
            result.elements.update(extracted.elements)

        result.roots.append(turn)
        pending_label = None
        pending_block = None

    return result


def segment_transcript(
    soup: BeautifulSoup,
    profile: SiteProfile,
    settings: OutlineSettings = _DEFAULT_SETTINGS,
) -> SegmentedTranscript:
    """Collect *profile*'s speaker blocks from *soup* and segment them."""
    return segment_blocks(profile.collect_blocks(soup), settings)
