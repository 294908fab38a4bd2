"""Tests for sidescribe.outline_extractor: the per-turn strategy cascade."""
from bs4.element import Tag

from sidescribe.addressing import AddressKind
from sidescribe.hierarchy import flatten
from sidescribe.html_utils import parse_html
from sidescribe.outline_extractor import (
    extract_turn,
    extract_turn_outline,
    is_significant_emphasis,
    select_emphasis,
    select_for_kind,
    select_headings,
    select_paragraphs,
)
from sidescribe.outline_types import NodeKind
from sidescribe.settings import OutlineSettings


def _container(body: str) -> Tag:
    soup = parse_html(f'<div class="markdown">{body}</div>')
    tag = soup.find("div")
    assert isinstance(tag, Tag)
    return tag


def _long_paragraphs(n: int, size: int = 200) -> str:
    return "".join(f"<p>{chr(ord('a') + i) * size}</p>" for i in range(n))


class TestHeadingStrategy:
    def test_headings_nest_by_rank(self) -> None:
        c = _container("<h1>Intro</h1><h2>Setup</h2><h3>Deps</h3><h2>Usage</h2>")
        result = extract_turn(c, 4)
        assert result.strategy is AddressKind.HEADING
        assert len(result.roots) == 1
        intro = result.roots[0]
        assert intro.address == "turn:4/heading:0"
        assert intro.kind is NodeKind.HEADING
        assert [ch.label for ch in intro.children] == ["Setup", "Usage"]
        assert intro.children[0].children[0].address == "turn:4/heading:2"

    def test_ordinals_in_document_order(self) -> None:
        c = _container("<h3>A</h3><div><h2>B</h2></div><h1>C</h1>")
        flat = flatten(extract_turn_outline(c, 0))
        assert [(n.address, n.label) for n in flat] == [
            ("turn:0/heading:0", "A"),
            ("turn:0/heading:1", "B"),
            ("turn:0/heading:2", "C"),
        ]

    def test_label_truncated_without_ellipsis(self) -> None:
        c = _container(f"<h2>{'x' * 80}</h2>")
        (node,) = extract_turn_outline(c, 0)
        assert node.label == "x" * 60

    def test_empty_heading_placeholder(self) -> None:
        c = _container("<h2>   </h2><h2>Real</h2>")
        labels = [n.label for n in extract_turn_outline(c, 0)]
        assert labels == ["Untitled Section", "Real"]

    def test_heading_wins_over_emphasis(self) -> None:
        c = _container("<h2>Title</h2><p><strong>Label</strong></p>")
        result = extract_turn(c, 0)
        assert result.strategy is AddressKind.HEADING
        assert all("emphasis" not in a for a in result.elements)

    def test_elements_map_to_source_tags(self) -> None:
        c = _container("<h1>One</h1><h2>Two</h2>")
        result = extract_turn(c, 2)
        assert result.elements["turn:2/heading:1"].name == "h2"


class TestEmphasisStrategy:
    def test_standalone_and_colon_labels(self) -> None:
        c = _container(
            "<p><strong>Overview</strong></p>"
            "<p>This is <b>very</b> important</p>"
            "<p><strong>Note:</strong> details follow here</p>"
        )
        result = extract_turn(c, 1)
        assert result.strategy is AddressKind.EMPHASIS
        assert [n.label for n in result.roots] == ["Overview", "Note:"]
        assert [n.address for n in result.roots] == [
            "turn:1/emphasis:0", "turn:1/emphasis:1",
        ]
        assert all(n.level == 6 and n.children == [] for n in result.roots)
        assert all(n.kind is NodeKind.HEADING for n in result.roots)

    def test_length_bounds_exclusive(self) -> None:
        c = _container(
            "<p><b>abc</b></p>"          # 3 chars: too short
            "<p><b>abcd</b></p>"         # 4 chars: kept
            f"<p><b>{'y' * 50}</b></p>"  # 50 chars: too long
            f"<p><b>{'z' * 49}</b></p>"  # 49 chars: kept
        )
        assert [len(t.get_text()) for t in select_emphasis(c)] == [4, 49]

    def test_is_significant_emphasis_inline(self) -> None:
        c = _container("<p>a <strong>stressed</strong> word</p>")
        tag = c.find("strong")
        assert isinstance(tag, Tag)
        assert not is_significant_emphasis(tag)

    def test_custom_bounds(self) -> None:
        settings = OutlineSettings(emphasis_min_chars=0, emphasis_max_chars=100)
        c = _container("<p><b>ab</b></p>")
        assert len(select_emphasis(c, settings)) == 1


class TestParagraphStrategy:
    def test_long_turn_uses_paragraphs(self) -> None:
        c = _container(_long_paragraphs(3) + "<p>short one</p>")
        result = extract_turn(c, 6)
        assert result.strategy is AddressKind.PARAGRAPH
        assert len(result.roots) == 3
        first = result.roots[0]
        assert first.address == "turn:6/paragraph:0"
        assert first.label == "a" * 40 + "..."
        assert first.level == 7
        assert first.kind is NodeKind.PARAGRAPH
        assert all(n.children == [] for n in result.roots)

    def test_short_turn_yields_nothing(self) -> None:
        c = _container("<p>" + "w" * 100 + "</p>")
        result = extract_turn(c, 0)
        assert result.roots == []
        assert result.strategy is None

    def test_turn_length_threshold_exclusive(self) -> None:
        c = _container("<p>" + "q" * 500 + "</p>")
        assert extract_turn_outline(c, 0) == []
        c = _container("<p>" + "q" * 501 + "</p>")
        assert len(extract_turn_outline(c, 0)) == 1

    def test_paragraph_min_length(self) -> None:
        c = _container(_long_paragraphs(3) + "<p>" + "s" * 20 + "</p><p>" + "t" * 21 + "</p>")
        texts = [t.get_text() for t in select_paragraphs(c)]
        assert "s" * 20 not in texts
        assert "t" * 21 in texts

    def test_emphasis_preempts_paragraphs(self) -> None:
        c = _container("<p><strong>Summary</strong></p>" + _long_paragraphs(3))
        assert extract_turn(c, 0).strategy is AddressKind.EMPHASIS


class TestCascade:
    def test_empty_container(self) -> None:
        assert extract_turn_outline(_container(""), 0) == []

    def test_single_strategy_per_turn(self) -> None:
        c = _container("<h2>H</h2><p><b>Bold label</b></p>" + _long_paragraphs(4))
        kinds = {a.split("/")[1].split(":")[0] for a in extract_turn(c, 0).elements}
        assert kinds == {"heading"}

    def test_deterministic(self) -> None:
        c = _container("<h1>A</h1><h2>B</h2><p><b>C label</b></p>")
        first = [n.to_dict() for n in extract_turn_outline(c, 3)]
        second = [n.to_dict() for n in extract_turn_outline(c, 3)]
        assert first == second


class TestSelectForKind:
    def test_heading_kind(self) -> None:
        c = _container("<h1>A</h1><h2>B</h2>")
        assert select_for_kind(c, AddressKind.HEADING) == select_headings(c)

    def test_heading_falls_back_to_emphasis(self) -> None:
        c = _container("<p><strong>Label</strong></p>")
        tags = select_for_kind(c, AddressKind.HEADING)
        assert [t.name for t in tags] == ["strong"]

    def test_paragraph_kind_ignores_turn_gate(self) -> None:
        c = _container("<p>" + "m" * 30 + "</p>")
        assert len(select_for_kind(c, AddressKind.PARAGRAPH)) == 1
