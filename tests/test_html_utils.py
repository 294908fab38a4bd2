"""Tests for sidescribe.html_utils module."""
import tempfile
from pathlib import Path

from bs4.element import Tag

from sidescribe.html_utils import (
    closest,
    document_order,
    heading_rank,
    is_attached,
    parse_html,
    read_file,
    select_in_order,
    truncate_with_ellipsis,
)


def _find(soup: Tag, name: str) -> Tag:
    tag = soup.find(name)
    assert isinstance(tag, Tag)
    return tag


class TestTextHelpers:
    def test_truncate_with_ellipsis(self) -> None:
        assert truncate_with_ellipsis("abcdef", 3) == "abc..."
        assert truncate_with_ellipsis("abc", 3) == "abc"
        assert truncate_with_ellipsis("", 3) == ""

    def test_heading_rank(self) -> None:
        soup = parse_html("<h4>x</h4>")
        assert heading_rank(_find(soup, "h4")) == 4

    def test_select_in_order_mixed_names(self) -> None:
        soup = parse_html("<b>1</b><strong>2</strong><div><b>3</b></div>")
        assert [t.get_text() for t in select_in_order(soup, ["strong", "b"])] == ["1", "2", "3"]


class TestTreeMembership:
    def test_attached(self) -> None:
        soup = parse_html("<div><p>x</p></div>")
        assert is_attached(_find(soup, "p"), soup)

    def test_extracted_is_detached(self) -> None:
        soup = parse_html("<div><p>x</p></div>")
        p = _find(soup, "p").extract()
        assert not is_attached(p, soup)

    def test_decomposed_is_detached(self) -> None:
        soup = parse_html("<div><p>x</p></div>")
        p = _find(soup, "p")
        p.decompose()
        assert not is_attached(p, soup)

    def test_other_document(self) -> None:
        soup = parse_html("<p>x</p>")
        other = parse_html("<p>x</p>")
        assert not is_attached(_find(soup, "p"), other)
        assert not is_attached(_find(soup, "p"), None)

    def test_closest(self) -> None:
        soup = parse_html('<article><div class="markdown"><h1>T</h1></div></article>')
        h1 = _find(soup, "h1")
        found = closest(h1, ".markdown")
        assert found is not None and found.name == "div"
        assert closest(h1, "section") is None
        assert closest(h1, "h1") is h1

    def test_document_order(self) -> None:
        soup = parse_html("<i>1</i><u>2</u><s>3</s>")
        i, u, s = _find(soup, "i"), _find(soup, "u"), _find(soup, "s")
        stray = _find(parse_html("<q>x</q>"), "q")
        assert document_order(soup, [s, stray, i, u]) == [i, u, s]


class TestReadFile:
    def test_utf8_file(self) -> None:
        with tempfile.NamedTemporaryFile(mode="w", suffix=".html", delete=False, encoding="utf-8") as f:
            f.write("<p>Héllo</p>")
            path = Path(f.name)
        try:
            assert read_file(path) == "<p>Héllo</p>"
        finally:
            path.unlink()

    def test_cp1252_fallback(self, tmp_path: Path) -> None:
        path = tmp_path / "legacy.html"
        path.write_bytes("<p>caf\xe9</p>".encode("cp1252"))
        assert read_file(path) == "<p>café</p>"

    def test_undecodable_bytes_replaced(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.html"
        path.write_bytes(b"<p>ok\x81\x8d</p>")
        text = read_file(path)
        assert text.startswith("<p>ok")
        assert "\ufffd" in text

    def test_missing_file(self, tmp_path: Path) -> None:
        assert read_file(tmp_path / "absent.html") == ""
