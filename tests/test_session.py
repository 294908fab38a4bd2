"""Tests for sidescribe.session: lifecycle, scheduling and navigation."""
from __future__ import annotations

import logging

import pytest
from bs4.element import Tag

from sidescribe.active_tracker import StaticViewport, VisibilityEntry
from sidescribe.html_utils import parse_html
from sidescribe.outline_cache import OutlineCacheStore
from sidescribe.outline_types import OutlineNode
from sidescribe.scheduler import ManualTimers
from sidescribe.session import OutlineSession

URL = "https://chatgpt.com/c/6f1d2c3a-0b4e"


def _user(text: str) -> str:
    return (
        '<article><div data-message-author-role="user">'
        f'<div class="user-message-bubble-color"><div class="whitespace-pre-wrap">{text}</div></div>'
        "</div></article>"
    )


def _assistant(body: str) -> str:
    return (
        '<article><div data-message-author-role="assistant">'
        f'<div class="markdown">{body}</div></div></article>'
    )


PAGE = (
    "<html><head><title>Trip planning | ChatGPT</title></head><body><main>"
    + _user("Plan a trip")
    + _assistant("<h2>Budget</h2><h3>Flights</h3><h2>Packing</h2>")
    + "</main></body></html>"
)


class _Recorder:
    def __init__(self) -> None:
        self.scrolls: list[tuple[Tag, str]] = []

    def __call__(self, element: Tag, block: str) -> None:
        self.scrolls.append((element, block))


def _session(
    *,
    url: str = URL,
    cache: OutlineCacheStore | None = None,
    viewport: StaticViewport | None = None,
) -> tuple[OutlineSession, ManualTimers, _Recorder]:
    timers = ManualTimers()
    recorder = _Recorder()
    session = OutlineSession(
        url=url, timers=timers, cache=cache, viewport=viewport, on_scroll=recorder,
    )
    return session, timers, recorder


class TestLifecycle:
    def test_first_pass_after_debounce(self) -> None:
        session, timers, _ = _session()
        session.start(PAGE)
        assert session.outline == []
        timers.advance(0.9)
        assert session.pass_count == 0
        timers.advance(0.1)
        assert session.pass_count == 1
        assert [t.address for t in session.outline] == ["turn:1"]
        assert session.title == "Trip planning"
        assert session.document_id == "6f1d2c3a-0b4e"

    def test_mutation_burst_coalesces(self) -> None:
        session, timers, _ = _session()
        session.start(PAGE)
        timers.advance(1.0)
        for _ in range(10):
            session.notify_mutation()
            timers.advance(0.1)
        timers.advance(1.5)
        assert session.pass_count == 2

    def test_retry_picks_up_late_render(self) -> None:
        session, timers, _ = _session()
        session.start("<html><body><main></main></body></html>")
        timers.advance(1.0)
        assert session.outline == []

        soup = session.soup
        assert soup is not None
        main = soup.find("main")
        assert isinstance(main, Tag)
        for fragment in parse_html(_user("Late") + _assistant("<h2>Hi</h2>")).find_all("article"):
            main.append(fragment)

        timers.advance(2.0)
        assert [t.label for t in session.outline] == ["Late"]

    def test_mutation_ignored_when_stopped(self) -> None:
        session, timers, _ = _session()
        session.notify_mutation()
        assert not session.extraction_pending
        session.start(PAGE)
        session.stop()
        session.notify_mutation()
        timers.run_all()
        assert session.pass_count == 0
        assert not session.running

    def test_restart_replaces_retry_timer(self) -> None:
        session, timers, _ = _session()
        session.start(PAGE)
        session.start(PAGE)
        # One debounced pass plus one lazy-render retry
        assert timers.pending == 2
        timers.advance(10.0)
        assert session.pass_count == 2

    def test_context_manager_stops(self) -> None:
        session, _, _ = _session()
        with session:
            session.start(PAGE)
            session.extract()
        assert not session.running

    def test_extract_is_idempotent(self) -> None:
        session, _, _ = _session()
        session.start(PAGE)
        first = [n.to_dict() for n in session.extract()]
        second = [n.to_dict() for n in session.extract()]
        assert first == second
        assert not session.extraction_pending


class TestReentry:
    def test_listener_reentry_is_deferred(self) -> None:
        session, timers, _ = _session()
        seen: list[int] = []

        def listener(outline: list[OutlineNode]) -> None:
            seen.append(len(outline))
            if len(seen) == 1:
                session.run_pass()

        session.on_outline(listener)
        session.start(PAGE)
        session.extract()
        assert seen == [1]
        assert session.extraction_pending
        timers.advance(1.0)
        assert seen == [1, 1]

    def test_unsubscribe(self) -> None:
        session, _, _ = _session()
        seen: list[int] = []
        unsubscribe = session.on_outline(lambda o: seen.append(len(o)))
        unsubscribe()
        session.start(PAGE)
        session.extract()
        assert seen == []


class TestCacheWrites:
    def test_pass_writes_after_debounce(self) -> None:
        with OutlineCacheStore(":memory:") as store:
            session, timers, _ = _session(cache=store)
            session.start(PAGE)
            timers.advance(1.0)
            assert store.get("6f1d2c3a-0b4e") is None
            timers.advance(0.8)
            cached = store.get("6f1d2c3a-0b4e")
            assert cached is not None
            assert cached.title == "Trip planning"
            assert cached.source == "chatgpt"
            assert [n.address for n in cached.nodes] == ["turn:1"]

    def test_stop_flushes_pending_write(self) -> None:
        with OutlineCacheStore(":memory:") as store:
            session, _, _ = _session(cache=store)
            session.start(PAGE)
            session.extract()
            session.stop()
            assert store.get("6f1d2c3a-0b4e") is not None

    def test_no_document_id_no_write(self) -> None:
        with OutlineCacheStore(":memory:") as store:
            session, timers, _ = _session(url="https://chatgpt.com/", cache=store)
            session.start(PAGE)
            timers.run_all()
            session.stop()
            assert store.list_outlines() == []


class TestNavigation:
    def test_resolve_address(self) -> None:
        session, _, recorder = _session()
        session.start(PAGE)
        session.extract()
        result = session.resolve_address("turn:1/heading:1")
        assert result.found and result.is_exact_match
        assert recorder.scrolls[-1][0] is result.element

    def test_fragment_retries_until_rendered(self) -> None:
        session, timers, recorder = _session()
        session.start(PAGE)
        assert session.navigate_to_fragment("#turn:1/heading:0") is False
        assert recorder.scrolls == []
        timers.advance(1.5)
        assert len(recorder.scrolls) == 1
        assert recorder.scrolls[0][0].get_text() == "Budget"

    def test_fragment_gives_up(self, caplog: pytest.LogCaptureFixture) -> None:
        session, timers, recorder = _session()
        session.start(PAGE)
        session.extract()
        with caplog.at_level(logging.WARNING, logger="sidescribe.session"):
            assert session.navigate_to_fragment("#turn:40") is False
            timers.advance(5.0)
        assert recorder.scrolls == []
        assert "after 10 attempts" in caplog.text

    def test_non_address_fragment(self) -> None:
        session, _, _ = _session()
        session.start(PAGE)
        session.extract()
        assert session.navigate_to_fragment("#comments") is False

    def test_navigate_fragment_only(self) -> None:
        session, _, recorder = _session()
        session.start(PAGE)
        session.extract()
        session.navigate(URL + "#turn:1")
        assert len(recorder.scrolls) == 1
        assert session.pass_count == 1

    def test_navigate_new_conversation(self) -> None:
        session, timers, _ = _session()
        session.start(PAGE)
        session.extract()
        session.navigate("https://chatgpt.com/c/aaaa-bbbb")
        assert session.outline == []
        assert session.document_id == "aaaa-bbbb"
        assert session.extraction_pending
        timers.advance(1.0)
        assert session.pass_count == 2

    def test_fragment_retry_dropped_on_new_conversation(self) -> None:
        session, timers, recorder = _session()
        session.start(PAGE)
        session.extract()
        assert session.navigate_to_fragment("#turn:5/heading:0") is False
        timers.advance(0.2)

        other = "".join(
            _user(f"Question {i}") + _assistant(f"<h2>Answer {i}</h2>") for i in range(3)
        )
        session.navigate("https://chatgpt.com/c/aaaa-bbbb")
        session.load(other)
        timers.advance(1.0)
        assert [t.address for t in session.outline] == ["turn:1", "turn:3", "turn:5"]
        timers.advance(5.0)
        assert recorder.scrolls == []
        assert session.highlighter.active_count() == 0

    def test_deep_link_for_element(self) -> None:
        session, _, _ = _session()
        session.start(PAGE)
        session.extract()
        soup = session.soup
        assert soup is not None
        h3 = soup.find("h3")
        assert isinstance(h3, Tag)
        assert session.deep_link_for(h3) == URL + "#turn:1/heading:1"


class TestActiveTracking:
    def test_active_heading(self) -> None:
        viewport = StaticViewport(height=1000.0)
        session, _, _ = _session(viewport=viewport)
        session.start(PAGE)
        session.extract()
        soup = session.soup
        assert soup is not None
        response = soup.find_all("article")[1]
        h2 = soup.find("h2")
        assert isinstance(response, Tag) and isinstance(h2, Tag)

        viewport.place(response, -200.0)
        viewport.place(h2, 50.0)
        changes: list[str] = []
        session.on_active_changed(changes.append)
        active = session.observe([
            VisibilityEntry(response, True, 0.8),
            VisibilityEntry(h2, True, 1.0),
        ])
        assert active == "turn:1/heading:0"
        assert session.active_address == "turn:1/heading:0"
        assert changes == ["turn:1/heading:0"]

    def test_registry_rebuilt_per_pass(self) -> None:
        session, _, _ = _session()
        session.start(PAGE)
        session.extract()
        first = session.tracker.registered
        session.extract()
        assert session.tracker.registered == first
        assert "turn:1" in first
        assert "turn:1/heading:2" in first
