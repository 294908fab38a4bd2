"""Outline session: one conversation page, owned explicitly by the caller.

The session ties the pieces together for a single document:

    snapshot (BeautifulSoup)
        -> turn segmentation + extraction      (one pass, synchronous)
        -> handle table / resolver / tracker    (replaced wholesale per pass)
        -> outline listeners + debounced cache write

Passes are requested through a trailing-debounce scheduler, so a burst of
mutation notifications produces one pass.  A pass is never re-entered: a
request that arrives while one runs is queued as a new debounced request.
All state lives on the instance; two sessions never share anything.

Lifecycle::

    session = OutlineSession(url=..., timers=ManualTimers())
    session.start(html)
    ...
    session.stop()
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.element import Tag

from sidescribe.active_tracker import ActiveNodeTracker, StaticViewport, Viewport, VisibilityEntry
from sidescribe.addressing import address_from_fragment, deep_link, parse_turn_index
from sidescribe.handles import HandleTable
from sidescribe.highlight import Highlighter
from sidescribe.html_utils import parse_html
from sidescribe.outline_cache import DebouncedCacheWriter, OutlineCacheStore
from sidescribe.outline_types import NodeKind, OutlineNode, iter_nodes
from sidescribe.resolver import AddressResolver, Resolution, ScrollCallback
from sidescribe.scheduler import CoalescingScheduler, ManualTimers, TimerBackend, TimerHandle
from sidescribe.settings import OutlineSettings
from sidescribe.site_profiles import SiteProfile, profile_for_url
from sidescribe.turn_segmenter import SegmentedTranscript, segment_transcript

logger = logging.getLogger(__name__)

type OutlineListener = Callable[[list[OutlineNode]], None]


class OutlineSession:
    """Extraction, resolution and tracking for one conversation page."""

    def __init__(
        self,
        *,
        url: str = "",
        settings: OutlineSettings | None = None,
        timers: TimerBackend | None = None,
        viewport: Viewport | None = None,
        cache: OutlineCacheStore | None = None,
        on_scroll: ScrollCallback | None = None,
        profile: SiteProfile | None = None,
    ) -> None:
        self._settings = settings or OutlineSettings()
        self._timers: TimerBackend = timers or ManualTimers()
        self._fixed_profile = profile
        self._url = url
        self._profile = profile or profile_for_url(url)

        self._soup: BeautifulSoup | None = None
        self._outline: list[OutlineNode] = []
        self._title = ""
        self._running = False
        self._extracting = False
        self.pass_count = 0

        self._handles = HandleTable()
        self._highlighter = Highlighter(self._timers, self._settings)
        self._resolver = AddressResolver(
            self._handles,
            settings=self._settings,
            highlighter=self._highlighter,
            on_scroll=on_scroll,
        )
        self._tracker = ActiveNodeTracker(
            viewport or StaticViewport(height=1000.0),
            threshold_fraction=self._settings.active_threshold_fraction,
        )
        self._scheduler = CoalescingScheduler(
            self._timers, self._settings.extraction_debounce, self._run_scheduled_pass,
        )
        self._cache_writer = (
            DebouncedCacheWriter(cache, self._timers, delay=self._settings.cache_write_debounce)
            if cache is not None else None
        )
        self._outline_listeners: list[OutlineListener] = []
        self._retry_timer: TimerHandle | None = None
        self._fragment_timer: TimerHandle | None = None

    # -- properties ---------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def soup(self) -> BeautifulSoup | None:
        return self._soup

    @property
    def outline(self) -> list[OutlineNode]:
        """The last published outline (empty before the first pass)."""
        return self._outline

    @property
    def url(self) -> str:
        return self._url

    @property
    def profile(self) -> SiteProfile:
        return self._profile

    @property
    def document_id(self) -> str | None:
        return self._profile.document_id(self._url)

    @property
    def title(self) -> str:
        return self._title

    @property
    def active_address(self) -> str | None:
        return self._tracker.active_address

    @property
    def extraction_pending(self) -> bool:
        return self._scheduler.pending

    @property
    def highlighter(self) -> Highlighter:
        return self._highlighter

    @property
    def tracker(self) -> ActiveNodeTracker:
        return self._tracker

    # -- lifecycle ----------------------------------------------------------

    def start(self, document: str | BeautifulSoup | None = None) -> None:
        """Begin watching: schedule the first pass and one delayed retry
        for pages that render their transcript lazily."""
        if document is not None:
            self._soup = document if isinstance(document, BeautifulSoup) else parse_html(document)
        self._running = True
        logger.info("Outline session started (%s, %s)", self._profile.name, self._url or "no url")
        self._scheduler.request()
        self._arm_retry()

    def stop(self) -> None:
        """Cancel pending work, flush cache writes and drop live handles."""
        self._running = False
        self._scheduler.cancel()
        self._cancel_retry()
        self._cancel_fragment_retry()
        self._highlighter.cancel_all()
        if self._cache_writer is not None:
            self._cache_writer.flush()
        self._tracker.clear()
        self._handles.reset()
        self._resolver.bind(None, {})
        logger.info("Outline session stopped after %d passes", self.pass_count)

    def __enter__(self) -> OutlineSession:
        return self

    def __exit__(self, *_args: object) -> None:
        if self._running:
            self.stop()

    # -- document updates ---------------------------------------------------

    def load(self, document: str | BeautifulSoup) -> None:
        """Replace the snapshot (a re-render) and request a pass."""
        self._soup = document if isinstance(document, BeautifulSoup) else parse_html(document)
        self.notify_mutation()

    def notify_mutation(self) -> None:
        """Structural change signal; coalesced into one debounced pass."""
        if not self._running:
            return
        self._scheduler.request()

    def navigate(self, url: str) -> None:
        """Follow a URL change.

        A change of fragment only is a deep-link jump; anything else is a
        new conversation: the outline is dropped and a pass is requested.
        """
        old, new = urlsplit(self._url), urlsplit(url)
        same_page = (old.scheme, old.netloc, old.path, old.query) == (
            new.scheme, new.netloc, new.path, new.query,
        )
        self._url = url
        if same_page:
            if new.fragment and new.fragment != old.fragment:
                self.navigate_to_fragment(new.fragment)
            return
        self._cancel_fragment_retry()
        self._highlighter.cancel_all()
        self._profile = self._fixed_profile or profile_for_url(url)
        self._outline = []
        self._title = ""
        self._handles.reset()
        self._tracker.clear()
        self._resolver.bind(None, {})
        if self._running:
            self._arm_retry()
        self.notify_mutation()

    def _arm_retry(self) -> None:
        """One delayed pass for pages that render their transcript lazily."""
        self._cancel_retry()
        self._retry_timer = self._timers.call_later(
            self._settings.initial_retry_delay, self.notify_mutation,
        )

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None

    def _cancel_fragment_retry(self) -> None:
        if self._fragment_timer is not None:
            self._fragment_timer.cancel()
            self._fragment_timer = None

    # -- extraction ---------------------------------------------------------

    def extract(self) -> list[OutlineNode]:
        """Run a full pass now (dropping any pending request)."""
        self._scheduler.cancel()
        return self.run_pass()

    def _run_scheduled_pass(self) -> None:
        self.run_pass()

    def run_pass(self) -> list[OutlineNode]:
        """Synchronously re-derive the outline from the current snapshot.

        New state is built aside and swapped in at the end, so listeners
        either see a complete new outline or keep the previous one.
        """
        if self._extracting:
            logger.debug("Pass requested while extracting; deferring")
            self._scheduler.request()
            return self._outline
        if self._soup is None:
            return self._outline

        self._extracting = True
        try:
            segmented = segment_transcript(self._soup, self._profile, self._settings)
            title = self._profile.detect_title(self._soup)
            self._publish(segmented, title)
        finally:
            self._extracting = False
        return self._outline

    def _publish(self, segmented: SegmentedTranscript, title: str) -> None:
        self._handles.reset()
        for address, element in segmented.elements.items():
            self._handles.register(address, element)
        self._resolver.bind(self._soup, segmented.turns)
        self._tracker.replace(self._tracking_pairs(segmented))

        self._outline = segmented.roots
        if title:
            self._title = title
        self.pass_count += 1
        logger.debug(
            "Pass %d: %d turns, %d nodes",
            self.pass_count, len(self._outline), sum(1 for _ in iter_nodes(self._outline)),
        )

        for listener in list(self._outline_listeners):
            listener(self._outline)

        doc_id = self.document_id
        if self._cache_writer is not None and doc_id and self._outline:
            self._cache_writer.submit(
                doc_id, self._outline, title=self._title, source=self._profile.name,
            )

    @staticmethod
    def _tracking_pairs(segmented: SegmentedTranscript) -> list[tuple[str, Tag]]:
        """Outline addresses with the element that scrolls past for each:
        the response block for turns, the source element for nodes."""
        pairs: list[tuple[str, Tag]] = []
        for node in iter_nodes(segmented.roots):
            if node.kind is NodeKind.TURN:
                idx = parse_turn_index(node.address)
                entry = segmented.turns.get(idx) if idx is not None else None
                if entry is not None:
                    pairs.append((node.address, entry.element))
                continue
            element = segmented.elements.get(node.address)
            if element is not None:
                pairs.append((node.address, element))
        return pairs

    # -- listeners ----------------------------------------------------------

    def on_outline(self, callback: OutlineListener) -> Callable[[], None]:
        self._outline_listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._outline_listeners:
                self._outline_listeners.remove(callback)

        return unsubscribe

    def on_active_changed(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._tracker.on_active_changed(callback)

    def observe(self, entries: Iterable[VisibilityEntry]) -> str | None:
        return self._tracker.observe(entries)

    # -- navigation ---------------------------------------------------------

    def resolve_address(self, address: str) -> Resolution:
        return self._resolver.resolve(address)

    def address_for_element(self, element: Tag) -> str | None:
        """Nearest outline address at or above *element*."""
        return self._tracker.address_for_element(element)

    def deep_link_for(self, element: Tag) -> str | None:
        address = self.address_for_element(element)
        if address is None:
            return None
        return deep_link(self._url, address)

    def navigate_to_fragment(self, fragment: str) -> bool:
        """Resolve a deep-link fragment, retrying while the page renders.

        Returns True if the first attempt succeeded; otherwise retries are
        scheduled until one succeeds or the attempt budget runs out.
        """
        address = address_from_fragment(fragment)
        if address is None:
            return False
        self._cancel_fragment_retry()
        if self.resolve_address(address).found:
            return True
        self._schedule_fragment_retry(address, attempt=2)
        return False

    def _schedule_fragment_retry(self, address: str, attempt: int) -> None:
        def retry() -> None:
            self._fragment_timer = None
            if self.resolve_address(address).found:
                return
            if attempt >= self._settings.fragment_max_attempts:
                logger.warning(
                    "Could not scroll to %s after %d attempts", address, attempt,
                )
                return
            self._schedule_fragment_retry(address, attempt + 1)

        self._fragment_timer = self._timers.call_later(
            self._settings.fragment_retry_interval, retry,
        )
