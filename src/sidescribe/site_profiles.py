"""Site profiles: where speaker blocks live in each chat product's markup.

A profile knows how to list a transcript's speaker blocks in document
order, which element holds an assistant turn's rendered content, which
element a click on a turn should land on, how to read the conversation id
from the page URL and how to find the conversation title.

Profiles:
    chatgpt - ``article`` per message, user messages flagged by
              ``[data-message-author-role="user"]``.
    gemini  - ``user-query`` / ``model-response`` custom elements, with a
              class-based fallback for older layouts.
    generic - any element carrying ``data-message-author-role``; used for
              saved transcripts and unknown hosts.
"""
from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from bs4 import BeautifulSoup
from bs4.element import NavigableString, Tag

from sidescribe.html_utils import closest, document_order, trimmed_text
from sidescribe.outline_types import Speaker


@dataclass(frozen=True, slots=True)
class SpeakerBlock:
    """One speaker's contribution, as found in the snapshot.

    ``content`` is the container the extractor runs on (None when an
    assistant block has not rendered its content yet).  ``anchor`` is the
    element a click-through on the turn should target.
    """
    element: Tag
    speaker: Speaker
    content: Tag | None
    anchor: Tag
    text: str


@dataclass(frozen=True, slots=True)
class SiteProfile:
    name: str
    url_patterns: tuple[str, ...]
    collect_blocks: Callable[[BeautifulSoup], list[SpeakerBlock]]
    detect_title: Callable[[BeautifulSoup], str]
    document_id_re: re.Pattern[str] | None = None

    def matches(self, url: str) -> bool:
        return any(_glob_match(url, p) for p in self.url_patterns)

    def document_id(self, url: str) -> str | None:
        if self.document_id_re is None or not url:
            return None
        m = self.document_id_re.search(url)
        return m.group(1) if m else None


def _glob_match(url: str, pattern: str) -> bool:
    """Glob with ``*`` as the only wildcard, anchored at both ends."""
    regex = "^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$"
    return re.match(regex, url) is not None


def _user_block(element: Tag, text: str, bubble_selector: str) -> SpeakerBlock:
    bubble = element.select_one(bubble_selector)
    return SpeakerBlock(
        element=element,
        speaker=Speaker.USER,
        content=None,
        anchor=bubble if bubble is not None else element,
        text=text,
    )


def _assistant_block(element: Tag, content: Tag | None) -> SpeakerBlock:
    return SpeakerBlock(
        element=element,
        speaker=Speaker.ASSISTANT,
        content=content,
        anchor=element,
        text=trimmed_text(content) if content is not None else "",
    )


# ---------------------------------------------------------------------------
# ChatGPT
# ---------------------------------------------------------------------------

_CHATGPT_UI_LABELS = frozenset({"You said", "You"})


def _chatgpt_user_text(article: Tag) -> str:
    message = article.select_one(".whitespace-pre-wrap")
    if message is not None:
        return trimmed_text(message)
    author = article.select_one('[data-message-author-role="user"]')
    if author is None:
        return ""
    # Only the message text nodes, skipping the screen-reader labels
    parts: list[str] = []
    for s in author.descendants:
        if isinstance(s, NavigableString):
            t = s.strip()
            if t and t not in _CHATGPT_UI_LABELS:
                parts.append(t)
    return " ".join(parts).strip()


def _chatgpt_blocks(soup: BeautifulSoup) -> list[SpeakerBlock]:
    blocks: list[SpeakerBlock] = []
    for article in soup.find_all("article"):
        if not isinstance(article, Tag):
            continue
        if article.select_one('[data-message-author-role="user"]') is not None:
            blocks.append(_user_block(
                article, _chatgpt_user_text(article), ".user-message-bubble-color",
            ))
        else:
            blocks.append(_assistant_block(article, article.select_one(".markdown")))
    return blocks


def _chatgpt_title(soup: BeautifulSoup) -> str:
    title_tag = soup.find("title")
    doc_title = trimmed_text(title_tag) if isinstance(title_tag, Tag) else ""
    if doc_title and not doc_title.startswith("ChatGPT"):
        return doc_title.replace(" | ChatGPT", "").replace(" - ChatGPT", "").strip()
    for h1 in soup.find_all("h1"):
        if not isinstance(h1, Tag):
            continue
        if closest(h1, "article") is None and closest(h1, ".markdown") is None:
            text = trimmed_text(h1)
            if text:
                return text
    return ""


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------


def _gemini_visible(el: Tag) -> bool:
    return (
        closest(el, ".cdk-visually-hidden") is None
        and closest(el, ".thoughts-container") is None
    )


def _gemini_blocks(soup: BeautifulSoup) -> list[SpeakerBlock]:
    users = [t for t in soup.find_all("user-query") if isinstance(t, Tag)]
    responses = [t for t in soup.find_all("model-response") if isinstance(t, Tag)]
    if not users and not responses:
        users = soup.select(".user-query-bubble-with-background, .query-content")
        responses = [
            el for el in soup.select(".response-content, .markdown")
            if _gemini_visible(el)
        ]
    user_ids = {id(u) for u in users}
    blocks: list[SpeakerBlock] = []
    for el in document_order(soup, users + responses):
        if id(el) in user_ids:
            blocks.append(_user_block(
                el, trimmed_text(el), ".user-query-bubble-with-background",
            ))
        else:
            blocks.append(_assistant_block(el, el))
    return blocks


def _gemini_title(soup: BeautifulSoup) -> str:
    el = soup.select_one(".conversation-title.gds-title-m")
    return trimmed_text(el) if el is not None else ""


# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------

_ROLE_SPEAKERS = {"user": Speaker.USER, "assistant": Speaker.ASSISTANT}


def _generic_blocks(soup: BeautifulSoup) -> list[SpeakerBlock]:
    blocks: list[SpeakerBlock] = []
    for el in soup.select("[data-message-author-role]"):
        role = str(el.get("data-message-author-role") or "").strip().lower()
        speaker = _ROLE_SPEAKERS.get(role)
        if speaker is Speaker.USER:
            blocks.append(_user_block(el, trimmed_text(el), ".user-message-bubble-color"))
        elif speaker is Speaker.ASSISTANT:
            content = el.select_one(".markdown")
            blocks.append(_assistant_block(el, content if content is not None else el))
    return blocks


def _generic_title(soup: BeautifulSoup) -> str:
    title_tag = soup.find("title")
    if isinstance(title_tag, Tag):
        text = trimmed_text(title_tag)
        if text:
            return text
    return ""


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

CHATGPT = SiteProfile(
    name="chatgpt",
    url_patterns=("https://chatgpt.com/*", "https://chat.openai.com/*"),
    collect_blocks=_chatgpt_blocks,
    detect_title=_chatgpt_title,
    document_id_re=re.compile(r"/c/([a-f0-9-]+)", re.IGNORECASE),
)

GEMINI = SiteProfile(
    name="gemini",
    url_patterns=("https://gemini.google.com/*",),
    collect_blocks=_gemini_blocks,
    detect_title=_gemini_title,
    document_id_re=re.compile(r"/app/([a-f0-9]+)", re.IGNORECASE),
)

GENERIC = SiteProfile(
    name="generic",
    url_patterns=("*",),
    collect_blocks=_generic_blocks,
    detect_title=_generic_title,
)

PROFILES: tuple[SiteProfile, ...] = (GEMINI, CHATGPT)


def profile_for_url(url: str | None) -> SiteProfile:
    """First registered profile matching *url*, else the generic profile."""
    if url:
        for profile in PROFILES:
            if profile.matches(url):
                return profile
    return GENERIC


def profile_by_name(name: str) -> SiteProfile:
    for profile in (*PROFILES, GENERIC):
        if profile.name == name:
            return profile
    raise ValueError(f"Unknown site profile: {name!r}")
