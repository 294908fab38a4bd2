#!/usr/bin/env python3
"""Extract the navigable outline of a saved chat transcript.

Parses an HTML snapshot of a conversation page, prints its outline as JSON
and optionally merges it into an outline cache and resolves addresses.

Usage:
    # Outline of a saved ChatGPT page
    python3 scripts/extract_outline.py --html page.html \
      --url https://chatgpt.com/c/6f1d2c3a-0b4e

    # Merge into the cache and check two addresses
    python3 scripts/extract_outline.py --html page.html \
      --url https://chatgpt.com/c/6f1d2c3a-0b4e --cache outlines.duckdb \
      --resolve turn:1 --resolve turn:1/heading:2
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import orjson

from sidescribe.html_utils import parse_html, read_file
from sidescribe.outline_cache import OutlineCacheStore
from sidescribe.scheduler import ManualTimers
from sidescribe.session import OutlineSession
from sidescribe.settings import OutlineSettings
from sidescribe.site_profiles import profile_by_name

log = logging.getLogger("extract_outline")


def dump_json(obj: Any) -> None:
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract the outline of a saved chat transcript."
    )
    parser.add_argument(
        "--html", required=True, type=Path, help="Saved HTML snapshot of the page"
    )
    parser.add_argument(
        "--url",
        default="",
        help="Page URL; selects the site profile and conversation id.",
    )
    parser.add_argument(
        "--profile",
        choices=["chatgpt", "gemini", "generic"],
        default=None,
        help="Force a site profile instead of matching --url.",
    )
    parser.add_argument(
        "--cache", type=Path, default=None, help="Outline cache DuckDB file (created if missing)"
    )
    parser.add_argument(
        "--resolve",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="Address to resolve against the snapshot (repeatable).",
    )
    parser.add_argument(
        "--settings", type=Path, default=None, help="Settings JSON file"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def build_report(
    html: str,
    *,
    url: str = "",
    profile_name: str | None = None,
    cache: OutlineCacheStore | None = None,
    addresses: list[str] | None = None,
    settings: OutlineSettings | None = None,
) -> dict[str, Any]:
    """Run one extraction pass and collect everything worth printing."""
    session = OutlineSession(
        url=url,
        settings=settings,
        timers=ManualTimers(),
        cache=cache,
        profile=profile_by_name(profile_name) if profile_name else None,
    )
    session.start(parse_html(html))
    outline = session.extract()

    resolutions: list[dict[str, Any]] = []
    for address in addresses or []:
        res = session.resolve_address(address)
        resolutions.append({
            "address": address,
            "found": res.found,
            "is_exact_match": res.is_exact_match,
            "element": res.element.name if res.element is not None else None,
            "text": res.element.get_text().strip()[:80] if res.element is not None else None,
        })
    session.stop()

    report: dict[str, Any] = {
        "profile": session.profile.name,
        "document_id": session.document_id,
        "title": session.title,
        "turn_count": len(outline),
        "outline": [n.to_dict() for n in outline],
    }
    if addresses:
        report["resolutions"] = resolutions
    doc_id = session.document_id
    if cache is not None and doc_id:
        cached = cache.get(doc_id)
        if cached is not None:
            report["cache"] = {
                "document_id": cached.document_id,
                "turn_count": cached.turn_count,
                "first_cached_at": cached.first_cached_at.isoformat(),
                "last_updated_at": cached.last_updated_at.isoformat(),
            }
    return report


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.html.exists():
        print(f"Error: HTML file not found: {args.html}", file=sys.stderr)
        return 1
    html = read_file(args.html)
    settings = OutlineSettings.from_json(args.settings) if args.settings else None

    if args.cache is not None:
        with OutlineCacheStore(args.cache, create_if_missing=True) as store:
            report = build_report(
                html,
                url=args.url,
                profile_name=args.profile,
                cache=store,
                addresses=args.resolve,
                settings=settings,
            )
    else:
        report = build_report(
            html,
            url=args.url,
            profile_name=args.profile,
            addresses=args.resolve,
            settings=settings,
        )

    log.info("Extracted %d turns from %s", report["turn_count"], args.html)
    dump_json(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
