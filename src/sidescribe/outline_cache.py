"""DuckDB-backed store for cached conversation outlines.

One row per conversation.  Writes go through ``merge_outline`` so a pass
that only saw part of a long conversation never erases the rest of it.

``DebouncedCacheWriter`` sits in front of the store and coalesces rapid
passes into one write per conversation.

Tables:
    cached_outlines - document_id, title, source, nodes (JSON),
                      first_cached_at, last_updated_at, turn_count
    _schema_version - schema version tracking
"""
from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson

from sidescribe.cache_merge import merge_outline
from sidescribe.outline_types import CachedOutline, OutlineNode, utc_now
from sidescribe.scheduler import KeyedCoalescer, TimerBackend

logger = logging.getLogger(__name__)

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

SCHEMA_VERSION = "1.0.0"

_SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS _schema_version (
    table_name VARCHAR PRIMARY KEY,
    version VARCHAR NOT NULL
);

CREATE TABLE IF NOT EXISTS cached_outlines (
    document_id VARCHAR PRIMARY KEY,
    title VARCHAR NOT NULL DEFAULT '',
    source VARCHAR NOT NULL DEFAULT '',
    nodes VARCHAR NOT NULL,
    first_cached_at TIMESTAMP NOT NULL,
    last_updated_at TIMESTAMP NOT NULL,
    turn_count INTEGER NOT NULL DEFAULT 0
);
"""

_COLUMNS = [
    "document_id", "title", "source", "nodes",
    "first_cached_at", "last_updated_at", "turn_count",
]


def _nodes_to_json(nodes: list[OutlineNode]) -> str:
    return orjson.dumps([n.to_dict() for n in nodes]).decode("utf-8")


def _to_db_time(value: datetime) -> datetime:
    """Naive UTC for the TIMESTAMP columns."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _from_db_time(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _nodes_from_json(raw: str) -> list[OutlineNode]:
    data = orjson.loads(raw)
    if not isinstance(data, list):
        return []
    return [OutlineNode.from_dict(d) for d in data if isinstance(d, dict)]


class OutlineCacheStore:
    """Read/write interface to the outline cache database."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        create_if_missing: bool = False,
    ) -> None:
        self._db_path = Path(db_path)
        if str(db_path) != ":memory:" and not self._db_path.exists() and not create_if_missing:
            raise FileNotFoundError(f"Outline cache database not found: {self._db_path}")
        self._conn: Any = _duckdb_mod.connect(str(db_path))
        self._create_schema()

    def _create_schema(self) -> None:
        for stmt in _SCHEMA_DDL.split(";"):
            stmt = stmt.strip()
            if stmt:
                self._conn.execute(stmt)
        self._conn.execute(
            "INSERT OR REPLACE INTO _schema_version VALUES ('cached_outlines', ?)",
            [SCHEMA_VERSION],
        )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> OutlineCacheStore:
        return self

    def __exit__(self, *_args: object) -> None:
        self.close()

    @property
    def schema_version(self) -> str:
        row = self._conn.execute(
            "SELECT version FROM _schema_version WHERE table_name = 'cached_outlines'"
        ).fetchone()
        return str(row[0]) if row else "unknown"

    # -- reads --------------------------------------------------------------

    def get(self, document_id: str) -> CachedOutline | None:
        row = self._conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM cached_outlines WHERE document_id = ?",
            [document_id],
        ).fetchone()
        return self._row_to_outline(row) if row else None

    def list_outlines(self) -> list[CachedOutline]:
        """All cached outlines, most recently updated first."""
        rows = self._conn.execute(
            f"SELECT {', '.join(_COLUMNS)} FROM cached_outlines "
            "ORDER BY last_updated_at DESC, document_id"
        ).fetchall()
        return [self._row_to_outline(r) for r in rows]

    def _row_to_outline(self, row: tuple[Any, ...]) -> CachedOutline:
        d = dict(zip(_COLUMNS, row, strict=True))
        return CachedOutline(
            document_id=str(d["document_id"]),
            nodes=_nodes_from_json(str(d["nodes"])),
            first_cached_at=_from_db_time(d["first_cached_at"]),
            last_updated_at=_from_db_time(d["last_updated_at"]),
            turn_count=int(d["turn_count"]),
            title=str(d["title"] or ""),
            source=str(d["source"] or ""),
        )

    # -- writes -------------------------------------------------------------

    def update(
        self,
        document_id: str,
        fresh: list[OutlineNode],
        *,
        title: str = "",
        source: str = "",
        now: datetime | None = None,
    ) -> CachedOutline:
        """Merge *fresh* into the cached outline for *document_id* and save.

        The first write creates the record; later writes keep
        ``first_cached_at`` and move ``last_updated_at``.  An empty title
        does not overwrite a known one.
        """
        now = now or utc_now()
        existing = self.get(document_id)
        if existing is None:
            outline = CachedOutline(
                document_id=document_id,
                nodes=list(fresh),
                first_cached_at=now,
                last_updated_at=now,
                turn_count=len(fresh),
                title=title,
                source=source,
            )
        else:
            merged = merge_outline(existing.nodes, fresh)
            outline = CachedOutline(
                document_id=document_id,
                nodes=merged,
                first_cached_at=existing.first_cached_at,
                last_updated_at=now,
                turn_count=len(merged),
                title=title or existing.title,
                source=source or existing.source,
            )
        self._conn.execute(
            "INSERT OR REPLACE INTO cached_outlines VALUES (?, ?, ?, ?, ?, ?, ?)",
            [
                outline.document_id,
                outline.title,
                outline.source,
                _nodes_to_json(outline.nodes),
                _to_db_time(outline.first_cached_at),
                _to_db_time(outline.last_updated_at),
                outline.turn_count,
            ],
        )
        return outline

    def delete(self, document_id: str) -> bool:
        existed = self.get(document_id) is not None
        self._conn.execute(
            "DELETE FROM cached_outlines WHERE document_id = ?", [document_id],
        )
        return existed


@dataclass(frozen=True, slots=True)
class PendingWrite:
    nodes: list[OutlineNode]
    title: str
    source: str


class DebouncedCacheWriter:
    """Coalesces cache writes per conversation behind a trailing delay."""

    def __init__(
        self,
        store: OutlineCacheStore,
        timers: TimerBackend,
        *,
        delay: float = 0.8,
    ) -> None:
        self._store = store
        self._coalescer: KeyedCoalescer[str, PendingWrite] = KeyedCoalescer(
            timers, delay, self._write,
        )
        self.writes = 0

    def submit(
        self,
        document_id: str,
        nodes: list[OutlineNode],
        *,
        title: str = "",
        source: str = "",
    ) -> None:
        self._coalescer.submit(document_id, PendingWrite(list(nodes), title, source))

    def pending(self) -> list[str]:
        return self._coalescer.pending_keys()

    def flush(self) -> None:
        self._coalescer.flush()

    def cancel_all(self) -> None:
        self._coalescer.cancel_all()

    def _write(self, document_id: str, pending: PendingWrite) -> None:
        outline = self._store.update(
            document_id, pending.nodes, title=pending.title, source=pending.source,
        )
        self.writes += 1
        logger.debug(
            "Cached outline %s: %d turns", document_id, outline.turn_count,
        )
