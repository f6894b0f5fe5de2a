# shopsavvy/storage/cache_store.py

"""Persistence backends for the partitioned search cache.

A backend only stores and returns rows; per-source merge and freshness
decisions belong to :class:`~shopsavvy.storage.query_cache.QueryCache`.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from shopsavvy.config.settings import Settings
from shopsavvy.models.product import Product

logger = logging.getLogger("shopsavvy.cache")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS search_cache (
    search_query TEXT NOT NULL,
    platforms    TEXT NOT NULL,
    results      TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    expires_at   TEXT NOT NULL,
    PRIMARY KEY (search_query, platforms)
);

CREATE INDEX IF NOT EXISTS idx_search_cache_expires
    ON search_cache(expires_at);
"""


@dataclass
class CacheEntry:
    """Cached results for one query over a sorted set of platforms."""

    search_query: str
    platforms: tuple[str, ...]
    results: list[Product]
    created_at: datetime
    expires_at: datetime

    def __post_init__(self) -> None:
        self.platforms = tuple(sorted(self.platforms))
        if self.expires_at <= self.created_at:
            raise ValueError(
                "expires_at must be later than created_at "
                f"({self.expires_at} <= {self.created_at})"
            )

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class CacheStore(Protocol):
    """Row-level operations every backend provides."""

    def upsert(self, entry: CacheEntry) -> None:
        ...

    def find(self, search_query: str) -> list[CacheEntry]:
        ...

    def delete_expired(self, now: datetime) -> int:
        ...

    def delete(self, search_query: str | None = None) -> int:
        ...


class MemoryCacheStore:
    """Process-local backend, used by tests and ``--cache memory``."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, tuple[str, ...]], CacheEntry] = {}

    def upsert(self, entry: CacheEntry) -> None:
        self._rows[(entry.search_query, entry.platforms)] = entry

    def find(self, search_query: str) -> list[CacheEntry]:
        return [
            entry
            for (query, _), entry in self._rows.items()
            if query == search_query
        ]

    def delete_expired(self, now: datetime) -> int:
        expired = [
            key for key, entry in self._rows.items() if entry.is_expired(now)
        ]
        for key in expired:
            del self._rows[key]
        return len(expired)

    def delete(self, search_query: str | None = None) -> int:
        if search_query is None:
            count = len(self._rows)
            self._rows.clear()
            return count
        keys = [key for key in self._rows if key[0] == search_query]
        for key in keys:
            del self._rows[key]
        return len(keys)


class SQLiteCacheStore:
    """SQLite backend following the ``search_cache`` record layout."""

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.CACHE_DB_PATH
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("SQLiteCacheStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def upsert(self, entry: CacheEntry) -> None:
        payload = json.dumps(
            [p.to_dict() for p in entry.results], ensure_ascii=False
        )
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO search_cache
                    (search_query, platforms, results, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(search_query, platforms) DO UPDATE SET
                    results    = excluded.results,
                    created_at = excluded.created_at,
                    expires_at = excluded.expires_at
                """,
                (
                    entry.search_query,
                    json.dumps(list(entry.platforms)),
                    payload,
                    entry.created_at.isoformat(timespec="microseconds"),
                    entry.expires_at.isoformat(timespec="microseconds"),
                ),
            )

    def find(self, search_query: str) -> list[CacheEntry]:
        rows = self._conn.execute(
            "SELECT search_query, platforms, results, created_at, "
            "expires_at FROM search_cache WHERE search_query = ?",
            (search_query,),
        ).fetchall()
        entries: list[CacheEntry] = []
        for query, platforms, results, created_at, expires_at in rows:
            try:
                entries.append(
                    CacheEntry(
                        search_query=query,
                        platforms=tuple(json.loads(platforms)),
                        results=[
                            Product.from_dict(item)
                            for item in json.loads(results)
                        ],
                        created_at=datetime.fromisoformat(created_at),
                        expires_at=datetime.fromisoformat(expires_at),
                    )
                )
            except (ValueError, TypeError) as exc:
                logger.warning(
                    "Skipping unreadable cache row for '%s': %s",
                    query,
                    exc,
                )
        return entries

    def delete_expired(self, now: datetime) -> int:
        with self._conn:
            cur = self._conn.execute(
                "DELETE FROM search_cache WHERE expires_at <= ?",
                (now.isoformat(timespec="microseconds"),),
            )
        return cur.rowcount

    def delete(self, search_query: str | None = None) -> int:
        with self._conn:
            if search_query is None:
                cur = self._conn.execute("DELETE FROM search_cache")
            else:
                cur = self._conn.execute(
                    "DELETE FROM search_cache WHERE search_query = ?",
                    (search_query,),
                )
        return cur.rowcount
