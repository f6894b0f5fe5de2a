# tests/test_cache_store.py

"""Tests for the cache persistence backends."""

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from shopsavvy.storage.cache_store import (
    CacheEntry,
    MemoryCacheStore,
    SQLiteCacheStore,
)
from tests.helpers import make_product

_T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _entry(
    query: str = "red shoes",
    platforms: tuple[str, ...] = ("lazada",),
    hours: float = 6,
    created_at: datetime = _T0,
) -> CacheEntry:
    return CacheEntry(
        search_query=query,
        platforms=platforms,
        results=[make_product("Red Shoes", rating=4.5, sales=12)],
        created_at=created_at,
        expires_at=created_at + timedelta(hours=hours),
    )


class TestCacheEntry(unittest.TestCase):

    def test_platforms_are_sorted(self) -> None:
        entry = _entry(platforms=("shopee", "lazada"))
        self.assertEqual(entry.platforms, ("lazada", "shopee"))

    def test_expiry_must_follow_creation(self) -> None:
        with self.assertRaises(ValueError):
            _entry(hours=0)

    def test_is_expired_at_boundary(self) -> None:
        entry = _entry(hours=1)
        self.assertFalse(entry.is_expired(_T0 + timedelta(minutes=59)))
        self.assertTrue(entry.is_expired(_T0 + timedelta(hours=1)))


class _StoreContract:
    """Behaviour every backend shares; mixed into concrete test cases."""

    store: MemoryCacheStore | SQLiteCacheStore

    def test_upsert_and_find(self) -> None:
        self.store.upsert(_entry())
        found = self.store.find("red shoes")
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].results[0].title, "Red Shoes")
        self.assertEqual(found[0].results[0].sales, 12)

    def test_upsert_replaces_same_key(self) -> None:
        self.store.upsert(_entry())
        later = _T0 + timedelta(hours=1)
        self.store.upsert(_entry(created_at=later))
        found = self.store.find("red shoes")
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].created_at, later)

    def test_slices_are_independent_rows(self) -> None:
        self.store.upsert(_entry(platforms=("lazada",)))
        self.store.upsert(_entry(platforms=("shopee",)))
        self.assertEqual(len(self.store.find("red shoes")), 2)
        self.assertEqual(self.store.find("blue shoes"), [])

    def test_delete_expired(self) -> None:
        self.store.upsert(_entry(platforms=("lazada",), hours=1))
        self.store.upsert(_entry(platforms=("shopee",), hours=6))
        removed = self.store.delete_expired(_T0 + timedelta(hours=2))
        self.assertEqual(removed, 1)
        remaining = self.store.find("red shoes")
        self.assertEqual(remaining[0].platforms, ("shopee",))

    def test_delete_one_query_or_all(self) -> None:
        self.store.upsert(_entry("red shoes"))
        self.store.upsert(_entry("blue shoes"))
        self.assertEqual(self.store.delete("red shoes"), 1)
        self.assertEqual(self.store.find("red shoes"), [])
        self.assertEqual(self.store.delete(), 1)


class TestMemoryCacheStore(_StoreContract, unittest.TestCase):

    def setUp(self) -> None:
        self.store = MemoryCacheStore()


class TestSQLiteCacheStore(_StoreContract, unittest.TestCase):

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SQLiteCacheStore(Path(self._tmp.name) / "cache.db")

    def tearDown(self) -> None:
        self.store.close()
        self._tmp.cleanup()

    def test_persists_across_connections(self) -> None:
        path = Path(self._tmp.name) / "cache.db"
        self.store.upsert(_entry())
        self.store.close()
        self.store = SQLiteCacheStore(path)
        self.assertEqual(len(self.store.find("red shoes")), 1)

    def test_in_memory_database(self) -> None:
        store = SQLiteCacheStore(Path(":memory:"))
        store.upsert(_entry())
        self.assertEqual(len(store.find("red shoes")), 1)
        store.close()


if __name__ == "__main__":
    unittest.main()
