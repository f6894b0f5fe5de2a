# tests/test_deduplicator.py

"""Tests for product deduplication."""

import unittest

from shopsavvy.filters.deduplicator import ProductDeduplicator
from tests.helpers import make_product


class TestProductDeduplicator(unittest.TestCase):
    """Identity is (title, platform), first occurrence wins."""

    def test_removes_same_title_same_platform(self) -> None:
        products = [
            make_product("Red Shoes", 100.0),
            make_product("red shoes ", 90.0),
        ]
        kept, removed = ProductDeduplicator.deduplicate(products)
        self.assertEqual(removed, 1)
        self.assertEqual(kept[0].price, 100.0)

    def test_keeps_same_title_on_other_platform(self) -> None:
        products = [
            make_product("Red Shoes", platform="Lazada"),
            make_product("Red Shoes", platform="Shopee"),
        ]
        kept, removed = ProductDeduplicator.deduplicate(products)
        self.assertEqual(len(kept), 2)
        self.assertEqual(removed, 0)

    def test_preserves_order(self) -> None:
        products = [
            make_product("C"),
            make_product("A"),
            make_product("C"),
            make_product("B"),
        ]
        kept, _ = ProductDeduplicator.deduplicate(products)
        self.assertEqual([p.title for p in kept], ["C", "A", "B"])

    def test_idempotent(self) -> None:
        products = [make_product("A"), make_product("a"), make_product("B")]
        once, _ = ProductDeduplicator.deduplicate(products)
        twice, removed = ProductDeduplicator.deduplicate(once)
        self.assertEqual(once, twice)
        self.assertEqual(removed, 0)

    def test_empty(self) -> None:
        self.assertEqual(ProductDeduplicator.deduplicate([]), ([], 0))


if __name__ == "__main__":
    unittest.main()
