# tests/test_query_variations.py

"""Tests for query normalisation and variation generation."""

import unittest

from shopsavvy.filters.query_variations import (
    QueryVariationGenerator,
    normalize_query,
)
from shopsavvy.models.product import SortBy


class TestNormalizeQuery(unittest.TestCase):

    def test_collapses_whitespace_and_case(self) -> None:
        self.assertEqual(normalize_query("  iPhone   13\tPro "), "iphone 13 pro")

    def test_empty(self) -> None:
        self.assertEqual(normalize_query("   "), "")


class TestQueryVariationGenerator(unittest.TestCase):

    def test_base_query_first(self) -> None:
        variations = QueryVariationGenerator.generate("red shoes", 3)
        self.assertEqual(variations[0], "red shoes")
        self.assertEqual(len(variations), 3)

    def test_single_variation_is_just_the_query(self) -> None:
        self.assertEqual(
            QueryVariationGenerator.generate("red shoes", 1), ["red shoes"]
        )

    def test_variations_are_distinct(self) -> None:
        variations = QueryVariationGenerator.generate("lamp", 10)
        lowered = [v.lower() for v in variations]
        self.assertEqual(len(lowered), len(set(lowered)))
        self.assertTrue(all("lamp" in v for v in variations))

    def test_sort_steers_vocabulary(self) -> None:
        budget = QueryVariationGenerator.modifiers_for(SortBy.PRICE_ASC)
        variations = QueryVariationGenerator.generate(
            "lamp", 4, SortBy.PRICE_ASC
        )
        for variation in variations[1:]:
            with self.subTest(variation=variation):
                self.assertTrue(any(mod in variation for mod in budget))

    def test_relevance_uses_general_vocabulary(self) -> None:
        self.assertEqual(
            QueryVariationGenerator.modifiers_for(SortBy.RELEVANCE),
            QueryVariationGenerator.modifiers_for(None),
        )

    def test_empty_query_yields_nothing(self) -> None:
        self.assertEqual(QueryVariationGenerator.generate("  ", 3), [])


if __name__ == "__main__":
    unittest.main()
