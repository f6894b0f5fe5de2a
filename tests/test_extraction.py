# tests/test_extraction.py

"""Tests for the selector-cascade extraction engine."""

import unittest

from bs4 import BeautifulSoup

from shopsavvy.scrapers.extraction import (
    ExtractionEngine,
    FieldSelector,
    SelectorCascade,
    absolute_url,
    first_match,
    parse_count,
    parse_number,
    parse_price,
)
from shopsavvy.scrapers.lazada_scraper import LazadaScraper
from shopsavvy.scrapers.shopee_scraper import ShopeeScraper
from shopsavvy.scrapers.temu_scraper import TemuScraper
from tests.helpers import load_fixture


class TestParsers(unittest.TestCase):
    """Display-text parsing helpers."""

    def test_parse_price(self) -> None:
        self.assertEqual(parse_price("₱1,299.50"), 1299.5)
        self.assertEqual(parse_price("PHP 499"), 499.0)
        self.assertEqual(parse_price("₱120 - ₱300"), 120.0)
        self.assertEqual(parse_price("See website"), 0.0)
        self.assertEqual(parse_price(None), 0.0)

    def test_parse_count(self) -> None:
        self.assertEqual(parse_count("1.2k sold"), 1200)
        self.assertEqual(parse_count("10K+ sold"), 10000)
        self.assertEqual(parse_count("(356)"), 356)
        self.assertEqual(parse_count("2M"), 2_000_000)
        self.assertIsNone(parse_count("no reviews"))

    def test_parse_number(self) -> None:
        self.assertEqual(parse_number("-35%"), 35.0)
        self.assertEqual(parse_number("4.8 out of 5"), 4.8)
        self.assertIsNone(parse_number(""))

    def test_absolute_url(self) -> None:
        base = "https://shopee.ph"
        self.assertEqual(
            absolute_url("//cf.shopee.ph/file/x", base),
            "https://cf.shopee.ph/file/x",
        )
        self.assertEqual(
            absolute_url("/product/1/2", base), "https://shopee.ph/product/1/2"
        )
        self.assertEqual(absolute_url("", base), "")


class TestFieldSelector(unittest.TestCase):
    """String and structured selector entries."""

    def setUp(self) -> None:
        self.element = BeautifulSoup(
            '<div class="card" href="/self">'
            '<span class="stars" style="width: 80%"></span>'
            '<span class="name">Red Shoes</span></div>',
            "lxml",
        ).select_one(".card")

    def test_text_selector(self) -> None:
        selector = FieldSelector.parse(".name")
        assert self.element is not None
        self.assertEqual(selector.read(self.element), "Red Shoes")

    def test_attr_pattern_and_scale(self) -> None:
        selector = FieldSelector.parse(
            {
                "css": ".stars",
                "attr": "style",
                "pattern": r"width:\s*(\d+)%",
                "scale": 0.05,
            }
        )
        assert self.element is not None
        self.assertEqual(selector.read(self.element), "80")
        self.assertEqual(selector.scale, 0.05)

    def test_self_selector_reads_container(self) -> None:
        selector = FieldSelector.parse({"css": "&", "attr": "href"})
        assert self.element is not None
        self.assertEqual(selector.read(self.element), "/self")

    def test_first_match_skips_broken_selectors(self) -> None:
        selectors = (
            FieldSelector(".missing"),
            FieldSelector("div[[broken"),
            FieldSelector(".name"),
        )
        assert self.element is not None
        value, used = first_match(self.element, selectors)
        self.assertEqual(value, "Red Shoes")
        self.assertEqual(used, selectors[2])


class TestExtractionEngine(unittest.TestCase):
    """Fixture pages through each source's real cascade."""

    def _engine_for(
        self, scraper_cls: type
    ) -> tuple[ExtractionEngine, SelectorCascade]:
        scraper = scraper_cls()
        return scraper.extractor, scraper.cascade

    def test_lazada_cards(self) -> None:
        engine, cascade = self._engine_for(LazadaScraper)
        products = engine.extract(load_fixture("lazada_search.html"), cascade)

        # The sponsored card has no price and is skipped
        self.assertEqual(len(products), 2)
        first = products[0]
        self.assertEqual(first.id, "lazada_123456")
        self.assertEqual(first.title, "Red Running Shoes Men")
        self.assertEqual(first.price, 1299.0)
        self.assertEqual(first.original_price, 1999.0)
        self.assertEqual(first.discount_percentage, 35.0)
        self.assertEqual(first.rating_count, 120)
        self.assertEqual(first.sales, 1200)
        self.assertEqual(first.location, "Metro Manila")
        self.assertEqual(first.platform, "Lazada")
        self.assertEqual(first.source, "dom-extraction")
        self.assertTrue(
            first.product_url.startswith("https://www.lazada.com.ph/")
        )
        self.assertEqual(products[1].id, "lazada_223344")

    def test_shopee_cards(self) -> None:
        engine, cascade = self._engine_for(ShopeeScraper)
        products = engine.extract(load_fixture("shopee_search.html"), cascade)

        self.assertEqual(len(products), 2)
        first, second = products
        self.assertEqual(first.id, "shopee_111_222")
        self.assertEqual(first.price, 249.0)
        self.assertEqual(first.rating, 4.5)
        self.assertEqual(first.sales, 1200)
        self.assertEqual(first.location, "Quezon City")
        self.assertEqual(
            first.product_url,
            "https://shopee.ph/Red-Shoes-Women-Flats-i.111.222",
        )
        # data: URIs are skipped in favour of the lazy-load attribute
        self.assertTrue(second.image_url.endswith("def456"))
        self.assertEqual(second.price, 1050.0)
        self.assertIsNone(second.rating)

    def test_temu_cards(self) -> None:
        engine, cascade = self._engine_for(TemuScraper)
        products = engine.extract(load_fixture("temu_search.html"), cascade)

        self.assertEqual(len(products), 2)
        first = products[0]
        self.assertEqual(first.id, "temu_601099512345678")
        self.assertEqual(first.price, 350.5)
        self.assertEqual(first.original_price, 700.0)
        # Derived from the two prices when no badge is shown
        self.assertEqual(first.discount_percentage, 50)
        self.assertEqual(first.sales, 10000)

    def test_falls_through_to_later_container(self) -> None:
        cascade = SelectorCascade(
            container=(".missing", ".card"),
            fields={
                "title": (FieldSelector(".t"),),
                "price": (FieldSelector(".p"),),
                "link": (FieldSelector("a", attr="href"),),
            },
        )
        engine = ExtractionEngine("temu", "Temu", "https://www.temu.com")
        products = engine.extract(
            '<div class="card"><a href="/x"><span class="t">Mug</span></a>'
            '<span class="p">₱99</span></div>',
            cascade,
        )
        self.assertEqual([p.title for p in products], ["Mug"])
        self.assertEqual(products[0].product_url, "https://www.temu.com/x")

    def test_empty_markup_yields_nothing(self) -> None:
        engine, cascade = self._engine_for(TemuScraper)
        self.assertEqual(engine.extract("", cascade), [])
        self.assertEqual(
            engine.extract("<html><body></body></html>", cascade), []
        )

    def test_product_id_falls_back_to_hash(self) -> None:
        engine = ExtractionEngine("temu", "Temu", "https://www.temu.com")
        first = engine.product_id("https://www.temu.com/x", "Mug")
        self.assertEqual(first, engine.product_id("https://www.temu.com/x", "Mug"))
        self.assertRegex(first, r"^temu_[0-9a-f]{12}$")


if __name__ == "__main__":
    unittest.main()
