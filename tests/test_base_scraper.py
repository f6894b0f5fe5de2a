# tests/test_base_scraper.py

"""Tests for BaseScraper retry, block detection and fallback behaviour."""

import unittest
from typing import Any, Callable
from unittest.mock import MagicMock, call, patch

from curl_cffi import CurlError

from shopsavvy.errors import (
    AccessBlocked,
    ContractViolation,
    ExtractionEmpty,
    SourceUnavailable,
)
from shopsavvy.models.product import Product, SearchFilters
from shopsavvy.scrapers.base_scraper import BaseScraper
from shopsavvy.scrapers.retry_policy import RetryPolicy
from shopsavvy.storage.diagnostics import DiagnosticsWriter
from tests.helpers import make_product


class _StubScraper(BaseScraper):
    """Concrete scraper whose variation outcome is set by each test."""

    def __init__(
        self,
        source_name: str = "lazada",
        outcome: Callable[[str], list[Product]] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(source_name, **kwargs)
        self.outcome = outcome or (lambda query: [])
        self.calls: list[str] = []

    def _get_homepage(self) -> str:
        return "https://example.com/"

    def _search_variation(self, query: str) -> list[Product]:
        self.calls.append(query)
        return self.outcome(query)

    # --- Public wrappers for protected helpers ---

    def fetch_get(self, url: str) -> Any:
        return self._fetch_get(url)

    def fetch_text(self, url: str) -> str:
        return self._fetch_text(url)


def _response(
    status: int, text: str = "<html><body>ok</body></html>"
) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    resp.headers = {}
    resp.url = "https://example.com/page"
    return resp


@patch("shopsavvy.scrapers.base_scraper.curl_requests.Session")
class TestFetch(unittest.TestCase):
    """Direct HTTP goes through the shared retry policy."""

    def _scraper(self, mock_session_cls: MagicMock) -> _StubScraper:
        self.sleeper = MagicMock()
        self.session = MagicMock()
        mock_session_cls.return_value = self.session
        self.diagnostics = MagicMock(spec=DiagnosticsWriter)
        return _StubScraper(
            retry_policy=RetryPolicy(
                max_attempts=3,
                base_delay=1.0,
                max_delay=8.0,
                sleep=self.sleeper,
            ),
            diagnostics=self.diagnostics,
        )

    def test_success_first_try(self, mock_session_cls: MagicMock) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(200)
        resp = scraper.fetch_get("https://example.com/page")
        self.assertEqual(resp.status_code, 200)
        self.sleeper.assert_not_called()

    def test_retries_server_errors_with_backoff(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.side_effect = [
            _response(500),
            _response(502),
            _response(200),
        ]
        resp = scraper.fetch_get("https://example.com/page")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.sleeper.call_args_list, [call(1.0), call(2.0)])

    def test_gives_up_after_max_attempts(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(500)
        with self.assertRaises(SourceUnavailable) as ctx:
            scraper.fetch_get("https://example.com/page")
        self.assertEqual(self.session.get.call_count, 3)
        self.assertEqual(ctx.exception.status_code, 500)
        # No sleep after the final attempt
        self.assertEqual(self.sleeper.call_count, 2)

    def test_auth_and_missing_are_not_retried(
        self, mock_session_cls: MagicMock,
    ) -> None:
        for status in (401, 404):
            with self.subTest(status=status):
                scraper = self._scraper(mock_session_cls)
                self.session.get.return_value = _response(status)
                with self.assertRaises(SourceUnavailable):
                    scraper.fetch_get("https://example.com/page")
                self.assertEqual(self.session.get.call_count, 1)
                self.sleeper.assert_not_called()

    def test_forbidden_is_access_blocked(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(403)
        with self.assertRaises(AccessBlocked) as ctx:
            scraper.fetch_get("https://example.com/page")
        self.assertEqual(self.session.get.call_count, 1)
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertFalse(ctx.exception.terminal)

    def test_service_unavailable_is_access_blocked(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(503)
        with self.assertRaises(AccessBlocked) as ctx:
            scraper.fetch_get("https://example.com/page")
        self.assertEqual(self.session.get.call_count, 1)
        self.assertEqual(ctx.exception.reason, "status:503")
        self.sleeper.assert_not_called()

    def test_captcha_behind_503_is_terminal_and_skips_fallback(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(
            503, "<html>verify you are human captcha</html>"
        )
        with patch(
            "shopsavvy.scrapers.base_scraper.cloudscraper"
        ) as mock_cloudscraper:
            with self.assertRaises(AccessBlocked) as ctx:
                scraper.fetch_text("https://example.com/page")
            mock_cloudscraper.create_scraper.assert_not_called()
        self.assertTrue(ctx.exception.terminal)
        self.assertEqual(self.session.get.call_count, 1)
        self.sleeper.assert_not_called()
        self.diagnostics.capture.assert_called_once()

    def test_transport_errors_are_retried(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.side_effect = [
            CurlError("connection reset"),
            _response(200),
        ]
        resp = scraper.fetch_get("https://example.com/page")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.sleeper.call_count, 1)

    def test_captcha_page_with_200_is_terminal_block(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(
            200, "<html><body>Please verify you are human</body></html>"
        )
        with self.assertRaises(AccessBlocked) as ctx:
            scraper.fetch_get("https://example.com/page")
        self.assertTrue(ctx.exception.terminal)
        self.diagnostics.capture.assert_called_once()

    def test_fetch_text_does_not_fall_back_on_404(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(404)
        with patch(
            "shopsavvy.scrapers.base_scraper.cloudscraper"
        ) as mock_cloudscraper:
            with self.assertRaises(SourceUnavailable):
                scraper.fetch_text("https://example.com/page")
            mock_cloudscraper.create_scraper.assert_not_called()

    def test_fetch_text_falls_back_to_cloudscraper(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(500)
        with patch(
            "shopsavvy.scrapers.base_scraper.cloudscraper"
        ) as mock_cloudscraper:
            fallback = mock_cloudscraper.create_scraper.return_value
            fallback.get.return_value = _response(
                200, "<html><body>real page</body></html>"
            )
            text = scraper.fetch_text("https://example.com/page")
        self.assertIn("real page", text)

    def test_close_releases_both_sessions(
        self, mock_session_cls: MagicMock,
    ) -> None:
        scraper = self._scraper(mock_session_cls)
        self.session.get.return_value = _response(500)
        with patch(
            "shopsavvy.scrapers.base_scraper.cloudscraper"
        ) as mock_cloudscraper:
            fallback = mock_cloudscraper.create_scraper.return_value
            fallback.get.return_value = _response(200)
            scraper.fetch_text("https://example.com/page")
            scraper.fetch_text("https://example.com/other")
            scraper.close()

        mock_cloudscraper.create_scraper.assert_called_once()
        self.session.close.assert_called_once()
        fallback.close.assert_called_once()


@patch("shopsavvy.scrapers.base_scraper.curl_requests.Session")
class TestSearchContract(unittest.TestCase):
    """search() never raises for source failures."""

    def test_rejects_bad_query(self, _: MagicMock) -> None:
        scraper = _StubScraper()
        for query in ("", "   ", None, 42):
            with self.subTest(query=query):
                with self.assertRaises(ContractViolation):
                    scraper.search(query)  # type: ignore[arg-type]

    def test_rejects_bad_filters(self, _: MagicMock) -> None:
        with self.assertRaises(ContractViolation):
            _StubScraper().search("shoes", {"min_price": 1})  # type: ignore[arg-type]

    def test_unknown_source(self, _: MagicMock) -> None:
        with self.assertRaises(ContractViolation):
            _StubScraper(source_name="amazon")

    def test_real_results_returned_and_deduplicated(self, _: MagicMock) -> None:
        scraper = _StubScraper(
            outcome=lambda q: [
                make_product("Red Shoes"),
                make_product("Red Shoes"),
                make_product("Blue Shoes"),
            ]
        )
        products = scraper.search("shoes")
        self.assertEqual([p.title for p in products], ["Red Shoes", "Blue Shoes"])
        # lazada issues two variations
        self.assertEqual(len(scraper.calls), 2)
        self.assertEqual(scraper.calls[0], "shoes")

    def test_extraction_empty_tries_next_variation(self, _: MagicMock) -> None:
        def outcome(query: str) -> list[Product]:
            if query == "shoes":
                raise ExtractionEmpty("nothing", source="lazada")
            return [make_product("Shoe Rack")]

        scraper = _StubScraper(outcome=outcome)
        products = scraper.search("shoes")
        self.assertEqual([p.title for p in products], ["Shoe Rack"])

    def test_access_blocked_stops_variations_and_falls_back(
        self, _: MagicMock,
    ) -> None:
        def outcome(query: str) -> list[Product]:
            raise AccessBlocked("captcha", source="lazada", terminal=True)

        scraper = _StubScraper(outcome=outcome)
        products = scraper.search("shoes")
        self.assertEqual(len(scraper.calls), 1)
        self.assertTrue(products)
        self.assertTrue(all(p.source == "fallback" for p in products))
        self.assertTrue(all(p.platform == "Lazada" for p in products))

    def test_source_unavailable_falls_back(self, _: MagicMock) -> None:
        def outcome(query: str) -> list[Product]:
            raise SourceUnavailable("timeout", source="lazada")

        products = _StubScraper(outcome=outcome).search("shoes")
        self.assertTrue(all(p.source == "fallback" for p in products))

    def test_filters_do_not_filter_results(self, _: MagicMock) -> None:
        scraper = _StubScraper(
            outcome=lambda q: [make_product("Pricey", price=9999.0)]
        )
        products = scraper.search("shoes", SearchFilters(max_price=10.0))
        self.assertEqual([p.title for p in products], ["Pricey"])

    def test_details_and_reviews_default_to_unsupported(
        self, _: MagicMock,
    ) -> None:
        scraper = _StubScraper()
        self.assertIsNone(scraper.get_details("lazada_1"))
        self.assertEqual(scraper.get_reviews("lazada_1"), [])


if __name__ == "__main__":
    unittest.main()
