# shopsavvy/scrapers/temu_scraper.py

"""Temu adapter: rendered search page read through the DOM cascade."""

from typing import Any
from urllib.parse import quote_plus

from shopsavvy.models.product import Product
from shopsavvy.scrapers.base_scraper import BaseScraper


class TemuScraper(BaseScraper):
    """Scrapes Temu search results.

    Temu pushes sign-in and coupon modals over the grid on first visit,
    so popups are dismissed before the cascade runs.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("temu", **kwargs)

    def _get_homepage(self) -> str:
        return f"{self.descriptor.base_url}/"

    def _search_variation(self, query: str) -> list[Product]:
        url = (
            f"{self.descriptor.base_url}/search_result.html"
            f"?search_key={quote_plus(query)}"
        )
        with self.session_factory.open(
            self.source_name, self.diagnostics
        ) as session:
            session.navigate(url)
            session.dismiss(self.selectors.get("popups", []))
            session.wait_for_any(list(self.cascade.container))
            session.scroll(times=4)
            return self._extract_rendered(session, url)
