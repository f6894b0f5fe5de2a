# shopsavvy/scrapers/google_shopping_scraper.py

"""Google Shopping adapter backed by the Serper JSON API."""

from typing import Any
from urllib.parse import urlparse

from shopsavvy.errors import ExtractionEmpty, SourceUnavailable
from shopsavvy.models.product import Product
from shopsavvy.scrapers.base_scraper import BaseScraper
from shopsavvy.scrapers.extraction import (
    parse_count,
    parse_number,
    parse_price,
)

_SHOPPING_URL = "https://google.serper.dev/shopping"


class GoogleShoppingScraper(BaseScraper):
    """Queries Google Shopping listings through ``google.serper.dev``.

    Listings come from many merchants; the merchant name is kept in
    ``seller`` while ``platform`` stays "Google Shopping" so results
    partition cleanly in the cache.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("google_shopping", **kwargs)

    def _get_homepage(self) -> str:
        return "https://shopping.google.com/"

    def _search_variation(self, query: str) -> list[Product]:
        api_key = self.settings.SERPER_API_KEY
        if not api_key:
            raise SourceUnavailable(
                "SERPER_API_KEY is not configured",
                source=self.source_name,
                url=_SHOPPING_URL,
            )

        headers = {
            "X-API-KEY": api_key,
            "Content-Type": "application/json",
        }
        payload = {
            "q": query,
            "gl": self.settings.SERPER_COUNTRY,
            "hl": "en",
            "page": 1,
        }
        resp = self._fetch_post(_SHOPPING_URL, headers, payload)
        try:
            data = resp.json()
        except ValueError as exc:
            raise ExtractionEmpty(
                "Serper returned a non-JSON body",
                source=self.source_name,
                url=_SHOPPING_URL,
            ) from exc

        items = data.get("shopping") if isinstance(data, dict) else None
        if not isinstance(items, list):
            items = []
        products: list[Product] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            product = self._parse_item(item)
            if product is not None:
                products.append(product)
        return products

    def _parse_item(self, item: dict[str, Any]) -> Product | None:
        """Map one ``shopping`` entry to a Product."""
        title = str(item.get("title") or "").strip()
        extracted = item.get("extractedPrice")
        price = (
            float(extracted)
            if isinstance(extracted, (int, float))
            else parse_price(str(item.get("price") or ""))
        )
        link = str(item.get("link") or "")
        if not title or price <= 0:
            return None

        rating = item.get("rating")
        rating_count = item.get("ratingCount")
        if isinstance(rating, dict):
            rating_count = rating.get("count", rating_count)
            rating = rating.get("rating")

        return Product(
            id=(
                f"{self.source_name}_{item['productId']}"
                if item.get("productId")
                else self.extractor.product_id(link, title)
            ),
            title=title,
            price=price,
            product_url=link,
            platform=self.platform,
            image_url=str(item.get("imageUrl") or ""),
            rating=parse_number(str(rating)) if rating is not None else None,
            rating_count=(
                parse_count(str(rating_count)) if rating_count else None
            ),
            source="api",
            seller=str(item.get("source") or self._merchant(link)),
        )

    @staticmethod
    def _merchant(link: str) -> str:
        host = urlparse(link).netloc.lower()
        return host[4:] if host.startswith("www.") else host
