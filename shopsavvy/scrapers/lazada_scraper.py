# shopsavvy/scrapers/lazada_scraper.py

"""Lazada Philippines adapter.

Strategy order: the JSON catalog endpoint (``?ajax=true``), then a
rendered session reading ``window.__INITIAL_STATE__``, then the DOM
selector cascade on the rendered markup.
"""

import json
import re
from typing import Any
from urllib.parse import quote_plus

from shopsavvy.errors import (
    AccessBlocked,
    ContractViolation,
    ExtractionEmpty,
    ScraperError,
    SourceUnavailable,
)
from shopsavvy.models.product import Product, ProductDetails, Review
from shopsavvy.scrapers.base_scraper import BaseScraper
from shopsavvy.scrapers.extraction import (
    absolute_url,
    parse_count,
    parse_number,
    parse_price,
)

# Returns plain data only; engine objects never leave the page.
_SEARCH_STATE_SCRIPT = """
() => {
  const state = window.__INITIAL_STATE__ || window.pageData || null;
  if (!state) { return null; }
  const items = (state.items && state.items.result)
    || (state.mods && state.mods.listItems)
    || (state.listItems)
    || null;
  return items ? JSON.parse(JSON.stringify(items)) : null;
}
"""

_DETAIL_STATE_SCRIPT = """
() => {
  const state = window.__INITIAL_STATE__ || null;
  const item = state && state.pdpData && state.pdpData.item;
  return item ? JSON.parse(JSON.stringify(item)) : null;
}
"""

_REVIEW_STATE_SCRIPT = """
() => {
  const state = window.__INITIAL_STATE__ || null;
  const reviews = state && state.pdpData && state.pdpData.reviews;
  return reviews ? JSON.parse(JSON.stringify(reviews)) : null;
}
"""

_REVIEW_API = (
    "https://my.lazada.com.ph/pdp/review/getReviewList"
    "?itemId={item_id}&pageSize=10&filter=0&sort=0&pageNo={page}"
)

_ITEM_ID_RE = re.compile(r"(\d+)$")


def _unwrap(value: Any) -> str:
    """Flatten the ``{"value": ...}`` wrappers Lazada uses in page state."""
    if isinstance(value, dict):
        value = value.get("value", value.get("text", ""))
    return "" if value is None else str(value)


class LazadaScraper(BaseScraper):
    """Scrapes Lazada search results, product pages and reviews."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("lazada", **kwargs)
        self.base_url = self.descriptor.base_url

    def _get_homepage(self) -> str:
        return f"{self.base_url}/"

    def _search_variation(self, query: str) -> list[Product]:
        if self.descriptor.supports_direct_api:
            try:
                products = self._search_api(query)
            except AccessBlocked as exc:
                if exc.terminal:
                    raise
                self.logger.info(
                    "[%s] Catalog API challenged, switching to session",
                    self.source_name,
                )
            except SourceUnavailable as exc:
                self.logger.info(
                    "[%s] Catalog API unavailable (%s), switching to session",
                    self.source_name,
                    exc,
                )
            except ExtractionEmpty as exc:
                self.logger.info(
                    "[%s] Catalog API unusable (%s), switching to session",
                    self.source_name,
                    exc,
                )
            else:
                if products:
                    return products
        if not self.descriptor.requires_rendered_session:
            raise ExtractionEmpty(
                "Catalog API returned no items", source=self.source_name
            )
        return self._search_rendered(query)

    # ── Strategies ───────────────────────────────────────────

    def _search_api(self, query: str) -> list[Product]:
        url = f"{self.base_url}/catalog/?ajax=true&q={quote_plus(query)}"
        headers = {
            **self._default_headers(),
            "Accept": "application/json, text/plain, */*",
            "X-Requested-With": "XMLHttpRequest",
        }
        body = self._fetch_text(url, headers)
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise ExtractionEmpty(
                "Catalog API did not return JSON",
                source=self.source_name,
                url=url,
            ) from exc
        mods = data.get("mods") if isinstance(data, dict) else None
        if not isinstance(mods, dict):
            raise ExtractionEmpty(
                "Catalog API returned an unexpected payload",
                source=self.source_name,
                url=url,
            )
        items = mods.get("listItems") or []
        return self._parse_items(items, "api")

    def _search_rendered(self, query: str) -> list[Product]:
        url = f"{self.base_url}/catalog/?q={quote_plus(query)}"
        with self.session_factory.open(
            self.source_name, self.diagnostics
        ) as session:
            session.navigate(url)
            session.dismiss(self.selectors.get("popups", []))
            session.wait_for_any(list(self.cascade.container[:4]))

            state_items = session.evaluate(_SEARCH_STATE_SCRIPT)
            products = self._parse_items(state_items, "state-recovery")
            if products:
                return products

            session.scroll()
            return self._extract_rendered(session, url)

    # ── Details & reviews ────────────────────────────────────

    def get_details(self, product_id: str) -> ProductDetails | None:
        item_id = self._item_id(product_id)
        url = f"{self.base_url}/products/i{item_id}.html"
        try:
            with self.session_factory.open(
                self.source_name, self.diagnostics
            ) as session:
                session.navigate(url)
                state = session.evaluate(_DETAIL_STATE_SCRIPT)
                if isinstance(state, dict):
                    details = self._details_from_state(state, product_id, url)
                    if details is not None:
                        return details
                return self._details_from_markup(
                    session.content(),
                    self.selectors.get("details", {}),
                    product_id,
                    url,
                )
        except ScraperError as exc:
            self.logger.warning(
                "[%s] Details for %s failed (%s): %s",
                self.source_name,
                product_id,
                exc.failure_class,
                exc,
            )
            return None

    def get_reviews(self, product_id: str, page: int = 1) -> list[Review]:
        item_id = self._item_id(product_id)
        try:
            reviews = self._reviews_api(item_id, product_id, page)
        except ScraperError as exc:
            self.logger.info(
                "[%s] Review API failed (%s), trying product page",
                self.source_name,
                exc.failure_class,
            )
            reviews = []
        if reviews or page > 1:
            return reviews

        url = f"{self.base_url}/products/i{item_id}.html"
        try:
            with self.session_factory.open(
                self.source_name, self.diagnostics
            ) as session:
                session.navigate(url)
                state = session.evaluate(_REVIEW_STATE_SCRIPT)
                if isinstance(state, list) and state:
                    return [
                        self._review_from_item(item, product_id, index)
                        for index, item in enumerate(state)
                        if isinstance(item, dict)
                    ]
                return self._reviews_from_markup(
                    session.content(),
                    self.selectors.get("reviews", {}),
                    product_id,
                )
        except ScraperError as exc:
            self.logger.warning(
                "[%s] Reviews for %s failed (%s): %s",
                self.source_name,
                product_id,
                exc.failure_class,
                exc,
            )
            return []

    # ── Parsing ──────────────────────────────────────────────

    def _parse_items(self, items: Any, source_tag: str) -> list[Product]:
        if not isinstance(items, list):
            return []
        products: list[Product] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            product = self._parse_item(item, source_tag)
            if product is not None:
                products.append(product)
        return products

    def _parse_item(
        self, item: dict[str, Any], source_tag: str
    ) -> Product | None:
        """Map one catalog item (API or embedded state) to a Product."""
        item_id = _unwrap(item.get("itemId") or item.get("nid"))
        title = _unwrap(item.get("name")).strip()
        price = parse_price(_unwrap(item.get("price")))
        link = _unwrap(item.get("productUrl") or item.get("itemUrl"))
        if not link and item_id:
            link = f"/products/i{item_id}.html"
        if not title or price <= 0:
            return None

        product_url = absolute_url(link, self.base_url)
        sold = item.get("itemSoldCntShow") or item.get("sold")
        return Product(
            id=(
                f"{self.source_name}_{item_id}"
                if item_id
                else self.extractor.product_id(product_url, title)
            ),
            title=title,
            price=price,
            product_url=product_url,
            platform=self.platform,
            image_url=absolute_url(_unwrap(item.get("image")), self.base_url),
            original_price=(
                parse_price(_unwrap(item.get("originalPrice"))) or None
            ),
            discount_percentage=parse_number(_unwrap(item.get("discount"))),
            rating=parse_number(_unwrap(item.get("ratingScore"))),
            rating_count=parse_count(_unwrap(item.get("review"))),
            location=_unwrap(item.get("location")),
            sales=parse_count(_unwrap(sold)) if sold else None,
            source=source_tag,
            seller=_unwrap(item.get("sellerName")),
        )

    def _details_from_state(
        self, item: dict[str, Any], product_id: str, url: str
    ) -> ProductDetails | None:
        title = str(item.get("title") or item.get("name") or "").strip()
        prices = item.get("price")
        if isinstance(prices, dict):
            price = parse_price(_unwrap(prices.get("salePrice")))
            original_price = (
                parse_price(_unwrap(prices.get("originalPrice"))) or None
            )
        else:
            price = parse_price(_unwrap(prices))
            original_price = None
        if not title or price <= 0:
            return None

        specs = item.get("specifications") or {}
        if isinstance(specs, list):
            specs = {
                str(spec.get("name")): str(spec.get("value"))
                for spec in specs
                if isinstance(spec, dict) and spec.get("name")
            }
        seller = item.get("seller")
        if isinstance(seller, dict):
            seller = seller.get("name")
        variants = item.get("skuInfos")
        images = item.get("images") or [item.get("image") or ""]

        return ProductDetails(
            id=product_id,
            title=title,
            price=price,
            product_url=url,
            platform=self.platform,
            image_url=absolute_url(str(images[0]), self.base_url),
            original_price=original_price,
            rating=parse_number(_unwrap(item.get("ratingScore"))),
            rating_count=parse_count(_unwrap(item.get("reviewCount"))),
            source="state-recovery",
            seller=str(seller or ""),
            description=_unwrap(
                item.get("description") or item.get("highlights")
            ),
            specifications={str(k): str(v) for k, v in dict(specs).items()},
            variants=(
                [v for v in variants if isinstance(v, dict)]
                if isinstance(variants, list)
                else []
            ),
            categories=[str(c) for c in item.get("categories") or []],
            brand=_unwrap(item.get("brand")),
            warranty=_unwrap(item.get("warranty")),
            return_policy=_unwrap(item.get("returnPolicy")),
            in_stock=bool(item.get("inStock", True)),
            shipping_info=_unwrap(item.get("shipping")),
        )

    def _reviews_api(
        self, item_id: str, product_id: str, page: int
    ) -> list[Review]:
        url = _REVIEW_API.format(item_id=item_id, page=page)
        headers = {
            **self._default_headers(),
            "Accept": "application/json, text/plain, */*",
        }
        try:
            data = self._fetch_get(url, headers).json()
        except ValueError as exc:
            raise ExtractionEmpty(
                "Review API did not return JSON",
                source=self.source_name,
                url=url,
            ) from exc
        items = ((data or {}).get("model") or {}).get("items") or []
        return [
            self._review_from_item(item, product_id, index)
            for index, item in enumerate(items)
            if isinstance(item, dict)
        ]

    @staticmethod
    def _review_from_item(
        item: dict[str, Any], product_id: str, index: int
    ) -> Review:
        images = item.get("images") or []
        return Review(
            id=str(item.get("reviewRateId") or f"{product_id}_r{index}"),
            reviewer=_unwrap(
                item.get("buyerName") or item.get("reviewer")
            ) or "Anonymous",
            rating=parse_number(_unwrap(item.get("rating"))) or 0.0,
            comment=_unwrap(
                item.get("reviewContent") or item.get("comment")
            ),
            date=str(item.get("reviewTime") or item.get("date") or ""),
            images=[
                str(img.get("url") if isinstance(img, dict) else img)
                for img in images
            ],
            verified_purchase=bool(
                item.get("isPurchased") or item.get("verifiedPurchase")
            ),
        )

    def _item_id(self, product_id: str) -> str:
        match = _ITEM_ID_RE.search(product_id)
        if not match:
            raise ContractViolation(
                f"Not a Lazada product id: {product_id!r}"
            )
        return match.group(1)
