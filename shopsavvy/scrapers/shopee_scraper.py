# shopsavvy/scrapers/shopee_scraper.py

"""Shopee Philippines adapter.

Shopee renders everything client-side. Strategies, in order: the DOM
selector cascade, the page's global state stores, then Shopee's own
search API called from inside the page so it carries the session's
cookies. Prices in state and API payloads are scaled by 100000.
"""

import re
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote_plus, urlencode

from shopsavvy.errors import ContractViolation, ExtractionEmpty, ScraperError
from shopsavvy.models.product import Product, ProductDetails, Review
from shopsavvy.scrapers.base_scraper import BaseScraper
from shopsavvy.scrapers.extraction import parse_count, parse_number
from shopsavvy.scrapers.session_manager import BrowserSession

_PRICE_SCALE = 100000
_IMAGE_CDN = "https://cf.shopee.ph/file/"

# Candidate globals and the item-list paths seen inside them.
_STATE_SCRIPT = """
() => {
  const roots = [
    window.__INITIAL_STATE__,
    window.__PRELOADED_STATE__,
    window.__REDUX_STATE__,
    window.__NEXT_DATA__ && window.__NEXT_DATA__.props
      && window.__NEXT_DATA__.props.pageProps
      && window.__NEXT_DATA__.props.pageProps.initialReduxState,
    window.__INITIAL_DATA__,
  ];
  const paths = [
    ['items', 'data'], ['searchItems', 'items'], ['search', 'items'],
    ['data', 'items'], ['searchResult', 'items'], ['productList', 'items'],
  ];
  for (const root of roots) {
    if (!root) { continue; }
    for (const path of paths) {
      let node = root;
      for (const key of path) { node = node ? node[key] : undefined; }
      if (Array.isArray(node) && node.length) {
        return JSON.parse(JSON.stringify(node));
      }
    }
  }
  return null;
}
"""

_DETAIL_STATE_SCRIPT = """
() => {
  const data = window.__INITIAL_DATA__ || window.__INITIAL_STATE__ || null;
  if (!data) { return null; }
  const item = (data.productDetail && data.productDetail.item)
    || (data.item && data.item.item)
    || data.item || null;
  return item ? JSON.parse(JSON.stringify(item)) : null;
}
"""

_API_HEADERS = {
    "x-api-source": "pc",
    "x-shopee-language": "en",
    "x-requested-with": "XMLHttpRequest",
}

_PRODUCT_ID_RE = re.compile(r"(\d+)_(\d+)$")


class ShopeeScraper(BaseScraper):
    """Scrapes Shopee search results, product pages and ratings."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__("shopee", **kwargs)
        self.base_url = self.descriptor.base_url

    def _get_homepage(self) -> str:
        return f"{self.base_url}/"

    def _search_variation(self, query: str) -> list[Product]:
        url = f"{self.base_url}/search?keyword={quote_plus(query)}"
        with self.session_factory.open(
            self.source_name, self.diagnostics
        ) as session:
            session.navigate(url)
            session.dismiss(self.selectors.get("popups", []))
            session.wait_for_any(list(self.cascade.container[:4]))
            session.scroll()

            products = self.extractor.extract(session.content(), self.cascade)
            if products:
                return products

            self.logger.info(
                "[%s] DOM cascade empty, reading page state",
                self.source_name,
            )
            products = self._parse_items(
                session.evaluate(_STATE_SCRIPT), "state-recovery"
            )
            if products:
                return products

            self.logger.info(
                "[%s] Page state empty, calling search API in page",
                self.source_name,
            )
            products = self._search_in_page_api(session, query)
            if products:
                return products

            session.snapshot("extraction empty")
            raise ExtractionEmpty(
                "DOM, state and in-page API all empty",
                source=self.source_name,
                url=url,
            )

    def _search_in_page_api(
        self, session: BrowserSession, query: str
    ) -> list[Product]:
        params = {
            "by": "relevancy",
            "keyword": query,
            "limit": 60,
            "newest": 0,
            "order": "desc",
            "page_type": "search",
            "scenario": "PAGE_GLOBAL_SEARCH",
            "version": 2,
        }
        api_url = (
            f"{self.base_url}/api/v4/search/search_items?{urlencode(params)}"
        )
        data = session.fetch_json(api_url, _API_HEADERS)
        if not isinstance(data, dict):
            return []
        return self._parse_items(data.get("items"), "api")

    # ── Details & reviews ────────────────────────────────────

    def get_details(self, product_id: str) -> ProductDetails | None:
        shop_id, item_id = self._split_id(product_id)
        url = f"{self.base_url}/product/{shop_id}/{item_id}"
        try:
            with self.session_factory.open(
                self.source_name, self.diagnostics
            ) as session:
                session.navigate(url)
                item = session.evaluate(_DETAIL_STATE_SCRIPT)
                if not isinstance(item, dict):
                    api = session.fetch_json(
                        f"{self.base_url}/api/v4/pdp/get_pc?"
                        f"shop_id={shop_id}&item_id={item_id}",
                        _API_HEADERS,
                    )
                    if isinstance(api, dict):
                        item = (api.get("data") or {}).get("item")
                if isinstance(item, dict):
                    details = self._details_from_item(item, product_id, url)
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
        shop_id, item_id = self._split_id(product_id)
        url = f"{self.base_url}/product/{shop_id}/{item_id}/rating?page={page}"
        limit = 10
        api_url = (
            f"{self.base_url}/api/v2/item/get_ratings?"
            f"itemid={item_id}&shopid={shop_id}&limit={limit}"
            f"&offset={(max(page, 1) - 1) * limit}&type=0&filter=0"
        )
        try:
            with self.session_factory.open(
                self.source_name, self.diagnostics
            ) as session:
                session.navigate(url)
                data = session.fetch_json(api_url, _API_HEADERS)
                ratings = (
                    (data.get("data") or {}).get("ratings")
                    if isinstance(data, dict)
                    else None
                )
                if isinstance(ratings, list) and ratings:
                    return [
                        self._review_from_rating(rating, product_id, index)
                        for index, rating in enumerate(ratings)
                        if isinstance(rating, dict)
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
        for entry in items:
            if not isinstance(entry, dict):
                continue
            item = entry.get("item_basic") or entry
            if not isinstance(item, dict):
                continue
            product = self._parse_item(item, source_tag)
            if product is not None:
                products.append(product)
        return products

    def _parse_item(
        self, item: dict[str, Any], source_tag: str
    ) -> Product | None:
        """Map a Shopee ``item_basic`` payload to a Product."""
        item_id = item.get("itemid") or item.get("item_id")
        shop_id = item.get("shopid") or item.get("shop_id")
        title = str(item.get("name") or "").strip()
        price = self._scaled(item.get("price") or item.get("price_min"))
        if not title or not item_id or not shop_id or not price:
            return None

        original = self._scaled(item.get("price_before_discount"))
        rating_info = item.get("item_rating")
        if not isinstance(rating_info, dict):
            rating_info = {}
        rating_counts = rating_info.get("rating_count")
        star = rating_info.get("rating_star")
        rating = parse_number(str(star)) if star is not None else None
        image = item.get("image") or ""
        discount = item.get("raw_discount") or parse_number(
            str(item.get("discount") or "")
        )
        return Product(
            id=f"{self.source_name}_{shop_id}_{item_id}",
            title=title,
            price=price,
            product_url=f"{self.base_url}/product/{shop_id}/{item_id}",
            platform=self.platform,
            image_url=f"{_IMAGE_CDN}{image}" if image else "",
            original_price=original if original > price else None,
            discount_percentage=(
                parse_number(str(discount)) if discount else None
            ),
            rating=round(rating, 2) if rating is not None else None,
            rating_count=(
                parse_count(str(rating_counts[0]))
                if isinstance(rating_counts, list) and rating_counts
                else None
            ),
            location=str(item.get("shop_location") or ""),
            sales=parse_count(
                str(item.get("historical_sold") or item.get("sold") or "")
            ),
            source=source_tag,
            seller=str(item.get("shop_name") or ""),
        )

    def _details_from_item(
        self, item: dict[str, Any], product_id: str, url: str
    ) -> ProductDetails | None:
        base = self._parse_item(item, "state-recovery")
        if base is None:
            return None
        attributes = item.get("attributes") or []
        specifications = {
            str(attr.get("name")): str(attr.get("value"))
            for attr in attributes
            if isinstance(attr, dict) and attr.get("name")
        }
        models = item.get("models") or []
        categories = item.get("categories") or []
        return ProductDetails(
            **{**vars(base), "id": product_id, "product_url": url},
            description=str(item.get("description") or ""),
            specifications=specifications,
            variants=[
                {
                    "name": m.get("name", ""),
                    "price": self._scaled(m.get("price")),
                    "stock": m.get("stock"),
                }
                for m in models
                if isinstance(m, dict)
            ],
            categories=[
                str(c.get("display_name"))
                for c in categories
                if isinstance(c, dict) and c.get("display_name")
            ],
            brand=str(item.get("brand") or ""),
            in_stock=bool(item.get("stock", 1)),
            shipping_info=str(item.get("shop_location") or ""),
        )

    def _review_from_rating(
        self, rating: dict[str, Any], product_id: str, index: int
    ) -> Review:
        ctime = rating.get("ctime")
        date = ""
        if ctime:
            posted = datetime.fromtimestamp(int(ctime), tz=timezone.utc)
            date = posted.date().isoformat()
        return Review(
            id=str(rating.get("cmtid") or f"{product_id}_r{index}"),
            reviewer=str(rating.get("author_username") or "Anonymous"),
            rating=float(rating.get("rating_star") or 0),
            comment=str(rating.get("comment") or ""),
            date=date,
            images=[f"{_IMAGE_CDN}{img}" for img in rating.get("images") or []],
            verified_purchase=True,
        )

    @staticmethod
    def _scaled(raw: Any) -> float:
        """Shopee stores prices as integers scaled by 100000."""
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return 0.0
        return round(value / _PRICE_SCALE, 2)

    @staticmethod
    def _split_id(product_id: str) -> tuple[str, str]:
        match = _PRODUCT_ID_RE.search(product_id)
        if not match:
            raise ContractViolation(
                f"Not a Shopee product id: {product_id!r}"
            )
        return match.group(1), match.group(2)
