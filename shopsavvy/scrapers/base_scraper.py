# shopsavvy/scrapers/base_scraper.py

"""Abstract base class for all source adapters."""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Callable

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from curl_cffi import CurlError
from curl_cffi import requests as curl_requests

from shopsavvy.config.settings import Settings
from shopsavvy.errors import (
    AccessBlocked,
    ContractViolation,
    ExtractionEmpty,
    ScraperError,
    SourceUnavailable,
)
from shopsavvy.filters.deduplicator import ProductDeduplicator
from shopsavvy.filters.query_variations import QueryVariationGenerator
from shopsavvy.models.product import (
    Product,
    ProductDetails,
    Review,
    SearchFilters,
)
from shopsavvy.models.source import SourceDescriptor
from shopsavvy.scrapers.anti_block import BlockDetector
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
from shopsavvy.scrapers.fallback import FallbackSynthesizer
from shopsavvy.scrapers.retry_policy import RetryPolicy
from shopsavvy.scrapers.session_manager import (
    BrowserSession,
    PlaywrightSessionFactory,
    SessionFactory,
)
from shopsavvy.storage.diagnostics import DiagnosticsWriter


class BaseScraper(ABC):
    """Uniform search/detail/review contract over one source.

    ``search`` never raises for network errors, empty pages or block
    pages: it returns real products when any strategy worked and the
    deterministic fallback set otherwise. Malformed arguments raise
    :class:`ContractViolation`.
    """

    def __init__(
        self,
        source_name: str,
        retry_policy: RetryPolicy | None = None,
        session_factory: SessionFactory | None = None,
        diagnostics: DiagnosticsWriter | None = None,
    ) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(f"shopsavvy.{source_name}")
        self.settings = Settings()
        descriptor = Settings.source(source_name)
        if descriptor is None:
            raise ContractViolation(f"Unknown source: {source_name}")
        self.descriptor: SourceDescriptor = descriptor
        self.selectors: dict[str, Any] = self._load_selectors()
        self.cascade = SelectorCascade.from_config(
            self.selectors.get("search", {})
        )
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self.session_factory: SessionFactory = (
            session_factory or PlaywrightSessionFactory()
        )
        self.diagnostics = diagnostics or DiagnosticsWriter()
        self.detector = BlockDetector(source_name)
        self.extractor = ExtractionEngine(
            source_name, self.platform, self.descriptor.base_url
        )
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT
        self._last_request_at: float = 0.0
        self._fallback_scraper: Any = None

    @property
    def platform(self) -> str:
        """Display name stamped on every product from this source."""
        return self.descriptor.label

    def _load_selectors(self) -> dict[str, Any]:
        """Load selector cascades for this source from selectors.json."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            all_selectors: dict[str, Any] = json.load(f)
        result: dict[str, Any] = all_selectors.get(self.source_name, {})
        return result

    # ── Contract ─────────────────────────────────────────────

    def search(
        self, query: str, filters: SearchFilters | None = None
    ) -> list[Product]:
        """Search for products; synthetic results when nothing real came back.

        ``filters`` only steers which query variations are issued; the
        results themselves are never filtered here.
        """
        if not isinstance(query, str) or not query.strip():
            raise ContractViolation(
                f"Query must be a non-empty string, got {query!r}"
            )
        if filters is not None and not isinstance(filters, SearchFilters):
            raise ContractViolation(
                f"filters must be SearchFilters, got {type(filters).__name__}"
            )

        sort_by = filters.sort_by if filters else None
        variations = QueryVariationGenerator.generate(
            query, self.descriptor.max_variations, sort_by
        )
        collected: list[Product] = []
        failures: list[ScraperError] = []

        for variation in variations:
            try:
                batch = self._search_variation(variation)
            except AccessBlocked as exc:
                failures.append(exc)
                self.logger.warning(
                    "[%s] Access blocked for '%s' (%s), not retrying",
                    self.source_name,
                    variation,
                    exc.reason or exc,
                )
                break
            except ScraperError as exc:
                failures.append(exc)
                self.logger.warning(
                    "[%s] %s for '%s': %s",
                    self.source_name,
                    exc.failure_class,
                    variation,
                    exc,
                )
                continue
            self.logger.info(
                "[%s] '%s' yielded %d products",
                self.source_name,
                variation,
                len(batch),
            )
            collected.extend(batch)

        products, _ = ProductDeduplicator.deduplicate(collected)
        if products:
            return products

        failure_class = (
            failures[-1].failure_class if failures else "ExtractionEmpty"
        )
        self.logger.warning(
            "[%s] No real results for '%s' (%s), synthesising fallback",
            self.source_name,
            query,
            failure_class,
        )
        return FallbackSynthesizer.generate(query, self.source_name)

    def get_details(self, product_id: str) -> ProductDetails | None:
        """Return full product details, or ``None`` when unsupported."""
        return None

    def get_reviews(self, product_id: str, page: int = 1) -> list[Review]:
        """Return one page of reviews; ``[]`` when unsupported."""
        return []

    def close(self) -> None:
        """Release the HTTP sessions held by this adapter."""
        self.session.close()
        if self._fallback_scraper is not None:
            self._fallback_scraper.close()
            self._fallback_scraper = None

    @abstractmethod
    def _search_variation(self, query: str) -> list[Product]:
        """Fetch one query string.

        Raises:
            ScraperError: any subclass; ``search`` decides what follows.
        """
        ...

    @abstractmethod
    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        ...

    # ── Direct HTTP ──────────────────────────────────────────

    def _throttle(self) -> None:
        """Keep a minimum interval between two requests to the source."""
        elapsed = time.monotonic() - self._last_request_at
        wait = self.settings.MIN_REQUEST_INTERVAL - elapsed
        if self._last_request_at and wait > 0:
            time.sleep(wait)
        self._last_request_at = time.monotonic()

    def _default_headers(self) -> dict[str, str]:
        return {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
        }

    def _fetch(
        self,
        send: Callable[[], curl_requests.Response],
        url: str,
    ) -> curl_requests.Response:
        """Run ``send`` under the retry policy.

        Raises:
            AccessBlocked: a 403/503 or a challenge/CAPTCHA page, never
                retried.
            SourceUnavailable: transport errors, non-retryable statuses
                or retries exhausted.
        """
        policy = self.retry_policy
        last_status: int | None = None
        last_error: Exception | None = None

        for attempt in range(policy.max_attempts):
            self._throttle()
            try:
                resp = send()
            except (CurlError, OSError) as exc:
                last_error = exc
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.source_name,
                    attempt + 1,
                    exc,
                )
                if policy.should_retry(attempt):
                    policy.backoff(attempt)
                continue

            status = resp.status_code
            if status == 200:
                self._check_blocked(resp, url)
                return resp

            last_status = status
            self.logger.warning(
                "[%s] HTTP %d on attempt %d",
                self.source_name,
                status,
                attempt + 1,
            )
            if status in self.settings.BLOCK_STATUSES:
                # Denial statuses are never retried; the body decides
                # whether the block is terminal
                self._check_blocked(resp, url)
            if not policy.is_retryable(status):
                raise SourceUnavailable(
                    f"HTTP {status} is not retryable",
                    source=self.source_name,
                    url=url,
                    status_code=status,
                )
            if policy.should_retry(attempt):
                policy.backoff(attempt)

        raise SourceUnavailable(
            f"Gave up after {policy.max_attempts} attempts"
            + (f": {last_error}" if last_error else ""),
            source=self.source_name,
            url=url,
            status_code=last_status,
        )

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> curl_requests.Response:
        """GET through the retry policy."""
        request_headers = headers or self._default_headers()
        return self._fetch(
            lambda: self.session.get(
                url,
                headers=request_headers,
                timeout=self._request_timeout,
            ),
            url,
        )

    def _fetch_post(
        self,
        url: str,
        headers: dict[str, str],
        payload: dict[str, Any],
    ) -> curl_requests.Response:
        """POST a JSON payload through the retry policy."""
        return self._fetch(
            lambda: self.session.post(
                url,
                headers=headers,
                json=payload,
                timeout=self._request_timeout,
            ),
            url,
        )

    def _fetch_text(
        self, url: str, headers: dict[str, str] | None = None
    ) -> str:
        """Fetch a body, falling back to cloudscraper when curl_cffi fails.

        A CAPTCHA is terminal and skips the fallback.
        """
        request_headers = headers or self._default_headers()
        try:
            return str(self._fetch_get(url, request_headers).text)
        except AccessBlocked as exc:
            if exc.terminal:
                raise
            primary_error: ScraperError = exc
        except SourceUnavailable as exc:
            if exc.status_code in self.retry_policy.non_retryable:
                raise
            primary_error = exc

        # Fallback: cloudscraper (JS challenge solver)
        self.logger.info(
            "[%s] curl_cffi exhausted, falling back to cloudscraper",
            self.source_name,
        )
        try:
            if self._fallback_scraper is None:
                _cs: Any = cloudscraper
                self._fallback_scraper = _cs.create_scraper()
            fallback_resp: Any = self._fallback_scraper.get(
                url,
                headers=request_headers,
                timeout=self._request_timeout,
            )
        except Exception as e:
            self.logger.error(
                "[%s] cloudscraper fallback also failed: %s",
                self.source_name,
                e,
                exc_info=True,
            )
            raise primary_error from e

        if fallback_resp.status_code != 200:
            raise primary_error
        text = str(fallback_resp.text)
        verdict = self.detector.inspect(status=200, url=url, markup=text)
        if verdict.blocked:
            raise primary_error
        return text

    def _check_blocked(self, resp: curl_requests.Response, url: str) -> None:
        """Raise :class:`AccessBlocked` if the response is a denial page.

        Statuses in ``BLOCK_STATUSES`` always count as denial; the body
        only decides whether it is a terminal CAPTCHA.
        """
        headers = resp.headers if isinstance(resp.headers, Mapping) else None
        text = str(resp.text)
        verdict = self.detector.inspect(
            status=resp.status_code,
            url=str(resp.url) if isinstance(resp.url, str) else url,
            markup=text,
            headers=headers,
        )
        if not verdict.blocked:
            return
        self.diagnostics.capture(
            self.source_name,
            f"blocked {verdict.reason}",
            url=url,
            markup=text,
        )
        raise AccessBlocked(
            f"Challenge page served ({verdict.reason})",
            source=self.source_name,
            url=url,
            status_code=resp.status_code,
            reason=verdict.reason,
            terminal=verdict.terminal,
        )

    # ── Rendered sessions ────────────────────────────────────

    def _extract_rendered(
        self,
        session: BrowserSession,
        url: str,
        cascade: SelectorCascade | None = None,
    ) -> list[Product]:
        """Run the DOM cascade on the session's current markup."""
        markup = session.content()
        products = self.extractor.extract(markup, cascade or self.cascade)
        if products:
            return products
        session.snapshot("extraction empty")
        raise ExtractionEmpty(
            "No selector cascade matched",
            source=self.source_name,
            url=url,
        )

    # ── Details helpers ──────────────────────────────────────

    @staticmethod
    def _read_fields(
        markup: str,
        config: dict[str, Any],
        names: tuple[str, ...],
    ) -> dict[str, str | None]:
        """Read page-level fields (detail pages) by selector cascade."""
        soup = BeautifulSoup(markup, "lxml")
        values: dict[str, str | None] = {}
        for name in names:
            selectors = tuple(
                FieldSelector.parse(raw) for raw in config.get(name, [])
            )
            values[name], _ = first_match(soup, selectors)
        return values

    def _details_from_markup(
        self,
        markup: str,
        config: dict[str, Any],
        product_id: str,
        url: str,
    ) -> ProductDetails | None:
        """Build details from a rendered product page via its cascade."""
        fields = self._read_fields(
            markup,
            config,
            (
                "title",
                "price",
                "original_price",
                "discount",
                "description",
                "brand",
                "seller",
                "rating",
                "rating_count",
                "image",
                "shipping",
                "warranty",
                "out_of_stock",
            ),
        )
        title = fields["title"]
        price = parse_price(fields["price"])
        if not title or price <= 0:
            return None

        soup = BeautifulSoup(markup, "lxml")
        return ProductDetails(
            id=product_id,
            title=title,
            price=price,
            product_url=url,
            platform=self.platform,
            image_url=absolute_url(fields["image"], self.descriptor.base_url),
            original_price=parse_price(fields["original_price"]) or None,
            discount_percentage=parse_number(fields["discount"]),
            rating=parse_number(fields["rating"]),
            rating_count=parse_count(fields["rating_count"]),
            source="dom-extraction",
            seller=fields["seller"] or "",
            description=fields["description"] or "",
            specifications=self._specifications(soup, config),
            categories=self._select_texts(soup, config.get("categories", [])),
            brand=fields["brand"] or "",
            warranty=fields["warranty"] or "",
            in_stock=fields["out_of_stock"] is None,
            shipping_info=fields["shipping"] or "",
        )

    def _reviews_from_markup(
        self, markup: str, config: dict[str, Any], product_id: str
    ) -> list[Review]:
        """Read review cards with the source's review cascade."""
        soup = BeautifulSoup(markup, "lxml")
        cascades = {
            name: tuple(FieldSelector.parse(raw) for raw in config.get(name, []))
            for name in ("reviewer", "rating", "comment", "date", "verified")
        }
        image_selectors = [
            FieldSelector.parse(raw) for raw in config.get("images", [])
        ]

        for container in config.get("container", []):
            elements = soup.select(container)
            if not elements:
                continue
            reviews: list[Review] = []
            for index, element in enumerate(elements):
                comment, _ = first_match(element, cascades["comment"])
                rating_text, _ = first_match(element, cascades["rating"])
                if not comment and not rating_text:
                    continue
                reviewer, _ = first_match(element, cascades["reviewer"])
                date, _ = first_match(element, cascades["date"])
                verified, _ = first_match(element, cascades["verified"])
                images: list[str] = []
                for selector in image_selectors:
                    for node in element.select(selector.css):
                        value = FieldSelector(
                            "&", selector.attr, selector.pattern
                        ).read(node)
                        if value:
                            images.append(
                                absolute_url(value, self.descriptor.base_url)
                            )
                reviews.append(
                    Review(
                        id=f"{product_id}_r{index}",
                        reviewer=reviewer or "Anonymous",
                        rating=min(parse_number(rating_text) or 0.0, 5.0),
                        comment=comment or "",
                        date=date or "",
                        images=images,
                        verified_purchase=verified is not None,
                    )
                )
            if reviews:
                return reviews
        return []

    @staticmethod
    def _select_texts(soup: BeautifulSoup, selectors: list[str]) -> list[str]:
        for selector in selectors:
            texts = [
                node.get_text(" ", strip=True) for node in soup.select(selector)
            ]
            texts = [text for text in texts if text]
            if texts:
                return texts
        return []

    @staticmethod
    def _specifications(
        soup: BeautifulSoup, config: dict[str, Any]
    ) -> dict[str, str]:
        key_selectors = tuple(
            FieldSelector.parse(raw) for raw in config.get("spec_key", [])
        )
        value_selectors = tuple(
            FieldSelector.parse(raw) for raw in config.get("spec_value", [])
        )
        for row_selector in config.get("spec_rows", []):
            specs: dict[str, str] = {}
            for row in soup.select(row_selector):
                key, _ = first_match(row, key_selectors)
                value, _ = first_match(row, value_selectors)
                if key and value and key != value:
                    specs[key.rstrip(":")] = value
            if specs:
                return specs
        return {}
