# shopsavvy/scrapers/extraction.py

"""Selector-cascade extraction of products from arbitrary markup.

Every field class (title, price, image, ...) has an ordered list of
selectors, most specific first. Container selectors are tried in order
and the first one that yields at least one plausible product wins;
inside a container each field walks its own cascade independently.
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

from shopsavvy.models.product import Product

logger = logging.getLogger("shopsavvy.extraction")

FIELD_CLASSES: tuple[str, ...] = (
    "title",
    "price",
    "image",
    "link",
    "rating",
    "rating_count",
    "original_price",
    "discount",
    "location",
    "sales",
)

# Selector meaning "the container element itself"
SELF_SELECTOR = "&"

_PRICE_TOKEN_RE = re.compile(r"\d[\d.,]*")
_COUNT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([kKmM])?")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def parse_price(text: str | None) -> float:
    """Parse a display price such as ``'₱1,299.50'`` or ``'$12 - $15'``.

    Only the first numeric run is considered, thousands separators are
    dropped, and text without digits parses to ``0.0``.
    """
    if not text:
        return 0.0
    match = _PRICE_TOKEN_RE.search(text)
    if not match:
        return 0.0
    cleaned = re.sub(r"[^\d.]", "", match.group(0))
    head = re.match(r"\d+(?:\.\d+)?", cleaned)
    return float(head.group(0)) if head else 0.0


def parse_count(text: str | None) -> int | None:
    """Parse counts like ``'1.2k sold'``, ``'(356)'`` or ``'10K+'``."""
    if not text:
        return None
    match = _COUNT_RE.search(text.replace(",", ""))
    if not match:
        return None
    value = float(match.group(1))
    suffix = (match.group(2) or "").lower()
    if suffix == "k":
        value *= 1_000
    elif suffix == "m":
        value *= 1_000_000
    return int(value)


def parse_number(text: str | None) -> float | None:
    """Return the first decimal number found in ``text``."""
    if not text:
        return None
    match = _NUMBER_RE.search(text.replace(",", ""))
    return float(match.group(0)) if match else None


def absolute_url(url: str | None, base_url: str) -> str:
    """Resolve relative and protocol-relative links against ``base_url``."""
    if not url:
        return ""
    url = url.strip()
    if url.startswith("//"):
        return f"https:{url}"
    return urljoin(base_url + "/", url)


@dataclass(frozen=True)
class FieldSelector:
    """One strategy for reading a field out of a container element.

    ``css`` locates the node (``&`` is the container itself), ``attr``
    reads an attribute instead of text, ``pattern`` keeps only the first
    capture group of a regex, and ``scale`` multiplies numeric results
    (e.g. a star-bar width percentage into a 0-5 rating).
    """

    css: str
    attr: str | None = None
    pattern: str | None = None
    scale: float = 1.0

    @classmethod
    def parse(cls, raw: str | dict[str, Any]) -> "FieldSelector":
        if isinstance(raw, str):
            return cls(css=raw)
        return cls(
            css=raw["css"],
            attr=raw.get("attr"),
            pattern=raw.get("pattern"),
            scale=float(raw.get("scale", 1.0)),
        )

    def read(self, element: Tag) -> str | None:
        """Return the raw string this selector finds, or ``None``."""
        if self.css == SELF_SELECTOR:
            target: Tag | None = element
        else:
            target = element.select_one(self.css)
        if target is None:
            return None

        if self.attr:
            value = target.get(self.attr)
            if isinstance(value, list):
                value = " ".join(value)
        else:
            value = target.get_text(" ", strip=True)
        if not value:
            return None

        if self.pattern:
            match = re.search(self.pattern, str(value))
            if not match:
                return None
            value = match.group(1) if match.groups() else match.group(0)

        text = str(value).strip()
        return text or None


@dataclass(frozen=True)
class SelectorCascade:
    """Ordered container selectors plus a field-selector cascade each."""

    container: tuple[str, ...]
    fields: dict[str, tuple[FieldSelector, ...]] = field(
        default_factory=dict
    )
    id_pattern: str | None = None

    @classmethod
    def from_config(cls, raw: dict[str, Any]) -> "SelectorCascade":
        """Build a cascade from one ``selectors.json`` block."""
        fields = {
            name: tuple(FieldSelector.parse(item) for item in raw[name])
            for name in FIELD_CLASSES
            if name in raw
        }
        return cls(
            container=tuple(raw.get("container", [])),
            fields=fields,
            id_pattern=raw.get("id_pattern"),
        )

    def field_selectors(self, name: str) -> tuple[FieldSelector, ...]:
        return self.fields.get(name, ())


def first_match(
    element: Tag, selectors: tuple[FieldSelector, ...]
) -> tuple[str | None, FieldSelector | None]:
    """Walk ``selectors`` in order and return the first hit."""
    for selector in selectors:
        try:
            value = selector.read(element)
        except (SelectorSyntaxError, re.error) as exc:
            # Unparseable selector or pattern
            logger.debug("Selector %r unusable: %s", selector.css, exc)
            continue
        if value:
            return value, selector
    return None, None


class ExtractionEngine:
    """Turn markup into :class:`Product` objects for one source."""

    def __init__(
        self, source_name: str, platform: str, base_url: str
    ) -> None:
        self.source_name = source_name
        self.platform = platform
        self.base_url = base_url

    def extract(
        self,
        markup: str,
        cascade: SelectorCascade,
        source_tag: str = "dom-extraction",
    ) -> list[Product]:
        """Apply ``cascade`` to ``markup``; ``[]`` when nothing matched."""
        if not markup:
            return []
        soup = BeautifulSoup(markup, "lxml")

        for container_selector in cascade.container:
            try:
                elements = soup.select(container_selector)
            except SelectorSyntaxError as exc:
                logger.debug(
                    "[%s] Container selector %r unusable: %s",
                    self.source_name,
                    container_selector,
                    exc,
                )
                continue
            if not elements:
                continue

            products: list[Product] = []
            for index, element in enumerate(elements):
                product = self.build_product(
                    element, cascade, index, source_tag
                )
                if product is not None:
                    products.append(product)

            if products:
                logger.debug(
                    "[%s] Container %r yielded %d/%d products",
                    self.source_name,
                    container_selector,
                    len(products),
                    len(elements),
                )
                return products
            logger.debug(
                "[%s] Container %r matched %d elements, none plausible",
                self.source_name,
                container_selector,
                len(elements),
            )

        logger.info(
            "[%s] No container selector produced a product",
            self.source_name,
        )
        return []

    def build_product(
        self,
        element: Tag,
        cascade: SelectorCascade,
        index: int,
        source_tag: str,
    ) -> Product | None:
        """Read one container; ``None`` unless title and price are usable."""
        title, _ = first_match(element, cascade.field_selectors("title"))
        price_text, _ = first_match(
            element, cascade.field_selectors("price")
        )
        price = parse_price(price_text)
        if not title or price <= 0:
            return None

        link, _ = first_match(element, cascade.field_selectors("link"))
        product_url = absolute_url(link, self.base_url)
        image, _ = first_match(element, cascade.field_selectors("image"))

        original_text, _ = first_match(
            element, cascade.field_selectors("original_price")
        )
        original_price = parse_price(original_text) or None

        discount_text, _ = first_match(
            element, cascade.field_selectors("discount")
        )
        discount = parse_number(discount_text)
        if discount is None and original_price and original_price > price:
            discount = round((1 - price / original_price) * 100)

        location, _ = first_match(
            element, cascade.field_selectors("location")
        )
        sales_text, _ = first_match(
            element, cascade.field_selectors("sales")
        )
        count_text, _ = first_match(
            element, cascade.field_selectors("rating_count")
        )

        return Product(
            id=self.product_id(product_url, title, cascade.id_pattern),
            title=title,
            price=price,
            product_url=product_url,
            platform=self.platform,
            image_url=absolute_url(image, self.base_url),
            original_price=original_price,
            discount_percentage=discount,
            rating=self._rating(element, cascade),
            rating_count=parse_count(count_text),
            location=location or "",
            sales=parse_count(sales_text),
            source=source_tag,
        )

    def product_id(
        self, product_url: str, title: str, id_pattern: str | None = None
    ) -> str:
        """Stable id: captured from the URL when possible, else hashed."""
        if id_pattern and product_url:
            match = re.search(id_pattern, product_url)
            if match:
                parts = match.groups() or (match.group(0),)
                return f"{self.source_name}_" + "_".join(parts)
        digest = hashlib.md5(
            (product_url or title).encode("utf-8")
        ).hexdigest()[:12]
        return f"{self.source_name}_{digest}"

    # ── Private helpers ──────────────────────────────────────

    @staticmethod
    def _rating(element: Tag, cascade: SelectorCascade) -> float | None:
        raw, selector = first_match(
            element, cascade.field_selectors("rating")
        )
        value = parse_number(raw)
        if value is None or selector is None:
            return None
        return round(value * selector.scale, 2)
