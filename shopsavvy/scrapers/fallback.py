# shopsavvy/scrapers/fallback.py

"""Deterministic synthetic results for sources that produced nothing."""

import logging
from urllib.parse import quote

from shopsavvy.config.settings import Settings
from shopsavvy.filters.product_filter import ProductFilter
from shopsavvy.filters.query_variations import normalize_query
from shopsavvy.models.product import (
    FALLBACK_SOURCE_TAG,
    Product,
    SearchFilters,
)

logger = logging.getLogger("shopsavvy.fallback")

_CATEGORIES: list[str] = [
    "Electronics",
    "Fashion",
    "Home & Living",
    "Beauty",
    "Toys & Games",
    "Sports & Outdoors",
    "Automotive",
    "Books & Media",
    "Health & Wellness",
]


def stable_hash(text: str) -> int:
    """Non-negative 32-bit string hash, identical on every run.

    ``hash = hash * 31 + code_unit`` over UTF-16 code units with signed
    32-bit wraparound. Python's built-in ``hash`` is salted per process
    and cannot be used here.
    """
    encoded = text.encode("utf-16-le")
    value = 0
    for offset in range(0, len(encoded), 2):
        unit = int.from_bytes(encoded[offset:offset + 2], "little")
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


class FallbackSynthesizer:
    """Pure function of (query, source, filters) to synthetic products."""

    @staticmethod
    def generate(
        query: str,
        source_id: str,
        filters: SearchFilters | None = None,
    ) -> list[Product]:
        """Build the synthetic catalog for ``query`` on ``source_id``.

        The same inputs always produce the same products, ids included.
        """
        normalized = normalize_query(query)
        descriptor = Settings.source(source_id)
        platform = descriptor.label if descriptor else source_id.title()
        slug = source_id.lower()
        query_hash = stable_hash(normalized)
        count = 10 + query_hash % 20
        display_query = normalized[:1].upper() + normalized[1:]

        products: list[Product] = []
        for i in range(count):
            product_id = f"{slug}_fallback_{query_hash}_{i}"
            category = _CATEGORIES[i % len(_CATEGORIES)]
            price = (100 + (query_hash + i) % 9000) / 100
            discount: float | None = None
            original_price: float | None = None
            if i % 5 == 0:
                discount = float(10 + i % 20)
                original_price = round(price * 100 / (100 - discount), 2)

            products.append(
                Product(
                    id=product_id,
                    title=f"{display_query} {category} Item {i + 1}",
                    price=price,
                    product_url=(
                        f"https://www.{slug}.com/product/{product_id}"
                    ),
                    platform=platform,
                    image_url=(
                        "https://via.placeholder.com/300x300.png?text="
                        f"{quote(platform)}+{i}"
                    ),
                    original_price=original_price,
                    discount_percentage=discount,
                    rating=float(3 + i % 3),
                    rating_count=10 + (query_hash + i) % 990,
                    location=Settings.FALLBACK_LOCATION,
                    sales=5 + (query_hash + i) % 995,
                    source=FALLBACK_SOURCE_TAG,
                    category=category,
                )
            )

        if filters is not None:
            products, _ = ProductFilter.apply(products, filters)

        logger.info(
            "[%s] Synthesised %d fallback products for '%s'",
            source_id,
            len(products),
            normalized,
        )
        return products

    @staticmethod
    def is_fallback(products: list[Product]) -> bool:
        """True when ``products`` is non-empty and entirely synthetic."""
        return bool(products) and all(
            p.source == FALLBACK_SOURCE_TAG for p in products
        )
