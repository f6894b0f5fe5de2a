# shopsavvy/filters/deduplicator.py

"""Product deduplication across and within sources."""

import logging

from shopsavvy.models.product import Product

logger = logging.getLogger("shopsavvy.filters")


class ProductDeduplicator:
    """Drop repeated listings, keeping the first occurrence."""

    @staticmethod
    def dedup_key(product: Product) -> tuple[str, str]:
        """Normalised ``(title, platform)`` identity of a product."""
        return (
            product.title.strip().lower(),
            product.platform.strip().lower(),
        )

    @staticmethod
    def deduplicate(
        products: list[Product],
    ) -> tuple[list[Product], int]:
        """Remove later products whose (title, platform) was already seen.

        Order of survivors is the input order, so running this twice
        returns the same list the first run did.

        Returns the deduplicated list and the count of removed dupes.
        """
        seen: set[tuple[str, str]] = set()
        kept: list[Product] = []
        removed = 0

        for product in products:
            key = ProductDeduplicator.dedup_key(product)
            if key in seen:
                removed += 1
                continue
            seen.add(key)
            kept.append(product)

        if removed:
            logger.info(
                "Deduplication removed %d products (%d -> %d)",
                removed,
                len(products),
                len(kept),
            )

        return kept, removed
