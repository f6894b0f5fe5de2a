# shopsavvy/filters/product_filter.py

"""Filtering and sorting at the orchestration boundary."""

import logging

from shopsavvy.models.product import Product, SearchFilters, SortBy

logger = logging.getLogger("shopsavvy.filters")


class ProductFilter:
    """Apply :class:`SearchFilters` to an already-merged product list.

    Every predicate keeps or drops a product on its own, so the order in
    which predicates run never changes the resulting subset.
    """

    @staticmethod
    def filter_by_keywords(
        products: list[Product],
        negative_keywords: list[str],
    ) -> tuple[list[Product], int]:
        """Remove products whose title contains any negative keyword.

        Returns the filtered list and the count of excluded products.
        """
        lowered_keywords = [kw.lower() for kw in negative_keywords if kw]
        if not lowered_keywords:
            return products, 0

        kept: list[Product] = []
        excluded = 0
        for product in products:
            title_lower = product.title.lower()
            if any(kw in title_lower for kw in lowered_keywords):
                excluded += 1
            else:
                kept.append(product)

        if excluded:
            logger.info(
                "Filtered out %d products matching negative keywords",
                excluded,
            )

        return kept, excluded

    @staticmethod
    def filter_by_price(
        products: list[Product],
        min_price: float | None = None,
        max_price: float | None = None,
    ) -> tuple[list[Product], int]:
        """Keep products priced within ``[min_price, max_price]``."""
        if min_price is None and max_price is None:
            return products, 0
        kept = [
            p
            for p in products
            if (min_price is None or p.price >= min_price)
            and (max_price is None or p.price <= max_price)
        ]
        return kept, len(products) - len(kept)

    @staticmethod
    def filter_by_brand(
        products: list[Product], brand: str
    ) -> tuple[list[Product], int]:
        """Keep products whose title or seller mentions ``brand``."""
        needle = brand.strip().lower()
        if not needle:
            return products, 0
        kept = [
            p
            for p in products
            if needle in p.title.lower() or needle in p.seller.lower()
        ]
        return kept, len(products) - len(kept)

    @staticmethod
    def filter_by_category(
        products: list[Product], category: str
    ) -> tuple[list[Product], int]:
        """Keep products whose category or title mentions ``category``."""
        needle = category.strip().lower()
        if not needle:
            return products, 0
        kept = [
            p
            for p in products
            if needle in p.category.lower() or needle in p.title.lower()
        ]
        return kept, len(products) - len(kept)

    @staticmethod
    def apply(
        products: list[Product],
        filters: SearchFilters,
    ) -> tuple[list[Product], int]:
        """Run every configured predicate.

        Returns the kept products and the total count excluded.
        """
        kept, excluded = ProductFilter.filter_by_price(
            products, filters.min_price, filters.max_price
        )
        kept, by_brand = ProductFilter.filter_by_brand(kept, filters.brand)
        kept, by_category = ProductFilter.filter_by_category(
            kept, filters.category
        )
        kept, by_keyword = ProductFilter.filter_by_keywords(
            kept, filters.exclude_keywords
        )
        total = excluded + by_brand + by_category + by_keyword
        if total:
            logger.debug(
                "Filters excluded %d of %d products", total, len(products)
            )
        return kept, total

    @staticmethod
    def sort(
        products: list[Product], sort_by: SortBy | None
    ) -> list[Product]:
        """Return a stably sorted copy; insertion order when unsorted.

        Listings carry no publication date, so ``RECENCY`` keeps the
        fan-out order produced by recency-flavoured query variations.
        """
        if sort_by is None or sort_by in (SortBy.RELEVANCE, SortBy.RECENCY):
            return list(products)
        if sort_by is SortBy.PRICE_ASC:
            return sorted(products, key=lambda p: p.price)
        if sort_by is SortBy.PRICE_DESC:
            return sorted(products, key=lambda p: -p.price)
        if sort_by is SortBy.RATING:
            return sorted(
                products,
                key=lambda p: (
                    p.rating is None,
                    -(p.rating or 0.0),
                    -(p.rating_count or 0),
                ),
            )
        return sorted(
            products,
            key=lambda p: (-(p.sales or 0), -(p.rating_count or 0)),
        )
