# shopsavvy/filters/product_validator.py

"""Product validation: enforce model invariants before merge."""

import logging
from dataclasses import replace

from shopsavvy.models.product import Product

logger = logging.getLogger("shopsavvy.filters")


class ProductValidator:
    """Drop unusable products and clear out-of-range optional fields."""

    @staticmethod
    def validate(
        products: list[Product],
    ) -> tuple[list[Product], int]:
        """Drop products without a title, a positive price or a URL.

        Optional fields that break an invariant (rating outside 0-5,
        original price below price, ...) are cleared rather than causing
        the product to be dropped.

        Returns the valid products and the count of dropped items.
        """
        valid: list[Product] = []
        dropped = 0

        for product in products:
            if not product.title.strip():
                logger.debug(
                    "Dropped product with empty title "
                    "(platform=%s, url=%s)",
                    product.platform,
                    product.product_url,
                )
                dropped += 1
                continue
            if product.price <= 0:
                logger.debug(
                    "Dropped product with zero/negative "
                    "price (title=%s, platform=%s)",
                    product.title,
                    product.platform,
                )
                dropped += 1
                continue
            if not product.product_url.strip():
                logger.debug(
                    "Dropped unresolvable product without URL "
                    "(title=%s, platform=%s)",
                    product.title,
                    product.platform,
                )
                dropped += 1
                continue
            valid.append(ProductValidator.sanitize(product))

        if dropped:
            logger.info(
                "Validation dropped %d invalid products",
                dropped,
            )

        return valid, dropped

    @staticmethod
    def sanitize(product: Product) -> Product:
        """Return ``product`` with invalid optional fields cleared."""
        changes: dict[str, object] = {}
        if (
            product.original_price is not None
            and product.original_price < product.price
        ):
            changes["original_price"] = None
        if product.discount_percentage is not None and not (
            0 <= product.discount_percentage <= 100
        ):
            changes["discount_percentage"] = None
        if product.rating is not None and not 0 <= product.rating <= 5:
            changes["rating"] = None
        if product.rating_count is not None and product.rating_count < 0:
            changes["rating_count"] = None
        if product.sales is not None and product.sales < 0:
            changes["sales"] = None
        if not changes:
            return product
        logger.debug(
            "Cleared out-of-range fields %s on '%s'",
            sorted(changes),
            product.title,
        )
        return replace(product, **changes)  # type: ignore[arg-type]
