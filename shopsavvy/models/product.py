# shopsavvy/models/product.py

"""Product, details, review and filter models for inter-module data flow."""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any

from shopsavvy.errors import ContractViolation

# Provenance tag carried by synthetic products
FALLBACK_SOURCE_TAG = "fallback"

# Python attribute name -> serialized (cache) key
_CAMEL_KEYS: dict[str, str] = {
    "original_price": "originalPrice",
    "discount_percentage": "discountPercentage",
    "product_url": "productUrl",
    "image_url": "imageUrl",
    "rating_count": "ratingCount",
    "return_policy": "returnPolicy",
    "in_stock": "inStock",
    "shipping_info": "shippingInfo",
    "verified_purchase": "verifiedPurchase",
}
_SNAKE_KEYS: dict[str, str] = {v: k for k, v in _CAMEL_KEYS.items()}


@dataclass
class Product:
    """Represents a single product listing from any source."""

    id: str
    title: str
    price: float
    product_url: str
    platform: str
    image_url: str = ""
    original_price: float | None = None
    discount_percentage: float | None = None
    rating: float | None = None
    rating_count: int | None = None
    location: str = ""
    sales: int | None = None
    source: str = ""
    seller: str = ""
    category: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used by the cache schema."""
        return {
            _CAMEL_KEYS.get(name, name): value
            for name, value in asdict(self).items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        """Rebuild a product from :meth:`to_dict` output.

        Unknown keys are ignored so older cache rows stay readable.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {
            _SNAKE_KEYS.get(key, key): value
            for key, value in data.items()
            if _SNAKE_KEYS.get(key, key) in known
        }
        return cls(**kwargs)


@dataclass
class ProductDetails(Product):
    """A product page with everything the listing card does not show."""

    description: str = ""
    specifications: dict[str, str] = field(default_factory=dict)
    variants: list[dict[str, Any]] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    brand: str = ""
    warranty: str = ""
    return_policy: str = ""
    in_stock: bool = True
    shipping_info: str = ""


@dataclass
class Review:
    """One customer review of a product."""

    id: str
    reviewer: str
    rating: float
    comment: str
    date: str = ""
    images: list[str] = field(default_factory=list)
    verified_purchase: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            _CAMEL_KEYS.get(name, name): value
            for name, value in asdict(self).items()
        }


class SortBy(str, Enum):
    """Result orderings the orchestrator knows how to apply."""

    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    RATING = "rating"
    RECENCY = "recency"
    POPULARITY = "popularity"
    RELEVANCE = "relevance"

    @classmethod
    def parse(cls, value: "str | SortBy | None") -> "SortBy | None":
        """Accept an enum, its value or one of the legacy aliases."""
        if value is None or isinstance(value, SortBy):
            return value
        normalized = value.strip().lower()
        normalized = _SORT_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ContractViolation(
                f"Unknown sort order: {value!r}"
            ) from None


_SORT_ALIASES: dict[str, str] = {
    "date_desc": "recency",
    "newest": "recency",
    "popularity_desc": "popularity",
    "rating_desc": "rating",
}


@dataclass
class SearchFilters:
    """Query modifiers applied only at the orchestration boundary."""

    min_price: float | None = None
    max_price: float | None = None
    brand: str = ""
    category: str = ""
    sort_by: SortBy | None = None
    exclude_keywords: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if isinstance(self.sort_by, str) and not isinstance(
            self.sort_by, SortBy
        ):
            self.sort_by = SortBy.parse(self.sort_by)

    def validate(self) -> None:
        """Raise :class:`ContractViolation` for impossible combinations.

        Values are never silently corrected.
        """
        for name in ("min_price", "max_price"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(
                value, (int, float)
            ):
                raise ContractViolation(
                    f"{name} must be a number, got {value!r}"
                )
            if value < 0:
                raise ContractViolation(
                    f"{name} must not be negative, got {value}"
                )
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ContractViolation(
                f"min_price ({self.min_price}) is greater than "
                f"max_price ({self.max_price})"
            )
        if self.sort_by is not None and not isinstance(
            self.sort_by, SortBy
        ):
            raise ContractViolation(
                f"Unknown sort order: {self.sort_by!r}"
            )
