# shopsavvy/filters/query_variations.py

"""Query normalisation and related-query generation.

Most sources expose no stable page cursor, so "more results for the
same query" is approximated by issuing a few related queries and
deduplicating the union.
"""

import logging
import re

from shopsavvy.config.settings import Settings
from shopsavvy.models.product import SortBy

logger = logging.getLogger("shopsavvy.filters")

_WHITESPACE_RE = re.compile(r"\s+")

_BUDGET_MODIFIERS: list[str] = [
    "cheap", "affordable", "budget", "discount", "sale", "clearance",
    "low price", "best price", "cheapest", "inexpensive", "bargain",
    "deals", "low cost", "under 500", "under 1000", "value",
]
_PREMIUM_MODIFIERS: list[str] = [
    "premium", "luxury", "high-end", "designer", "exclusive",
    "top quality", "professional", "best", "high quality", "authentic",
    "original", "genuine", "official", "branded", "signature",
]
_TRENDING_MODIFIERS: list[str] = [
    "popular", "trending", "best selling", "top rated", "highly rated",
    "recommended", "viral", "hot", "in demand", "most wanted",
    "favorite", "top choice", "best seller", "most popular",
]
_RECENCY_MODIFIERS: list[str] = [
    "new", "latest", "new arrival", "just released", "fresh", "recent",
    "this season", "new collection", "just in", "newly added",
    "updated", "modern", "current", "latest model",
]
_GENERAL_MODIFIERS: list[str] = [
    "best", "top", "cheap", "affordable", "quality", "popular",
    "online", "sale", "discount", "new", "branded", "authentic", "shop",
    "buy", "price", "review", "compare", "deals on",
]

_MODIFIERS_BY_SORT: dict[SortBy, list[str]] = {
    SortBy.PRICE_ASC: _BUDGET_MODIFIERS,
    SortBy.PRICE_DESC: _PREMIUM_MODIFIERS,
    SortBy.POPULARITY: _TRENDING_MODIFIERS,
    SortBy.RATING: _TRENDING_MODIFIERS,
    SortBy.RECENCY: _RECENCY_MODIFIERS,
}


def normalize_query(query: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return _WHITESPACE_RE.sub(" ", query).strip().lower()


class QueryVariationGenerator:
    """Produce related query strings ordered base-query first."""

    @staticmethod
    def modifiers_for(sort_by: SortBy | None) -> list[str]:
        """Return the modifier vocabulary matching a sort intent."""
        if sort_by is None:
            return _GENERAL_MODIFIERS
        return _MODIFIERS_BY_SORT.get(sort_by, _GENERAL_MODIFIERS)

    @staticmethod
    def generate(
        query: str,
        count: int,
        sort_by: SortBy | None = None,
    ) -> list[str]:
        """Return up to ``count`` distinct queries, ``query`` first.

        Layout cycles through three shapes so neighbouring variations
        do not look alike: ``"{mod} {query} {location}"``,
        ``"{query} {mod} in {location}"`` and ``"{mod} {query}"``.
        """
        base = _WHITESPACE_RE.sub(" ", query).strip()
        if count <= 1 or not base:
            return [base] if base else []

        modifiers = QueryVariationGenerator.modifiers_for(sort_by)
        locations = Settings.LOCATION_MODIFIERS
        variations: list[str] = [base]
        seen = {base.lower()}

        # Bounded: at most one pass over the modifier list
        for i in range(1, len(modifiers) + 1):
            if len(variations) >= count:
                break
            modifier = modifiers[i % len(modifiers)]
            location = locations[i % len(locations)]
            if i % 3 == 0:
                candidate = f"{modifier} {base} {location}"
            elif i % 3 == 1:
                candidate = f"{base} {modifier} in {location}"
            else:
                candidate = f"{modifier} {base}"
            if candidate.lower() in seen:
                continue
            seen.add(candidate.lower())
            variations.append(candidate)

        logger.debug(
            "Generated %d variations for '%s' (sort=%s)",
            len(variations),
            base,
            sort_by.value if sort_by else "none",
        )
        return variations
