# shopsavvy/storage/query_cache.py

"""Partitioned search cache with per-source slices.

A query's cached data is the set of its per-source slices. Each slice
has its own creation and expiry time, so re-querying one source
replaces that slice only and leaves the others untouched.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from shopsavvy.config.settings import Settings
from shopsavvy.filters.query_variations import normalize_query
from shopsavvy.models.product import FALLBACK_SOURCE_TAG, Product, SortBy
from shopsavvy.storage.cache_store import (
    CacheEntry,
    CacheStore,
    MemoryCacheStore,
    SQLiteCacheStore,
)

logger = logging.getLogger("shopsavvy.cache")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheLookup:
    """Live slices found for a query, keyed by source id."""

    results_by_source: dict[str, list[Product]] = field(
        default_factory=dict
    )

    @property
    def covered_sources(self) -> list[str]:
        return list(self.results_by_source)

    @property
    def results(self) -> list[Product]:
        merged: list[Product] = []
        for products in self.results_by_source.values():
            merged.extend(products)
        return merged


class ExpirationPolicy:
    """Chooses how long a slice stays fresh."""

    def __init__(
        self,
        standard_ttl: int = Settings.CACHE_TTL_SECONDS,
        recent_ttl: int = Settings.CACHE_TTL_RECENT_SECONDS,
        recency_terms: list[str] | None = None,
    ) -> None:
        if standard_ttl <= 0 or recent_ttl <= 0:
            raise ValueError("cache TTLs must be positive")
        self.standard_ttl = standard_ttl
        self.recent_ttl = recent_ttl
        self.recency_terms = (
            recency_terms
            if recency_terms is not None
            else Settings.RECENCY_TERMS
        )

    def implies_recency(
        self, query: str, sort_by: SortBy | None = None
    ) -> bool:
        """Substring heuristic; "new balance" counts as recent too."""
        if sort_by is SortBy.RECENCY:
            return True
        normalized = normalize_query(query)
        return any(term in normalized for term in self.recency_terms)

    def ttl_for(
        self, query: str, sort_by: SortBy | None = None
    ) -> timedelta:
        seconds = (
            self.recent_ttl
            if self.implies_recency(query, sort_by)
            else self.standard_ttl
        )
        return timedelta(seconds=seconds)


class QueryCache:
    """Per-source partitioned cache in front of a :class:`CacheStore`."""

    def __init__(
        self,
        store: CacheStore | None = None,
        policy: ExpirationPolicy | None = None,
        now: Callable[[], datetime] | None = None,
        cache_fallback: bool | None = None,
    ) -> None:
        self.store: CacheStore = store or MemoryCacheStore()
        self.policy = policy or ExpirationPolicy()
        self._now = now or _utcnow
        self.cache_fallback = (
            Settings.CACHE_FALLBACK_RESULTS
            if cache_fallback is None
            else cache_fallback
        )

    @classmethod
    def from_settings(cls) -> "QueryCache":
        """Build the cache on the backend named by ``CACHE_BACKEND``."""
        backend = Settings.CACHE_BACKEND.lower()
        if backend == "memory":
            return cls(MemoryCacheStore())
        if backend == "sqlite":
            return cls(SQLiteCacheStore())
        raise ValueError(f"Unknown cache backend: {Settings.CACHE_BACKEND}")

    def get(self, query: str, sources: list[str]) -> CacheLookup:
        """Return the live slices of ``query`` among ``sources``.

        Expired rows are evicted first and skipped again on read, so an
        expired slice is never returned even if eviction failed.
        """
        normalized = normalize_query(query)
        now = self._now()
        self._evict_expired(now)

        wanted = set(sources)
        found: dict[str, list[Product]] = {}
        for entry in self.store.find(normalized):
            if entry.is_expired(now):
                continue
            for platform in entry.platforms:
                if platform not in wanted or platform in found:
                    continue
                found[platform] = [
                    p
                    for p in entry.results
                    if self._slice_of(p, entry.platforms) == platform
                ]

        # Requested order, not storage order
        lookup = CacheLookup(
            {source: found[source] for source in sources if source in found}
        )
        if lookup.results_by_source:
            logger.info(
                "Cache hit for '%s': %s (%d products)",
                normalized,
                ", ".join(lookup.covered_sources),
                len(lookup.results),
            )
        else:
            logger.debug("Cache miss for '%s'", normalized)
        return lookup

    def put(
        self,
        query: str,
        sources: list[str],
        results: list[Product],
        sort_by: SortBy | None = None,
    ) -> int:
        """Replace the slices of ``sources`` under ``query``.

        Products are assigned to slices by platform. Slices consisting
        only of synthetic products are skipped unless fallback caching
        is enabled. Returns the number of slices written.
        """
        normalized = normalize_query(query)
        created_at = self._now()
        expires_at = created_at + self.policy.ttl_for(normalized, sort_by)

        written = 0
        for source in sources:
            if len(sources) == 1:
                slice_results = list(results)
            else:
                slice_results = [
                    p
                    for p in results
                    if Settings.source_id_for_platform(p.platform) == source
                ]
            if not self.cache_fallback and slice_results and all(
                p.source == FALLBACK_SOURCE_TAG for p in slice_results
            ):
                logger.debug(
                    "Not caching synthetic slice %s for '%s'",
                    source,
                    normalized,
                )
                continue
            self.store.upsert(
                CacheEntry(
                    search_query=normalized,
                    platforms=(source,),
                    results=slice_results,
                    created_at=created_at,
                    expires_at=expires_at,
                )
            )
            written += 1
            logger.info(
                "Cached %d results for '%s' from %s (expires %s)",
                len(slice_results),
                normalized,
                source,
                expires_at.isoformat(timespec="seconds"),
            )
        return written

    def sweep(self) -> int:
        """Remove every expired slice; returns how many were removed."""
        removed = self.store.delete_expired(self._now())
        if removed:
            logger.info("Swept %d expired cache entries", removed)
        return removed

    def invalidate(self, query: str | None = None) -> int:
        """Drop one query's slices, or everything when ``query`` is None."""
        target = normalize_query(query) if query is not None else None
        removed = self.store.delete(target)
        logger.info(
            "Cache invalidated for %s (%d entries removed)",
            f"'{target}'" if target else "all queries",
            removed,
        )
        return removed

    # ── Private helpers ──────────────────────────────────────

    def _evict_expired(self, now: datetime) -> None:
        evicted = self.store.delete_expired(now)
        if evicted:
            logger.debug("Evicted %d expired cache entries", evicted)

    @staticmethod
    def _slice_of(product: Product, platforms: tuple[str, ...]) -> str:
        if len(platforms) == 1:
            return platforms[0]
        return Settings.source_id_for_platform(product.platform)
