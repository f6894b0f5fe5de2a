# shopsavvy/services/search_orchestrator.py

"""Aggregates one query across sources, reusing fresh cache slices."""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from enum import Enum

from shopsavvy.config.settings import Settings
from shopsavvy.errors import ContractViolation
from shopsavvy.filters.deduplicator import ProductDeduplicator
from shopsavvy.filters.product_filter import ProductFilter
from shopsavvy.filters.product_validator import ProductValidator
from shopsavvy.filters.query_variations import normalize_query
from shopsavvy.models.product import Product, SearchFilters, SortBy
from shopsavvy.models.source import SourceDescriptor
from shopsavvy.scrapers.fallback import FallbackSynthesizer
from shopsavvy.services.source_registry import SourceRegistry
from shopsavvy.storage.query_cache import CacheLookup, QueryCache

logger = logging.getLogger("shopsavvy.orchestrator")


class AggregationState(str, Enum):
    """Stages one aggregation passes through; there is no failed state."""

    IDLE = "idle"
    PARTIAL_CACHE_LOOKUP = "partial_cache_lookup"
    FETCHING = "fetching"
    MERGING = "merging"
    DEDUPLICATING = "deduplicating"
    FILTERING = "filtering"
    SORTING = "sorting"
    DONE = "done"


@dataclass
class SearchResult:
    """Container for a completed aggregation across sources."""

    query: str
    products: list[Product] = field(
        default_factory=lambda: list[Product]()
    )
    states: list[AggregationState] = field(
        default_factory=lambda: list[AggregationState]()
    )
    cached_sources: list[str] = field(default_factory=lambda: list[str]())
    live_sources: list[str] = field(default_factory=lambda: list[str]())
    fallback_sources: list[str] = field(
        default_factory=lambda: list[str]()
    )
    timed_out_sources: list[str] = field(
        default_factory=lambda: list[str]()
    )
    excluded_count: int = 0
    deduplicated_count: int = 0
    invalid_count: int = 0
    total_before_filter: int = 0
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )


class SearchOrchestrator:
    """Fan-out/fan-in over source adapters behind a partitioned cache."""

    def __init__(
        self,
        registry: SourceRegistry | None = None,
        query_cache: QueryCache | None = None,
        timeout: float | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.settings = Settings()
        self.registry = registry or SourceRegistry()
        self.query_cache = query_cache or QueryCache.from_settings()
        self.timeout = (
            self.settings.AGGREGATE_TIMEOUT if timeout is None else timeout
        )
        self._semaphore = asyncio.Semaphore(
            max_concurrency or self.settings.MAX_CONCURRENT_SOURCES
        )
        # Strong references keep abandoned fetches alive until they
        # have written their cache slice.
        self._background: set[asyncio.Task[tuple[list[Product], int]]] = set()

    async def aggregate(
        self,
        query: str,
        filters: SearchFilters | None = None,
        sources: list[str] | None = None,
    ) -> list[Product]:
        """Return the filtered, sorted product list for ``query``."""
        result = await self.search(query, filters, sources)
        return result.products

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        sources: list[str] | None = None,
    ) -> SearchResult:
        """Run one aggregation and report how every source was served.

        Raises:
            ContractViolation: invalid filters, unknown sources or a
                non-string query. Raised before any fetch starts.
        """
        result = SearchResult(query=query)
        self._enter(result, AggregationState.IDLE)

        if not isinstance(query, str):
            raise ContractViolation(
                f"Query must be a string, got {type(query).__name__}"
            )
        filters = filters or SearchFilters()
        filters.validate()
        descriptors = self.registry.resolve(sources)
        normalized = normalize_query(query)
        if not normalized:
            logger.info("Empty query, nothing to aggregate")
            self._enter(result, AggregationState.DONE)
            return result

        self._enter(result, AggregationState.PARTIAL_CACHE_LOOKUP)
        lookup = self._cache_lookup(normalized, [d.id for d in descriptors])
        result.cached_sources = lookup.covered_sources
        missing = [
            d for d in descriptors if d.id not in lookup.results_by_source
        ]

        fetched: dict[str, list[Product]] = {}
        if missing:
            self._enter(result, AggregationState.FETCHING)
            fetched = await self._fetch_sources(
                normalized, missing, filters, result
            )

        self._enter(result, AggregationState.MERGING)
        merged: list[Product] = []
        for descriptor in descriptors:
            if descriptor.id in lookup.results_by_source:
                merged.extend(lookup.results_by_source[descriptor.id])
            else:
                merged.extend(fetched.get(descriptor.id, []))
        merged, invalid = ProductValidator.validate(merged)
        result.invalid_count += invalid

        self._enter(result, AggregationState.DEDUPLICATING)
        merged, result.deduplicated_count = (
            ProductDeduplicator.deduplicate(merged)
        )
        result.total_before_filter = len(merged)

        self._enter(result, AggregationState.FILTERING)
        filtered, result.excluded_count = ProductFilter.apply(
            merged, filters
        )

        self._enter(result, AggregationState.SORTING)
        result.products = ProductFilter.sort(filtered, filters.sort_by)

        self._enter(result, AggregationState.DONE)
        logger.info(
            "Aggregated '%s': %d products (cached=%s live=%s "
            "fallback=%s timed_out=%s)",
            normalized,
            len(result.products),
            result.cached_sources,
            result.live_sources,
            result.fallback_sources,
            result.timed_out_sources,
        )
        return result

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for abandoned fetches to finish writing the cache."""
        pending = list(self._background)
        if not pending:
            return
        logger.debug("Draining %d background fetches", len(pending))
        await asyncio.wait(pending, timeout=timeout)

    # ── Private helpers ──────────────────────────────────

    @staticmethod
    def _enter(result: SearchResult, state: AggregationState) -> None:
        result.states.append(state)
        logger.debug("'%s' -> %s", result.query, state.value)

    def _cache_lookup(self, normalized: str, ids: list[str]) -> CacheLookup:
        try:
            return self.query_cache.get(normalized, ids)
        except (sqlite3.Error, OSError) as exc:
            logger.warning(
                "Cache read failed for '%s', treating as miss: %s",
                normalized,
                exc,
            )
            return CacheLookup()

    def _write_cache(
        self,
        normalized: str,
        source_id: str,
        products: list[Product],
        sort_by: SortBy | None,
    ) -> None:
        try:
            self.query_cache.put(normalized, [source_id], products, sort_by)
        except (sqlite3.Error, OSError) as exc:
            logger.warning(
                "Cache write failed for '%s' from %s: %s",
                normalized,
                source_id,
                exc,
            )

    async def _fetch_one(
        self,
        normalized: str,
        descriptor: SourceDescriptor,
        filters: SearchFilters,
    ) -> tuple[list[Product], int]:
        """Fetch one source, validate, dedup and cache its slice."""
        async with self._semaphore:
            logger.debug("Fetching '%s' from %s", normalized, descriptor.id)
            scraper = self.registry.create(descriptor.id)
            try:
                raw: list[Product] = await asyncio.to_thread(
                    scraper.search, normalized, filters
                )
            finally:
                scraper.close()

        products, invalid = ProductValidator.validate(raw)
        products, _ = ProductDeduplicator.deduplicate(products)
        self._write_cache(normalized, descriptor.id, products, filters.sort_by)
        return products, invalid

    async def _fetch_sources(
        self,
        normalized: str,
        descriptors: list[SourceDescriptor],
        filters: SearchFilters,
        result: SearchResult,
    ) -> dict[str, list[Product]]:
        """Dispatch one task per source and collect within the timeout.

        Sources still running when the timeout expires are represented
        by fallback data; their tasks keep running and cache their slice
        for later callers.
        """
        tasks: dict[str, asyncio.Task[tuple[list[Product], int]]] = {}
        for descriptor in descriptors:
            task = asyncio.create_task(
                self._fetch_one(normalized, descriptor, filters),
                name=f"fetch:{descriptor.id}",
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)
            tasks[descriptor.id] = task

        _, pending = await asyncio.wait(
            tasks.values(), timeout=self.timeout
        )

        fetched: dict[str, list[Product]] = {}
        for descriptor in descriptors:
            task = tasks[descriptor.id]
            if task in pending or task.cancelled():
                logger.warning(
                    "%s did not finish within %.0fs, using fallback",
                    descriptor.id,
                    self.timeout,
                )
                result.timed_out_sources.append(descriptor.id)
                result.fallback_sources.append(descriptor.id)
                fetched[descriptor.id] = FallbackSynthesizer.generate(
                    normalized, descriptor.id
                )
                continue

            exc = task.exception()
            if exc is not None:
                result.errors.append(f"{descriptor.id}: {exc}")
                logger.error(
                    "Adapter error for %s on '%s': %s",
                    descriptor.id,
                    normalized,
                    exc,
                    exc_info=exc,
                )
                result.fallback_sources.append(descriptor.id)
                fetched[descriptor.id] = FallbackSynthesizer.generate(
                    normalized, descriptor.id
                )
                continue

            products, invalid = task.result()
            result.invalid_count += invalid
            fetched[descriptor.id] = products
            if FallbackSynthesizer.is_fallback(products):
                result.fallback_sources.append(descriptor.id)
            else:
                result.live_sources.append(descriptor.id)

        return fetched
