# shopsavvy/cli/runner.py

"""Headless CLI runner over the async orchestrator."""

import json
import logging
import sys

from rich.console import Console
from rich.table import Table

from shopsavvy.config.settings import Settings
from shopsavvy.errors import ContractViolation
from shopsavvy.models.product import Product, SearchFilters
from shopsavvy.services.search_orchestrator import (
    SearchOrchestrator,
    SearchResult,
)
from shopsavvy.storage.query_cache import QueryCache

logger = logging.getLogger("shopsavvy.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_sources(source_csv: str | None) -> list[str] | None:
    """Split a comma-separated list of source IDs.

    Returns ``None`` (all sources) when *source_csv* is ``None``.
    Raises ``SystemExit`` on unknown IDs.
    """
    if source_csv is None:
        return None

    available = {d.id for d in Settings.AVAILABLE_SOURCES}
    requested = [s.strip() for s in source_csv.split(",") if s.strip()]
    unknown = [r for r in requested if r not in available]
    if unknown:
        _err.print(f"[red]Unknown source(s): {', '.join(unknown)}[/red]")
        _err.print(f"[dim]Available: {', '.join(sorted(available))}[/dim]")
        raise SystemExit(1)
    return requested


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _print_table(products: list[Product]) -> None:
    """Render a Rich table of products to stdout (already sorted)."""
    table = Table(
        title="Search Results",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=60)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Rating", justify="center")
    table.add_column("Platform", style="magenta")
    table.add_column("Via", style="dim")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, p in enumerate(products, 1):
        price_str = f"₱{p.price:,.2f}"
        if p.original_price:
            price_str += f"\n[dim strike]₱{p.original_price:,.2f}[/dim strike]"
        table.add_row(
            str(idx),
            p.title[:60],
            price_str,
            f"{p.rating:.1f}" if p.rating is not None else "-",
            p.platform,
            p.source,
            p.product_url,
        )

    Console().print(table)


def _print_summary(result: SearchResult) -> None:
    parts: list[str] = []
    if result.cached_sources:
        parts.append(f"cached: {', '.join(result.cached_sources)}")
    if result.live_sources:
        parts.append(f"live: {', '.join(result.live_sources)}")
    if result.fallback_sources:
        parts.append(f"fallback: {', '.join(result.fallback_sources)}")
    if result.excluded_count:
        parts.append(f"{result.excluded_count} filtered")
    if result.deduplicated_count:
        parts.append(f"{result.deduplicated_count} deduped")
    if result.invalid_count:
        parts.append(f"{result.invalid_count} invalid")
    detail = f" ({'; '.join(parts)})" if parts else ""
    _err.print(
        f"[green]✓ {len(result.products)} products"
        f" of {result.total_before_filter}{detail}[/green]"
    )
    if result.fallback_sources:
        _err.print(
            "[yellow]Results tagged 'fallback' are synthetic placeholders "
            "for sources that could not be scraped.[/yellow]"
        )


async def cli_search(
    query: str,
    source_csv: str | None = None,
    exclude_csv: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    brand: str = "",
    category: str = "",
    sort: str | None = None,
    output_format: str = "json",
) -> int:
    """Run a headless search and return an exit code.

    0 = products found, 1 = nothing found, 2 = invalid request.
    """
    sources = resolve_sources(source_csv)
    try:
        filters = SearchFilters(
            min_price=min_price,
            max_price=max_price,
            brand=brand,
            category=category,
            sort_by=sort,
            exclude_keywords=_split_csv(exclude_csv),
        )
        orchestrator = SearchOrchestrator()
        _err.print(
            f"[bold]Searching:[/bold] {query}  "
            f"[dim]sources={', '.join(sources or ['all'])}[/dim]"
        )
        result = await orchestrator.search(query, filters, sources)
    except ContractViolation as exc:
        _err.print(f"[red]Invalid request: {exc}[/red]")
        return 2

    for error_msg in result.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")

    # Let slow sources finish so their slices are cached
    await orchestrator.drain(timeout=Settings.AGGREGATE_TIMEOUT)

    if not result.products:
        _err.print("[yellow]No products found.[/yellow]")
        return 1

    _print_summary(result)

    if output_format == "table":
        _print_table(result.products)
    else:
        json.dump(
            [p.to_dict() for p in result.products],
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")

    return 0


def run_cache_maintenance(
    clear: bool = False, sweep: bool = False, query: str | None = None
) -> int:
    """Sweep expired cache entries and/or invalidate cached queries."""
    cache = QueryCache.from_settings()
    if sweep:
        removed = cache.sweep()
        _err.print(f"[green]✓ Swept {removed} expired entries[/green]")
    if clear:
        removed = cache.invalidate(query)
        target = f"'{query}'" if query else "all queries"
        _err.print(
            f"[green]✓ Removed {removed} entries for {target}[/green]"
        )
    return 0


async def run_health_check(source_csv: str | None = None) -> int:
    """Run connectivity health check on the selected sources."""
    from shopsavvy.services.health_checker import HealthChecker

    _err.print("[bold]Running source health check...[/bold]")
    checker = HealthChecker()
    results = await checker.check_all(resolve_sources(source_csv))

    table = Table(
        title="Source Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        elif r.status == "blocked":
            status = "[yellow]🛑 BLOCKED[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True

        latency = f"{r.latency_ms:.0f}ms" if r.latency_ms > 0 else "-"
        table.add_row(r.source_id, status, latency, r.message)

    Console().print(table)
    return 1 if any_down else 0
