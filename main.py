# main.py

"""Entry point for the shopsavvy aggregator CLI."""

import argparse
import asyncio
import logging
import sys

from shopsavvy.config.logging_config import setup_logging
from shopsavvy.config.settings import Settings
from shopsavvy.models.product import SortBy

logger = logging.getLogger("shopsavvy.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(d.id for d in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="shopsavvy",
        description="Multi-marketplace product search aggregator.",
        epilog=f"Available sources: {valid_ids}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Search query.",
    )
    parser.add_argument(
        "-s",
        "--sources",
        default=None,
        help="Comma-separated source IDs (default: all).",
    )
    parser.add_argument(
        "-e",
        "--exclude",
        default=None,
        help="Comma-separated negative keywords to filter out.",
    )
    parser.add_argument("--min-price", type=float, default=None)
    parser.add_argument("--max-price", type=float, default=None)
    parser.add_argument("--brand", default="")
    parser.add_argument("--category", default="")
    parser.add_argument(
        "--sort",
        choices=[s.value for s in SortBy],
        default=None,
        help="Result ordering (default: source order).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on the sources.",
    )
    parser.add_argument(
        "--sweep-cache",
        action="store_true",
        default=False,
        dest="sweep_cache",
        help="Remove expired cache entries.",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        default=False,
        dest="clear_cache",
        help="Invalidate cached results (for QUERY only, if given).",
    )
    return parser


def _run_cli(args: argparse.Namespace) -> None:
    """Run headless CLI search and exit."""
    from shopsavvy.cli.runner import cli_search

    exit_code = asyncio.run(
        cli_search(
            query=args.query,
            source_csv=args.sources,
            exclude_csv=args.exclude,
            min_price=args.min_price,
            max_price=args.max_price,
            brand=args.brand,
            category=args.category,
            sort=args.sort,
            output_format=args.output_format,
        )
    )
    sys.exit(exit_code)


def _run_cache_maintenance(args: argparse.Namespace) -> None:
    from shopsavvy.cli.runner import run_cache_maintenance

    sys.exit(
        run_cache_maintenance(
            clear=args.clear_cache,
            sweep=args.sweep_cache,
            query=args.query,
        )
    )


def _run_health_check(args: argparse.Namespace) -> None:
    """Run source connectivity health check."""
    from shopsavvy.cli.runner import run_health_check

    exit_code = asyncio.run(run_health_check(args.sources))
    sys.exit(exit_code)


def main() -> None:
    """Route to health check, cache maintenance or a search."""
    log_file = setup_logging()
    logger.info("shopsavvy starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    if args.health:
        _run_health_check(args)
    elif args.clear_cache or args.sweep_cache:
        _run_cache_maintenance(args)
    elif args.query is None:
        parser.print_help(sys.stderr)
        sys.exit(2)
    else:
        _run_cli(args)


if __name__ == "__main__":
    main()
