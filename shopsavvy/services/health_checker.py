# shopsavvy/services/health_checker.py

"""Source connectivity health checker."""

import asyncio
import logging
import time
from dataclasses import dataclass

from curl_cffi import CurlError

from shopsavvy.errors import ShopSavvyError
from shopsavvy.models.source import SourceDescriptor
from shopsavvy.services.source_registry import SourceRegistry

logger = logging.getLogger("shopsavvy.health")

_HEALTH_TIMEOUT = 10  # seconds per source
_SLOW_THRESHOLD_MS = 5000


@dataclass
class HealthResult:
    """Result of a single source health check."""

    source_id: str
    status: str  # "ok", "slow", "blocked", "down"
    latency_ms: float
    message: str


def probe_source(
    descriptor: SourceDescriptor, registry: SourceRegistry
) -> HealthResult:
    """Fetch a source's homepage once and classify the response."""
    source_id = descriptor.id

    try:
        scraper = registry.create(source_id)
    except (ImportError, ShopSavvyError) as exc:
        return HealthResult(
            source_id=source_id,
            status="down",
            latency_ms=0.0,
            message=f"Failed to load adapter: {exc}",
        )

    start = time.monotonic()
    try:
        homepage = scraper._get_homepage()
        headers = {
            **scraper.settings.DEFAULT_HEADERS,
            "Referer": homepage,
        }
        resp = scraper.session.get(
            homepage,
            headers=headers,
            timeout=_HEALTH_TIMEOUT,
        )
        elapsed_ms = (time.monotonic() - start) * 1000

        verdict = scraper.detector.inspect(
            status=resp.status_code,
            url=homepage,
            markup=str(resp.text),
        )
        if verdict.blocked:
            return HealthResult(
                source_id=source_id,
                status="blocked",
                latency_ms=elapsed_ms,
                message=verdict.reason,
            )

        if resp.status_code != 200:
            return HealthResult(
                source_id=source_id,
                status="down",
                latency_ms=elapsed_ms,
                message=f"HTTP {resp.status_code}",
            )

        if elapsed_ms > _SLOW_THRESHOLD_MS:
            return HealthResult(
                source_id=source_id,
                status="slow",
                latency_ms=elapsed_ms,
                message="High latency",
            )

        return HealthResult(
            source_id=source_id,
            status="ok",
            latency_ms=elapsed_ms,
            message="",
        )

    except (CurlError, OSError) as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(
            source_id=source_id,
            status="down",
            latency_ms=elapsed_ms,
            message=str(exc)[:80],
        )
    finally:
        scraper.close()


class HealthChecker:
    """Runs concurrent health probes against all sources."""

    def __init__(self, registry: SourceRegistry | None = None) -> None:
        self.registry = registry or SourceRegistry()

    async def check_all(
        self, source_ids: list[str] | None = None
    ) -> list[HealthResult]:
        """Probe every selected source concurrently."""
        tasks = [
            asyncio.to_thread(probe_source, descriptor, self.registry)
            for descriptor in self.registry.resolve(source_ids)
        ]
        results: list[HealthResult] = list(
            await asyncio.gather(*tasks)
        )
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
