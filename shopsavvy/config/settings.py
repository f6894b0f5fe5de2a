# shopsavvy/config/settings.py

"""Central configuration for the shopsavvy aggregator."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

from shopsavvy.models.source import SourceDescriptor

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Central configuration for the shopsavvy aggregator."""

    # --- HTTP ---
    REQUEST_TIMEOUT: int = 15           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Attempts per request, first included
    RETRY_BASE_DELAY: float = 1.0       # Doubled after every failed attempt
    RETRY_MAX_DELAY: float = 8.0
    NON_RETRYABLE_STATUSES: frozenset[int] = frozenset({401, 403, 404})
    MIN_REQUEST_INTERVAL: float = 0.5   # Seconds between two calls to a host

    # --- Rendered sessions ---
    HEADLESS: bool = _env_bool("SHOPSAVVY_HEADLESS", True)
    NAVIGATION_TIMEOUT: float = 30.0    # Seconds for the initial load
    NETWORK_IDLE_TIMEOUT: float = 10.0  # Best effort, errors ignored
    SELECTOR_WAIT_TIMEOUT: float = 5.0
    CHALLENGE_WAIT_SECONDS: float = 10.0
    BLOCKED_RESOURCE_PATTERN: str = (
        "**/*.{png,jpg,jpeg,gif,svg,webp,css,woff,woff2,ttf,otf}"
    )
    BROWSER_LAUNCH_ARGS: list[str] = [
        "--disable-blink-features=AutomationControlled",
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
        "--disable-infobars",
        "--window-size=1920,1080",
    ]

    # --- Identity rotation ---
    USER_AGENTS: list[str] = [
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) "
            "Gecko/20100101 Firefox/133.0"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) "
            "Version/17.6 Safari/605.1.15"
        ),
        (
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36"
        ),
    ]
    LOCALES: list[str] = ["en-US", "en-PH", "en-GB"]
    TIMEZONES: list[str] = ["Asia/Manila", "Asia/Singapore", "Asia/Hong_Kong"]
    VIEWPORTS: list[tuple[int, int]] = [
        (1920, 1080),
        (1536, 864),
        (1440, 900),
        (1366, 768),
    ]

    # --- Browser Impersonation (direct HTTP) ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Anti-block markers ---
    BLOCK_STATUSES: frozenset[int] = frozenset({403, 503})
    CHALLENGE_URL_MARKERS: list[str] = [
        "cdn-cgi/challenge",
        "__cf_chl_captcha",
        "__cf_chl_jschl",
        "/verify/captcha",
    ]
    CHALLENGE_MARKUP_MARKERS: list[str] = [
        "cf-browser-verification",
        "cf_chl_opt",
        "_cf_chl",
        "challenge-platform",
        "challenges.cloudflare.com",
        "cf-turnstile",
        "just a moment",
    ]
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "cf-captcha-container",
        "verify you are human",
        "security check",
        "unusual traffic",
    ]
    BLOCKED_TITLE_MARKERS: list[str] = [
        "access denied",
        "security check",
        "attention required",
        "captcha",
    ]

    # --- Cache ---
    CACHE_BACKEND: str = os.getenv("SHOPSAVVY_CACHE_BACKEND", "sqlite")
    CACHE_TTL_SECONDS: int = 6 * 60 * 60
    CACHE_TTL_RECENT_SECONDS: int = 60 * 60
    RECENCY_TERMS: list[str] = ["new", "latest", "recent"]
    CACHE_FALLBACK_RESULTS: bool = False

    # --- Orchestration ---
    AGGREGATE_TIMEOUT: float = float(
        os.getenv("SHOPSAVVY_AGGREGATE_TIMEOUT", "90")
    )
    MAX_CONCURRENT_SOURCES: int = int(
        os.getenv("SHOPSAVVY_MAX_CONCURRENT_SOURCES", "4")
    )

    # --- Query variations ---
    LOCATION_MODIFIERS: list[str] = ["philippines", "manila", "ph", "online"]

    # --- Fallback synthesis ---
    FALLBACK_LOCATION: str = "Philippines"

    # --- Third-party APIs ---
    SERPER_API_KEY: str = os.getenv("SERPER_API_KEY", "")
    SERPER_COUNTRY: str = "ph"

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "shopsavvy" / "config" / "selectors.json"
    LOGS_DIR: Path = BASE_DIR / "logs"
    DATA_DIR: Path = BASE_DIR / "data"
    DIAGNOSTICS_DIR: Path = BASE_DIR / "diagnostics"
    CACHE_DB_PATH: Path = Path(
        os.getenv("SHOPSAVVY_CACHE_DB", str(DATA_DIR / "search_cache.db"))
    )

    # --- Sources ---
    AVAILABLE_SOURCES: list[SourceDescriptor] = [
        SourceDescriptor(
            id="lazada",
            label="Lazada",
            scraper="shopsavvy.scrapers.lazada_scraper.LazadaScraper",
            base_url="https://www.lazada.com.ph",
            requires_rendered_session=True,
            supports_direct_api=True,
            max_variations=2,
        ),
        SourceDescriptor(
            id="shopee",
            label="Shopee",
            scraper="shopsavvy.scrapers.shopee_scraper.ShopeeScraper",
            base_url="https://shopee.ph",
            requires_rendered_session=True,
        ),
        SourceDescriptor(
            id="temu",
            label="Temu",
            scraper="shopsavvy.scrapers.temu_scraper.TemuScraper",
            base_url="https://www.temu.com",
            requires_rendered_session=True,
        ),
        SourceDescriptor(
            id="google_shopping",
            label="Google Shopping",
            scraper=(
                "shopsavvy.scrapers.google_shopping_scraper."
                "GoogleShoppingScraper"
            ),
            base_url="https://google.serper.dev",
            supports_direct_api=True,
            max_variations=3,
        ),
    ]

    @classmethod
    def source(cls, source_id: str) -> SourceDescriptor | None:
        """Return the descriptor registered under ``source_id``."""
        for descriptor in cls.AVAILABLE_SOURCES:
            if descriptor.id == source_id:
                return descriptor
        return None

    @classmethod
    def source_id_for_platform(cls, platform: str) -> str:
        """Map a product's platform label back to its source id."""
        wanted = platform.strip().lower()
        for descriptor in cls.AVAILABLE_SOURCES:
            if descriptor.label.lower() == wanted:
                return descriptor.id
        return wanted.replace(" ", "_")
