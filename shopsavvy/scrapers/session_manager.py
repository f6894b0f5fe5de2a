# shopsavvy/scrapers/session_manager.py

"""Scoped, fingerprint-minimised browser sessions for rendered sources.

A session belongs to exactly one adapter invocation. It is opened with
a freshly rotated identity and closed on every exit path, so cookies
and fingerprints never leak between unrelated queries.
"""

import logging
import random
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, sync_playwright

from shopsavvy.config.settings import Settings
from shopsavvy.errors import AccessBlocked, SourceUnavailable
from shopsavvy.scrapers.anti_block import BlockDetector, BlockVerdict
from shopsavvy.storage.diagnostics import DiagnosticsWriter

logger = logging.getLogger("shopsavvy.session")

_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => false });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
window.chrome = { runtime: {}, loadTimes: function() {}, csi: function() {} };
const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) => (
  parameters.name === 'notifications'
    ? Promise.resolve({ state: Notification.permission })
    : originalQuery(parameters)
);
const getParameter = WebGLRenderingContext.prototype.getParameter;
WebGLRenderingContext.prototype.getParameter = function(parameter) {
  if (parameter === 37445) { return 'Intel Inc.'; }
  if (parameter === 37446) { return 'Intel Iris OpenGL Engine'; }
  return getParameter.call(this, parameter);
};
"""

_FETCH_JSON_SCRIPT = """
async ([url, headers]) => {
  const response = await fetch(url, { credentials: 'include', headers });
  if (!response.ok) { return { __status: response.status }; }
  return await response.json();
}
"""

_SCROLL_SCRIPT = "() => window.scrollBy(0, window.innerHeight)"


@dataclass(frozen=True)
class SessionIdentity:
    """The outward fingerprint presented by one session."""

    user_agent: str
    locale: str
    timezone: str
    viewport: tuple[int, int]

    @classmethod
    def rotate(cls, rng: random.Random | None = None) -> "SessionIdentity":
        """Pick a fresh identity from the configured pools."""
        chooser = rng or random
        return cls(
            user_agent=chooser.choice(Settings.USER_AGENTS),
            locale=chooser.choice(Settings.LOCALES),
            timezone=chooser.choice(Settings.TIMEZONES),
            viewport=chooser.choice(Settings.VIEWPORTS),
        )

    def extra_headers(self) -> dict[str, str]:
        language = self.locale.split("-")[0]
        return {
            "Accept-Language": f"{self.locale},{language};q=0.9",
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;"
                "q=0.9,image/avif,image/webp,*/*;q=0.8"
            ),
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Sec-Fetch-User": "?1",
            "Upgrade-Insecure-Requests": "1",
        }


class BrowserSession:
    """Operations an adapter may perform against one rendered page."""

    def __init__(
        self,
        page: Page,
        source_name: str,
        detector: BlockDetector | None = None,
        diagnostics: DiagnosticsWriter | None = None,
    ) -> None:
        self.page = page
        self.source_name = source_name
        self.detector = detector or BlockDetector(source_name)
        self.diagnostics = diagnostics or DiagnosticsWriter()
        self.settings = Settings()

    def navigate(self, url: str, timeout: float | None = None) -> int | None:
        """Load ``url`` and make sure the result is not a denial page.

        Raises:
            AccessBlocked: the page is (still) a challenge after the
                bounded wait, or it is a CAPTCHA.
        """
        nav_timeout = timeout or self.settings.NAVIGATION_TIMEOUT
        logger.debug("[%s] Navigating to %s", self.source_name, url)
        response = self.page.goto(
            url,
            wait_until="domcontentloaded",
            timeout=nav_timeout * 1000,
        )
        try:
            self.page.wait_for_load_state(
                "networkidle",
                timeout=self.settings.NETWORK_IDLE_TIMEOUT * 1000,
            )
        except PlaywrightError:
            logger.debug(
                "[%s] Network never went idle, continuing",
                self.source_name,
            )

        status = response.status if response is not None else None
        headers = response.headers if response is not None else None
        verdict = self._inspect(status, headers)
        if not verdict.blocked:
            return status

        if not verdict.terminal:
            logger.info(
                "[%s] Waiting up to %.0fs for challenge to clear",
                self.source_name,
                self.settings.CHALLENGE_WAIT_SECONDS,
            )
            self._wait_for_challenge()
            # The original status belongs to the challenge response
            verdict = self._inspect(None, None)
            if not verdict.blocked:
                logger.info(
                    "[%s] Challenge cleared on its own",
                    self.source_name,
                )
                return status

        self.snapshot(f"blocked {verdict.reason}")
        raise AccessBlocked(
            f"Access blocked ({verdict.reason})",
            source=self.source_name,
            url=self.page.url,
            status_code=status,
            reason=verdict.reason,
            terminal=verdict.terminal,
        )

    def content(self) -> str:
        """Return the full rendered markup."""
        return self.page.content()

    def title(self) -> str:
        return self.page.title()

    def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a recovery script and return its plain JSON-able value.

        Script failures return ``None``; recovery scripts are one of
        several strategies and must not abort the invocation.
        """
        try:
            if arg is None:
                return self.page.evaluate(script)
            return self.page.evaluate(script, arg)
        except PlaywrightError as exc:
            logger.debug(
                "[%s] Recovery script failed: %s",
                self.source_name,
                exc,
            )
            return None

    def fetch_json(
        self, url: str, headers: dict[str, str] | None = None
    ) -> Any:
        """Issue a same-origin ``fetch`` from inside the page."""
        data = self.evaluate(_FETCH_JSON_SCRIPT, [url, headers or {}])
        if isinstance(data, dict) and "__status" in data:
            logger.warning(
                "[%s] In-page fetch returned HTTP %s",
                self.source_name,
                data["__status"],
            )
            return None
        return data

    def wait_for_any(
        self, selectors: list[str], timeout: float | None = None
    ) -> bool:
        """Wait until any of ``selectors`` is attached to the page."""
        if not selectors:
            return False
        wait = timeout or self.settings.SELECTOR_WAIT_TIMEOUT
        try:
            self.page.wait_for_selector(
                ", ".join(selectors),
                state="attached",
                timeout=wait * 1000,
            )
            return True
        except PlaywrightError:
            logger.debug(
                "[%s] None of %d selectors appeared within %.0fs",
                self.source_name,
                len(selectors),
                wait,
            )
            return False

    def scroll(self, times: int = 3, pause_ms: int = 600) -> None:
        """Scroll down to trigger lazy-loaded product cards."""
        for _ in range(times):
            self.evaluate(_SCROLL_SCRIPT)
            self.page.wait_for_timeout(pause_ms)

    def dismiss(self, selectors: list[str]) -> int:
        """Click away any popups matching ``selectors``."""
        dismissed = 0
        for selector in selectors:
            try:
                element = self.page.query_selector(selector)
                if element is not None and element.is_visible():
                    element.click(timeout=2000)
                    dismissed += 1
            except PlaywrightError:
                continue
        if dismissed:
            logger.debug(
                "[%s] Dismissed %d popup(s)", self.source_name, dismissed
            )
        return dismissed

    def snapshot(self, reason: str) -> None:
        """Capture markup and a screenshot for later inspection."""
        markup: str | None
        screenshot: bytes | None
        try:
            markup = self.page.content()
        except PlaywrightError:
            markup = None
        try:
            screenshot = self.page.screenshot(full_page=True)
        except PlaywrightError:
            screenshot = None
        self.diagnostics.capture(
            self.source_name,
            reason,
            url=self.page.url,
            markup=markup,
            screenshot=screenshot,
        )

    # ── Private helpers ──────────────────────────────────────

    def _inspect(
        self, status: int | None, headers: dict[str, str] | None
    ) -> BlockVerdict:
        try:
            markup = self.page.content()
            title = self.page.title()
        except PlaywrightError:
            markup, title = "", ""
        return self.detector.inspect(
            status=status,
            url=self.page.url,
            markup=markup,
            title=title,
            headers=headers,
        )

    def _wait_for_challenge(self) -> None:
        try:
            self.page.wait_for_load_state(
                "networkidle",
                timeout=self.settings.CHALLENGE_WAIT_SECONDS * 1000,
            )
        except PlaywrightError:
            pass
        self.page.wait_for_timeout(2000)


class SessionFactory(Protocol):
    """Anything that can open a scoped :class:`BrowserSession`."""

    def open(
        self,
        source_name: str,
        diagnostics: DiagnosticsWriter | None = None,
    ) -> Any:
        ...


class PlaywrightSessionFactory:
    """Opens Chromium sessions through Playwright's sync API.

    The sync API is used because adapters run on worker threads
    (``asyncio.to_thread``), each with its own Playwright driver.
    """

    def __init__(self, headless: bool | None = None) -> None:
        self.headless = (
            Settings.HEADLESS if headless is None else headless
        )

    @contextmanager
    def open(
        self,
        source_name: str,
        diagnostics: DiagnosticsWriter | None = None,
    ) -> Iterator[BrowserSession]:
        """Yield a configured session and always tear it down.

        Playwright errors raised inside the ``with`` block surface as
        :class:`SourceUnavailable` so adapters only handle one family.
        """
        identity = SessionIdentity.rotate()
        logger.debug(
            "[%s] Opening session ua=%s locale=%s tz=%s",
            source_name,
            identity.user_agent,
            identity.locale,
            identity.timezone,
        )
        try:
            playwright = sync_playwright().start()
        except PlaywrightError as exc:
            raise SourceUnavailable(
                f"Browser engine unavailable: {exc}", source=source_name
            ) from exc

        browser = None
        context = None
        try:
            browser = playwright.chromium.launch(
                headless=self.headless,
                args=Settings.BROWSER_LAUNCH_ARGS,
            )
            width, height = identity.viewport
            context = browser.new_context(
                user_agent=identity.user_agent,
                viewport={"width": width, "height": height},
                locale=identity.locale,
                timezone_id=identity.timezone,
                bypass_csp=True,
                ignore_https_errors=True,
                java_script_enabled=True,
            )
            context.add_init_script(_STEALTH_SCRIPT)
            context.set_extra_http_headers(identity.extra_headers())
            context.route(
                Settings.BLOCKED_RESOURCE_PATTERN,
                lambda route: route.abort(),
            )
            page = context.new_page()
            yield BrowserSession(
                page,
                source_name,
                diagnostics=diagnostics,
            )
        except PlaywrightError as exc:
            raise SourceUnavailable(
                f"Browser session failed: {exc}", source=source_name
            ) from exc
        finally:
            for closable in (context, browser):
                if closable is None:
                    continue
                try:
                    closable.close()
                except PlaywrightError as exc:
                    logger.debug(
                        "[%s] Error while closing session: %s",
                        source_name,
                        exc,
                    )
            playwright.stop()
            logger.debug("[%s] Session closed", source_name)

