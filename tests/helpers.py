# tests/helpers.py

"""Shared fakes for adapter and orchestrator tests."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from shopsavvy.config.settings import Settings
from shopsavvy.models.product import Product
from shopsavvy.services.source_registry import SourceRegistry

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> str:
    """Read a fixture file as text."""
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def make_product(
    title: str,
    price: float = 100.0,
    platform: str = "Lazada",
    **extra: Any,
) -> Product:
    """Create a valid Product with sensible defaults."""
    slug = title.lower().replace(" ", "-")
    return Product(
        id=f"{platform.lower()}_{slug}",
        title=title,
        price=price,
        product_url=f"https://example.com/{platform.lower()}/{slug}",
        platform=platform,
        source=extra.pop("source", "dom-extraction"),
        **extra,
    )


class FakeSession:
    """Stands in for BrowserSession; every call is recorded."""

    def __init__(
        self,
        markup: str = "",
        state: Any = None,
        json_data: Any = None,
        navigate_error: Exception | None = None,
    ) -> None:
        self.markup = markup
        self.state = state
        self.json_data = json_data
        self.navigate_error = navigate_error
        self.navigated: list[str] = []
        self.fetched: list[str] = []
        self.snapshots: list[str] = []

    def navigate(self, url: str, timeout: float | None = None) -> int:
        self.navigated.append(url)
        if self.navigate_error is not None:
            raise self.navigate_error
        return 200

    def content(self) -> str:
        return self.markup

    def title(self) -> str:
        return ""

    def evaluate(self, script: str, arg: Any = None) -> Any:
        return self.state

    def fetch_json(
        self, url: str, headers: dict[str, str] | None = None
    ) -> Any:
        self.fetched.append(url)
        return self.json_data

    def wait_for_any(
        self, selectors: list[str], timeout: float | None = None
    ) -> bool:
        return True

    def scroll(self, times: int = 3, pause_ms: int = 600) -> None:
        pass

    def dismiss(self, selectors: list[str]) -> int:
        return 0

    def snapshot(self, reason: str) -> None:
        self.snapshots.append(reason)


class FakeSessionFactory:
    """Hands out the same FakeSession and counts how often."""

    def __init__(self, session: FakeSession) -> None:
        self.session = session
        self.opened = 0

    @contextmanager
    def open(
        self, source_name: str, diagnostics: Any = None
    ) -> Iterator[FakeSession]:
        self.opened += 1
        yield self.session


class FakeRegistry(SourceRegistry):
    """Registry whose adapters are plain factories supplied by the test."""

    def __init__(self, adapters: dict[str, Any]) -> None:
        self._descriptors = {}
        for source_id in adapters:
            descriptor = Settings.source(source_id)
            assert descriptor is not None, source_id
            self._descriptors[source_id] = descriptor
        self._classes = dict(adapters)
        self.created: list[str] = []

    def create(self, source_id: str) -> Any:
        self.created.append(source_id)
        return super().create(source_id)
