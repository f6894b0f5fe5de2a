# shopsavvy/errors.py

"""Error taxonomy shared by adapters, the cache and the orchestrator.

Only :class:`ContractViolation` ever reaches a caller of the
orchestrator. Everything under :class:`ScraperError` is absorbed by the
adapter that raised it and replaced with synthetic results.
"""


class ShopSavvyError(Exception):
    """Base class for every error raised by this package."""


class ContractViolation(ShopSavvyError, ValueError):
    """The caller asked for something that can never succeed."""


class ScraperError(ShopSavvyError):
    """A source could not produce data for one adapter invocation."""

    def __init__(
        self,
        message: str,
        source: str = "",
        url: str = "",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.url = url
        self.status_code = status_code

    @property
    def failure_class(self) -> str:
        return type(self).__name__


class SourceUnavailable(ScraperError):
    """Network failure, timeout or a non-retryable HTTP status."""


class AccessBlocked(ScraperError):
    """An anti-automation challenge is standing between us and the data."""

    def __init__(
        self,
        message: str,
        source: str = "",
        url: str = "",
        status_code: int | None = None,
        reason: str = "",
        terminal: bool = False,
    ) -> None:
        super().__init__(message, source, url, status_code)
        self.reason = reason
        self.terminal = terminal


class ExtractionEmpty(ScraperError):
    """The page loaded but no selector cascade produced a product."""
