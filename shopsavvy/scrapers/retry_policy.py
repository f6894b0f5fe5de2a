# shopsavvy/scrapers/retry_policy.py

"""One retry/backoff policy shared by every adapter."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from shopsavvy.config.settings import Settings

logger = logging.getLogger("shopsavvy.retry")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a small attempt cap.

    Statuses in ``non_retryable`` end the loop on the first response;
    they mean the request itself is wrong or forbidden, so repeating it
    only spends the source's patience.
    """

    max_attempts: int = Settings.MAX_RETRIES
    base_delay: float = Settings.RETRY_BASE_DELAY
    max_delay: float = Settings.RETRY_MAX_DELAY
    non_retryable: frozenset[int] = Settings.NON_RETRYABLE_STATUSES
    sleep: Callable[[float], None] | None = field(
        default=None, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=Settings.MAX_RETRIES,
            base_delay=Settings.RETRY_BASE_DELAY,
            max_delay=Settings.RETRY_MAX_DELAY,
            non_retryable=Settings.NON_RETRYABLE_STATUSES,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the zero-based ``attempt`` failed."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def is_retryable(self, status_code: int) -> bool:
        return status_code not in self.non_retryable

    def should_retry(self, attempt: int) -> bool:
        """True when another attempt follows the zero-based ``attempt``."""
        return attempt + 1 < self.max_attempts

    def backoff(self, attempt: int) -> None:
        """Sleep before the next attempt."""
        delay = self.delay_for(attempt)
        logger.debug(
            "Backing off %.1fs after attempt %d", delay, attempt + 1
        )
        (self.sleep or time.sleep)(delay)
