# shopsavvy/scrapers/anti_block.py

"""Recognise pages that a source serves to deny automated access."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from shopsavvy.config.settings import Settings

logger = logging.getLogger("shopsavvy.anti_block")

# Large JSON-free pages with a product grid often mention "captcha" in
# an unrelated script bundle; below this size a keyword hit is trusted.
_BODY_CONTENT_THRESHOLD = 5000


class BlockStatus(str, Enum):
    """Outcome of inspecting one response."""

    CLEAR = "clear"
    CHALLENGE = "challenge"   # may resolve on its own, wait and re-check
    CAPTCHA = "captcha"       # needs a human, terminal


@dataclass(frozen=True)
class BlockVerdict:
    """Detector output: the status plus which signal tripped it."""

    status: BlockStatus
    reason: str = ""

    @property
    def blocked(self) -> bool:
        return self.status is not BlockStatus.CLEAR

    @property
    def terminal(self) -> bool:
        return self.status is BlockStatus.CAPTCHA


CLEAR = BlockVerdict(BlockStatus.CLEAR)


class BlockDetector:
    """Inspect status, URL, headers, markup and title for denial signals."""

    def __init__(self, source_name: str = "") -> None:
        self.source_name = source_name
        self.settings = Settings()

    def inspect(
        self,
        *,
        status: int | None = None,
        url: str = "",
        markup: str = "",
        title: str = "",
        headers: Mapping[str, str] | None = None,
    ) -> BlockVerdict:
        """Classify one response.

        Order matters: an explicit CAPTCHA is terminal even when the
        status code alone would only suggest a transient challenge.
        """
        lower_url = url.lower()
        lower_title = title.lower()
        lower_markup = markup.lower()

        if headers:
            self._log_edge_headers(headers)

        for marker in self.settings.BLOCKED_TITLE_MARKERS:
            if marker in lower_title:
                status_kind = (
                    BlockStatus.CAPTCHA
                    if "captcha" in marker
                    else BlockStatus.CHALLENGE
                )
                return self._verdict(status_kind, f"title:{marker}")

        if not self._looks_like_data(markup):
            has_body_content = (
                "<body" in lower_markup
                and len(markup) > _BODY_CONTENT_THRESHOLD
            )
            if not has_body_content:
                for keyword in self.settings.CAPTCHA_KEYWORDS:
                    if keyword in lower_markup:
                        return self._verdict(
                            BlockStatus.CAPTCHA, f"markup:{keyword}"
                        )
            for marker in self.settings.CHALLENGE_MARKUP_MARKERS:
                if marker in lower_markup:
                    return self._verdict(
                        BlockStatus.CHALLENGE, f"markup:{marker}"
                    )

        for marker in self.settings.CHALLENGE_URL_MARKERS:
            if marker in lower_url:
                kind = (
                    BlockStatus.CAPTCHA
                    if "captcha" in marker
                    else BlockStatus.CHALLENGE
                )
                return self._verdict(kind, f"url:{marker}")

        if status is not None and status in self.settings.BLOCK_STATUSES:
            return self._verdict(BlockStatus.CHALLENGE, f"status:{status}")

        return CLEAR

    # ── Private helpers ──────────────────────────────────────

    @staticmethod
    def _looks_like_data(markup: str) -> bool:
        return markup.lstrip().startswith(("{", "["))

    def _verdict(self, status: BlockStatus, reason: str) -> BlockVerdict:
        logger.warning(
            "[%s] Anti-block signal %s (%s)",
            self.source_name,
            status.value,
            reason,
        )
        return BlockVerdict(status, reason)

    def _log_edge_headers(self, headers: Mapping[str, str]) -> None:
        lowered = {k.lower(): v for k, v in headers.items()}
        if "cloudflare" in lowered.get("server", "").lower() or (
            "cf-ray" in lowered
        ):
            logger.debug(
                "[%s] Response served through Cloudflare (cf-ray=%s)",
                self.source_name,
                lowered.get("cf-ray", "-"),
            )
