# shopsavvy/storage/diagnostics.py

"""Writes diagnostic artifacts for offline selector-cascade maintenance."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from shopsavvy.config.settings import Settings

logger = logging.getLogger("shopsavvy.diagnostics")


class DiagnosticsWriter:
    """Persists captured markup and snapshots keyed by source and time.

    Each capture produces a JSON record (``<stem>.json``) describing the
    failure, plus the artifacts it refers to (``<stem>.html`` and, when
    a rendered session was involved, ``<stem>.png``).
    """

    def __init__(self, directory: Path | None = None) -> None:
        self.directory: Path = directory or Settings.DIAGNOSTICS_DIR

    def stem(self, source: str, reason: str) -> Path:
        """Return the artifact path prefix for a new capture."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        safe_reason = "".join(
            ch if ch.isalnum() else "_" for ch in reason.lower()
        ).strip("_") or "failure"
        return self.directory / f"{source}_{safe_reason}_{timestamp}"

    def capture(
        self,
        source: str,
        reason: str,
        *,
        url: str = "",
        markup: str | None = None,
        screenshot: bytes | None = None,
        extra: dict[str, Any] | None = None,
    ) -> Path | None:
        """Write one diagnostic record and return its JSON path.

        A failure to write is logged and swallowed; diagnostics must
        never turn a degraded source into a failed aggregation.
        """
        stem = self.stem(source, reason)
        record: dict[str, Any] = {
            "source": source,
            "reason": reason,
            "url": url,
            "captured_at": datetime.now().isoformat(),
            "artifacts": [],
            **(extra or {}),
        }
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            if markup is not None:
                html_path = stem.with_suffix(".html")
                html_path.write_text(markup, encoding="utf-8")
                record["artifacts"].append(html_path.name)
            if screenshot is not None:
                png_path = stem.with_suffix(".png")
                png_path.write_bytes(screenshot)
                record["artifacts"].append(png_path.name)
            json_path = stem.with_suffix(".json")
            with open(json_path, "w", encoding="utf-8") as f:
                json.dump(record, f, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.warning(
                "[%s] Could not write diagnostics to %s: %s",
                source,
                self.directory,
                exc,
            )
            return None

        logger.info(
            "[%s] Diagnostic captured (%s) at %s",
            source,
            reason,
            json_path,
        )
        return json_path
