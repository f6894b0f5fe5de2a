# shopsavvy/services/source_registry.py

"""Resolves source descriptors to adapter classes once, at startup."""

import importlib
import logging
from typing import Any

from shopsavvy.config.settings import Settings
from shopsavvy.errors import ContractViolation
from shopsavvy.models.source import SourceDescriptor

logger = logging.getLogger("shopsavvy.registry")


def _load_scraper_class(dotted_path: str) -> type[Any]:
    """Dynamically import a scraper class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


class SourceRegistry:
    """Registered sources and the adapter class serving each one."""

    def __init__(
        self, descriptors: list[SourceDescriptor] | None = None
    ) -> None:
        chosen = (
            descriptors
            if descriptors is not None
            else Settings.AVAILABLE_SOURCES
        )
        self._descriptors: dict[str, SourceDescriptor] = {
            d.id: d for d in chosen
        }
        self._classes: dict[str, type[Any]] = {
            d.id: _load_scraper_class(d.scraper) for d in chosen
        }
        logger.debug(
            "Registry resolved %d sources: %s",
            len(self._classes),
            ", ".join(
                f"{d.id}(rendered={d.requires_rendered_session}, "
                f"api={d.supports_direct_api})"
                for d in chosen
            ),
        )

    @property
    def ids(self) -> list[str]:
        return list(self._descriptors)

    def descriptor(self, source_id: str) -> SourceDescriptor:
        try:
            return self._descriptors[source_id]
        except KeyError:
            raise ContractViolation(
                f"Unknown source: {source_id!r} "
                f"(available: {', '.join(self.ids)})"
            ) from None

    def resolve(
        self, source_ids: list[str] | None = None
    ) -> list[SourceDescriptor]:
        """Descriptors for ``source_ids`` in the given order.

        ``None`` or an empty list selects every source. Repeats are
        dropped so each source runs in at most one task.
        """
        if not source_ids:
            return list(self._descriptors.values())
        if isinstance(source_ids, str):
            raise ContractViolation(
                "sources must be a list of ids, not a string"
            )
        resolved: list[SourceDescriptor] = []
        seen: set[str] = set()
        for source_id in source_ids:
            descriptor = self.descriptor(source_id)
            if descriptor.id in seen:
                continue
            seen.add(descriptor.id)
            resolved.append(descriptor)
        return resolved

    def create(self, source_id: str) -> Any:
        """Instantiate a fresh adapter for one invocation."""
        self.descriptor(source_id)
        return self._classes[source_id]()
