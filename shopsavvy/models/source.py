# shopsavvy/models/source.py

"""Static capability descriptor for one external catalog."""

from dataclasses import dataclass


@dataclass(frozen=True)
class SourceDescriptor:
    """Describes how a source is reached and which adapter serves it.

    ``requires_rendered_session`` and ``supports_direct_api`` are
    resolved once when the registry is built; adapters never sniff the
    runtime environment to decide how to fetch.
    """

    id: str
    label: str
    scraper: str
    base_url: str
    requires_rendered_session: bool = False
    supports_direct_api: bool = False
    max_variations: int = 1
