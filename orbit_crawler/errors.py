"""Exception types for infrastructure faults.

Ordinary fetch failures (blocked, 404, 5xx, timeouts, empty pages) are
never raised; they are reported through
:class:`~orbit_crawler.scraper.models.FetchOutcome`.  The classes below are
reserved for faults that make the in-flight operation impossible.
"""

from __future__ import annotations


class CrawlerError(Exception):
    """Base class for crawl engine errors."""


class BrowserLaunchError(CrawlerError):
    """The headless browser process could not be started."""


class BrowserUnavailableError(CrawlerError):
    """The browser process died mid-operation and is unreachable."""


class IngestionNotFoundError(CrawlerError, KeyError):
    """No stored ingestion exists for the requested ID."""

    def __init__(self, orbit_id: str) -> None:
        super().__init__(orbit_id)
        self.orbit_id = orbit_id

    def __str__(self) -> str:
        return f"Ingestion not found: {self.orbit_id!r}"
