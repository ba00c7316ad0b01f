"""Scraper package: browser session, page fetch, link discovery and signal extraction."""

from orbit_crawler.scraper.browser import BrowserSessionManager
from orbit_crawler.scraper.fetcher import PageFetcher
from orbit_crawler.scraper.links import discover_links, generate_candidate_urls, normalize_url
from orbit_crawler.scraper.models import FetchOptions, FetchOutcome, PageContent, PageFetchResult

__all__ = [
    "BrowserSessionManager",
    "PageFetcher",
    "discover_links",
    "generate_candidate_urls",
    "normalize_url",
    "FetchOptions",
    "FetchOutcome",
    "PageContent",
    "PageFetchResult",
]
