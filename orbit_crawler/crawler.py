"""Budgeted breadth-first crawl of one business site.

:meth:`SiteCrawler.crawl` is the single crawl entry point.  It fetches pages
one at a time through a :class:`~orbit_crawler.scraper.fetcher.PageFetcher`,
waits between fetches according to the domain risk tracker, and always
returns a :class:`CrawlResult`, even when no page could be fetched.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from orbit_crawler.config import Settings, settings as default_settings
from orbit_crawler.logging import LogContext, get_logger
from orbit_crawler.risk import DomainRiskTracker
from orbit_crawler.scraper.fetcher import PageFetcher
from orbit_crawler.scraper.links import (
    DEFAULT_LINK_PATTERNS,
    PatternLike,
    compile_patterns,
    discover_links,
    normalize_url,
)
from orbit_crawler.scraper.models import FetchOptions, FetchOutcome, PageFetchResult

logger = get_logger(__name__)


class StopReason(str, Enum):
    MAX_PAGES = "max_pages"
    NO_CANDIDATES = "no_candidates"
    EMPTY_PAGES = "empty_pages"
    COMPLETED = "completed"
    DEADLINE = "deadline"


@dataclass
class CrawlConfig:
    """Budget and discovery settings for one crawl.

    ``candidate_urls`` replaces link discovery entirely: exactly those URLs
    are tried, in order.  ``link_patterns`` are tested against the path of
    each discovered link; plain strings are compiled case-insensitively.
    """

    max_pages: int = 5
    stop_after_empty_pages: int = 3
    same_domain_only: bool = True
    rate_limit_ms: int = 500
    candidate_urls: Optional[list[str]] = None
    link_patterns: list[PatternLike] = field(
        default_factory=lambda: list(DEFAULT_LINK_PATTERNS)
    )
    max_links_per_page: int = 10
    deadline_s: Optional[float] = None
    fetch_options: Optional[FetchOptions] = None

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None, **overrides: Any) -> "CrawlConfig":
        cfg = cfg or default_settings
        values: dict[str, Any] = {
            "max_pages": cfg.max_pages,
            "stop_after_empty_pages": cfg.stop_after_empty_pages,
            "rate_limit_ms": cfg.rate_limit_ms,
            "max_links_per_page": cfg.max_links_per_page,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class PageError:
    url: str
    outcome: FetchOutcome
    detail: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "outcome": self.outcome.value, "detail": self.detail}


@dataclass
class CrawlResult:
    """Pages and visitation metadata of one crawl.

    ``pages_visited`` lists the URLs that yielded an ok page, in fetch order;
    ``pages_attempted`` lists every URL handed to the fetcher.
    """

    seed_url: str
    pages: list[PageFetchResult] = field(default_factory=list)
    pages_visited: list[str] = field(default_factory=list)
    pages_attempted: list[str] = field(default_factory=list)
    candidates_discovered: list[str] = field(default_factory=list)
    stopped_reason: StopReason = StopReason.COMPLETED
    errors: list[PageError] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self, include_html: bool = False) -> dict[str, Any]:
        return {
            "seed_url": self.seed_url,
            "pages": [p.to_dict(include_html=include_html) for p in self.pages],
            "pages_visited": self.pages_visited,
            "pages_attempted": self.pages_attempted,
            "candidates_discovered": self.candidates_discovered,
            "stopped_reason": self.stopped_reason.value,
            "errors": [e.to_dict() for e in self.errors],
            "duration_ms": self.duration_ms,
        }


class SiteCrawler:
    """Breadth-first, rate-limited crawler over a :class:`PageFetcher`.

    Args:
        fetcher: Fetches and classifies single pages.
        risk_tracker: Optional per-host delay source; every fetch outcome is
            reported to it.  Without one only ``rate_limit_ms`` applies.
        sleep: Called with seconds between fetches; injectable for tests.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        risk_tracker: Optional[DomainRiskTracker] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetcher = fetcher
        self.risk_tracker = risk_tracker
        self._sleep = sleep
        self._clock = clock

    def crawl(self, seed_url: str, config: Optional[CrawlConfig] = None) -> CrawlResult:
        """Crawl from *seed_url* within *config*'s budget.

        Raises:
            BrowserLaunchError: The browser could not be started.
            BrowserUnavailableError: The browser died mid-crawl.
        """
        config = config or CrawlConfig.from_settings()
        patterns = compile_patterns(config.link_patterns)
        explicit = config.candidate_urls is not None
        started = self._clock()

        result = CrawlResult(seed_url=seed_url)
        worklist: deque[str] = deque(config.candidate_urls if explicit else [seed_url])
        queued = {normalize_url(u) for u in worklist}
        visited: set[str] = set()
        consecutive_empty = 0
        stopped: Optional[StopReason] = None

        with LogContext(crawl_seed=seed_url):
            logger.info(
                "crawl_started",
                max_pages=config.max_pages,
                explicit_candidates=explicit,
                worklist=len(worklist),
            )

            while worklist and len(result.pages) < config.max_pages:
                if config.deadline_s is not None and self._clock() - started >= config.deadline_s:
                    stopped = StopReason.DEADLINE
                    break

                url = worklist.popleft()
                key = normalize_url(url)
                if key in visited:
                    continue
                visited.add(key)

                if result.pages_attempted:
                    self._wait_before(url, config.rate_limit_ms)

                page = self.fetcher.fetch(url, config.fetch_options)
                result.pages_attempted.append(url)
                self._report(url, page)

                if page.is_ok:
                    result.pages.append(page)
                    result.pages_visited.append(url)
                    consecutive_empty = 0
                    if not explicit:
                        for link in discover_links(
                            page.html,
                            page.final_url or url,
                            patterns=patterns,
                            max_links=config.max_links_per_page,
                            same_domain_only=config.same_domain_only,
                        ):
                            link_key = normalize_url(link)
                            if link_key in visited or link_key in queued:
                                continue
                            queued.add(link_key)
                            worklist.append(link)
                            result.candidates_discovered.append(link)
                else:
                    result.errors.append(PageError(url, page.outcome, page.error_detail))
                    consecutive_empty += 1
                    if consecutive_empty >= config.stop_after_empty_pages:
                        stopped = StopReason.EMPTY_PAGES
                        break

            if stopped is None:
                if len(result.pages) >= config.max_pages:
                    stopped = StopReason.MAX_PAGES
                elif not result.pages:
                    stopped = StopReason.NO_CANDIDATES
                else:
                    stopped = StopReason.COMPLETED

            result.stopped_reason = stopped
            result.duration_ms = int((self._clock() - started) * 1000)
            logger.info(
                "crawl_finished",
                pages=len(result.pages),
                attempted=len(result.pages_attempted),
                errors=len(result.errors),
                stopped_reason=stopped.value,
                duration_ms=result.duration_ms,
            )
        return result

    def _wait_before(self, url: str, rate_limit_ms: int) -> None:
        delay_ms = rate_limit_ms
        host = urlparse(url).hostname
        if self.risk_tracker is not None and host:
            delay_ms = max(delay_ms, self.risk_tracker.get_delay(host))
        if delay_ms > 0:
            self._sleep(delay_ms / 1000)

    def _report(self, url: str, page: PageFetchResult) -> None:
        # Cached results did not touch the host.
        if self.risk_tracker is None or page.from_cache:
            return
        host = urlparse(url).hostname
        if host:
            self.risk_tracker.record_outcome(host, page.outcome, page.http_status)
