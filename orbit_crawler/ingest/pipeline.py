"""Site ingestion pipeline: crawl → signal extraction → tiles → persist.

Every ingestion produces a stored :class:`OrbitIngestResult` and an
``ingestion_runs`` row, even when the crawl fetched nothing.
"""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from time import time
from typing import Optional
from urllib.parse import urlparse
from uuid import uuid4

from orbit_crawler.crawler import CrawlConfig, CrawlResult, SiteCrawler
from orbit_crawler.ingest.models import (
    CrawlError,
    CrawlPage,
    CrawlReport,
    OrbitIngestResult,
    TileGenerator,
    utc_now_iso,
)
from orbit_crawler.ingest.store import find_latest_ingestion, record_run, save_ingestion
from orbit_crawler.logging import LogContext, get_logger
from orbit_crawler.scraper.extractor import to_crawl_page
from orbit_crawler.scraper.links import ensure_scheme, generate_candidate_urls
from orbit_crawler.scraper.models import FetchOutcome

logger = get_logger(__name__)

_FRICTION_OUTCOMES = (FetchOutcome.BLOCKED, FetchOutcome.NO_CONTENT)


def new_orbit_id() -> str:
    return f"orbit_{uuid4().hex[:12]}"


def build_crawl_report(crawl: CrawlResult) -> CrawlReport:
    """Summarise a crawl for storage alongside its pages."""
    attempted = len(crawl.pages_attempted)
    succeeded = len(crawl.pages)
    return CrawlReport(
        pages_attempted=attempted,
        pages_succeeded=succeeded,
        errors=[CrawlError(url=e.url, error=e.detail or e.outcome.value) for e in crawl.errors],
        scan_timestamp=utc_now_iso(),
        coverage_score=succeeded / attempted if attempted else 0.0,
        crawl_duration_ms=crawl.duration_ms,
        stopped_reason=crawl.stopped_reason.value,
    )


def _run_outcome(crawl: CrawlResult) -> str:
    if not crawl.pages:
        if any(e.outcome is FetchOutcome.BLOCKED for e in crawl.errors):
            return "blocked"
        return "error"
    return "partial" if crawl.errors else "success"


def _reusable_tiles(
    conn: sqlite3.Connection, url: str, pages: list[CrawlPage]
) -> Optional[list[dict]]:
    """Previous tiles for *url* when every page is byte-for-byte unchanged."""
    if not pages or not all(p.unchanged for p in pages):
        return None
    previous = find_latest_ingestion(conn, url)
    if previous is None or not previous.tiles:
        return None
    return previous.tiles


def ingest_url(
    conn: sqlite3.Connection,
    input_url: str,
    crawler: SiteCrawler,
    tile_generator: Optional[TileGenerator] = None,
    orbit_id: Optional[str] = None,
    config: Optional[CrawlConfig] = None,
    discover: bool = False,
) -> OrbitIngestResult:
    """Crawl *input_url*, build its signals and tiles, and persist the result.

    By default the common business pages of the site are tried as an
    explicit candidate list; ``discover=True`` follows links from the home
    page instead.

    A crawl that fetches nothing is not an error: the result has no pages
    and its report says why.

    Raises:
        BrowserLaunchError / BrowserUnavailableError: The browser failed.
            An ``error`` run is recorded before re-raising.
    """
    url = ensure_scheme(input_url)
    orbit_id = orbit_id or new_orbit_id()
    trace_id = uuid4().hex
    started_at = int(time())
    host = urlparse(url).hostname or ""
    risk = crawler.risk_tracker
    mode = risk.recommended_mode(host) if risk is not None and host else "standard"

    config = config or CrawlConfig.from_settings()
    if not discover and config.candidate_urls is None:
        # Alias paths (/pricing, /fees, /prices) mostly 404; walk the whole list.
        candidates = generate_candidate_urls(url)
        config = replace(
            config, candidate_urls=candidates, stop_after_empty_pages=len(candidates)
        )
    pages_planned = (
        len(config.candidate_urls) if config.candidate_urls is not None else config.max_pages
    )

    with LogContext(orbit_id=orbit_id, trace_id=trace_id):
        logger.info("ingestion_started", url=url, mode=mode, discover=discover)
        try:
            crawl = crawler.crawl(url, config)
            pages = [to_crawl_page(p) for p in crawl.pages]
            tiles = _reusable_tiles(conn, url, pages)
            if tiles is not None:
                logger.info("tiles_reused", pages=len(pages))
            elif tile_generator is not None:
                tiles = tile_generator(pages, url)
            else:
                tiles = []
        except Exception as exc:
            logger.error("ingestion_failed", url=url, error=str(exc))
            record_run(
                conn,
                orbit_id=orbit_id,
                trace_id=trace_id,
                mode=mode,
                outcome="error",
                started_at=started_at,
                pages_planned=pages_planned,
                completed_at=int(time()),
                duration_ms=(int(time()) - started_at) * 1000,
                last_error=str(exc),
            )
            raise

        result = OrbitIngestResult(
            orbit_id=orbit_id,
            input_url=url,
            scanned_at=utc_now_iso(),
            pages=pages,
            tiles=tiles,
            crawl_report=build_crawl_report(crawl),
        )
        save_ingestion(conn, result)

        cache_hits = sum(1 for p in crawl.pages if p.from_cache)
        has_cache = getattr(crawler.fetcher, "cache", None) is not None
        record = risk.get_record(host) if risk is not None and host else None
        outcome = _run_outcome(crawl)
        record_run(
            conn,
            orbit_id=orbit_id,
            trace_id=trace_id,
            mode=mode,
            outcome=outcome,
            started_at=started_at,
            pages_planned=pages_planned,
            pages_fetched=len(crawl.pages_attempted),
            pages_used=len(pages),
            cache_hits=cache_hits,
            cache_misses=len(crawl.pages_attempted) - cache_hits,
            cache_writes=len(crawl.pages) - cache_hits if has_cache else 0,
            friction_signals=sorted(
                {e.outcome.value for e in crawl.errors if e.outcome in _FRICTION_OUTCOMES}
            ),
            domain_risk_score=record.risk_score if record else None,
            completed_at=int(time()),
            duration_ms=crawl.duration_ms,
            last_error=crawl.errors[-1].detail if crawl.errors else None,
        )
        logger.info(
            "ingestion_finished",
            url=url,
            outcome=outcome,
            pages=len(pages),
            tiles=len(tiles),
        )
    return result
