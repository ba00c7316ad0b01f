"""Wiring of the crawl engine for one CLI invocation.

Every command that touches the browser opens the engine through
:func:`open_engine`, which closes the browser, cache sweeper and DB
connection when the command finishes, including on SIGTERM.
"""

from __future__ import annotations

import signal
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from orbit_crawler.cache import ScrapeCache
from orbit_crawler.config import settings
from orbit_crawler.crawler import SiteCrawler
from orbit_crawler.db import get_connection, init_db
from orbit_crawler.db.fetch_cache import UrlFetchCache
from orbit_crawler.logging import get_logger
from orbit_crawler.risk import DomainRiskTracker
from orbit_crawler.scraper.browser import BrowserSessionManager
from orbit_crawler.scraper.fetcher import PageFetcher

logger = get_logger(__name__)


@dataclass
class Engine:
    conn: sqlite3.Connection
    browser: BrowserSessionManager
    cache: ScrapeCache
    fetcher: PageFetcher
    risk_tracker: DomainRiskTracker
    crawler: SiteCrawler


def _exit_on_signal(signum: int, frame) -> None:
    logger.info("shutdown_signal", signal=signum)
    raise SystemExit(128 + signum)


@contextmanager
def _sigterm_exits() -> Iterator[None]:
    """Turn SIGTERM into ``SystemExit`` so ``finally`` blocks run.

    SIGINT already raises ``KeyboardInterrupt``.  Handlers can only be set
    from the main thread; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGTERM, _exit_on_signal)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


@contextmanager
def open_db() -> Iterator[sqlite3.Connection]:
    """Open the workspace DB with the schema applied, closing it afterwards."""
    settings.ensure_workspace()
    conn = get_connection()
    init_db(conn)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def open_engine() -> Iterator[Engine]:
    with open_db() as conn, _sigterm_exits():
        # A CLI process is short-lived; no background sweeper.
        cache: ScrapeCache = ScrapeCache(
            ttl_s=settings.cache_ttl_hours * 3600,
            max_size=settings.cache_max_size,
            sweep_interval_s=None,
            name="site_ingestion",
        )
        browser = BrowserSessionManager()
        fetcher = PageFetcher(
            browser,
            cache=cache,
            fingerprints=UrlFetchCache(conn, ttl_hours=settings.fetch_cache_ttl_hours),
        )
        risk_tracker = DomainRiskTracker(conn)
        try:
            yield Engine(
                conn=conn,
                browser=browser,
                cache=cache,
                fetcher=fetcher,
                risk_tracker=risk_tracker,
                crawler=SiteCrawler(fetcher, risk_tracker),
            )
        finally:
            browser.close()
