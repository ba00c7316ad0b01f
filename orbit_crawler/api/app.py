"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection and initialises the
schema, then builds the crawl engine around one shared
:class:`~orbit_crawler.scraper.browser.BrowserSessionManager`.  Playwright's
sync API is bound to the thread that started it, so every piece of browser
work is submitted to a single-worker executor (see
:func:`orbit_crawler.api.deps.run_browser_task`).
On shutdown the browser, the executor, the cache sweeper and the connection
are closed.

Routers
-------
    /ingest   - site ingestion and cache check
    /domains  - domain risk records
    /fetch    - single-page fetch
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Optional, Union

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orbit_crawler import __version__
from orbit_crawler.cache import make_site_ingestion_cache
from orbit_crawler.config import settings
from orbit_crawler.crawler import SiteCrawler
from orbit_crawler.db import get_connection, init_db
from orbit_crawler.db.fetch_cache import UrlFetchCache
from orbit_crawler.ingest.models import TileGenerator
from orbit_crawler.logging import ensure_logging_configured, get_logger
from orbit_crawler.risk import DomainRiskTracker
from orbit_crawler.scraper.browser import BrowserSessionManager
from orbit_crawler.scraper.fetcher import PageFetcher

from orbit_crawler.api.routers import domains as domains_router
from orbit_crawler.api.routers import fetch as fetch_router
from orbit_crawler.api.routers import ingest as ingest_router

logger = get_logger(__name__)

# Builds the page fetcher from (conn, browser); tests inject a fake.
FetcherFactory = Callable[[Any, BrowserSessionManager], PageFetcher]


def default_fetcher_factory(conn, browser: BrowserSessionManager) -> PageFetcher:
    return PageFetcher(
        browser,
        cache=make_site_ingestion_cache(),
        fingerprints=UrlFetchCache(conn, ttl_hours=settings.fetch_cache_ttl_hours),
    )


def create_app(
    db_path: Optional[Union[Path, str]] = None,
    fetcher_factory: FetcherFactory = default_fetcher_factory,
    tile_generator: Optional[TileGenerator] = None,
    browser: Optional[BrowserSessionManager] = None,
) -> FastAPI:
    """Return a fully-configured FastAPI application instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        ensure_logging_configured()
        conn = get_connection(db_path)
        init_db(conn)
        browser_manager = browser or BrowserSessionManager()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="browser")
        fetcher = fetcher_factory(conn, browser_manager)
        risk_tracker = DomainRiskTracker(conn)

        app.state.db = conn
        app.state.browser = browser_manager
        app.state.browser_executor = executor
        app.state.fetcher = fetcher
        app.state.risk_tracker = risk_tracker
        app.state.crawler = SiteCrawler(fetcher, risk_tracker)
        app.state.tile_generator = tile_generator
        logger.info("api_started", db_path=str(db_path or settings.db_path))
        try:
            yield
        finally:
            # The browser must be closed on the thread that started it.
            executor.submit(browser_manager.close).result()
            executor.shutdown(wait=True)
            cache = getattr(fetcher, "cache", None)
            if cache is not None:
                cache.close()
            conn.close()
            logger.info("api_stopped")

    app = FastAPI(
        title="Orbit Crawler API",
        description=(
            "REST interface for the Orbit ingestion crawl engine. Exposes "
            "site ingestion with a freshness cache, single-page fetches and "
            "per-domain risk records."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(ingest_router.router, prefix="/ingest", tags=["ingest"])
    app.include_router(domains_router.router, prefix="/domains", tags=["domains"])
    app.include_router(fetch_router.router, prefix="/fetch", tags=["fetch"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn orbit_crawler.api.app:app
app = create_app()
