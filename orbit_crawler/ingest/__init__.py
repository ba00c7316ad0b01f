"""Ingestion package: crawl a site and persist the signals for tile generation.

The pipeline lives in :mod:`orbit_crawler.ingest.pipeline` and is imported
from there directly.
"""

from orbit_crawler.ingest.models import (
    CrawlPage,
    CrawlReport,
    IngestionCacheCheck,
    OrbitIngestResult,
    TileGenerator,
)
from orbit_crawler.ingest.store import (
    check_ingestion_cache,
    delete_ingestion,
    find_latest_ingestion,
    list_ingestions,
    list_runs,
    load_ingestion,
    record_run,
    save_ingestion,
)

__all__ = [
    "CrawlPage",
    "CrawlReport",
    "IngestionCacheCheck",
    "OrbitIngestResult",
    "TileGenerator",
    "check_ingestion_cache",
    "delete_ingestion",
    "find_latest_ingestion",
    "list_ingestions",
    "list_runs",
    "load_ingestion",
    "record_run",
    "save_ingestion",
]
