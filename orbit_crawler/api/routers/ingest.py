"""Site ingestion endpoints.

Routes
------
POST /ingest                 Body: {"url": "...", "force": false}  → ingest_url
GET  /ingest/cache?url=...   → freshness check for a URL
GET  /ingest/{orbit_id}      → stored ingestion result
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response
from pydantic import BaseModel, Field

from orbit_crawler.api.deps import run_browser_task
from orbit_crawler.config import settings
from orbit_crawler.crawler import CrawlConfig
from orbit_crawler.errors import CrawlerError, IngestionNotFoundError
from orbit_crawler.ingest.pipeline import ingest_url
from orbit_crawler.ingest.store import check_ingestion_cache, load_ingestion

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class IngestRequest(BaseModel):
    url: str = Field(min_length=1)
    force: bool = False
    discover: bool = False
    max_pages: Optional[int] = Field(default=None, ge=1, le=50)


class CacheCheckResponse(BaseModel):
    exists: bool
    within_cache_period: bool
    orbit_id: Optional[str] = None
    scanned_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
async def ingest_endpoint(
    body: IngestRequest, request: Request, response: Response
) -> dict[str, Any]:
    """Crawl a site and store its pages and tiles.

    A result younger than the freshness window is returned as-is (status
    200) unless ``force`` is set.
    """
    state = request.app.state
    conn = state.db

    if not body.force:
        check = check_ingestion_cache(conn, body.url, settings.ingest_freshness_hours)
        if check.within_cache_period and check.orbit_id:
            response.status_code = 200
            return load_ingestion(conn, check.orbit_id).to_dict()

    overrides: dict[str, Any] = {}
    if body.max_pages is not None:
        overrides["max_pages"] = body.max_pages
    config = CrawlConfig.from_settings(**overrides)

    try:
        result = await run_browser_task(
            request,
            lambda: ingest_url(
                conn,
                body.url,
                state.crawler,
                tile_generator=state.tile_generator,
                config=config,
                discover=body.discover,
            ),
        )
    except CrawlerError as exc:
        raise HTTPException(status_code=502, detail=f"Ingestion failed: {exc}") from exc
    return result.to_dict()


@router.get("/cache", response_model=CacheCheckResponse)
def cache_check_endpoint(
    request: Request,
    url: str = Query(..., min_length=1),
    freshness_hours: Optional[float] = Query(default=None, gt=0),
) -> dict[str, Any]:
    """Report whether a fresh ingestion exists for *url*."""
    hours = freshness_hours or settings.ingest_freshness_hours
    return check_ingestion_cache(request.app.state.db, url, hours).to_dict()


@router.get("/{orbit_id}")
def get_ingestion_endpoint(orbit_id: str, request: Request) -> dict[str, Any]:
    """Return a stored ingestion result."""
    try:
        return load_ingestion(request.app.state.db, orbit_id).to_dict()
    except IngestionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
