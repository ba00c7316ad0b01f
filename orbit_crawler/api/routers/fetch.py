"""Single-page fetch endpoint.

Routes
------
POST /fetch    Body: {"url": "https://..."}    → PageFetcher.fetch
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from orbit_crawler.api.deps import run_browser_task
from orbit_crawler.errors import CrawlerError
from orbit_crawler.scraper.links import ensure_scheme
from orbit_crawler.scraper.models import FetchOptions

router = APIRouter()


class FetchRequest(BaseModel):
    url: str = Field(min_length=1)
    wait_for_selector: Optional[str] = None
    scroll_page: bool = True
    capture_screenshot: bool = False
    use_cache: bool = True
    include_html: bool = False


@router.post("")
async def fetch_endpoint(body: FetchRequest, request: Request) -> dict[str, Any]:
    """Render one page and return its classified result.

    Site problems (blocked, not found, timeouts) are a normal 200 response
    with the matching ``outcome``; only browser failures return 502.
    """
    fetcher = request.app.state.fetcher
    options = FetchOptions(
        timeout_ms=fetcher.navigation_timeout_ms,
        wait_for_selector=body.wait_for_selector,
        scroll_page=body.scroll_page,
        capture_screenshot=body.capture_screenshot,
        use_cache=body.use_cache,
    )
    try:
        result = await run_browser_task(
            request, fetcher.fetch, ensure_scheme(body.url), options
        )
    except CrawlerError as exc:
        raise HTTPException(status_code=502, detail=f"Fetch failed: {exc}") from exc
    return result.to_dict(include_html=body.include_html)
