"""Single-page fetcher: render a URL in a browser tab and classify the result.

``PageFetcher.fetch`` never raises for ordinary site problems.  Access
denied, missing pages, server errors, timeouts and placeholder pages all come
back as a :class:`~orbit_crawler.scraper.models.PageFetchResult` whose
``outcome`` says what happened.  Only infrastructure faults (the browser
cannot be launched, or died mid-fetch) propagate as exceptions.
"""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import replace
from typing import Any, Iterable, Optional
from urllib.parse import urlparse

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from orbit_crawler.cache import ScrapeCache, cache_key
from orbit_crawler.config import Settings, settings as default_settings
from orbit_crawler.db.fetch_cache import UrlFetchCache
from orbit_crawler.errors import BrowserUnavailableError
from orbit_crawler.logging import get_logger
from orbit_crawler.scraper.browser import BrowserSessionManager
from orbit_crawler.scraper.models import (
    FetchOptions,
    FetchOutcome,
    PageContent,
    PageFetchResult,
)

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# In-page scripts
# ---------------------------------------------------------------------------

_AUTO_SCROLL_JS = """
async ({ step, maxSteps, intervalMs }) => {
    await new Promise((resolve) => {
        let total = 0;
        let count = 0;
        const timer = setInterval(() => {
            const height = document.body ? document.body.scrollHeight : 0;
            window.scrollBy(0, step);
            total += step;
            count++;
            if (total >= height || count >= maxSteps) {
                clearInterval(timer);
                window.scrollTo(0, 0);
                resolve();
            }
        }, intervalMs);
    });
}
"""

_BODY_TEXT_JS = "() => (document.body ? document.body.innerText : '') || ''"

_JSON_LD_JS = """
() => Array.from(
    document.querySelectorAll('script[type="application/ld+json"]')
).map((s) => s.textContent || '')
"""

_PLATFORM_DATA_JS = """
(names) => {
    const found = {};
    for (const name of names) {
        let value = window;
        for (const part of name.split('.')) {
            value = value == null ? undefined : value[part];
        }
        if (value === undefined || value === null) continue;
        try {
            found[name] = JSON.parse(JSON.stringify(value));
        } catch (e) {
            // circular or non-serialisable globals are skipped
        }
    }
    return found;
}
"""

# Global script variables where storefronts and SPA frameworks embed data.
PLATFORM_GLOBALS: tuple[str, ...] = (
    "__NEXT_DATA__",
    "__NUXT__",
    "__INITIAL_STATE__",
    "__PRELOADED_STATE__",
    "__APOLLO_STATE__",
    "ShopifyAnalytics.meta",
)

_SCROLL_INTERVAL_MS = 200


def _blocked_message(url: str, status: int) -> str:
    host = urlparse(url).hostname or url
    return (
        f"Access denied by {host} (HTTP {status}). The site blocks automated "
        "visitors; try pasting the page text, uploading a document, or "
        "importing from a sitemap instead."
    )


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8", errors="replace")).hexdigest()


def parse_json_ld(blocks: Iterable[str]) -> list[Any]:
    """Parse JSON-LD script bodies, skipping invalid blocks.

    Top-level arrays are flattened so every item is one JSON-LD node.
    """
    items: list[Any] = []
    for raw in blocks:
        raw = (raw or "").strip()
        if not raw:
            continue
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug("json_ld_skipped", preview=raw[:80])
            continue
        if isinstance(data, list):
            items.extend(data)
        else:
            items.append(data)
    return items


class PageFetcher:
    """Render pages through a shared :class:`BrowserSessionManager`.

    Args:
        browser: The browser owner; one tab is opened per fetch.
        cache: Optional in-process cache; ok results are stored under
            :func:`~orbit_crawler.cache.cache_key` and returned on repeat
            fetches within the process.
        fingerprints: Optional persisted fingerprint store; every fetch is
            recorded and ok results get ``unchanged`` set from it.
        min_content_length: HTML shorter than this is ``no_content``.
        cfg: Settings used for any timing argument left as ``None``.
    """

    def __init__(
        self,
        browser: BrowserSessionManager,
        cache: Optional[ScrapeCache[PageFetchResult]] = None,
        fingerprints: Optional[UrlFetchCache] = None,
        min_content_length: Optional[int] = None,
        navigation_timeout_ms: Optional[int] = None,
        selector_timeout_ms: Optional[int] = None,
        settle_delay_ms: Optional[int] = None,
        post_scroll_delay_ms: Optional[int] = None,
        scroll_step_px: Optional[int] = None,
        max_scroll_steps: Optional[int] = None,
        cfg: Optional[Settings] = None,
    ) -> None:
        cfg = cfg or default_settings
        self.browser = browser
        self.cache = cache
        self.fingerprints = fingerprints
        self.min_content_length = (
            cfg.min_content_length if min_content_length is None else min_content_length
        )
        self.navigation_timeout_ms = navigation_timeout_ms or cfg.navigation_timeout_ms
        self.selector_timeout_ms = selector_timeout_ms or cfg.selector_timeout_ms
        self.settle_delay_ms = (
            cfg.settle_delay_ms if settle_delay_ms is None else settle_delay_ms
        )
        self.post_scroll_delay_ms = (
            cfg.post_scroll_delay_ms if post_scroll_delay_ms is None else post_scroll_delay_ms
        )
        self.scroll_step_px = scroll_step_px or cfg.scroll_step_px
        self.max_scroll_steps = max_scroll_steps or cfg.max_scroll_steps

    def default_options(self) -> FetchOptions:
        return FetchOptions(timeout_ms=self.navigation_timeout_ms)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def fetch(self, url: str, options: Optional[FetchOptions] = None) -> PageFetchResult:
        """Fetch *url* and return a classified :class:`PageFetchResult`.

        Raises:
            BrowserLaunchError: The browser could not be started.
            BrowserUnavailableError: The browser died before or during navigation.
        """
        opts = options or self.default_options()

        if opts.use_cache and self.cache is not None:
            cached = self.cache.get(cache_key(url))
            if cached is not None:
                logger.info("page_cache_hit", url=url)
                return replace(cached, requested_url=url, from_cache=True)

        logger.info("page_fetch_started", url=url, timeout_ms=opts.timeout_ms)
        with self.browser.page() as page:
            result = self._fetch_in_page(page, url, opts)

        self._remember(result)
        log = logger.info if result.is_ok else logger.warning
        log(
            "page_fetch_finished",
            url=url,
            final_url=result.final_url,
            outcome=result.outcome.value,
            http_status=result.http_status,
            html_length=len(result.html),
            detail=result.error_detail,
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _fetch_in_page(self, page: Page, url: str, opts: FetchOptions) -> PageFetchResult:
        try:
            response = page.goto(url, timeout=opts.timeout_ms, wait_until="networkidle")
        except PlaywrightError as exc:
            return self._navigation_failure(url, exc)

        # No response means a same-document navigation; status is unknown.
        status = response.status if response is not None else None
        final_url = page.url or url

        early = self._classify_status(url, final_url, status)
        if early is not None:
            return early

        try:
            self._settle(page, opts)
            content = self._extract(page, opts)
        except PlaywrightError as exc:
            return self._navigation_failure(url, exc, final_url=final_url, status=status)

        if len(content.html) < self.min_content_length:
            return PageFetchResult(
                requested_url=url,
                final_url=final_url,
                outcome=FetchOutcome.NO_CONTENT,
                error_detail=(
                    f"Page rendered only {len(content.html)} bytes of HTML "
                    f"(minimum {self.min_content_length}); likely a bot-protection "
                    "or placeholder page."
                ),
                http_status=status,
            )

        return PageFetchResult(
            requested_url=url,
            final_url=final_url,
            outcome=FetchOutcome.OK,
            http_status=status,
            content=content,
        )

    def _classify_status(
        self, url: str, final_url: str, status: Optional[int]
    ) -> Optional[PageFetchResult]:
        """Short-circuit result for error statuses, or ``None`` to keep going."""
        if status is None:
            return None
        if status in (401, 403):
            outcome, detail = FetchOutcome.BLOCKED, _blocked_message(final_url, status)
        elif status == 404:
            outcome, detail = FetchOutcome.NOT_FOUND, f"Page not found (HTTP {status})."
        elif status >= 500:
            outcome, detail = FetchOutcome.SERVER_ERROR, f"Server error (HTTP {status})."
        else:
            return None
        return PageFetchResult(
            requested_url=url,
            final_url=final_url,
            outcome=outcome,
            error_detail=detail,
            http_status=status,
        )

    def _settle(self, page: Page, opts: FetchOptions) -> None:
        if opts.wait_for_selector:
            try:
                page.wait_for_selector(opts.wait_for_selector, timeout=self.selector_timeout_ms)
            except PlaywrightTimeoutError:
                logger.info("selector_wait_timeout", selector=opts.wait_for_selector)

        if self.settle_delay_ms:
            page.wait_for_timeout(self.settle_delay_ms)

        if opts.scroll_page:
            page.evaluate(
                _AUTO_SCROLL_JS,
                {
                    "step": self.scroll_step_px,
                    "maxSteps": self.max_scroll_steps,
                    "intervalMs": _SCROLL_INTERVAL_MS,
                },
            )
            if self.post_scroll_delay_ms:
                page.wait_for_timeout(self.post_scroll_delay_ms)

    def _extract(self, page: Page, opts: FetchOptions) -> PageContent:
        html = page.content()
        title = page.title() or None
        text = page.evaluate(_BODY_TEXT_JS) or ""
        structured = parse_json_ld(page.evaluate(_JSON_LD_JS) or [])
        platform = page.evaluate(_PLATFORM_DATA_JS, list(PLATFORM_GLOBALS)) or {}

        screenshot = None
        if opts.capture_screenshot:
            screenshot = base64.b64encode(page.screenshot(full_page=False)).decode("ascii")

        return PageContent(
            html=html,
            rendered_text=text,
            title=title,
            content_hash=content_hash(text or html),
            structured_data=structured,
            platform_embedded_data=platform,
            screenshot_base64=screenshot,
        )

    def _navigation_failure(
        self,
        url: str,
        exc: PlaywrightError,
        final_url: Optional[str] = None,
        status: Optional[int] = None,
    ) -> PageFetchResult:
        if not self.browser.is_alive():
            raise BrowserUnavailableError(
                f"Browser died while fetching {url}: {exc}"
            ) from exc

        message = str(exc).strip() or exc.__class__.__name__
        is_timeout = isinstance(exc, PlaywrightTimeoutError) or "timeout" in message.lower()
        return PageFetchResult(
            requested_url=url,
            final_url=final_url or url,
            outcome=FetchOutcome.TIMEOUT if is_timeout else FetchOutcome.SERVER_ERROR,
            error_detail=message.splitlines()[0],
            http_status=status,
        )

    def _remember(self, result: PageFetchResult) -> None:
        """Update the fingerprint store and the in-process cache."""
        content = result.content
        if self.fingerprints is not None:
            if content is not None:
                result.unchanged = not self.fingerprints.has_changed(
                    result.requested_url, content.content_hash
                )
            self.fingerprints.record(
                result.requested_url,
                content.content_hash if content else None,
                len(content.html) if content else None,
                result.http_status,
            )
        if result.is_ok and self.cache is not None:
            self.cache.set(cache_key(result.requested_url), result)
