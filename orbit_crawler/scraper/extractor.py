"""Page signal extraction: turns a fetched page into a :class:`CrawlPage`."""

from __future__ import annotations

import html as html_lib
import re
from collections import Counter
from typing import List, Optional
from urllib.parse import urlparse

import trafilatura

from orbit_crawler.ingest.models import CrawlPage
from orbit_crawler.scraper.models import PageFetchResult

_TITLE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_HEADING = re.compile(r"<h[1-3][^>]*>([^<]+)</h[1-3]>", re.IGNORECASE)
_LIST_ITEM = re.compile(r"<li[^>]*>([^<]+)</li>", re.IGNORECASE)
_SENTENCE_END = re.compile(r"[.!?]+")

MAX_BULLETS = 50
MAX_EXCERPTS = 20
MAX_KEY_PHRASES = 20


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _clean(fragment: str) -> str:
    return " ".join(html_lib.unescape(fragment).split())


def _bs4_fallback(html: str) -> str:
    """Extract readable text using BeautifulSoup ``<main>``/``<article>`` heuristics."""
    from bs4 import BeautifulSoup  # noqa: PLC0415

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header"]):
        tag.decompose()
    container = soup.find("main") or soup.find("article") or soup.body
    if container is None:
        return soup.get_text(separator=" ", strip=True)
    return container.get_text(separator=" ", strip=True)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_title(html: str) -> str:
    """Return the text of the first ``<title>`` tag, or empty string."""
    match = _TITLE.search(html)
    return _clean(match.group(1)) if match else ""


def extract_headings(html: str) -> List[str]:
    """Plain-text ``h1``-``h3`` headings between 3 and 199 characters."""
    headings = []
    for m in _HEADING.finditer(html):
        text = _clean(m.group(1))
        if 2 < len(text) < 200:
            headings.append(text)
    return headings


def extract_bullets(html: str) -> List[str]:
    """Plain-text list items between 6 and 299 characters, at most 50."""
    bullets = []
    for m in _LIST_ITEM.finditer(html):
        text = _clean(m.group(1))
        if 5 < len(text) < 300:
            bullets.append(text)
            if len(bullets) >= MAX_BULLETS:
                break
    return bullets


def extract_readable_text(html: str, url: Optional[str] = None) -> str:
    """Main readable text of *html*.

    Tries ``trafilatura`` first and falls back to a BeautifulSoup heuristic
    when it returns nothing (highly dynamic or minimal pages).
    """
    text: str | None = trafilatura.extract(
        html,
        include_links=False,
        include_images=False,
        include_tables=True,
        no_fallback=False,
        url=url,
    )
    if not text:
        text = _bs4_fallback(html)
    return text or ""


def extract_excerpts(text: str) -> List[str]:
    """Quotable sentences of 51 to 249 characters, at most 20."""
    excerpts = []
    for sentence in _SENTENCE_END.split(text):
        sentence = " ".join(sentence.split())
        if 50 < len(sentence) < 250:
            excerpts.append(sentence + ".")
            if len(excerpts) >= MAX_EXCERPTS:
                break
    return excerpts


def extract_key_phrases(text: str) -> List[str]:
    """Word bigrams that occur at least twice, most frequent first."""
    words = text.lower().split()
    counts: Counter[str] = Counter(
        bigram
        for bigram in (f"{a} {b}" for a, b in zip(words, words[1:]))
        if 5 < len(bigram) < 50
    )
    # most_common keeps first-seen order among equal counts.
    return [p for p, n in counts.most_common() if n >= 2][:MAX_KEY_PHRASES]


def classify_page_type(url: str, title: Optional[str]) -> str:
    """Guess the role of a page on a business site from its URL and title."""
    url_lower = url.lower()
    title_lower = (title or "").lower()

    if "/about" in url_lower or "about" in title_lower:
        return "about"
    if "/team" in url_lower or "team" in title_lower:
        return "team"
    if "/faq" in url_lower or "faq" in title_lower:
        return "faq"
    if "/contact" in url_lower or "contact" in title_lower:
        return "contact"
    if "/testimonial" in url_lower or "/review" in url_lower:
        return "testimonials"
    if "/service" in url_lower or "/what-we-do" in url_lower:
        return "services"
    if "/pricing" in url_lower or "/price" in url_lower or "/fee" in url_lower:
        return "pricing"
    if urlparse(url).path in ("", "/"):
        return "home"
    return "other"


def to_crawl_page(result: PageFetchResult) -> CrawlPage:
    """Build the :class:`CrawlPage` signal record for one fetch result.

    Failed fetches produce a page with empty signals and ``error`` set.
    """
    html = result.html
    title = result.title or extract_title(html) or None
    text = result.rendered_text or (extract_readable_text(html, result.final_url) if html else "")

    return CrawlPage(
        url=result.requested_url,
        final_url=result.final_url,
        title=title,
        page_type=classify_page_type(result.requested_url, title),
        headings=extract_headings(html),
        bullets=extract_bullets(html),
        key_phrases=extract_key_phrases(text),
        excerpts=extract_excerpts(text),
        structured_data=list(result.structured_data),
        platform_embedded_data=dict(result.platform_embedded_data),
        crawl_status=result.outcome,
        error=result.error_detail,
        scanned_at=result.fetched_at.isoformat(),
        unchanged=result.unchanged,
    )
