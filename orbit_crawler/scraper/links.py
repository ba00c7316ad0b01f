"""Link discovery and URL normalisation for the site crawler.

Discovery is a regex over raw HTML rather than a DOM walk.  It lives behind
:func:`discover_links` so a DOM-based extractor can replace it without the
crawler noticing.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Pattern, Sequence, Union
from urllib.parse import urljoin, urlparse, urlunparse

PatternLike = Union[str, Pattern[str]]

_ANCHOR_HREF = re.compile(r'<a\b[^>]*?\bhref\s*=\s*["\']([^"\']*)["\']', re.IGNORECASE)
_SKIP_SCHEMES = ("javascript:", "mailto:", "tel:", "data:", "#")

# Pages that usually describe a business.
DEFAULT_LINK_PATTERNS: list[Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"about",
        r"services",
        r"products",
        r"team",
        r"contact",
        r"pricing",
        r"features",
        r"solutions",
        r"articles",
        r"blog",
        r"series",
        r"creators",
        r"organisations",
        r"portfolio",
        r"work",
        r"case-stud",
    )
]

# Menu / catalogue pages for food and retail sites.
MENU_LINK_PATTERNS: list[Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"menu",
        r"food",
        r"drink",
        r"order",
        r"dishes",
        r"catalog",
        r"shop",
        r"products?",
        r"collections",
    )
]

CANDIDATE_PATHS: tuple[str, ...] = (
    "/",
    "/about", "/about-us",
    "/services", "/what-we-do",
    "/pricing", "/fees", "/prices",
    "/contact", "/contact-us",
    "/faq", "/faqs",
    "/testimonials", "/reviews",
    "/team", "/our-team",
    "/blog",
)


def compile_patterns(patterns: Optional[Iterable[PatternLike]]) -> list[Pattern[str]]:
    """Compile string patterns case-insensitively; compiled ones pass through."""
    compiled: list[Pattern[str]] = []
    for p in patterns or ():
        compiled.append(re.compile(p, re.IGNORECASE) if isinstance(p, str) else p)
    return compiled


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` when *url* has no scheme."""
    url = url.strip()
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url):
        url = f"https://{url}"
    return url


def strip_www(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def is_same_site(url: str, base_url: str) -> bool:
    """``True`` when both URLs share a host, treating ``www.`` as equivalent."""
    try:
        a = urlparse(url).hostname
        b = urlparse(base_url).hostname
    except ValueError:
        return False
    if not a or not b:
        return False
    return strip_www(a) == strip_www(b)


def normalize_url(url: str) -> str:
    """Visited-set key: scheme, host and path only, without a trailing slash.

    Query string and fragment are dropped so the same page reached through
    different links is only fetched once.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url.rstrip("/")
    path = parsed.path.rstrip("/")
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, "", "", ""))


def generate_candidate_urls(base_url: str, paths: Sequence[str] = CANDIDATE_PATHS) -> list[str]:
    """Build the explicit candidate list of common business pages on *base_url*'s origin."""
    parsed = urlparse(ensure_scheme(base_url))
    origin = f"{parsed.scheme}://{parsed.netloc}"
    candidates: list[str] = []
    for path in paths:
        url = f"{origin}{path}"
        if url not in candidates:
            candidates.append(url)
    return candidates


def extract_hrefs(html: str) -> list[str]:
    """Return raw anchor ``href`` values in document order (duplicates kept)."""
    return [m.group(1).strip() for m in _ANCHOR_HREF.finditer(html)]


def discover_links(
    html: str,
    base_url: str,
    patterns: Optional[Iterable[PatternLike]] = None,
    max_links: int = 10,
    same_domain_only: bool = True,
) -> list[str]:
    """Return crawlable links from *html* that match a topic pattern.

    Args:
        html: Raw page HTML.
        base_url: URL the HTML was served from; relative hrefs resolve
            against it and it defines the site for the same-domain filter.
        patterns: Regexes tested against the link *path*.  A link is kept
            when any pattern matches.  ``None`` or empty keeps every link.
        max_links: Cap on links returned for one page.
        same_domain_only: Drop links to other hosts (``www.`` is ignored).

    Returns:
        Absolute URLs without fragments, deduplicated in document order.
    """
    compiled = compile_patterns(patterns)
    found: list[str] = []
    seen: set[str] = set()

    for href in extract_hrefs(html):
        if len(found) >= max_links:
            break
        if not href or href.lower().startswith(_SKIP_SCHEMES):
            continue
        try:
            absolute = urljoin(base_url, href)
            parsed = urlparse(absolute)
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            continue
        if same_domain_only and not is_same_site(absolute, base_url):
            continue
        if compiled and not any(p.search(parsed.path) for p in compiled):
            continue
        absolute = urlunparse(parsed._replace(fragment=""))
        if absolute in seen:
            continue
        seen.add(absolute)
        found.append(absolute)

    return found
