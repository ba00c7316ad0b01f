"""In-process TTL cache for scraped site content.

Reduces redundant fetches within one process lifetime.  Entries expire after
a TTL (24 hours by default) and, when the cache is full, the entry with the
fewest hits is evicted.  A daemon thread sweeps expired entries every hour
regardless of access.

Instances are constructed explicitly and injected where needed::

    cache = make_site_ingestion_cache()
    fetcher = PageFetcher(browser, cache=cache)
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar
from urllib.parse import urlparse

from orbit_crawler.config import Settings, settings as default_settings
from orbit_crawler.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ScrapeCacheEntry(Generic[T]):
    data: T
    created_at: float
    expires_at: float
    hit_count: int = 0


def cache_key(url: str) -> str:
    """Normalise *url* into a cache key.

    Host is lower-cased with ``www.`` removed, the path keeps its case but
    loses a trailing slash, the query string is kept and the scheme is
    ignored, so ``https://www.Example.com/Path/`` and
    ``http://example.com/Path`` share one key.
    """
    try:
        parsed = urlparse(url if "://" in url else f"https://{url}")
        host = (parsed.hostname or "").lower()
    except ValueError:
        host = ""
    if not host:
        key = url.strip().lower()
        if key.startswith("www."):
            key = key[4:]
        return key.rstrip("/")

    if host.startswith("www."):
        host = host[4:]
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{host}{path}{query}"


class ScrapeCache(Generic[T]):
    """Thread-safe TTL cache with least-hit eviction.

    Args:
        ttl_s: Default time-to-live for new entries, in seconds.
        max_size: Entry count at which the least-hit entry is evicted.
        sweep_interval_s: Seconds between background expiry sweeps; ``None``
            disables the sweeper thread.
        clock: Time source (seconds); injectable for tests.
    """

    def __init__(
        self,
        ttl_s: float = 24 * 60 * 60,
        max_size: int = 500,
        sweep_interval_s: Optional[float] = 60 * 60,
        clock: Callable[[], float] = time.time,
        name: str = "scrape_cache",
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_s = ttl_s
        self.max_size = max_size
        self.name = name
        self._clock = clock
        self._entries: dict[str, ScrapeCacheEntry[T]] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if sweep_interval_s:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(sweep_interval_s,),
                name=f"{name}-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or ``None`` when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self._misses += 1
                return None
            entry.hit_count += 1
            self._hits += 1
            return entry.data

    def set(self, key: str, data: T, ttl_s: Optional[float] = None) -> None:
        """Store *data* under *key* for *ttl_s* seconds (default: ``self.ttl_s``)."""
        now = self._clock()
        ttl = self.ttl_s if ttl_s is None else ttl_s
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                self._evict_least_hit()
            self._entries[key] = ScrapeCacheEntry(
                data=data, created_at=now, expires_at=now + ttl
            )

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def sweep(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("cache_swept", cache=self.name, removed=len(expired))
        return len(expired)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 2) if total else 0.0,
                "ttl_s": self.ttl_s,
            }

    def close(self) -> None:
        """Stop the background sweeper (entries are kept)."""
        self._stop.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evict_least_hit(self) -> None:
        # min() keeps the first of equal counts, i.e. the oldest insertion.
        victim = min(self._entries, key=lambda k: self._entries[k].hit_count)
        del self._entries[victim]
        logger.debug("cache_evicted", cache=self.name, key=victim)

    def _sweep_loop(self, interval_s: float) -> None:
        while not self._stop.wait(interval_s):
            self.sweep()


def make_site_ingestion_cache(cfg: Optional[Settings] = None) -> ScrapeCache[Any]:
    """Cache for fetched site pages (24 h, 500 entries by default)."""
    cfg = cfg or default_settings
    return ScrapeCache(
        ttl_s=cfg.cache_ttl_hours * 3600,
        max_size=cfg.cache_max_size,
        sweep_interval_s=cfg.cache_sweep_interval_s,
        name="site_ingestion",
    )


def make_site_identity_cache(cfg: Optional[Settings] = None) -> ScrapeCache[Any]:
    """Cache for site identity data, which changes less often (48 h, 1000 entries)."""
    cfg = cfg or default_settings
    return ScrapeCache(
        ttl_s=cfg.identity_cache_ttl_hours * 3600,
        max_size=cfg.identity_cache_max_size,
        sweep_interval_s=cfg.cache_sweep_interval_s,
        name="site_identity",
    )
