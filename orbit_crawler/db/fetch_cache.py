"""Persisted per-URL fetch fingerprints (the ``url_fetch_cache`` table).

This is change detection, not fetch avoidance: a page is still fetched over
the network, and the stored hash tells the caller whether the expensive
downstream extraction needs to run again.
"""

from __future__ import annotations

import sqlite3
from time import time
from typing import Optional
from urllib.parse import urlparse

from orbit_crawler.db.models import UrlFetchCacheEntry


def _row_to_entry(row: sqlite3.Row) -> UrlFetchCacheEntry:
    return UrlFetchCacheEntry(
        url=row["url"],
        hostname=row["hostname"],
        content_hash=row["content_hash"],
        content_length=row["content_length"],
        last_http_status=row["last_http_status"],
        fetched_at=row["fetched_at"],
        expires_at=row["expires_at"],
        fetch_count=row["fetch_count"],
    )


def get_entry(conn: sqlite3.Connection, url: str) -> Optional[UrlFetchCacheEntry]:
    """Fetch the fingerprint stored for the exact *url*, or ``None``."""
    row = conn.execute(
        "SELECT * FROM url_fetch_cache WHERE url = ?", (url,)
    ).fetchone()
    return _row_to_entry(row) if row else None


def record_fetch(
    conn: sqlite3.Connection,
    url: str,
    content_hash: Optional[str],
    content_length: Optional[int],
    http_status: Optional[int],
    ttl_hours: float = 24,
) -> UrlFetchCacheEntry:
    """Upsert the fingerprint for *url* and bump its ``fetch_count``.

    A ``None`` *content_hash* (failed fetch) keeps the previously stored hash
    so one bad fetch does not erase the last known good fingerprint.
    """
    hostname = (urlparse(url).hostname or "").lower()
    if not hostname:
        raise ValueError(f"Cannot record fetch for URL without a host: {url!r}")
    now = int(time())
    expires_at = now + int(ttl_hours * 3600)

    with conn:
        conn.execute(
            """
            INSERT INTO url_fetch_cache
                (url, hostname, content_hash, content_length, last_http_status,
                 fetched_at, expires_at, fetch_count)
            VALUES (?, ?, ?, ?, ?, ?, ?, 1)
            ON CONFLICT(url) DO UPDATE SET
                content_hash = COALESCE(excluded.content_hash, url_fetch_cache.content_hash),
                content_length = COALESCE(excluded.content_length, url_fetch_cache.content_length),
                last_http_status = excluded.last_http_status,
                fetched_at = excluded.fetched_at,
                expires_at = excluded.expires_at,
                fetch_count = url_fetch_cache.fetch_count + 1
            """,
            (url, hostname, content_hash, content_length, http_status, now, expires_at),
        )

    return get_entry(conn, url)  # type: ignore[return-value]


def has_changed(conn: sqlite3.Connection, url: str, content_hash: str) -> bool:
    """Return ``True`` unless the stored hash for *url* equals *content_hash*."""
    entry = get_entry(conn, url)
    if entry is None or entry.content_hash is None:
        return True
    return entry.content_hash != content_hash


def purge_expired(conn: sqlite3.Connection, now: Optional[int] = None) -> int:
    """Delete expired fingerprints and return how many rows were removed."""
    cutoff = int(time()) if now is None else now
    with conn:
        cursor = conn.execute(
            "DELETE FROM url_fetch_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (cutoff,),
        )
    return cursor.rowcount


class UrlFetchCache:
    """The fingerprint functions above bound to one connection.

    Injected into :class:`~orbit_crawler.scraper.fetcher.PageFetcher`.
    """

    def __init__(self, conn: sqlite3.Connection, ttl_hours: float = 24) -> None:
        self.conn = conn
        self.ttl_hours = ttl_hours

    def get(self, url: str) -> Optional[UrlFetchCacheEntry]:
        return get_entry(self.conn, url)

    def record(
        self,
        url: str,
        content_hash: Optional[str],
        content_length: Optional[int],
        http_status: Optional[int],
    ) -> UrlFetchCacheEntry:
        return record_fetch(
            self.conn, url, content_hash, content_length, http_status, self.ttl_hours
        )

    def has_changed(self, url: str, content_hash: str) -> bool:
        return has_changed(self.conn, url, content_hash)
