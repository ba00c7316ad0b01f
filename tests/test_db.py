"""Database layer tests: connection, schema and the URL fetch fingerprint table.

All tests use an in-memory SQLite database, so nothing is written to the
workspace directory.
"""

from __future__ import annotations

import sqlite3

import pytest

from orbit_crawler.db import fetch_cache, migrations
from orbit_crawler.db.connection import get_connection
from orbit_crawler.db.migrations import current_version, init_db
from orbit_crawler.db.models import UrlFetchCacheEntry


# ---------------------------------------------------------------------------
# connection / init
# ---------------------------------------------------------------------------

class TestConnection:
    def test_row_factory_is_row(self, conn: sqlite3.Connection) -> None:
        assert conn.row_factory is sqlite3.Row

    def test_foreign_keys_enabled(self, conn: sqlite3.Connection) -> None:
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_file_database_creates_parent_directory(self, tmp_path) -> None:
        path = tmp_path / "nested" / "dir" / "crawler.db"
        connection = get_connection(path)
        init_db(connection)
        connection.close()
        assert path.exists()


class TestInitDb:
    @pytest.mark.parametrize(
        "table",
        ["domain_risk", "url_fetch_cache", "orbit_ingestions", "ingestion_runs", "schema_version"],
    )
    def test_tables_exist(self, conn: sqlite3.Connection, table: str) -> None:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        ).fetchone()
        assert row is not None

    def test_idempotent(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            "INSERT INTO domain_risk (hostname, created_at, updated_at) VALUES ('a.test', 1, 1)"
        )
        conn.commit()
        init_db(conn)
        init_db(conn)
        assert conn.execute("SELECT COUNT(*) FROM domain_risk").fetchone()[0] == 1

    def test_version_starts_at_zero(self, conn: sqlite3.Connection) -> None:
        assert current_version(conn) == 0

    def test_migrations_apply_once(self, conn: sqlite3.Connection, monkeypatch) -> None:
        monkeypatch.setattr(
            migrations, "MIGRATIONS", [(1, "ALTER TABLE domain_risk ADD COLUMN notes TEXT")]
        )
        assert migrations.migrate(conn) == 1
        assert migrations.migrate(conn) == 0
        assert current_version(conn) == 1
        columns = [r["name"] for r in conn.execute("PRAGMA table_info(domain_risk)")]
        assert columns.count("notes") == 1

    def test_domain_risk_defaults(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            "INSERT INTO domain_risk (hostname, created_at, updated_at) VALUES ('a.test', 1, 1)"
        )
        row = conn.execute("SELECT * FROM domain_risk WHERE hostname = 'a.test'").fetchone()
        assert row["recommended_delay_ms"] == 2000
        assert row["last_friction_codes"] == "[]"


# ---------------------------------------------------------------------------
# url_fetch_cache
# ---------------------------------------------------------------------------

URL = "https://www.Example.com/about"


class TestFetchCache:
    def test_first_record(self, conn: sqlite3.Connection) -> None:
        entry = fetch_cache.record_fetch(conn, URL, "h1", 5000, 200)
        assert isinstance(entry, UrlFetchCacheEntry)
        assert entry.hostname == "www.example.com"
        assert entry.fetch_count == 1
        assert entry.expires_at - entry.fetched_at == 24 * 3600

    def test_upsert_increments_count(self, conn: sqlite3.Connection) -> None:
        fetch_cache.record_fetch(conn, URL, "h1", 5000, 200)
        entry = fetch_cache.record_fetch(conn, URL, "h2", 6000, 200)
        assert entry.fetch_count == 2
        assert entry.content_hash == "h2"
        assert entry.content_length == 6000

    def test_failed_fetch_keeps_previous_hash(self, conn: sqlite3.Connection) -> None:
        fetch_cache.record_fetch(conn, URL, "h1", 5000, 200)
        entry = fetch_cache.record_fetch(conn, URL, None, None, 503)
        assert entry.content_hash == "h1"
        assert entry.content_length == 5000
        assert entry.last_http_status == 503

    def test_exact_url_keys(self, conn: sqlite3.Connection) -> None:
        fetch_cache.record_fetch(conn, URL, "h1", 5000, 200)
        assert fetch_cache.get_entry(conn, URL + "/") is None

    def test_has_changed(self, conn: sqlite3.Connection) -> None:
        assert fetch_cache.has_changed(conn, URL, "h1") is True
        fetch_cache.record_fetch(conn, URL, "h1", 5000, 200)
        assert fetch_cache.has_changed(conn, URL, "h1") is False
        assert fetch_cache.has_changed(conn, URL, "h2") is True

    def test_has_changed_without_stored_hash(self, conn: sqlite3.Connection) -> None:
        fetch_cache.record_fetch(conn, URL, None, None, 403)
        assert fetch_cache.has_changed(conn, URL, "h1") is True

    def test_purge_expired(self, conn: sqlite3.Connection) -> None:
        old = fetch_cache.record_fetch(conn, URL, "h1", 1, 200, ttl_hours=1)
        fetch_cache.record_fetch(conn, "https://example.com/new", "h2", 1, 200, ttl_hours=48)
        removed = fetch_cache.purge_expired(conn, now=old.expires_at + 1)
        assert removed == 1
        assert fetch_cache.get_entry(conn, URL) is None
        assert fetch_cache.get_entry(conn, "https://example.com/new") is not None

    def test_record_requires_host(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            fetch_cache.record_fetch(conn, "not-a-url", "h", 1, 200)

    def test_is_expired(self) -> None:
        entry = UrlFetchCacheEntry(
            url=URL,
            hostname="example.com",
            content_hash="h",
            content_length=1,
            last_http_status=200,
            fetched_at=100,
            expires_at=200,
        )
        assert not entry.is_expired(199)
        assert entry.is_expired(200)

    def test_bound_cache_uses_ttl(self, conn: sqlite3.Connection) -> None:
        cache = fetch_cache.UrlFetchCache(conn, ttl_hours=2)
        entry = cache.record(URL, "h1", 10, 200)
        assert entry.expires_at - entry.fetched_at == 7200
        assert cache.get(URL).content_hash == "h1"
        assert cache.has_changed(URL, "h1") is False
