"""Schema setup for the crawler database.

``init_db(conn)`` applies the bundled ``schema.sql`` and any pending entries
of ``MIGRATIONS``; running it again on an existing database changes nothing.
"""

from __future__ import annotations

import sqlite3
from time import time

from orbit_crawler.config import settings

# Append (version, statement) pairs; versions must increase.
MIGRATIONS: list[tuple[int, str]] = []


def init_db(conn: sqlite3.Connection) -> None:
    """Create every table and index, then run :func:`migrate`."""
    # executescript() commits any open transaction before running.
    conn.executescript(settings.schema_path.read_text(encoding="utf-8"))
    migrate(conn)


def current_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration, 0 on a fresh database."""
    (version,) = conn.execute("SELECT IFNULL(MAX(version), 0) FROM schema_version").fetchone()
    return version


def migrate(conn: sqlite3.Connection) -> int:
    """Apply pending migrations in order; returns how many ran."""
    start = current_version(conn)
    pending = [(v, sql) for v, sql in sorted(MIGRATIONS) if v > start]
    for version, statement in pending:
        with conn:
            conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, int(time())),
            )
    return len(pending)
