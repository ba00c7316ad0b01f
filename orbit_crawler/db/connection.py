"""SQLite connection factory for the crawler database.

One connection is shared by the API process (``check_same_thread=False``);
the CLI opens one per command.  Writers wrap their statements in
``with conn:`` so each call commits on its own.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional, Union

from orbit_crawler.config import settings

MEMORY = ":memory:"


def get_connection(db_path: Optional[Union[Path, str]] = None) -> sqlite3.Connection:
    """Open the crawler database and apply connection pragmas.

    Args:
        db_path: Database file; ``settings.db_path`` when omitted.
            ``":memory:"`` gives a private throwaway database.

    Returns:
        A connection whose rows are :class:`sqlite3.Row` (columns by name),
        with foreign keys enforced, WAL journaling and a 5 s busy timeout
        so the CLI and a running API can share one file.
    """
    target = str(db_path or settings.db_path)
    if target != MEMORY:
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(target, check_same_thread=False, timeout=5.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn
