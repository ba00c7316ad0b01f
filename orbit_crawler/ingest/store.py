"""Persistence for ingestion results (``orbit_ingestions``) and run records
(``ingestion_runs``)."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from time import time
from typing import List, Optional

from orbit_crawler.cache import cache_key
from orbit_crawler.db.models import IngestionRun
from orbit_crawler.errors import IngestionNotFoundError
from orbit_crawler.ingest.models import IngestionCacheCheck, OrbitIngestResult
from orbit_crawler.scraper.links import ensure_scheme

RUN_OUTCOMES = ("success", "partial", "blocked", "error")
INGESTION_MODES = ("light", "standard", "user_assisted")


def normalize_input_url(url: str) -> str:
    """Lookup key for an input URL; ``https://www.A.com/`` and ``a.com`` match."""
    return cache_key(ensure_scheme(url))


def _iso_to_epoch(value: str) -> int:
    try:
        return int(datetime.fromisoformat(value).timestamp())
    except (TypeError, ValueError):
        return int(time())


# ---------------------------------------------------------------------------
# Ingestion results
# ---------------------------------------------------------------------------

def save_ingestion(conn: sqlite3.Connection, result: OrbitIngestResult) -> OrbitIngestResult:
    """Insert or replace the stored payload for ``result.orbit_id``."""
    if not result.orbit_id:
        raise ValueError("orbit_id must be a non-empty string")
    with conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO orbit_ingestions
                (orbit_id, input_url, normalized_url, scanned_at, payload)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                result.orbit_id,
                result.input_url,
                normalize_input_url(result.input_url),
                _iso_to_epoch(result.scanned_at),
                json.dumps(result.to_dict()),
            ),
        )
    return result


def load_ingestion(conn: sqlite3.Connection, orbit_id: str) -> OrbitIngestResult:
    """Return the stored result.

    Raises:
        IngestionNotFoundError: No ingestion has this ID.
    """
    row = conn.execute(
        "SELECT payload FROM orbit_ingestions WHERE orbit_id = ?", (orbit_id,)
    ).fetchone()
    if row is None:
        raise IngestionNotFoundError(orbit_id)
    return OrbitIngestResult.from_dict(json.loads(row["payload"]))


def find_latest_ingestion(conn: sqlite3.Connection, url: str) -> Optional[OrbitIngestResult]:
    """Most recent stored result for *url* (any age), or ``None``."""
    row = conn.execute(
        """
        SELECT payload FROM orbit_ingestions
        WHERE normalized_url = ?
        ORDER BY scanned_at DESC
        LIMIT 1
        """,
        (normalize_input_url(url),),
    ).fetchone()
    return OrbitIngestResult.from_dict(json.loads(row["payload"])) if row else None


def list_ingestions(conn: sqlite3.Connection, limit: int = 50) -> List[dict]:
    """Summaries of stored ingestions, newest first."""
    rows = conn.execute(
        """
        SELECT orbit_id, input_url, scanned_at FROM orbit_ingestions
        ORDER BY scanned_at DESC, orbit_id
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(r) for r in rows]


def delete_ingestion(conn: sqlite3.Connection, orbit_id: str) -> bool:
    """Delete one stored ingestion; ``True`` if a row was removed."""
    with conn:
        cursor = conn.execute("DELETE FROM orbit_ingestions WHERE orbit_id = ?", (orbit_id,))
    return cursor.rowcount > 0


def check_ingestion_cache(
    conn: sqlite3.Connection,
    url: str,
    freshness_hours: float = 24,
    now: Optional[float] = None,
) -> IngestionCacheCheck:
    """Report whether *url* has a stored ingestion and whether it is fresh."""
    row = conn.execute(
        """
        SELECT orbit_id, payload, scanned_at FROM orbit_ingestions
        WHERE normalized_url = ?
        ORDER BY scanned_at DESC
        LIMIT 1
        """,
        (normalize_input_url(url),),
    ).fetchone()
    if row is None:
        return IngestionCacheCheck(exists=False, within_cache_period=False)

    now = time() if now is None else now
    age_s = now - row["scanned_at"]
    return IngestionCacheCheck(
        exists=True,
        within_cache_period=age_s < freshness_hours * 3600,
        orbit_id=row["orbit_id"],
        scanned_at=json.loads(row["payload"]).get("scanned_at"),
    )


# ---------------------------------------------------------------------------
# Ingestion runs
# ---------------------------------------------------------------------------

def _row_to_run(row: sqlite3.Row) -> IngestionRun:
    return IngestionRun(
        id=row["id"],
        orbit_id=row["orbit_id"],
        trace_id=row["trace_id"],
        mode=row["mode"],
        pages_planned=row["pages_planned"],
        pages_fetched=row["pages_fetched"],
        pages_used=row["pages_used"],
        cache_hits=row["cache_hits"],
        cache_misses=row["cache_misses"],
        cache_writes=row["cache_writes"],
        outcome=row["outcome"],
        friction_signals=json.loads(row["friction_signals"] or "[]"),
        domain_risk_score=row["domain_risk_score"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        duration_ms=row["duration_ms"],
        last_error=row["last_error"],
    )


def record_run(
    conn: sqlite3.Connection,
    orbit_id: str,
    trace_id: str,
    mode: str,
    outcome: str,
    started_at: int,
    pages_planned: int = 0,
    pages_fetched: int = 0,
    pages_used: int = 0,
    cache_hits: int = 0,
    cache_misses: int = 0,
    cache_writes: int = 0,
    friction_signals: Optional[list[str]] = None,
    domain_risk_score: Optional[int] = None,
    completed_at: Optional[int] = None,
    duration_ms: Optional[int] = None,
    last_error: Optional[str] = None,
) -> IngestionRun:
    """Insert one ``ingestion_runs`` row and return it.

    Raises:
        ValueError: If *mode* or *outcome* is not a known value.
    """
    if mode not in INGESTION_MODES:
        raise ValueError(f"Invalid ingestion mode {mode!r}; expected one of {INGESTION_MODES}")
    if outcome not in RUN_OUTCOMES:
        raise ValueError(f"Invalid run outcome {outcome!r}; expected one of {RUN_OUTCOMES}")

    with conn:
        cursor = conn.execute(
            """
            INSERT INTO ingestion_runs (
                orbit_id, trace_id, mode, pages_planned, pages_fetched,
                pages_used, cache_hits, cache_misses, cache_writes, outcome,
                friction_signals, domain_risk_score, started_at, completed_at,
                duration_ms, last_error
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                orbit_id,
                trace_id,
                mode,
                pages_planned,
                pages_fetched,
                pages_used,
                cache_hits,
                cache_misses,
                cache_writes,
                outcome,
                json.dumps(friction_signals or []),
                domain_risk_score,
                started_at,
                completed_at,
                duration_ms,
                last_error,
            ),
        )
    row = conn.execute(
        "SELECT * FROM ingestion_runs WHERE id = ?", (cursor.lastrowid,)
    ).fetchone()
    return _row_to_run(row)


def list_runs(conn: sqlite3.Connection, orbit_id: Optional[str] = None) -> List[IngestionRun]:
    """All runs, newest first, optionally for one ingestion ID."""
    if orbit_id is None:
        rows = conn.execute("SELECT * FROM ingestion_runs ORDER BY id DESC").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM ingestion_runs WHERE orbit_id = ? ORDER BY id DESC",
            (orbit_id,),
        ).fetchall()
    return [_row_to_run(r) for r in rows]
