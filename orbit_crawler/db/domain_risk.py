"""CRUD operations for the ``domain_risk`` table.

Policy (when to raise a delay, what counts as friction) lives in
:mod:`orbit_crawler.risk`; this module only reads and writes rows.
"""

from __future__ import annotations

import json
import sqlite3
from time import time
from typing import Optional

from orbit_crawler.db.models import DomainRiskRecord


def _row_to_record(row: sqlite3.Row) -> DomainRiskRecord:
    return DomainRiskRecord(
        hostname=row["hostname"],
        recommended_delay_ms=row["recommended_delay_ms"],
        friction_count=row["friction_count"],
        success_count=row["success_count"],
        failure_count=row["failure_count"],
        last_outcome=row["last_outcome"],
        last_friction_codes=json.loads(row["last_friction_codes"] or "[]"),
        last_attempt_at=row["last_attempt_at"],
        last_success_at=row["last_success_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def get_record(conn: sqlite3.Connection, hostname: str) -> Optional[DomainRiskRecord]:
    """Fetch the record for an already-normalised *hostname*, or ``None``."""
    row = conn.execute(
        "SELECT * FROM domain_risk WHERE hostname = ?", (hostname,)
    ).fetchone()
    return _row_to_record(row) if row else None


def create_record(
    conn: sqlite3.Connection,
    hostname: str,
    recommended_delay_ms: int,
) -> DomainRiskRecord:
    """Insert a fresh record (no-op if one exists) and return the stored row."""
    if not hostname:
        raise ValueError("hostname must be a non-empty string")
    now = int(time())
    with conn:
        conn.execute(
            """
            INSERT OR IGNORE INTO domain_risk
                (hostname, recommended_delay_ms, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            """,
            (hostname, recommended_delay_ms, now, now),
        )
    return get_record(conn, hostname)  # type: ignore[return-value]


def save_record(conn: sqlite3.Connection, record: DomainRiskRecord) -> DomainRiskRecord:
    """Write every mutable column of *record* back to its row.

    ``updated_at`` is always refreshed.

    Raises:
        ValueError: If no row exists for ``record.hostname``.
    """
    record.updated_at = int(time())
    with conn:
        cursor = conn.execute(
            """
            UPDATE domain_risk SET
                recommended_delay_ms = ?,
                friction_count = ?,
                success_count = ?,
                failure_count = ?,
                last_outcome = ?,
                last_friction_codes = ?,
                last_attempt_at = ?,
                last_success_at = ?,
                updated_at = ?
            WHERE hostname = ?
            """,
            (
                record.recommended_delay_ms,
                record.friction_count,
                record.success_count,
                record.failure_count,
                record.last_outcome,
                record.friction_codes_json(),
                record.last_attempt_at,
                record.last_success_at,
                record.updated_at,
                record.hostname,
            ),
        )
    if cursor.rowcount == 0:
        raise ValueError(f"Domain risk record not found: {record.hostname!r}")
    return record


def list_records(conn: sqlite3.Connection) -> list[DomainRiskRecord]:
    """Return all records, riskiest (highest delay) first."""
    rows = conn.execute(
        "SELECT * FROM domain_risk ORDER BY recommended_delay_ms DESC, hostname"
    ).fetchall()
    return [_row_to_record(r) for r in rows]
