"""Per-hostname politeness: adaptive crawl delay driven by observed friction.

A host that blocks or repeatedly fails us gets a longer delay between
fetches.  The delay only grows; nothing lowers it automatically.
"""

from __future__ import annotations

import sqlite3
import threading
from time import time
from typing import Optional, Union
from urllib.parse import urlparse

from orbit_crawler.config import Settings, settings as default_settings
from orbit_crawler.db import domain_risk as store
from orbit_crawler.db.models import DomainRiskRecord
from orbit_crawler.logging import get_logger
from orbit_crawler.scraper.models import FetchOutcome

logger = get_logger(__name__)

MAX_FRICTION_CODES = 10
USER_ASSISTED_FRICTION_THRESHOLD = 3

# Outcomes that count as friction only when the previous attempt failed the
# same way.  Server errors and timeouts are grouped as transient failures.
_REPEAT_GROUPS: dict[FetchOutcome, frozenset[str]] = {
    FetchOutcome.NO_CONTENT: frozenset({FetchOutcome.NO_CONTENT.value}),
    FetchOutcome.SERVER_ERROR: frozenset(
        {FetchOutcome.SERVER_ERROR.value, FetchOutcome.TIMEOUT.value}
    ),
    FetchOutcome.TIMEOUT: frozenset(
        {FetchOutcome.SERVER_ERROR.value, FetchOutcome.TIMEOUT.value}
    ),
}


def normalize_hostname(host_or_url: str) -> str:
    """Lower-case *host_or_url*'s host and strip any port and leading ``www.``.

    Accepts a bare hostname (``WWW.Example.com:8080``) or a full URL.
    """
    value = host_or_url.strip()
    if "://" not in value:
        value = f"//{value}"
    try:
        host = urlparse(value).hostname or ""
    except ValueError:
        host = ""
    host = host.lower().rstrip(".")
    return host[4:] if host.startswith("www.") else host


def is_friction(outcome: FetchOutcome, previous_outcome: Optional[str]) -> bool:
    if outcome is FetchOutcome.BLOCKED:
        return True
    group = _REPEAT_GROUPS.get(outcome)
    return group is not None and previous_outcome in group


class DomainRiskTracker:
    """Records fetch outcomes per host and recommends a crawl delay.

    Args:
        conn: Open DB connection with the schema applied.
        default_delay_ms: Delay for hosts with no history, and the floor for
            any raised delay.
        max_delay_ms: Ceiling for the recommended delay.
        multiplier: Growth factor applied on each friction event.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        default_delay_ms: Optional[int] = None,
        max_delay_ms: Optional[int] = None,
        multiplier: Optional[float] = None,
        cfg: Optional[Settings] = None,
    ) -> None:
        cfg = cfg or default_settings
        self.conn = conn
        self.default_delay_ms = cfg.default_delay_ms if default_delay_ms is None else default_delay_ms
        self.max_delay_ms = cfg.max_delay_ms if max_delay_ms is None else max_delay_ms
        self.multiplier = cfg.delay_multiplier if multiplier is None else multiplier
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, hostname: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(hostname, threading.Lock())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_delay(self, hostname: str) -> int:
        """Recommended delay in milliseconds before the next fetch to *hostname*."""
        record = store.get_record(self.conn, normalize_hostname(hostname))
        return record.recommended_delay_ms if record else self.default_delay_ms

    def get_record(self, hostname: str) -> Optional[DomainRiskRecord]:
        return store.get_record(self.conn, normalize_hostname(hostname))

    def list_records(self) -> list[DomainRiskRecord]:
        return store.list_records(self.conn)

    def recommended_mode(self, hostname: str) -> str:
        """Ingestion mode for *hostname*: ``standard``, ``light`` or ``user_assisted``."""
        record = self.get_record(hostname)
        if record is None:
            return "standard"
        if (
            record.last_outcome == FetchOutcome.BLOCKED.value
            or record.friction_count >= USER_ASSISTED_FRICTION_THRESHOLD
        ):
            return "user_assisted"
        if record.friction_count > 0:
            return "light"
        return "standard"

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record_outcome(
        self,
        hostname: str,
        outcome: Union[FetchOutcome, str],
        http_status: Optional[int] = None,
    ) -> DomainRiskRecord:
        """Apply one fetch outcome to *hostname*'s record and return it.

        Raises:
            ValueError: If *hostname* normalises to an empty string.
        """
        outcome = FetchOutcome(outcome)
        host = normalize_hostname(hostname)
        if not host:
            raise ValueError(f"Cannot derive a hostname from {hostname!r}")

        with self._lock_for(host):
            record = store.get_record(self.conn, host) or store.create_record(
                self.conn, host, self.default_delay_ms
            )
            previous = record.last_outcome
            now = int(time())
            record.last_attempt_at = now
            record.last_outcome = outcome.value

            if outcome is FetchOutcome.OK:
                record.success_count += 1
                record.last_success_at = now
            else:
                record.failure_count += 1
                if is_friction(outcome, previous):
                    self._apply_friction(record, http_status)

            store.save_record(self.conn, record)

        logger.info(
            "domain_outcome_recorded",
            hostname=host,
            outcome=outcome.value,
            http_status=http_status,
            delay_ms=record.recommended_delay_ms,
            friction_count=record.friction_count,
        )
        return record

    def _apply_friction(self, record: DomainRiskRecord, http_status: Optional[int]) -> None:
        old_delay = record.recommended_delay_ms
        record.friction_count += 1
        record.recommended_delay_ms = min(
            self.max_delay_ms,
            max(self.default_delay_ms, int(old_delay * self.multiplier)),
        )
        if http_status is not None:
            record.last_friction_codes = (record.last_friction_codes + [http_status])[
                -MAX_FRICTION_CODES:
            ]
        logger.warning(
            "domain_friction",
            hostname=record.hostname,
            http_status=http_status,
            old_delay_ms=old_delay,
            new_delay_ms=record.recommended_delay_ms,
        )
