"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class DomainRiskRecord:
    hostname: str
    recommended_delay_ms: int
    friction_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_outcome: Optional[str] = None
    last_friction_codes: list[int] = field(default_factory=list)
    last_attempt_at: Optional[int] = None
    last_success_at: Optional[int] = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def risk_score(self) -> int:
        """0–100 summary of how hard this host resists automated fetching.

        Half the weight comes from the failure ratio, half from friction
        events (saturating at five).
        """
        attempts = self.success_count + self.failure_count
        failure_ratio = self.failure_count / attempts if attempts else 0.0
        score = failure_ratio * 50 + min(self.friction_count, 5) * 10
        return min(100, round(score))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["risk_score"] = self.risk_score
        return data

    def friction_codes_json(self) -> str:
        return json.dumps(self.last_friction_codes)


@dataclass
class UrlFetchCacheEntry:
    url: str
    hostname: str
    content_hash: Optional[str]
    content_length: Optional[int]
    last_http_status: Optional[int]
    fetched_at: int
    expires_at: Optional[int]
    fetch_count: int = 1

    def is_expired(self, now: int) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass
class IngestionRun:
    id: int
    orbit_id: str
    trace_id: str
    mode: str
    pages_planned: int
    pages_fetched: int
    pages_used: int
    cache_hits: int
    cache_misses: int
    cache_writes: int
    outcome: str
    friction_signals: list[str]
    domain_risk_score: Optional[int]
    started_at: int
    completed_at: Optional[int]
    duration_ms: Optional[int]
    last_error: Optional[str]
