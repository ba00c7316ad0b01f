"""Data models for site ingestion results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from orbit_crawler.scraper.models import FetchOutcome

PAGE_TYPES = (
    "home",
    "about",
    "team",
    "faq",
    "contact",
    "testimonials",
    "services",
    "pricing",
    "other",
)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CrawlPage:
    """Signals pulled from one successfully fetched page."""

    url: str
    final_url: str
    title: Optional[str]
    page_type: str = "other"
    headings: list[str] = field(default_factory=list)
    bullets: list[str] = field(default_factory=list)
    key_phrases: list[str] = field(default_factory=list)
    excerpts: list[str] = field(default_factory=list)
    structured_data: list[Any] = field(default_factory=list)
    platform_embedded_data: dict[str, Any] = field(default_factory=dict)
    crawl_status: FetchOutcome = FetchOutcome.OK
    error: Optional[str] = None
    scanned_at: str = field(default_factory=utc_now_iso)
    unchanged: Optional[bool] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["crawl_status"] = self.crawl_status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlPage":
        values = dict(data)
        values["crawl_status"] = FetchOutcome(values.get("crawl_status", "ok"))
        return cls(**values)


@dataclass
class CrawlError:
    url: str
    error: str


@dataclass
class CrawlReport:
    pages_attempted: int
    pages_succeeded: int
    errors: list[CrawlError] = field(default_factory=list)
    scan_timestamp: str = field(default_factory=utc_now_iso)
    coverage_score: float = 0.0
    crawl_duration_ms: int = 0
    stopped_reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlReport":
        values = dict(data)
        values["errors"] = [CrawlError(**e) for e in values.get("errors", [])]
        return cls(**values)


@dataclass
class OrbitIngestResult:
    """Everything produced by one ingestion of a site.

    ``tiles`` are opaque dicts produced by the configured
    :data:`TileGenerator`; this package never inspects them.
    """

    orbit_id: str
    input_url: str
    scanned_at: str
    pages: list[CrawlPage] = field(default_factory=list)
    tiles: list[dict[str, Any]] = field(default_factory=list)
    crawl_report: Optional[CrawlReport] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "orbit_id": self.orbit_id,
            "input_url": self.input_url,
            "scanned_at": self.scanned_at,
            "pages": [p.to_dict() for p in self.pages],
            "tiles": self.tiles,
            "crawl_report": self.crawl_report.to_dict() if self.crawl_report else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrbitIngestResult":
        report = data.get("crawl_report")
        return cls(
            orbit_id=data["orbit_id"],
            input_url=data["input_url"],
            scanned_at=data["scanned_at"],
            pages=[CrawlPage.from_dict(p) for p in data.get("pages", [])],
            tiles=list(data.get("tiles", [])),
            crawl_report=CrawlReport.from_dict(report) if report else None,
        )


@dataclass
class IngestionCacheCheck:
    exists: bool
    within_cache_period: bool
    orbit_id: Optional[str] = None
    scanned_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Turns crawled pages into topic tiles; supplied by the caller.
TileGenerator = Callable[[list[CrawlPage], str], list[dict[str, Any]]]
