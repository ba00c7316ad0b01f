"""Data models for the page fetcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class FetchOutcome(str, Enum):
    """Exhaustive classification of one page fetch.

    This is the single field downstream code branches on; fetch problems are
    never signalled by exceptions.
    """

    OK = "ok"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    NO_CONTENT = "no_content"


@dataclass
class FetchOptions:
    """Per-call knobs for :meth:`PageFetcher.fetch`."""

    timeout_ms: int = 45000
    wait_for_selector: Optional[str] = None
    scroll_page: bool = True
    capture_screenshot: bool = False
    use_cache: bool = True


@dataclass
class PageContent:
    """Everything extracted from a rendered page."""

    html: str
    rendered_text: str
    title: Optional[str]
    content_hash: str
    structured_data: list[Any] = field(default_factory=list)
    platform_embedded_data: dict[str, Any] = field(default_factory=dict)
    screenshot_base64: Optional[str] = None


@dataclass
class PageFetchResult:
    """The outcome of fetching one URL.

    ``content`` is only populated for pages that rendered, so failure results
    never carry stale or placeholder HTML.  The read-only properties below
    give empty values when there is no content.
    """

    requested_url: str
    final_url: str
    outcome: FetchOutcome
    error_detail: Optional[str] = None
    http_status: Optional[int] = None
    content: Optional[PageContent] = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    from_cache: bool = False
    # True when the persisted fingerprint already held this exact content.
    unchanged: Optional[bool] = None

    @property
    def is_ok(self) -> bool:
        return self.outcome is FetchOutcome.OK

    @property
    def html(self) -> str:
        return self.content.html if self.content else ""

    @property
    def rendered_text(self) -> str:
        return self.content.rendered_text if self.content else ""

    @property
    def title(self) -> Optional[str]:
        return self.content.title if self.content else None

    @property
    def structured_data(self) -> list[Any]:
        return self.content.structured_data if self.content else []

    @property
    def platform_embedded_data(self) -> dict[str, Any]:
        return self.content.platform_embedded_data if self.content else {}

    def to_dict(self, include_html: bool = False) -> dict[str, Any]:
        """Serialise to a JSON-friendly dict (HTML omitted unless requested)."""
        data: dict[str, Any] = {
            "requested_url": self.requested_url,
            "final_url": self.final_url,
            "outcome": self.outcome.value,
            "error_detail": self.error_detail,
            "http_status": self.http_status,
            "fetched_at": self.fetched_at.isoformat(),
            "from_cache": self.from_cache,
            "unchanged": self.unchanged,
            "title": self.title,
            "html_length": len(self.html),
            "rendered_text": self.rendered_text,
            "structured_data": self.structured_data,
            "platform_embedded_data": self.platform_embedded_data,
        }
        if self.content:
            data["content_hash"] = self.content.content_hash
            if self.content.screenshot_base64:
                data["screenshot_base64"] = self.content.screenshot_base64
        if include_html:
            data["html"] = self.html
        return data
