"""Shared fixtures and fakes.

No test launches a real browser or touches the network: pages are built as
:class:`PageFetchResult` objects and served by :class:`FakeFetcher`.
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Generator, Optional

import pytest

from orbit_crawler.db.connection import get_connection
from orbit_crawler.db.migrations import init_db
from orbit_crawler.scraper.models import (
    FetchOptions,
    FetchOutcome,
    PageContent,
    PageFetchResult,
)

LONG_FILLER = "<p>" + ("Lorem ipsum dolor sit amet. " * 60) + "</p>"


def html_page(body: str = "", title: str = "Page") -> str:
    """A document comfortably above the minimum content length."""
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body>{body}{LONG_FILLER}</body></html>"
    )


def ok_result(
    url: str,
    html: Optional[str] = None,
    title: str = "Page",
    text: str = "",
    content_hash: Optional[str] = None,
) -> PageFetchResult:
    html = html if html is not None else html_page(title=title)
    return PageFetchResult(
        requested_url=url,
        final_url=url,
        outcome=FetchOutcome.OK,
        http_status=200,
        content=PageContent(
            html=html,
            rendered_text=text,
            title=title,
            content_hash=content_hash or f"hash:{url}",
        ),
    )


def failed_result(
    url: str, outcome: FetchOutcome, http_status: Optional[int] = None
) -> PageFetchResult:
    return PageFetchResult(
        requested_url=url,
        final_url=url,
        outcome=outcome,
        error_detail=f"{outcome.value} for {url}",
        http_status=http_status,
    )


class FakeFetcher:
    """Serves canned results per URL; unknown URLs are ``not_found``."""

    navigation_timeout_ms = 45000

    def __init__(self, pages: Optional[dict[str, PageFetchResult]] = None) -> None:
        self.pages = pages or {}
        self.calls: list[str] = []
        self.cache = None

    def fetch(self, url: str, options: Optional[FetchOptions] = None) -> PageFetchResult:
        self.calls.append(url)
        if url in self.pages:
            return self.pages[url]
        return failed_result(url, FetchOutcome.NOT_FOUND, 404)


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def no_sleep() -> Callable[[float], None]:
    def _sleep(seconds: float) -> None:
        return None

    return _sleep
