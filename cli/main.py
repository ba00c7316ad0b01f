"""Orbit crawler CLI: entry-point for all engine operations.

Usage:
    orbit-crawler --help

Command groups:
    db        → database setup
    fetch     → render and classify one page
    crawl     → budgeted crawl of a site
    ingest    → crawl + signals + stored ingestion result
    cache     → ingestion freshness checks
    domains   → per-host risk records
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from orbit_crawler.xxx
# import ...` works when the CLI is invoked as `python cli/main.py`.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import json
from typing import List, Optional

import typer

from orbit_crawler.config import settings
from orbit_crawler.crawler import CrawlConfig
from orbit_crawler.db import get_connection, init_db
from orbit_crawler.errors import CrawlerError
from orbit_crawler.ingest.pipeline import ingest_url
from orbit_crawler.ingest.store import check_ingestion_cache, load_ingestion
from orbit_crawler.logging import configure_logging
from orbit_crawler.scraper.links import ensure_scheme
from orbit_crawler.scraper.models import FetchOptions

from cli.commands.cache import cache_app
from cli.commands.domains import domains_app
from cli.engine import open_engine

app = typer.Typer(
    name="orbit-crawler",
    help="Orbit crawl engine CLI.",
    no_args_is_help=True,
)
app.add_typer(cache_app, name="cache")
app.add_typer(domains_app, name="domains")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL."),
    log_json: bool = typer.Option(False, "--log-json", help="Emit JSON log lines."),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level=log_level, json_format=log_json or None)


# ---------------------------------------------------------------------------
# db
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    settings.ensure_workspace()
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------
@app.command("fetch")
def fetch(
    url: str = typer.Option(..., help="URL to fetch."),
    selector: Optional[str] = typer.Option(None, help="CSS selector to wait for."),
    no_scroll: bool = typer.Option(False, "--no-scroll", help="Skip auto-scrolling."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Render one page and print its outcome.  Exits 1 when the outcome is not ok."""
    url = ensure_scheme(url)
    try:
        with open_engine() as engine:
            options = FetchOptions(
                timeout_ms=engine.fetcher.navigation_timeout_ms,
                wait_for_selector=selector,
                scroll_page=not no_scroll,
            )
            result = engine.fetcher.fetch(url, options)
    except CrawlerError as exc:
        typer.echo(f"[fetch] Browser error: {exc}", err=True)
        raise typer.Exit(2)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        typer.echo(f"[fetch] Outcome : {result.outcome.value}")
        typer.echo(f"[fetch] Status  : {result.http_status if result.http_status is not None else '-'}")
        typer.echo(f"[fetch] Final   : {result.final_url}")
        typer.echo(f"[fetch] Title   : {result.title or '(none)'}")
        typer.echo(f"[fetch] HTML    : {len(result.html)} bytes")
        if result.error_detail:
            typer.echo(f"[fetch] Detail  : {result.error_detail}")
    if not result.is_ok:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# crawl
# ---------------------------------------------------------------------------
@app.command("crawl")
def crawl(
    url: str = typer.Option(..., help="Seed URL."),
    max_pages: int = typer.Option(settings.max_pages, help="Maximum ok pages to collect."),
    pattern: Optional[List[str]] = typer.Option(
        None, "--pattern", help="Regex for link paths to follow (repeatable)."
    ),
    candidate: Optional[List[str]] = typer.Option(
        None, "--candidate", help="Explicit URL to try instead of discovery (repeatable)."
    ),
    rate_limit_ms: int = typer.Option(settings.rate_limit_ms, help="Minimum delay between fetches."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Crawl a site breadth-first within a page budget."""
    url = ensure_scheme(url)
    overrides = {"max_pages": max_pages, "rate_limit_ms": rate_limit_ms}
    if pattern:
        overrides["link_patterns"] = list(pattern)
    if candidate:
        overrides["candidate_urls"] = [ensure_scheme(c) for c in candidate]
    config = CrawlConfig.from_settings(**overrides)

    try:
        with open_engine() as engine:
            result = engine.crawler.crawl(url, config)
    except CrawlerError as exc:
        typer.echo(f"[crawl] Browser error: {exc}", err=True)
        raise typer.Exit(2)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    typer.echo(
        f"[crawl] {len(result.pages)} page(s) from {len(result.pages_attempted)} attempted  "
        f"stopped={result.stopped_reason.value}  {result.duration_ms} ms"
    )
    for page in result.pages:
        typer.echo(f"  ok     {page.requested_url}  {page.title or ''}".rstrip())
    for error in result.errors:
        typer.echo(f"  {error.outcome.value:<6} {error.url}  {error.detail or ''}".rstrip())


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------
@app.command("ingest")
def ingest(
    url: str = typer.Option(..., help="Business site URL to ingest."),
    force: bool = typer.Option(False, "--force", help="Ignore a fresh cached ingestion."),
    discover: bool = typer.Option(
        False, "--discover", help="Follow links from the home page instead of common paths."
    ),
) -> None:
    """Crawl a site, extract page signals and store the ingestion result."""
    try:
        with open_engine() as engine:
            check = check_ingestion_cache(engine.conn, url, settings.ingest_freshness_hours)
            if check.within_cache_period and check.orbit_id and not force:
                result = load_ingestion(engine.conn, check.orbit_id)
                typer.echo(f"[ingest] Fresh result from {check.scanned_at} (use --force to re-crawl)")
            else:
                typer.echo(f"[ingest] Ingesting {url!r} …")
                result = ingest_url(engine.conn, url, engine.crawler, discover=discover)
    except CrawlerError as exc:
        typer.echo(f"[ingest] Browser error: {exc}", err=True)
        raise typer.Exit(2)

    report = result.crawl_report
    typer.echo(f"[ingest] Orbit ID : {result.orbit_id}")
    typer.echo(f"[ingest] Pages    : {len(result.pages)}")
    if report is not None:
        typer.echo(
            f"[ingest] Coverage : {report.pages_succeeded}/{report.pages_attempted} "
            f"({report.coverage_score:.0%})  stopped={report.stopped_reason}"
        )
    for page in result.pages:
        typer.echo(f"  [{page.page_type}] {page.url}")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
