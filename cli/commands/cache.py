"""Ingestion cache commands."""

import json

import typer

from orbit_crawler.config import settings
from orbit_crawler.ingest.store import check_ingestion_cache, list_ingestions

from cli.engine import open_db

cache_app = typer.Typer(help="Inspect stored ingestion results.", no_args_is_help=True)


@cache_app.command("check")
def cache_check(
    url: str = typer.Option(..., help="Input URL to look up."),
    hours: float = typer.Option(
        settings.ingest_freshness_hours, help="Freshness window in hours."
    ),
) -> None:
    """Report whether a fresh ingestion exists for a URL."""
    with open_db() as conn:
        check = check_ingestion_cache(conn, url, hours)
    typer.echo(json.dumps(check.to_dict(), indent=2))


@cache_app.command("list")
def cache_list(
    limit: int = typer.Option(20, help="Maximum rows to show."),
) -> None:
    """List stored ingestions, newest first."""
    with open_db() as conn:
        rows = list_ingestions(conn, limit=limit)
    if not rows:
        typer.echo("No ingestions stored.")
        return
    for row in rows:
        typer.echo(f"  {row['orbit_id']}  {row['input_url']}")
