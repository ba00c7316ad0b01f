"""Domain risk commands."""

import json

import typer

from orbit_crawler.risk import DomainRiskTracker

from cli.engine import open_db

domains_app = typer.Typer(help="Per-host crawl risk records.", no_args_is_help=True)


@domains_app.command("show")
def domains_show(
    host: str = typer.Option(..., "--host", help="Hostname or URL."),
) -> None:
    """Show the risk record and recommended ingestion mode for one host."""
    with open_db() as conn:
        tracker = DomainRiskTracker(conn)
        record = tracker.get_record(host)
        if record is None:
            typer.echo(f"No risk record for {host!r}.")
            raise typer.Exit(code=1)
        data = record.to_dict()
        data["recommended_mode"] = tracker.recommended_mode(host)
    typer.echo(json.dumps(data, indent=2))


@domains_app.command("list")
def domains_list() -> None:
    """List every known host, highest delay first."""
    with open_db() as conn:
        records = DomainRiskTracker(conn).list_records()
    if not records:
        typer.echo("No domains recorded yet.")
        return
    for r in records:
        typer.echo(
            f"  {r.hostname:<40} delay={r.recommended_delay_ms}ms  "
            f"risk={r.risk_score}  ok={r.success_count}  failed={r.failure_count}"
        )
