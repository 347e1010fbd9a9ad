"""
Root Typer application for the brokerdb CLI.

The CLI is an operator convenience around the same library call a hosting
process makes at startup (``brokerdb.migrate``).
"""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from brokerdb.core.errors import BrokerError
from brokerdb.core.logging import configure_logging

app = typer.Typer(
    name="brokerdb",
    help="brokerdb: versioned schema migrations for the service broker database.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)


def _version_callback(value: bool) -> None:
    if value:
        from brokerdb import __version__

        typer.echo(f"brokerdb {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """brokerdb CLI: apply and inspect broker database migrations."""


def _load_settings(database: str | None, log_level: str | None):
    from brokerdb.core.settings import get_settings

    settings = get_settings()
    overrides: dict[str, str] = {}
    if database:
        overrides["database_url"] = database
    if log_level:
        overrides["log_level"] = log_level
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    return settings


def _fail(exc: BrokerError, *, as_json: bool) -> None:
    if as_json:
        console.print_json(json.dumps({"success": False, "error": exc.to_dict()}, default=str))
    else:
        err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {exc.message}")
    raise typer.Exit(code=1)


@app.command()
def migrate(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    log_level: str | None = typer.Option(None, "--log-level", help="Log level"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Apply every pending migration."""
    from brokerdb.bootstrap import migrate as run

    settings = _load_settings(database, log_level)
    try:
        report = run(settings)
    except BrokerError as exc:
        _fail(exc, as_json=json_out)
        return

    if json_out:
        console.print_json(
            json.dumps(
                {
                    "success": True,
                    "start": report.start,
                    "applied": report.applied,
                    "last_applied": report.last_applied,
                }
            )
        )
        return

    if report.up_to_date:
        console.print(f"[green]Up to date[/green] (last applied: {report.last_applied})")
    else:
        console.print(
            f"[green]Applied {len(report.applied)} migration(s)[/green]: "
            f"{', '.join(str(i) for i in report.applied)}"
        )


@app.command()
def status(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show applied and pending migrations."""
    from brokerdb.core.migrations import MigrationRunner, build_migrations
    from brokerdb.core.store import SqlStore
    from brokerdb.services.catalog import ServiceCatalog
    from brokerdb.services.cloudsql import UnconfiguredLookup

    settings = _load_settings(database, None)
    steps = build_migrations(
        catalog=ServiceCatalog.default(), lookup=UnconfiguredLookup(), project_id=None
    )

    try:
        store = SqlStore.from_url(settings.database_url)
    except BrokerError as exc:
        _fail(exc, as_json=json_out)
        return

    try:
        runner = MigrationRunner(store, steps)
        applied = {entry.migration_id: entry for entry in runner.ledger.applied()}
    except BrokerError as exc:
        _fail(exc, as_json=json_out)
        return
    finally:
        store.dispose()

    rows = [
        {
            "migration_id": step.index,
            "description": step.description,
            "applied_at": applied[step.index].applied_at if step.index in applied else None,
        }
        for step in steps
    ]

    if json_out:
        console.print_json(json.dumps(rows, default=str))
        return

    table = Table(title="Migrations", show_lines=False, pad_edge=False)
    table.add_column("#", justify="right")
    table.add_column("description", overflow="fold")
    table.add_column("applied at")
    for row in rows:
        applied_at = row["applied_at"]
        table.add_row(
            str(row["migration_id"]),
            row["description"],
            str(applied_at) if applied_at else "[yellow]pending[/yellow]",
        )
    console.print(table)
