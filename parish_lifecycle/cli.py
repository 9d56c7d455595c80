#!/usr/bin/env python3
"""
Command-line interface for the Parish Lifecycle toolkit.

Operator tools for the trash, the audit trail and pending operations.
"""

import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import click
import pandas as pd  # type: ignore[import-untyped]
import pytz
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .audit_trail import Actor, AuditAction
from .config import configure_logging, get_config
from .database import init_db, make_engine
from .exceptions import LifecycleError
from .lifecycle import LifecycleCoordinator

console = Console()


def get_coordinator() -> LifecycleCoordinator:
    """Coordinator wired from the global configuration."""
    return LifecycleCoordinator.from_config(get_config())


def format_timestamp(value: Optional[datetime]) -> str:
    """Render a stored UTC timestamp in the configured timezone."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(pytz.timezone(get_config().timezone)).strftime(
        "%Y-%m-%d %H:%M:%S %Z"
    )


def fail(action: str, error: Exception) -> None:
    """Print an error, including any partial progress, and exit."""
    console.print(f"[red]Error {action}: {error}[/red]")
    if isinstance(error, LifecycleError) and error.is_partial:
        console.print("[yellow]Steps already committed:[/yellow]")
        for step in error.completed_steps:
            console.print(f"  [yellow]• {step}[/yellow]")
        if error.pending_operation_id:
            console.print(
                f"[yellow]Recorded as pending operation "
                f"{error.pending_operation_id}[/yellow]"
            )
    sys.exit(1)


def actor_options(f: Callable[..., Any]) -> Callable[..., Any]:
    """Add the --actor-name and --actor-email options."""
    f = click.option(
        "--actor-email",
        envvar="PARISH_ACTOR_EMAIL",
        default=None,
        help="Email recorded for this action",
    )(f)
    f = click.option(
        "--actor-name",
        envvar="PARISH_ACTOR_NAME",
        default=None,
        help="Name recorded for this action",
    )(f)
    return f


def make_actor(name: Optional[str], email: Optional[str]) -> Actor:
    return Actor.coerce({"display_name": name, "email": email})


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]) -> None:
    """Parish Lifecycle - trash, restore, purge and audit tools."""
    configure_logging(
        log_level, handler=RichHandler(console=Console(stderr=True), show_path=False)
    )
    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Parish Lifecycle[/bold blue] v{__version__}\n"
                "[dim]Record lifecycle and audit tools for the parish console[/dim]\n\n"
                "Use [bold]parish --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Inspect configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    try:
        config_dict = get_config().to_dict()

        if format == "json":
            console.print_json(data=config_dict)
        elif format == "yaml":
            import yaml  # type: ignore[import-untyped]

            console.print(yaml.dump(config_dict, default_flow_style=False))
        else:
            table = Table(title="Parish Lifecycle Configuration", show_header=True)
            table.add_column("Setting", style="cyan")
            table.add_column("Value", style="green")

            categories = {
                "General": ["application_name", "environment", "log_level", "timezone"],
                "Storage": ["storage_backend", "database_url"],
                "Attachments": [
                    "storage_public_url_base",
                    "storage_api_url",
                    "storage_root",
                    "default_attachment_bucket",
                    "scan_untyped_attachments",
                ],
                "Lifecycle": [
                    "cascade_delete_enabled",
                    "step_timeout_seconds",
                    "deletion_reason_min_length",
                    "audit_list_limit",
                ],
            }

            for category, settings in categories.items():
                table.add_row(f"[bold]{category}[/bold]", "")
                for setting in settings:
                    value = config_dict.get(setting)
                    if value is None:
                        value = "[dim]Not configured[/dim]"
                    elif isinstance(value, bool):
                        value = "✓" if value else "✗"
                    table.add_row(f"  {setting}", str(value))

            console.print(table)

    except Exception as e:
        fail("loading configuration", e)


@cli.command("init-db")
def init_database() -> None:
    """Create the parish, trash, audit and pending-operation tables."""
    try:
        url = get_config().database_url
        init_db(make_engine(url))
        console.print(f"[green]✓ Database initialized at {url}[/green]")
    except Exception as e:
        fail("initializing database", e)


@cli.group()
def trash() -> None:
    """Soft delete, restore and purge records."""
    pass


@trash.command("list")
@click.option("--table", "table_name", help="Only entries from this table")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
def trash_list(table_name: Optional[str], format: str) -> None:
    """List trashed records, newest first."""
    try:
        entries = asyncio.run(get_coordinator().list_trash(table_name))

        if format == "json":
            click.echo(
                json.dumps(
                    [e.model_dump(mode="json") for e in entries], indent=2, default=str
                )
            )
            return

        if not entries:
            console.print("[yellow]Trash is empty[/yellow]")
            return

        table = Table(title=f"Trash ({len(entries)} entries)")
        table.add_column("Entry", style="cyan", overflow="fold")
        table.add_column("Record", style="blue")
        table.add_column("Deleted by", style="green")
        table.add_column("Deleted at", style="magenta")
        table.add_column("Reason", style="dim")

        for entry in entries:
            table.add_row(
                entry.id,
                f"{entry.original_table}/{entry.record_id}",
                entry.deleted_by,
                format_timestamp(entry.deleted_at),
                entry.deletion_reason or "",
            )
        console.print(table)

    except Exception as e:
        fail("listing trash", e)


@trash.command("show")
@click.argument("entry_id")
def trash_show(entry_id: str) -> None:
    """Show the snapshot kept in a trash entry."""
    try:
        entry = asyncio.run(get_coordinator().trash.get(entry_id))
        console.print(
            f"[bold]{entry.original_table}/{entry.record_id}[/bold] "
            f"deleted by {entry.deleted_by} <{entry.deleted_by_email}>"
        )
        console.print_json(data=entry.snapshot)
    except Exception as e:
        fail("reading trash entry", e)


@trash.command("delete")
@click.argument("table_name")
@click.argument("record_id")
@click.option("--reason", help="Why the record is deleted")
@actor_options
def trash_delete(
    table_name: str,
    record_id: str,
    reason: Optional[str],
    actor_name: Optional[str],
    actor_email: Optional[str],
) -> None:
    """Move a record into the trash."""
    try:
        entry = asyncio.run(
            get_coordinator().soft_delete(
                table_name, record_id, make_actor(actor_name, actor_email), reason
            )
        )
        console.print(f"[green]✓ Moved {table_name}/{record_id} to trash[/green]")
        click.echo(f"Trash entry: {entry.id}")
    except Exception as e:
        fail("deleting record", e)


@trash.command("restore")
@click.argument("entry_id")
@click.option(
    "--cascade/--no-cascade",
    default=True,
    help="Restore the sacrament document a booking owns first",
)
@actor_options
def trash_restore(
    entry_id: str,
    cascade: bool,
    actor_name: Optional[str],
    actor_email: Optional[str],
) -> None:
    """Restore a trashed record under a new ID."""
    try:
        coordinator = get_coordinator()
        actor = make_actor(actor_name, actor_email)
        if cascade:
            row = asyncio.run(coordinator.restore_cascade(entry_id, actor))
        else:
            row = asyncio.run(coordinator.restore(entry_id, actor))
        console.print(f"[green]✓ Restored as ID {row.get('id')}[/green]")
    except Exception as e:
        fail("restoring record", e)


@trash.command("purge")
@click.argument("entry_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@actor_options
def trash_purge(
    entry_id: str, yes: bool, actor_name: Optional[str], actor_email: Optional[str]
) -> None:
    """Permanently delete a trashed record and its attachments."""
    if not yes:
        click.confirm(
            f"Permanently delete trash entry {entry_id}? This cannot be undone",
            abort=True,
        )
    try:
        result = asyncio.run(
            get_coordinator().purge(entry_id, make_actor(actor_name, actor_email))
        )
    except Exception as e:
        fail("purging record", e)
        return

    removed = len(result.removed_objects) + sum(
        len(c.removed_objects) for c in result.cascaded
    )
    console.print(
        f"[green]✓ Purged {result.original_table}/{result.record_id}[/green] "
        f"({removed} attachments removed)"
    )
    for child in result.cascaded:
        console.print(f"  [dim]also purged {child.original_table}/{child.record_id}[/dim]")
    if not result.clean:
        console.print("[yellow]⚠ Some attachments could not be removed:[/yellow]")
        for error in result.storage_errors + [
            err for c in result.cascaded for err in c.storage_errors
        ]:
            console.print(f"  [yellow]• {error}[/yellow]")


@cli.group()
def audit() -> None:
    """Audit trail reporting."""
    pass


def _entry_rows(entries: List[Any]) -> List[Dict[str, Any]]:
    return [entry.model_dump(mode="json") for entry in entries]


@audit.command("list")
@click.option("--limit", type=int, default=None, help="Maximum entries to show")
@click.option("--table", "table_name", help="Only entries for this table")
@click.option(
    "--action",
    "actions",
    multiple=True,
    type=click.Choice([a.value for a in AuditAction]),
    help="Only these actions",
)
@click.option("--oldest-first", is_flag=True, help="Chronological order")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
def audit_list(
    limit: Optional[int],
    table_name: Optional[str],
    actions: List[str],
    oldest_first: bool,
    format: str,
) -> None:
    """Show audit trail entries, newest first."""
    try:
        entries = asyncio.run(
            get_coordinator().audit.list(
                limit=limit,
                newest_first=not oldest_first,
                table=table_name,
                actions=[AuditAction(a) for a in actions] or None,
            )
        )

        if format == "json":
            click.echo(json.dumps(_entry_rows(entries), indent=2, default=str))
            return

        if not entries:
            console.print("[yellow]No audit entries found[/yellow]")
            return

        table = Table(title=f"Audit Trail ({len(entries)} entries)")
        table.add_column("Timestamp", style="cyan")
        table.add_column("Action", style="yellow")
        table.add_column("Record", style="blue")
        table.add_column("Performed by", style="green")

        for entry in entries:
            action = entry.action
            if action in ("DELETE", "CASCADE_DELETE"):
                action = f"[red]{action}[/red]"
            elif action == "RESTORE":
                action = f"[green]{action}[/green]"
            table.add_row(
                format_timestamp(entry.timestamp),
                action,
                f"{entry.table_name}/{entry.record_id}",
                entry.performed_by,
            )
        console.print(table)

    except Exception as e:
        fail("listing audit trail", e)


@audit.command("history")
@click.argument("table_name")
@click.argument("record_id")
def audit_history(table_name: str, record_id: str) -> None:
    """Show every audited change of one record."""
    try:
        entries = asyncio.run(get_coordinator().audit.history(table_name, record_id))
        if not entries:
            console.print(f"[yellow]No history for {table_name}/{record_id}[/yellow]")
            return
        for entry in entries:
            console.print(
                f"[cyan]{format_timestamp(entry.timestamp)}[/cyan] "
                f"[bold]{entry.action}[/bold] by {entry.performed_by}"
            )
    except Exception as e:
        fail("reading record history", e)


@audit.command("export")
@click.option("--output", type=click.Path(), required=True, help="Output file path")
@click.option("--format", type=click.Choice(["csv", "json", "excel"]), default="csv")
@click.option("--table", "table_name", help="Only entries for this table")
def audit_export(output: str, format: str, table_name: Optional[str]) -> None:
    """Export the whole audit trail, oldest first."""

    async def collect() -> List[Any]:
        log = get_coordinator().audit
        return [
            entry
            async for entry in log.iter_entries(newest_first=False)
            if not table_name or entry.table_name == table_name
        ]

    try:
        rows = _entry_rows(asyncio.run(collect()))
        df = pd.DataFrame(rows)
        for column in ("old_data", "new_data"):
            if column in df:
                df[column] = df[column].map(
                    lambda v: json.dumps(v, default=str) if v is not None else ""
                )

        output_path = Path(output)
        if format == "json":
            df.to_json(output_path, orient="records", date_format="iso", indent=2)
        elif format == "excel":
            df.to_excel(output_path, index=False, engine="openpyxl")
        else:
            df.to_csv(output_path, index=False)

        console.print(
            f"[green]✓ Exported {len(rows)} audit entries to {output_path}[/green]"
        )
    except Exception as e:
        fail("exporting audit trail", e)


@cli.group()
def pending() -> None:
    """Operations that stopped part way."""
    pass


@pending.command("list")
@click.option("--all", "include_resolved", is_flag=True, help="Include resolved")
def pending_list(include_resolved: bool) -> None:
    """List pending operations, newest first."""
    try:
        operations = asyncio.run(get_coordinator().list_pending(include_resolved))

        if not operations:
            console.print("[green]No pending operations[/green]")
            return

        table = Table(title=f"Pending Operations ({len(operations)})")
        table.add_column("ID", style="cyan", overflow="fold")
        table.add_column("Operation", style="yellow")
        table.add_column("Target", style="blue")
        table.add_column("Completed", style="green")
        table.add_column("Failed at", style="red")
        table.add_column("Status")

        for op in operations:
            table.add_row(
                op.id,
                op.operation,
                f"{op.target_table}/{op.target_id}",
                "\n".join(op.completed_steps),
                op.failed_step or "",
                f"resolved by {op.resolved_by}" if op.resolved else "open",
            )
        console.print(table)

    except Exception as e:
        fail("listing pending operations", e)


@pending.command("resolve")
@click.argument("operation_id")
@actor_options
def pending_resolve(
    operation_id: str, actor_name: Optional[str], actor_email: Optional[str]
) -> None:
    """Mark a pending operation as reconciled."""
    try:
        asyncio.run(
            get_coordinator().resolve_pending(
                operation_id, make_actor(actor_name, actor_email)
            )
        )
        console.print(f"[green]✓ Pending operation {operation_id} resolved[/green]")
    except Exception as e:
        fail("resolving pending operation", e)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
