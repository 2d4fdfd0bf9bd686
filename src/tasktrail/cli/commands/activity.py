# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for reading the activity log.

The CLI is a trusted operator surface: results are not scoped to a
requester unless ``--as-user`` is given.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer

app = typer.Typer(no_args_is_help=True)


def _split(value: str | None) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


def _print_items(items, title: str) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    if not items:
        console.print("[dim]No events found.[/dim]")
        return

    table = Table(title=title)
    table.add_column("Time", style="dim")
    table.add_column("Event Type", style="cyan")
    table.add_column("Entity")
    table.add_column("User")
    table.add_column("Description")
    table.add_column("Severity")

    for item in items:
        table.add_row(
            item.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(item.event_type),
            f"{item.entity_type}:{item.entity_id}",
            item.user_name or item.user_id or "-",
            item.description,
            str(item.severity),
        )
    console.print(table)


@app.command()
def recent(
    workspace: Annotated[
        str | None, typer.Option("--workspace", "-w", help="Workspace ID")
    ] = None,
    user: Annotated[str | None, typer.Option("--user", "-u", help="Filter by acting user")] = None,
    categories: Annotated[
        str | None, typer.Option("--categories", "-c", help="Comma-separated categories")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Page size (max 100)")] = 50,
    as_user: Annotated[
        str | None, typer.Option("--as-user", help="Scope results to this user's view")
    ] = None,
) -> None:
    """Show the newest events of the activity feed."""
    asyncio.run(_async_recent(workspace, user, _split(categories), limit, as_user))


async def _async_recent(
    workspace: str | None,
    user: str | None,
    categories: list[str],
    limit: int,
    as_user: str | None,
) -> None:
    from tasktrail.activity.queries import build_query_engine
    from tasktrail.core.config import get_settings
    from tasktrail.core.exceptions import TaskTrailError
    from tasktrail.storage.database import close_db, init_db

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        engine = build_query_engine(db, settings)
        page = await engine.get_recent_activity(
            as_user,
            workspace_id=workspace,
            user_id=user,
            categories=categories or None,
            limit=limit,
        )
    except TaskTrailError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from None
    finally:
        await close_db()

    _print_items(page.data, "Recent Activity")
    if page.has_more:
        typer.echo("More events available; increase --limit to see them.")


@app.command()
def timeline(
    entity_type: Annotated[str, typer.Argument(help="Entity type, e.g. task")],
    entity_id: Annotated[str, typer.Argument(help="Entity ID")],
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max events (max 500)")] = 100,
    as_user: Annotated[
        str | None, typer.Option("--as-user", help="Check access as this user")
    ] = None,
) -> None:
    """Show the history of a single entity."""
    asyncio.run(_async_timeline(entity_type, entity_id, limit, as_user))


async def _async_timeline(
    entity_type: str, entity_id: str, limit: int, as_user: str | None
) -> None:
    from tasktrail.activity.queries import build_query_engine
    from tasktrail.core.config import get_settings
    from tasktrail.core.exceptions import TaskTrailError
    from tasktrail.storage.database import close_db, init_db

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        engine = build_query_engine(db, settings)
        items = await engine.get_entity_timeline(as_user, entity_type, entity_id, limit=limit)
    except TaskTrailError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from None
    finally:
        await close_db()

    _print_items(items, f"Timeline for {entity_type} {entity_id}")


@app.command()
def export(
    fmt: Annotated[str, typer.Option("--format", "-f", help="csv or json")] = "csv",
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write to file instead of stdout")
    ] = None,
    workspace: Annotated[
        str | None, typer.Option("--workspace", "-w", help="Workspace ID")
    ] = None,
    search: Annotated[str, typer.Option("--search", "-s", help="Free-text search")] = "",
    event_types: Annotated[
        str | None, typer.Option("--event-types", help="Comma-separated event types")
    ] = None,
    severities: Annotated[
        str | None, typer.Option("--severities", help="Comma-separated severities")
    ] = None,
    date_range: Annotated[
        str, typer.Option("--date-range", help="all, today, week, month or quarter")
    ] = "all",
) -> None:
    """Export the filtered activity log as CSV or JSON."""
    asyncio.run(_async_export(
        fmt, output, workspace, search, _split(event_types), _split(severities), date_range
    ))


async def _async_export(
    fmt: str,
    output: Path | None,
    workspace: str | None,
    search: str,
    event_types: list[str],
    severities: list[str],
    date_range: str,
) -> None:
    from tasktrail.activity.filters import ActivityFilters, DateRangePreset
    from tasktrail.activity.queries import build_query_engine
    from tasktrail.core.config import get_settings
    from tasktrail.core.exceptions import TaskTrailError
    from tasktrail.storage.database import close_db, init_db

    try:
        preset = DateRangePreset(date_range)
    except ValueError:
        typer.echo(f"Error: invalid date range {date_range!r}", err=True)
        raise typer.Exit(1) from None

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        engine = build_query_engine(db, settings)
        body, count = await engine.export_activity(
            None,
            ActivityFilters(
                search_query=search,
                event_types=event_types,
                severities=severities,
                date_range=preset,
            ),
            fmt=fmt,
            workspace_id=workspace,
        )
    except TaskTrailError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from None
    finally:
        await close_db()

    if output is None:
        typer.echo(body, nl=False)
        return
    output.write_text(body, encoding="utf-8")
    typer.echo(f"Exported {count} events to {output}")
