# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands: ``tasktrail analytics aggregate|metrics|security``."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Annotated

import typer

app = typer.Typer(no_args_is_help=True)


def _parse_when(value: str | None, default: datetime) -> datetime:
    if value is None:
        return default
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        typer.echo(f"Error: invalid timestamp {value!r}", err=True)
        raise typer.Exit(1) from None
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


@app.command()
def aggregate(
    period: Annotated[
        str, typer.Option("--period", "-p", help="hour, day, week or month")
    ] = "hour",
    start: Annotated[
        str | None, typer.Option("--start", help="Window start (ISO 8601, default 24h ago)")
    ] = None,
    end: Annotated[
        str | None, typer.Option("--end", help="Window end (ISO 8601, default now)")
    ] = None,
    workspace: Annotated[
        str | None, typer.Option("--workspace", "-w", help="Only this workspace")
    ] = None,
) -> None:
    """Recompute activity summaries for a window."""
    now = datetime.now(UTC)
    window_end = _parse_when(end, now)
    window_start = _parse_when(start, window_end - timedelta(days=1))
    asyncio.run(_async_aggregate(period, window_start, window_end, workspace))


async def _async_aggregate(
    period: str, start: datetime, end: datetime, workspace: str | None
) -> None:
    from tasktrail.analytics.engine import AggregationEngine
    from tasktrail.analytics.store import SummaryStore
    from tasktrail.core.config import get_settings
    from tasktrail.core.constants import PeriodType
    from tasktrail.core.exceptions import AggregationError
    from tasktrail.events.store import EventStore
    from tasktrail.storage.database import close_db, init_db

    try:
        period_type = PeriodType(period)
    except ValueError:
        typer.echo(f"Error: invalid period {period!r}", err=True)
        raise typer.Exit(1) from None

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        engine = AggregationEngine(EventStore(db), SummaryStore(db))
        result = await engine.run(period_type, start, end, workspace_id=workspace)
    except AggregationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from None
    finally:
        await close_db()

    typer.echo(
        f"Aggregated {result.events} events into {result.buckets} {result.period_type} "
        f"buckets ({result.summaries} summaries, {result.user_summaries} user summaries)."
    )


@app.command()
def metrics(
    days: Annotated[int, typer.Option("--days", "-d", min=1, help="Window length in days")] = 7,
    workspace: Annotated[
        str | None, typer.Option("--workspace", "-w", help="Workspace ID")
    ] = None,
) -> None:
    """Show activity metrics for the last N days."""
    asyncio.run(_async_metrics(days, workspace))


async def _async_metrics(days: int, workspace: str | None) -> None:
    from rich.console import Console
    from rich.panel import Panel
    from rich.table import Table

    from tasktrail.activity.queries import build_query_engine
    from tasktrail.core.config import get_settings
    from tasktrail.storage.database import close_db, init_db

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        engine = build_query_engine(db, settings)
        m = await engine.get_activity_metrics(None, workspace_id=workspace, days=days)
    finally:
        await close_db()

    console = Console()
    console.print(Panel(
        f"[bold]Total events:[/bold] {m.total_events}\n"
        f"[bold]Today / week / month:[/bold] "
        f"{m.events_today} / {m.events_this_week} / {m.events_this_month}\n"
        f"[bold]Active users:[/bold] {m.active_users}\n"
        f"[bold]Daily average:[/bold] {m.daily_average}\n"
        f"[bold]Growth:[/bold] {m.growth_rate}%\n"
        f"[bold]Peak hour:[/bold] {m.peak_hour if m.peak_hour is not None else '-'}\n"
        f"[bold]Most active day:[/bold] {m.most_active_day or '-'}",
        title=f"Activity (last {days} days)",
    ))

    for title, rows in (
        ("Top Categories", m.top_categories),
        ("Top Event Types", m.top_event_types),
        ("Entities", m.entity_breakdown),
    ):
        if not rows:
            continue
        table = Table(title=title)
        table.add_column("Key", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("%", justify="right")
        for row in rows:
            table.add_row(row.key, str(row.count), f"{row.percentage:.2f}")
        console.print(table)


@app.command()
def security(
    days: Annotated[int, typer.Option("--days", "-d", min=1, help="Window length in days")] = 30,
    workspace: Annotated[
        str | None, typer.Option("--workspace", "-w", help="Workspace ID")
    ] = None,
) -> None:
    """Show the security summary for the last N days."""
    asyncio.run(_async_security(days, workspace))


async def _async_security(days: int, workspace: str | None) -> None:
    from rich.console import Console
    from rich.table import Table

    from tasktrail.activity.queries import build_query_engine
    from tasktrail.core.config import get_settings
    from tasktrail.storage.database import close_db, init_db

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        engine = build_query_engine(db, settings)
        s = await engine.get_security_summary(None, workspace_id=workspace, days=days)
    finally:
        await close_db()

    console = Console()
    console.print(f"[bold]Critical events:[/bold] {s.critical_count}")
    console.print(f"[bold]Failed logins:[/bold] {s.failed_login_count}")
    console.print(f"[bold]Suspicious activity:[/bold] {s.suspicious_activity_count}")

    if not s.recent_alerts:
        return
    table = Table(title="Recent Critical Alerts")
    table.add_column("Time", style="dim")
    table.add_column("Event Type", style="red")
    table.add_column("Entity")
    table.add_column("User")
    for event in s.recent_alerts:
        table.add_row(
            event.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(event.event_type),
            f"{event.entity_type}:{event.entity_id}",
            event.user_id or "-",
        )
    console.print(table)
