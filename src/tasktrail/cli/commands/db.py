# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Database management commands."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Annotated

import typer

app = typer.Typer()


@app.command()
def init() -> None:
    """Initialize the SQLite database with the full schema."""
    asyncio.run(_init_db())


async def _init_db() -> None:
    from tasktrail.core.config import get_settings
    from tasktrail.storage.database import close_db, init_db

    settings = get_settings()
    typer.echo(f"Initializing database at {settings.db_path}...")
    await init_db(settings.db_path)
    await close_db()
    typer.echo("Database initialized.")


@app.command()
def migrate() -> None:
    """Apply pending database migrations.

    Shows the current schema version and any pending migrations,
    then applies them in order.
    """
    asyncio.run(_migrate_db())


async def _migrate_db() -> None:
    from tasktrail.core.config import get_settings
    from tasktrail.storage.database import close_db, init_db
    from tasktrail.storage.migrations import (
        get_current_version,
        get_pending_migrations,
        run_migrations,
    )

    settings = get_settings()
    db = await init_db(settings.db_path, auto_migrate=False)

    try:
        current = await get_current_version(db)
        pending = await get_pending_migrations(db)

        typer.echo(f"Database: {settings.db_path}")
        typer.echo(f"Current schema version: {current}")

        if not pending:
            typer.echo("No pending migrations.")
            return

        typer.echo(f"Pending migrations: {len(pending)}")
        for m in pending:
            typer.echo(f"  {m.version:03d}: {m.name}")

        typer.echo()
        applied = await run_migrations(db)

        for m in applied:
            typer.echo(f"Applied migration {m.version:03d}: {m.name}")

        new_version = await get_current_version(db)
        typer.echo(f"\nSchema version is now: {new_version}")
    finally:
        await close_db()


@app.command()
def archive(
    older_than_days: Annotated[
        int, typer.Option("--older-than-days", "-d", min=1, help="Redact events older than N days")
    ] = 365,
    keep_critical: Annotated[
        bool,
        typer.Option(
            "--keep-critical/--include-critical",
            help="Retain error and critical security events",
        ),
    ] = True,
) -> None:
    """Redact old events from feeds and analytics.  Rows are never deleted."""
    asyncio.run(_archive(older_than_days, keep_critical))


async def _archive(older_than_days: int, keep_critical: bool) -> None:
    from tasktrail.core.config import get_settings
    from tasktrail.events.store import EventStore
    from tasktrail.storage.database import close_db, init_db

    settings = get_settings()
    db = await init_db(settings.db_path)
    try:
        cutoff = datetime.now(UTC) - timedelta(days=older_than_days)
        count = await EventStore(db).archive_older_than(cutoff, keep_critical=keep_critical)
        typer.echo(f"Archived {count} events created before {cutoff.date().isoformat()}.")
    finally:
        await close_db()
