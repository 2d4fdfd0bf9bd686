# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Typer CLI application root."""

from __future__ import annotations

from typing import Annotated

import typer

from tasktrail.cli.commands import activity, analytics, db

app = typer.Typer(
    name="tasktrail",
    help="Event logging and activity analytics for task workspaces",
    no_args_is_help=True,
)

app.add_typer(db.app, name="db", help="Database management")
app.add_typer(activity.app, name="activity", help="Query the activity log")
app.add_typer(analytics.app, name="analytics", help="Aggregation and activity metrics")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address [default: api_host]"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port [default: api_port]"),
    workers: int | None = typer.Option(
        None, "--workers", "-w", help="Worker count [default: api_workers]"
    ),
    no_scheduler: Annotated[
        bool, typer.Option("--no-scheduler", help="Disable the background aggregation loop")
    ] = False,
) -> None:
    """Start the tasktrail API server."""
    import uvicorn

    from tasktrail.core.config import get_settings

    settings = get_settings()

    if no_scheduler:
        # Pass flag via environment; the app factory reads it
        import os
        os.environ["TASKTRAIL_NO_SCHEDULER"] = "1"

    uvicorn.run(
        "tasktrail.api.app:_create_app_from_env",
        host=settings.api_host if host is None else host,
        port=settings.api_port if port is None else port,
        workers=settings.api_workers if workers is None else workers,
        factory=True,
    )


@app.command()
def version() -> None:
    """Show version information."""
    from tasktrail import __version__

    typer.echo(f"tasktrail {__version__}")
