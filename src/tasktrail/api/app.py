# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tasktrail import __version__
from tasktrail.api.middleware import RequestMiddleware
from tasktrail.api.routes import analytics, events, health
from tasktrail.core.exceptions import TaskTrailError
from tasktrail.events.middleware import EventContextMiddleware

logger = logging.getLogger("tasktrail.api.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    from tasktrail.core.config import get_settings
    from tasktrail.core.logging import setup_logging
    from tasktrail.events.channel import EventChannel, set_event_channel
    from tasktrail.events.ingestion import EventIngestionService, set_ingestion_service
    from tasktrail.storage.database import close_db, get_db, init_db

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    await init_db(settings.db_path, auto_migrate=settings.auto_migrate)

    log_dir = Path(settings.audit_log_dir) if settings.audit_log_dir else None
    ingestion = EventIngestionService(log_dir=log_dir)
    set_ingestion_service(ingestion)
    channel = EventChannel(
        ingestion,
        max_queue=settings.channel_max_queue,
        dead_letter_limit=settings.channel_dead_letter_limit,
    )
    set_event_channel(channel)
    await channel.start()

    # Start the aggregation scheduler unless explicitly disabled
    scheduler = None
    if getattr(app.state, "enable_scheduler", True) and settings.aggregation_enabled:
        from tasktrail.analytics.engine import AggregationEngine, AggregationScheduler
        from tasktrail.analytics.store import SummaryStore
        from tasktrail.events.store import EventStore

        db = await get_db()
        scheduler = AggregationScheduler(
            AggregationEngine(EventStore(db), SummaryStore(db)),
            periods=settings.aggregation_periods,
            interval=settings.aggregation_interval_seconds,
        )
        await scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()
    await channel.stop()
    set_event_channel(None)
    set_ingestion_service(None)
    await close_db()


async def _handle_tasktrail_error(request: Request, exc: TaskTrailError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def create_app(*, enable_scheduler: bool = True) -> FastAPI:
    from tasktrail.core.config import get_settings

    app = FastAPI(
        title="tasktrail",
        description="Event logging and activity analytics for task workspaces",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.state.enable_scheduler = enable_scheduler

    app.add_exception_handler(TaskTrailError, _handle_tasktrail_error)  # type: ignore[arg-type]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(events.router, prefix="/api/v1", tags=["events"])
    app.include_router(analytics.router, prefix="/api/v1", tags=["analytics"])
    app.add_middleware(EventContextMiddleware)
    app.add_middleware(RequestMiddleware)

    return app


def _create_app_from_env() -> FastAPI:
    """Factory wrapper that reads TASKTRAIL_NO_SCHEDULER env var."""
    import os

    enable_scheduler = os.environ.get("TASKTRAIL_NO_SCHEDULER", "") != "1"
    return create_app(enable_scheduler=enable_scheduler)
