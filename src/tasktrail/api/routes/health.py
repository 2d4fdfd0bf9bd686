# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from tasktrail import __version__

router = APIRouter()


class ChannelHealth(BaseModel):
    running: bool
    submitted: int
    persisted: int
    failed: int
    dropped: int
    pending: int


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    database: str
    ingestion: ChannelHealth


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    from tasktrail.events.channel import get_event_channel
    from tasktrail.storage.database import get_db

    try:
        db = await get_db()
        cursor = await db.execute("SELECT 1")
        await cursor.fetchone()
        database = "connected"
    except Exception as exc:
        database = str(exc)

    channel = get_event_channel()
    stats = channel.stats()
    return HealthResponse(
        status="ok" if database == "connected" else "degraded",
        service="tasktrail",
        version=__version__,
        database=database,
        ingestion=ChannelHealth(
            running=channel.running,
            submitted=stats.submitted,
            persisted=stats.persisted,
            failed=stats.failed,
            dropped=stats.dropped,
            pending=stats.pending,
        ),
    )
