# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Activity feed, entity timeline, correlation and export endpoints."""

import json
import logging
from datetime import UTC, date, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from tasktrail.api.auth import require_identity
from tasktrail.core.constants import EntityType, EventCategory, EventType
from tasktrail.core.exceptions import ValidationError
from tasktrail.events.middleware import logged_operation

logger = logging.getLogger("tasktrail.api.events")

router = APIRouter()

_MEDIA_TYPES = {"csv": "text/csv; charset=utf-8", "json": "application/json"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_engine():
    """Get an ActivityQueryEngine bound to the active DB connection."""
    from tasktrail.activity.queries import build_query_engine
    from tasktrail.core.config import get_settings
    from tasktrail.storage.database import get_db

    db = await get_db()
    return build_query_engine(db, get_settings())


def parse_list(value: str | None) -> list[str]:
    """Accept a JSON array or a comma-separated list."""
    if value is None or not value.strip():
        return []
    text = value.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            raise ValidationError(f"Malformed list parameter: {value!r}") from None
        if not isinstance(parsed, list):
            raise ValidationError(f"Malformed list parameter: {value!r}")
        return [str(v) for v in parsed]
    return [v.strip() for v in text.split(",") if v.strip()]


def _dump(items: list[Any]) -> list[dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/events/recent")
@logged_operation(skip_logging=True)
async def recent_activity(
    workspace_id: str | None = Query(default=None, alias="workspaceId"),
    user_id: str | None = Query(default=None, alias="userId"),
    categories: str | None = Query(default=None),
    limit: int = Query(default=50),
    offset: int = Query(default=0),
    requester_id: str = Depends(require_identity),
) -> dict[str, Any]:
    """Newest-first activity feed visible to the caller."""
    engine = await _get_engine()
    page = await engine.get_recent_activity(
        requester_id,
        workspace_id=workspace_id,
        user_id=user_id,
        categories=parse_list(categories) or None,
        limit=limit,
        offset=offset,
    )
    return {
        "data": _dump(page.data),
        "pagination": {
            "limit": page.limit,
            "offset": page.offset,
            "hasMore": page.has_more,
        },
    }


@router.get("/events/timeline/{entity_type}/{entity_id}")
@logged_operation(skip_logging=True)
async def entity_timeline(
    entity_type: str,
    entity_id: str,
    limit: int = Query(default=100),
    requester_id: str = Depends(require_identity),
) -> dict[str, Any]:
    """History of a single entity, newest first."""
    engine = await _get_engine()
    items = await engine.get_entity_timeline(requester_id, entity_type, entity_id, limit=limit)
    return {
        "data": _dump(items),
        "entityType": entity_type,
        "entityId": entity_id,
        "total": len(items),
    }


@router.get("/events/correlation/{correlation_id}")
@logged_operation()
async def correlated_events(
    correlation_id: str,
    requester_id: str = Depends(require_identity),
) -> dict[str, Any]:
    """Every event of one logical operation, oldest first."""
    engine = await _get_engine()
    items = await engine.get_correlated_events(requester_id, correlation_id)
    return {"data": _dump(items), "correlationId": correlation_id, "total": len(items)}


@router.get("/events/export")
@logged_operation(category=EventCategory.USER_ACTION)
async def export_activity(
    fmt: str = Query(default="csv", alias="format"),
    workspace_id: str | None = Query(default=None, alias="workspaceId"),
    search: str = Query(default=""),
    event_types: str | None = Query(default=None, alias="eventTypes"),
    entity_types: str | None = Query(default=None, alias="entityTypes"),
    severities: str | None = Query(default=None),
    categories: str | None = Query(default=None),
    user_ids: str | None = Query(default=None, alias="userIds"),
    date_range: str = Query(default="all", alias="dateRange"),
    custom_start: date | None = Query(default=None, alias="customStart"),  # noqa: B008
    custom_end: date | None = Query(default=None, alias="customEnd"),  # noqa: B008
    sort: str = Query(default="created_at"),
    direction: str = Query(default="desc"),
    requester_id: str = Depends(require_identity),
) -> Response:
    """Download the filtered activity set as CSV or JSON."""
    from tasktrail.activity.filters import ActivityFilters, DateRangePreset
    from tasktrail.events.channel import get_event_channel
    from tasktrail.events.models import EventDraft

    try:
        preset = DateRangePreset(date_range)
    except ValueError:
        raise ValidationError(f"Invalid date range: {date_range!r}") from None

    filters = ActivityFilters(
        search_query=search,
        event_types=parse_list(event_types),
        entity_types=parse_list(entity_types),
        severities=parse_list(severities),
        categories=parse_list(categories),
        user_ids=parse_list(user_ids),
        date_range=preset,
        custom_start=custom_start,
        custom_end=custom_end,
    )
    engine = await _get_engine()
    body, count = await engine.export_activity(
        requester_id,
        filters,
        fmt=fmt,
        workspace_id=workspace_id,
        sort_field=sort,
        direction=direction,
    )

    get_event_channel().submit(EventDraft.create(
        event_type=EventType.EXPORT_GENERATED,
        entity_type=EntityType.WORKSPACE if workspace_id else EntityType.USER,
        entity_id=workspace_id or requester_id,
        workspace_id=workspace_id,
        user_id=requester_id,
        context={"format": fmt, "row_count": count, "date_range": str(preset)},
        tags=["export", fmt],
    ))

    today = datetime.now(UTC).date().isoformat()
    return Response(
        content=body,
        media_type=_MEDIA_TYPES[fmt],
        headers={
            "Content-Disposition": f'attachment; filename="activity-export-{today}.{fmt}"',
        },
    )
