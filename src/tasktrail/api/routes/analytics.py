# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Activity metrics, security summary and stored summary endpoints."""

import dataclasses
import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from tasktrail.api.auth import require_identity
from tasktrail.core.constants import EventCategory, PeriodType
from tasktrail.core.exceptions import NotFoundError, ValidationError
from tasktrail.events.middleware import logged_operation
from tasktrail.events.models import parse_timestamp

logger = logging.getLogger("tasktrail.api.analytics")

router = APIRouter()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AggregateRequest(BaseModel):
    period_type: PeriodType = PeriodType.HOUR
    start: datetime
    end: datetime
    workspace_id: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_engine():
    from tasktrail.activity.queries import build_query_engine
    from tasktrail.core.config import get_settings
    from tasktrail.storage.database import get_db

    db = await get_db()
    return build_query_engine(db, get_settings())


async def _get_summary_store():
    from tasktrail.analytics.store import SummaryStore
    from tasktrail.storage.database import get_db

    db = await get_db()
    return SummaryStore(db)


async def _require_member(requester_id: str, workspace_id: str) -> None:
    """Summaries are stored per workspace; only members may read or rebuild them."""
    from tasktrail.access.membership import MembershipRepository
    from tasktrail.storage.database import get_db

    members = MembershipRepository(await get_db())
    if not await members.is_active_member(requester_id, workspace_id):
        raise NotFoundError("Workspace not found or access denied")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.get("/analytics/metrics")
@logged_operation()
async def activity_metrics(
    workspace_id: str | None = Query(default=None, alias="workspaceId"),
    days: int = Query(default=7, ge=1, le=365),
    requester_id: str = Depends(require_identity),
) -> dict[str, Any]:
    """Activity metrics for the last *days* days."""
    engine = await _get_engine()
    metrics = await engine.get_activity_metrics(
        requester_id, workspace_id=workspace_id, days=days
    )
    return dataclasses.asdict(metrics)


@router.get("/analytics/security")
@logged_operation(category=EventCategory.SECURITY)
async def security_summary(
    workspace_id: str | None = Query(default=None, alias="workspaceId"),
    days: int = Query(default=30, ge=1, le=365),
    limit: int = Query(default=10, ge=1, le=100),
    requester_id: str = Depends(require_identity),
) -> dict[str, Any]:
    """Counts of critical events, failed logins and suspicious activity."""
    engine = await _get_engine()
    summary = await engine.get_security_summary(
        requester_id, workspace_id=workspace_id, days=days, top_n=limit
    )
    return {
        "critical_count": summary.critical_count,
        "failed_login_count": summary.failed_login_count,
        "suspicious_activity_count": summary.suspicious_activity_count,
        "recent_alerts": [e.model_dump(mode="json") for e in summary.recent_alerts],
    }


@router.get("/analytics/summaries")
@logged_operation()
async def list_summaries(
    workspace_id: str = Query(alias="workspaceId"),
    period_type: str = Query(default="day", alias="periodType"),
    start: datetime | None = Query(default=None),  # noqa: B008
    end: datetime | None = Query(default=None),  # noqa: B008
    limit: int = Query(default=500, ge=1, le=5000),
    requester_id: str = Depends(require_identity),
) -> dict[str, Any]:
    """Stored bucket summaries for one workspace, oldest bucket first.

    The global (all-workspace) scope spans tenants and is not served here.
    """
    try:
        period = PeriodType(period_type)
    except ValueError:
        raise ValidationError(f"Invalid period type: {period_type!r}") from None
    await _require_member(requester_id, workspace_id)
    store = await _get_summary_store()
    rows = await store.list_summaries(
        period_type=str(period), workspace_id=workspace_id, start=start, end=end, limit=limit
    )
    return {"data": rows, "periodType": str(period), "total": len(rows)}


@router.post("/analytics/aggregate")
@logged_operation(category=EventCategory.SYSTEM)
async def aggregate(
    body: AggregateRequest,
    requester_id: str = Depends(require_identity),
) -> dict[str, Any]:
    """Recompute one workspace's summaries for a window on demand."""
    from tasktrail.analytics.engine import AggregationEngine
    from tasktrail.events.store import EventStore
    from tasktrail.storage.database import get_db

    start, end = parse_timestamp(body.start), parse_timestamp(body.end)
    if start >= end:
        raise ValidationError("start must be before end")
    await _require_member(requester_id, body.workspace_id)

    db = await get_db()
    engine = AggregationEngine(EventStore(db), await _get_summary_store())
    result = await engine.run(
        body.period_type, start, end, workspace_id=body.workspace_id
    )
    return {
        "period_type": str(result.period_type),
        "window_start": result.window_start.isoformat(),
        "window_end": result.window_end.isoformat(),
        "buckets": result.buckets,
        "events": result.events,
        "summaries": result.summaries,
        "user_summaries": result.user_summaries,
    }
