# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Time-bucketed activity summaries computed as pure reductions over events.

Every function here is deterministic in its inputs: the same events (in
any order) always produce the same summaries, which is what makes a
re-aggregation pass safe to repeat.
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from tasktrail.core.constants import EntityType, EventType, PeriodType
from tasktrail.events.models import Event, format_timestamp

# Task events produced by an update (completion is counted separately).
TASK_UPDATE_TYPES: frozenset[str] = frozenset({
    EventType.UPDATED,
    EventType.STATUS_CHANGED,
    EventType.REOPENED,
    EventType.ASSIGNED,
    EventType.UNASSIGNED,
    EventType.REASSIGNED,
    EventType.MOVED,
    EventType.REORDERED,
    EventType.ARCHIVED,
    EventType.UNARCHIVED,
})


@dataclass(frozen=True, slots=True)
class ActivitySummary:
    """Event counts for one scope and one ``[period_start, period_end)`` bucket.

    ``workspace_id`` None is the global scope.  Empty buckets carry
    ``event_count=0`` and empty maps.
    """

    workspace_id: str | None
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    event_count: int = 0
    by_category: dict[str, int] = field(default_factory=dict)
    by_event_type: dict[str, int] = field(default_factory=dict)

    def to_row(self) -> dict[str, Any]:
        return {
            "workspace_id": self.workspace_id or "",
            "period_type": str(self.period_type),
            "period_start": format_timestamp(self.period_start),
            "period_end": format_timestamp(self.period_end),
            "event_count": self.event_count,
            "by_category": json.dumps(self.by_category, sort_keys=True),
            "by_event_type": json.dumps(self.by_event_type, sort_keys=True),
        }


@dataclass(frozen=True, slots=True)
class UserActivitySummary:
    """One user's activity in one scope and bucket."""

    user_id: str
    workspace_id: str | None
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    total_events: int = 0
    tasks_created: int = 0
    tasks_completed: int = 0
    tasks_updated: int = 0
    sections_created: int = 0
    workspaces_created: int = 0
    searches_performed: int = 0
    logins: int = 0
    active_minutes: int = 0
    last_activity_at: datetime | None = None
    most_active_hour: int | None = None

    def to_row(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "workspace_id": self.workspace_id or "",
            "period_type": str(self.period_type),
            "period_start": format_timestamp(self.period_start),
            "period_end": format_timestamp(self.period_end),
            "total_events": self.total_events,
            "tasks_created": self.tasks_created,
            "tasks_completed": self.tasks_completed,
            "tasks_updated": self.tasks_updated,
            "sections_created": self.sections_created,
            "workspaces_created": self.workspaces_created,
            "searches_performed": self.searches_performed,
            "logins": self.logins,
            "active_minutes": self.active_minutes,
            "last_activity_at": (
                format_timestamp(self.last_activity_at) if self.last_activity_at else None
            ),
            "most_active_hour": self.most_active_hour,
        }


# ---------------------------------------------------------------------------
# Buckets
# ---------------------------------------------------------------------------


def bucket_bounds(dt: datetime, period_type: PeriodType | str) -> tuple[datetime, datetime]:
    """Return the UTC ``[start, end)`` of the bucket containing *dt*.

    Weeks are ISO weeks starting on Monday; months are calendar months.
    """
    period_type = PeriodType(period_type)
    dt = dt.astimezone(UTC) if dt.tzinfo else dt.replace(tzinfo=UTC)

    if period_type == PeriodType.HOUR:
        start = dt.replace(minute=0, second=0, microsecond=0)
        return start, start + timedelta(hours=1)
    if period_type == PeriodType.DAY:
        start = dt.replace(hour=0, minute=0, second=0, microsecond=0)
        return start, start + timedelta(days=1)
    if period_type == PeriodType.WEEK:
        day = dt.replace(hour=0, minute=0, second=0, microsecond=0)
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=7)

    start = dt.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def iter_buckets(
    start: datetime, end: datetime, period_type: PeriodType | str
) -> list[tuple[datetime, datetime]]:
    """Every bucket overlapping ``[start, end)``, oldest first, empty ones included."""
    buckets: list[tuple[datetime, datetime]] = []
    if end <= start:
        return buckets
    cursor, bucket_end = bucket_bounds(start, period_type)
    while cursor < end:
        buckets.append((cursor, bucket_end))
        cursor, bucket_end = bucket_bounds(bucket_end, period_type)
    return buckets


def _ordered(events: Iterable[Event]) -> list[Event]:
    return sorted(events, key=lambda e: (e.created_at, e.id))


def _in_scope(event: Event, workspace_id: str | None) -> bool:
    return workspace_id is None or event.workspace_id == workspace_id


# ---------------------------------------------------------------------------
# Workspace summaries
# ---------------------------------------------------------------------------


def summarize_bucket(
    events: Iterable[Event],
    *,
    period_type: PeriodType | str,
    period_start: datetime,
    workspace_id: str | None = None,
) -> ActivitySummary:
    """Reduce the events falling in one bucket to an :class:`ActivitySummary`.

    Events outside the bucket or the scope are ignored; redacted events are
    never counted.
    """
    period_type = PeriodType(period_type)
    start, end = bucket_bounds(period_start, period_type)
    categories: Counter[str] = Counter()
    event_types: Counter[str] = Counter()
    count = 0
    for event in events:
        if event.is_deleted or not _in_scope(event, workspace_id):
            continue
        if not start <= event.created_at < end:
            continue
        count += 1
        categories[str(event.category)] += 1
        event_types[str(event.event_type)] += 1

    return ActivitySummary(
        workspace_id=workspace_id,
        period_type=period_type,
        period_start=start,
        period_end=end,
        event_count=count,
        by_category=dict(sorted(categories.items())),
        by_event_type=dict(sorted(event_types.items())),
    )


def summarize_window(
    events: Iterable[Event],
    *,
    period_type: PeriodType | str,
    start: datetime,
    end: datetime,
    workspace_id: str | None = None,
) -> list[ActivitySummary]:
    """One summary per bucket overlapping ``[start, end)``, zero-filled."""
    period_type = PeriodType(period_type)
    partitions: dict[datetime, list[Event]] = {}
    for event in _ordered(events):
        bucket_start, _ = bucket_bounds(event.created_at, period_type)
        partitions.setdefault(bucket_start, []).append(event)

    return [
        summarize_bucket(
            partitions.get(bucket_start, ()),
            period_type=period_type,
            period_start=bucket_start,
            workspace_id=workspace_id,
        )
        for bucket_start, _ in iter_buckets(start, end, period_type)
    ]


# ---------------------------------------------------------------------------
# User summaries
# ---------------------------------------------------------------------------


def summarize_user_bucket(
    user_id: str,
    events: Sequence[Event],
    *,
    period_type: PeriodType | str,
    period_start: datetime,
    workspace_id: str | None = None,
) -> UserActivitySummary:
    """Counters for *user_id* over the events of one bucket.

    ``active_minutes`` is the span between the first and last event, with a
    floor of one minute once the user did anything.  ``most_active_hour``
    is the most frequent UTC hour, ties broken by the earliest hour.
    """
    period_type = PeriodType(period_type)
    start, end = bucket_bounds(period_start, period_type)
    mine = _ordered(
        e for e in events
        if e.user_id == user_id
        and not e.is_deleted
        and _in_scope(e, workspace_id)
        and start <= e.created_at < end
    )
    if not mine:
        return UserActivitySummary(
            user_id=user_id,
            workspace_id=workspace_id,
            period_type=period_type,
            period_start=start,
            period_end=end,
        )

    def count(event_types: Iterable[str], entity_type: str | None = None) -> int:
        wanted = set(event_types)
        return sum(
            1 for e in mine
            if e.event_type in wanted and (entity_type is None or e.entity_type == entity_type)
        )

    hours = Counter(e.created_at.hour for e in mine)
    top = max(hours.values())
    span = mine[-1].created_at - mine[0].created_at

    return UserActivitySummary(
        user_id=user_id,
        workspace_id=workspace_id,
        period_type=period_type,
        period_start=start,
        period_end=end,
        total_events=len(mine),
        tasks_created=count([EventType.CREATED], EntityType.TASK),
        tasks_completed=count([EventType.COMPLETED], EntityType.TASK),
        tasks_updated=count(TASK_UPDATE_TYPES, EntityType.TASK),
        sections_created=count([EventType.CREATED], EntityType.SECTION),
        workspaces_created=count([EventType.CREATED], EntityType.WORKSPACE),
        searches_performed=count([EventType.SEARCH_PERFORMED]),
        logins=count([EventType.LOGIN]),
        active_minutes=max(1, int(span.total_seconds() // 60)),
        last_activity_at=mine[-1].created_at,
        most_active_hour=min(h for h, n in hours.items() if n == top),
    )


def summarize_users(
    events: Iterable[Event],
    *,
    period_type: PeriodType | str,
    start: datetime,
    end: datetime,
) -> list[UserActivitySummary]:
    """Per-user summaries, scoped to each event's workspace.

    Only (user, workspace, bucket) combinations with at least one event are
    returned, ordered by bucket, workspace and user.
    """
    period_type = PeriodType(period_type)
    buckets = iter_buckets(start, end, period_type)
    if not buckets:
        return []
    window_start, window_end = buckets[0][0], buckets[-1][1]
    groups: dict[tuple[datetime, str, str], list[Event]] = {}
    for event in _ordered(events):
        if event.user_id is None or event.is_deleted:
            continue
        if not window_start <= event.created_at < window_end:
            continue
        bucket_start, _ = bucket_bounds(event.created_at, period_type)
        key = (bucket_start, event.workspace_id or "", event.user_id)
        groups.setdefault(key, []).append(event)

    return [
        summarize_user_bucket(
            user_id,
            groups[(bucket_start, scope, user_id)],
            period_type=period_type,
            period_start=bucket_start,
            workspace_id=scope or None,
        )
        for bucket_start, scope, user_id in sorted(groups)
    ]
