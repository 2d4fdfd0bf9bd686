# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Read views over the event log: feeds, timelines, audit trails and metrics.

Every view is a pure function of the stored events and the requester's
memberships.  A ``requester_id`` of None denotes a trusted internal
caller (CLI, scheduler) and disables tenant scoping.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from tasktrail.access.membership import MembershipRepository
from tasktrail.access.verifier import EntityAccessVerifier
from tasktrail.activity.export import ExportFormat, render
from tasktrail.activity.filters import (
    ActivityFilters,
    SortDirection,
    SortField,
    apply_filters,
    date_range_window,
    sort_activities,
)
from tasktrail.analytics.metrics import (
    ActivityMetrics,
    SecuritySummary,
    compute_activity_metrics,
    compute_security_summary,
)
from tasktrail.core.constants import EntityType, EventCategory, EventSeverity, EventType
from tasktrail.core.exceptions import NotFoundError, ValidationError
from tasktrail.events.models import ActivityFeedItem
from tasktrail.events.store import EventQuery, EventStore

logger = logging.getLogger("tasktrail.activity.queries")

STATUS_EVENT_TYPES: frozenset[str] = frozenset({
    EventType.STATUS_CHANGED,
    EventType.COMPLETED,
    EventType.REOPENED,
})
ASSIGNMENT_EVENT_TYPES: frozenset[str] = frozenset({
    EventType.ASSIGNED,
    EventType.UNASSIGNED,
    EventType.REASSIGNED,
})


@dataclass(frozen=True, slots=True)
class ActivityPage:
    data: list[ActivityFeedItem]
    limit: int
    offset: int
    has_more: bool


@dataclass(frozen=True, slots=True)
class TaskActivitySummary:
    task_id: str
    total_events: int = 0
    status_changes: int = 0
    assignments: int = 0
    last_activity_at: datetime | None = None
    contributors: list[str] = field(default_factory=list)


def clamp(value: int | None, default: int, maximum: int) -> int:
    """Clamp a page size into ``[1, maximum]``; None selects *default*."""
    if value is None:
        value = default
    return max(1, min(value, maximum))


class ActivityQueryEngine:
    """Tenant-scoped read views over the :class:`EventStore`."""

    def __init__(
        self,
        store: EventStore,
        members: MembershipRepository,
        verifier: EntityAccessVerifier,
        *,
        tz: ZoneInfo | None = None,
        feed_default_limit: int = 50,
        feed_max_limit: int = 100,
        timeline_default_limit: int = 100,
        timeline_max_limit: int = 500,
        query_max_limit: int = 1000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._members = members
        self._verifier = verifier
        self._tz = tz or ZoneInfo("UTC")
        self._feed_default_limit = feed_default_limit
        self._feed_max_limit = feed_max_limit
        self._timeline_default_limit = timeline_default_limit
        self._timeline_max_limit = timeline_max_limit
        self._query_max_limit = query_max_limit
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def timezone(self) -> ZoneInfo:
        return self._tz

    async def _scope(self, requester_id: str | None, workspace_id: str | None) -> dict[str, Any]:
        """EventQuery fields limiting results to what *requester_id* may see.

        A workspace the requester is not an active member of is reported as
        not found, so its existence is not disclosed.
        """
        if workspace_id is not None:
            if requester_id is not None and not await self._members.is_active_member(
                requester_id, workspace_id
            ):
                raise NotFoundError("Workspace not found or access denied")
            return {"workspace_id": workspace_id}
        if requester_id is None:
            return {}
        return {
            "workspace_ids": await self._members.workspace_ids_for_user(requester_id),
            "visible_user_id": requester_id,
        }

    # -----------------------------------------------------------------
    # Feeds and timelines
    # -----------------------------------------------------------------

    async def get_recent_activity(
        self,
        requester_id: str | None,
        *,
        workspace_id: str | None = None,
        user_id: str | None = None,
        categories: Sequence[EventCategory | str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ActivityPage:
        """Newest-first page of the activity feed.

        ``has_more`` is true exactly when the page came back full.
        """
        categories = _validate(categories or (), EventCategory, "category")
        limit = clamp(limit, self._feed_default_limit, self._feed_max_limit)
        offset = max(offset, 0)
        scope = await self._scope(requester_id, workspace_id)
        items = await self._store.query(EventQuery(
            user_id=user_id,
            categories=categories,
            limit=limit,
            offset=offset,
            **scope,
        ))
        return ActivityPage(data=items, limit=limit, offset=offset, has_more=len(items) == limit)

    async def get_entity_timeline(
        self,
        requester_id: str | None,
        entity_type: EntityType | str,
        entity_id: str,
        *,
        limit: int | None = None,
    ) -> list[ActivityFeedItem]:
        """History of one entity, newest first, gated by the access verifier."""
        entity_type = _validate([entity_type], EntityType, "entity type")[0]
        limit = clamp(limit, self._timeline_default_limit, self._timeline_max_limit)
        if requester_id is not None:
            await self._verifier.ensure(requester_id, entity_type, entity_id)
        return await self._store.entity_timeline(entity_type, entity_id, limit=limit)

    async def get_correlated_events(
        self, requester_id: str | None, correlation_id: str
    ) -> list[ActivityFeedItem]:
        """Every visible event of one logical operation, in causal order."""
        scope = await self._scope(requester_id, None)
        return await self._store.by_correlation(
            correlation_id,
            workspace_ids=scope.get("workspace_ids"),
            visible_user_id=scope.get("visible_user_id"),
        )

    # -----------------------------------------------------------------
    # Structured queries
    # -----------------------------------------------------------------

    async def get_events(
        self, query: EventQuery, *, requester_id: str | None = None
    ) -> list[ActivityFeedItem]:
        """Run a structured query, scoped to the requester and capped in size."""
        _validate(query.event_types, EventType, "event type")
        _validate(query.entity_types, EntityType, "entity type")
        _validate(query.categories, EventCategory, "category")
        _validate(query.severities, EventSeverity, "severity")
        scope = await self._scope(requester_id, query.workspace_id)
        limit = query.limit if 0 < query.limit <= self._query_max_limit else self._query_max_limit
        return await self._store.query(dataclasses.replace(query, limit=limit, **scope))

    async def get_security_events(
        self,
        requester_id: str | None,
        *,
        workspace_id: str | None = None,
        user_id: str | None = None,
        severities: Sequence[EventSeverity | str] = (
            EventSeverity.WARNING,
            EventSeverity.ERROR,
            EventSeverity.CRITICAL,
        ),
        days: int = 30,
        limit: int = 100,
    ) -> list[ActivityFeedItem]:
        """Security-category events of the last *days* days, newest first."""
        return await self.get_events(
            EventQuery(
                workspace_id=workspace_id,
                user_id=user_id,
                categories=(EventCategory.SECURITY,),
                severities=tuple(severities),
                start=self._clock() - timedelta(days=days),
                limit=limit,
            ),
            requester_id=requester_id,
        )

    async def get_audit_trail(
        self,
        requester_id: str | None,
        *,
        workspace_id: str | None = None,
        entity_type: EntityType | str | None = None,
        entity_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        include_redacted: bool = False,
        limit: int = 1000,
    ) -> list[ActivityFeedItem]:
        """Oldest-first audit trail.  Unlike feeds it can include redacted events."""
        return await self.get_events(
            EventQuery(
                workspace_id=workspace_id,
                entity_types=(entity_type,) if entity_type else (),
                entity_id=entity_id,
                start=start,
                end=end,
                include_deleted=include_redacted,
                ascending=True,
                limit=limit,
            ),
            requester_id=requester_id,
        )

    async def get_task_activity_summary(
        self, requester_id: str | None, task_id: str
    ) -> TaskActivitySummary:
        if requester_id is not None:
            await self._verifier.ensure(requester_id, EntityType.TASK, task_id)
        events = await self._store.query(EventQuery(
            entity_types=(EntityType.TASK,), entity_id=task_id, limit=-1
        ))
        if not events:
            return TaskActivitySummary(task_id=task_id)
        return TaskActivitySummary(
            task_id=task_id,
            total_events=len(events),
            status_changes=sum(1 for e in events if e.event_type in STATUS_EVENT_TYPES),
            assignments=sum(1 for e in events if e.event_type in ASSIGNMENT_EVENT_TYPES),
            last_activity_at=max(e.created_at for e in events),
            contributors=sorted({e.user_id for e in events if e.user_id}),
        )

    # -----------------------------------------------------------------
    # Metrics and export
    # -----------------------------------------------------------------

    async def _window(
        self,
        requester_id: str | None,
        workspace_id: str | None,
        start: datetime,
        end: datetime,
    ) -> list[ActivityFeedItem]:
        scope = await self._scope(requester_id, workspace_id)
        return await self._store.query(EventQuery(start=start, end=end, limit=-1, **scope))

    async def get_activity_metrics(
        self,
        requester_id: str | None,
        *,
        workspace_id: str | None = None,
        days: int = 7,
        top_n: int = 5,
    ) -> ActivityMetrics:
        """Metrics for the last *days* days, with growth against the window before."""
        if days < 1:
            raise ValidationError("days must be at least 1")
        now = self._clock()
        start = now - timedelta(days=days)
        current = await self._window(requester_id, workspace_id, start, now)
        previous = await self._window(
            requester_id, workspace_id, start - timedelta(days=days), start
        )
        return compute_activity_metrics(
            current, now=now, tz=self._tz, days=days, previous_events=previous, top_n=top_n
        )

    async def get_security_summary(
        self,
        requester_id: str | None,
        *,
        workspace_id: str | None = None,
        days: int = 30,
        top_n: int = 10,
    ) -> SecuritySummary:
        now = self._clock()
        events = await self._window(requester_id, workspace_id, now - timedelta(days=days), now)
        return compute_security_summary(events, top_n=top_n)

    async def export_activity(
        self,
        requester_id: str | None,
        filters: ActivityFilters,
        *,
        fmt: ExportFormat | str = ExportFormat.CSV,
        workspace_id: str | None = None,
        sort_field: SortField | str = SortField.CREATED_AT,
        direction: SortDirection | str = SortDirection.DESC,
    ) -> tuple[str, int]:
        """Render the filtered, sorted feed.  Returns the document and row count."""
        try:
            fmt = ExportFormat(fmt)
        except ValueError:
            raise ValidationError(f"Unsupported export format: {fmt!r}") from None
        scope = await self._scope(requester_id, workspace_id)
        now = self._clock()
        start, end = date_range_window(filters, now=now, tz=self._tz)
        query = EventQuery(
            event_types=tuple(filters.event_types),
            entity_types=tuple(filters.entity_types),
            severities=tuple(filters.severities),
            categories=tuple(filters.categories),
            user_ids=tuple(filters.user_ids),
            start=start,
            end=end,
            limit=self._query_max_limit,
            **scope,
        )
        items: list[ActivityFeedItem] = []
        while True:
            page = await self._store.query(query)
            items.extend(page)
            if len(page) < query.limit:
                break
            query.offset += query.limit
        selected = sort_activities(
            apply_filters(items, filters, now=now, tz=self._tz),
            sort_field,
            direction,
        )
        return render(selected, fmt, tz=self._tz), len(selected)


def _validate(values: Sequence[Any], enum_type: type, label: str) -> list[Any]:
    try:
        return [enum_type(v) for v in values]
    except ValueError:
        raise ValidationError(f"Invalid {label} in {list(values)!r}") from None


def build_query_engine(db: Any, settings: Any) -> ActivityQueryEngine:
    """Wire an :class:`ActivityQueryEngine` onto *db* using *settings* limits."""
    from tasktrail.access.verifier import build_default_verifier
    from tasktrail.core.calendar import resolve_timezone

    members = MembershipRepository(db)
    return ActivityQueryEngine(
        EventStore(db),
        members,
        build_default_verifier(
            members, allow_unregistered=settings.access_allow_unregistered
        ),
        tz=resolve_timezone(settings.reference_timezone),
        feed_default_limit=settings.feed_default_limit,
        feed_max_limit=settings.feed_max_limit,
        timeline_default_limit=settings.timeline_default_limit,
        timeline_max_limit=settings.timeline_max_limit,
        query_max_limit=settings.query_max_limit,
    )
