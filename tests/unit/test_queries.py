# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the ActivityQueryEngine read views."""

from __future__ import annotations

import csv
import io
import json
from datetime import UTC, date, datetime, timedelta

import pytest

from tasktrail.access.membership import MembershipRepository
from tasktrail.access.verifier import build_default_verifier
from tasktrail.activity.filters import ActivityFilters, DateRangePreset
from tasktrail.activity.queries import ActivityQueryEngine
from tasktrail.core.constants import EventCategory, EventSeverity, EventType
from tasktrail.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from tasktrail.events.store import EventQuery, EventStore

NOW = datetime(2026, 3, 4, 18, 0, tzinfo=UTC)


@pytest.fixture
async def store(seeded_db) -> EventStore:
    return EventStore(seeded_db)


@pytest.fixture
def engine(seeded_db, store) -> ActivityQueryEngine:
    members = MembershipRepository(seeded_db)
    return ActivityQueryEngine(
        store, members, build_default_verifier(members), clock=lambda: NOW
    )


async def _insert(store, events) -> None:
    for event in events:
        await store.insert(event)


# ---------------------------------------------------------------------------
# Recent activity
# ---------------------------------------------------------------------------


class TestRecentActivity:
    async def test_scoped_to_requester(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(id="ws1", workspace_id="ws-1"),
            make_event(id="ws2", workspace_id="ws-2", user_id="user-carol"),
            make_event(id="own-login", workspace_id=None, entity_type="session"),
        ])
        page = await engine.get_recent_activity("user-alice")
        assert {i.id for i in page.data} == {"ws1", "own-login"}

    async def test_non_member_workspace_is_not_found(self, engine) -> None:
        with pytest.raises(NotFoundError):
            await engine.get_recent_activity("user-alice", workspace_id="ws-2")

    async def test_limit_is_clamped(self, engine, store, make_event) -> None:
        await _insert(store, [make_event() for _ in range(3)])
        page = await engine.get_recent_activity("user-alice", limit=1000)
        assert page.limit == 100
        page = await engine.get_recent_activity("user-alice", limit=0, offset=-5)
        assert page.limit == 1
        assert page.offset == 0

    async def test_has_more_when_page_is_full(self, engine, store, make_event) -> None:
        await _insert(store, [make_event() for _ in range(3)])
        assert (await engine.get_recent_activity("user-alice", limit=2)).has_more
        assert not (await engine.get_recent_activity("user-alice", limit=5)).has_more

    async def test_category_filter(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(id="sec", category=EventCategory.SECURITY),
            make_event(id="usr"),
        ])
        page = await engine.get_recent_activity(
            "user-alice", workspace_id="ws-1", categories=["security"]
        )
        assert [i.id for i in page.data] == ["sec"]

    async def test_invalid_category(self, engine) -> None:
        with pytest.raises(ValidationError):
            await engine.get_recent_activity("user-alice", categories=["gossip"])

    async def test_trusted_caller_sees_everything(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(workspace_id="ws-1"),
            make_event(workspace_id="ws-2"),
        ])
        assert len((await engine.get_recent_activity(None)).data) == 2

    async def test_category_filter_keeps_newest_first(self, engine, store, make_event) -> None:
        day = datetime(2026, 3, 3, tzinfo=UTC)
        await _insert(store, [
            make_event(id="nine", created_at=day.replace(hour=9)),
            make_event(id="nine-thirty", created_at=day.replace(hour=9, minute=30)),
            make_event(id="two-pm", created_at=day.replace(hour=14),
                       category=EventCategory.SECURITY),
        ])
        page = await engine.get_recent_activity("user-alice", categories=["user_action"])
        assert [i.id for i in page.data] == ["nine-thirty", "nine"]

    async def test_category_partitions_cover_the_feed(self, engine, store, make_event) -> None:
        categories = list(EventCategory)
        await _insert(store, [
            make_event(id=f"evt-{n}", category=categories[n % len(categories)])
            for n in range(12)
        ])
        everything = await engine.get_recent_activity("user-alice")

        partitioned: list[str] = []
        for category in categories:
            page = await engine.get_recent_activity("user-alice", categories=[category])
            partitioned.extend(i.id for i in page.data)

        assert len(partitioned) == len(everything.data) == 12
        assert sorted(partitioned) == sorted(i.id for i in everything.data)


# ---------------------------------------------------------------------------
# Entity timeline
# ---------------------------------------------------------------------------


class TestEntityTimeline:
    async def test_newest_first(self, engine, store, make_event) -> None:
        await _insert(store, [make_event(id=f"e{n}") for n in range(3)])
        items = await engine.get_entity_timeline("user-bob", "task", "task-1")
        assert [i.id for i in items] == ["e2", "e1", "e0"]

    async def test_access_denied(self, engine) -> None:
        with pytest.raises(AccessDeniedError):
            await engine.get_entity_timeline("user-alice", "task", "task-2")

    async def test_not_found(self, engine) -> None:
        with pytest.raises(NotFoundError):
            await engine.get_entity_timeline("user-alice", "task", "task-missing")

    async def test_invalid_entity_type(self, engine) -> None:
        with pytest.raises(ValidationError):
            await engine.get_entity_timeline("user-alice", "planet", "p1")

    async def test_limit_is_clamped(self, engine, store, make_event) -> None:
        await _insert(store, [make_event() for _ in range(3)])
        assert len(await engine.get_entity_timeline("user-alice", "task", "task-1", limit=0)) == 1


# ---------------------------------------------------------------------------
# Structured queries
# ---------------------------------------------------------------------------


class TestStructuredQueries:
    async def test_correlated_events_are_scoped(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(id="a", correlation_id="op"),
            make_event(id="b", correlation_id="op", workspace_id="ws-2", user_id="user-carol"),
        ])
        items = await engine.get_correlated_events("user-alice", "op")
        assert [i.id for i in items] == ["a"]
        items = await engine.get_correlated_events(None, "op")
        assert [i.id for i in items] == ["a", "b"]

    async def test_get_events_caps_limit(self, engine, store, make_event) -> None:
        await _insert(store, [make_event() for _ in range(3)])
        items = await engine.get_events(EventQuery(limit=10_000), requester_id="user-alice")
        assert len(items) == 3

    async def test_get_events_validates_enums(self, engine) -> None:
        with pytest.raises(ValidationError):
            await engine.get_events(EventQuery(severities=["loud"]))

    async def test_security_events(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(id="warn", category=EventCategory.SECURITY,
                       severity=EventSeverity.WARNING, created_at=NOW - timedelta(days=1)),
            make_event(id="info", category=EventCategory.SECURITY,
                       created_at=NOW - timedelta(days=1)),
            make_event(id="ancient", category=EventCategory.SECURITY,
                       severity=EventSeverity.CRITICAL, created_at=NOW - timedelta(days=90)),
        ])
        items = await engine.get_security_events("user-alice", days=30)
        assert [i.id for i in items] == ["warn"]

    async def test_audit_trail_can_include_redacted(self, engine, store, make_event) -> None:
        await _insert(store, [make_event(id="kept"), make_event(id="redacted")])
        await store.redact("redacted")

        visible = await engine.get_audit_trail(None, entity_type="task", entity_id="task-1")
        assert [i.id for i in visible] == ["kept"]
        full = await engine.get_audit_trail(None, entity_id="task-1", include_redacted=True)
        assert [i.id for i in full] == ["kept", "redacted"]

    async def test_task_activity_summary(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(event_type=EventType.CREATED),
            make_event(event_type=EventType.ASSIGNED, user_id="user-bob"),
            make_event(event_type=EventType.STATUS_CHANGED),
            make_event(id="last", event_type=EventType.COMPLETED, user_id="user-bob"),
        ])
        summary = await engine.get_task_activity_summary("user-alice", "task-1")
        assert summary.total_events == 4
        assert summary.status_changes == 2
        assert summary.assignments == 1
        assert summary.contributors == ["user-alice", "user-bob"]
        last = await store.get_by_id("last")
        assert summary.last_activity_at == last.created_at

    async def test_task_activity_summary_requires_access(self, engine) -> None:
        with pytest.raises(AccessDeniedError):
            await engine.get_task_activity_summary("user-alice", "task-2")


# ---------------------------------------------------------------------------
# Metrics and export
# ---------------------------------------------------------------------------


class TestMetricsAndExport:
    async def test_activity_metrics_growth(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(created_at=NOW - timedelta(days=1)),
            make_event(created_at=NOW - timedelta(days=2)),
            make_event(created_at=NOW - timedelta(days=10)),
        ])
        metrics = await engine.get_activity_metrics("user-alice", days=7)
        assert metrics.total_events == 2
        assert metrics.growth_rate == 100.0
        assert len(metrics.hour_distribution) == 24

    async def test_metrics_reject_empty_window(self, engine) -> None:
        with pytest.raises(ValidationError):
            await engine.get_activity_metrics(None, days=0)

    async def test_security_summary(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(event_type=EventType.LOGIN_FAILED, entity_type="session",
                       category=EventCategory.SECURITY, severity=EventSeverity.WARNING,
                       created_at=NOW - timedelta(hours=1)),
            make_event(id="crit", event_type=EventType.SUSPICIOUS_ACTIVITY,
                       entity_type="session", category=EventCategory.SECURITY,
                       severity=EventSeverity.CRITICAL, created_at=NOW - timedelta(hours=2)),
        ])
        summary = await engine.get_security_summary("user-alice")
        assert summary.failed_login_count == 1
        assert summary.suspicious_activity_count == 1
        assert summary.critical_count == 1
        assert [e.id for e in summary.recent_alerts] == ["crit"]

    async def test_export_csv(self, engine, store, make_event) -> None:
        await _insert(store, [
            make_event(new_values={"title": 'Say "hello"'}, created_at=NOW - timedelta(hours=1)),
            make_event(event_type=EventType.DELETED, created_at=NOW - timedelta(hours=2)),
        ])
        body, count = await engine.export_activity(
            "user-alice", ActivityFilters(search_query="hello"), fmt="csv"
        )
        assert count == 1
        rows = list(csv.reader(io.StringIO(body)))
        assert rows[0][0] == "Date"
        assert rows[1][5] == 'Say "hello"'
        assert '"Say ""hello"""' in body

    async def test_export_json(self, engine, store, make_event) -> None:
        await _insert(store, [make_event(created_at=NOW - timedelta(hours=1))])
        body, count = await engine.export_activity(None, ActivityFilters(), fmt="json")
        assert count == 1
        assert json.loads(body)[0]["workspace_name"] == "Product"

    async def test_export_rejects_unknown_format(self, engine) -> None:
        with pytest.raises(ValidationError):
            await engine.export_activity(None, ActivityFilters(), fmt="xlsx")


# ---------------------------------------------------------------------------
# Export beyond a single store page
# ---------------------------------------------------------------------------


class TestExportCompleteness:
    @pytest.fixture
    def small_pages(self, seeded_db, store) -> ActivityQueryEngine:
        members = MembershipRepository(seeded_db)
        return ActivityQueryEngine(
            store, members, build_default_verifier(members), clock=lambda: NOW,
            query_max_limit=2,
        )

    async def test_old_match_is_not_dropped(self, small_pages, store, make_event) -> None:
        await _insert(store, [
            make_event(id="old-delete", event_type=EventType.DELETED,
                       created_at=NOW - timedelta(days=40)),
            *(make_event(created_at=NOW - timedelta(minutes=n)) for n in range(1, 6)),
        ])
        _, count = await small_pages.export_activity(
            "user-alice", ActivityFilters(event_types=["deleted"]), fmt="json"
        )
        assert count == 1

    async def test_unfiltered_export_pages_through_everything(
        self, small_pages, store, make_event
    ) -> None:
        await _insert(store, [
            make_event(created_at=NOW - timedelta(minutes=n)) for n in range(1, 8)
        ])
        body, count = await small_pages.export_activity(None, ActivityFilters(), fmt="json")
        assert count == 7
        assert len({row["id"] for row in json.loads(body)}) == 7

    async def test_date_preset_and_users(self, small_pages, store, make_event) -> None:
        await _insert(store, [
            make_event(id="today-bob", user_id="user-bob", created_at=NOW - timedelta(hours=1)),
            make_event(id="today-alice", created_at=NOW - timedelta(hours=2)),
            make_event(id="yesterday-bob", user_id="user-bob",
                       created_at=NOW - timedelta(days=1)),
        ])
        body, count = await small_pages.export_activity(
            "user-alice",
            ActivityFilters(date_range=DateRangePreset.TODAY, user_ids=["user-bob"]),
            fmt="json",
        )
        assert count == 1
        assert json.loads(body)[0]["id"] == "today-bob"

    async def test_custom_range_is_inclusive_of_last_day(
        self, small_pages, store, make_event
    ) -> None:
        await _insert(store, [
            make_event(id="inside", created_at=datetime(2026, 3, 2, 23, 59, tzinfo=UTC)),
            make_event(id="after", created_at=datetime(2026, 3, 3, 0, 0, tzinfo=UTC)),
            make_event(id="before", created_at=datetime(2026, 2, 28, 23, 59, tzinfo=UTC)),
        ])
        body, count = await small_pages.export_activity(
            None,
            ActivityFilters(
                date_range=DateRangePreset.CUSTOM,
                custom_start=date(2026, 3, 1),
                custom_end=date(2026, 3, 2),
            ),
            fmt="json",
        )
        assert count == 1
        assert json.loads(body)[0]["id"] == "inside"
