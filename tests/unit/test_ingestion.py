# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the event ingestion service and update classification."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from tasktrail.access.membership import MembershipRepository
from tasktrail.access.verifier import build_default_verifier
from tasktrail.activity.queries import ActivityQueryEngine
from tasktrail.core.constants import (
    EntityType,
    EventCategory,
    EventSeverity,
    EventSource,
    EventType,
)
from tasktrail.core.exceptions import IngestionError, ValidationError
from tasktrail.events.context import RequestContext, request_context
from tasktrail.events.correlation import correlation_scope
from tasktrail.events.ingestion import (
    EventIngestionService,
    bind_ambient_context,
    build_api_call_draft,
    classify_update,
)
from tasktrail.events.models import EventDraft
from tasktrail.events.store import EventStore

T0 = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)


@pytest.fixture
async def store(seeded_db) -> EventStore:
    return EventStore(seeded_db)


@pytest.fixture
def service(store) -> EventIngestionService:
    return EventIngestionService(store, clock=lambda: T0)


# ---------------------------------------------------------------------------
# log()
# ---------------------------------------------------------------------------


class TestLog:
    async def test_assigns_id_timestamps_and_delta(self, service, store) -> None:
        event_id = await service.log(EventDraft.create(
            event_type=EventType.UPDATED,
            entity_type=EntityType.TASK,
            entity_id="task-1",
            workspace_id="ws-1",
            old_values={"title": "A", "priority": "low"},
            new_values={"title": "A", "priority": "high"},
        ))
        event = await store.get_by_id(event_id)
        assert event is not None
        assert len(event_id) == 32
        assert event.created_at == T0
        assert event.updated_at == T0
        assert event.delta == {"priority": "high"}

    async def test_accepts_plain_mappings(self, service, store) -> None:
        event_id = await service.log({
            "event_type": "created",
            "entity_type": "section",
            "entity_id": "sec-1",
        })
        event = await store.get_by_id(event_id)
        assert event.entity_type == EntityType.SECTION
        assert event.delta is None

    async def test_invalid_draft_raises_validation_error(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.log({"event_type": "nope", "entity_type": "task"})

    async def test_store_failure_raises_ingestion_error(self) -> None:
        failing = AsyncMock(spec=EventStore)
        failing.insert.side_effect = RuntimeError("disk full")
        service = EventIngestionService(failing)
        with pytest.raises(IngestionError, match="disk full"):
            await service.log({"event_type": "created", "entity_type": "task"})

    async def test_ids_are_unique(self, service) -> None:
        draft = EventDraft.create(event_type="created", entity_type="task")
        ids = {await service.log(draft) for _ in range(5)}
        assert len(ids) == 5

    async def test_jsonl_mirror(self, store, tmp_path) -> None:
        log_dir = tmp_path / "events"
        service = EventIngestionService(store, clock=lambda: T0, log_dir=log_dir)
        event_id = await service.log({"event_type": "created", "entity_type": "task"})

        lines = (log_dir / "events-2026-03-04.jsonl").read_text().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["id"] == event_id

    async def test_uses_database_singleton_without_store(self, seeded_db) -> None:
        service = EventIngestionService(clock=lambda: T0)
        event_id = await service.log({"event_type": "created", "entity_type": "task"})
        assert await EventStore(seeded_db).get_by_id(event_id) is not None


# ---------------------------------------------------------------------------
# Ambient context
# ---------------------------------------------------------------------------


class TestAmbientContext:
    async def test_correlation_scope_is_applied(self, service, store) -> None:
        with correlation_scope("cid-123"):
            event_id = await service.log({"event_type": "created", "entity_type": "task"})
        assert (await store.get_by_id(event_id)).correlation_id == "cid-123"

    async def test_explicit_correlation_id_wins(self, service, store) -> None:
        with correlation_scope("ambient"):
            event_id = await service.log({
                "event_type": "created", "entity_type": "task", "correlation_id": "explicit",
            })
        assert (await store.get_by_id(event_id)).correlation_id == "explicit"

    def test_request_context_fills_provenance(self) -> None:
        ctx = RequestContext(
            user_id="user-bob",
            session_id="sess-1",
            ip_address="10.0.0.1",
            user_agent="curl/8",
            source=EventSource.API,
        )
        draft = EventDraft.create(event_type="created", entity_type="task")
        with request_context(ctx):
            bound = bind_ambient_context(draft)
        assert bound.user_id == "user-bob"
        assert bound.session_id == "sess-1"
        assert bound.ip_address == "10.0.0.1"
        assert bound.user_agent == "curl/8"
        assert bound.source == EventSource.API

    def test_explicit_fields_are_not_overwritten(self) -> None:
        ctx = RequestContext(user_id="user-bob", source=EventSource.API)
        draft = EventDraft.create(
            event_type="created",
            entity_type="task",
            user_id="user-alice",
            source=EventSource.AUTOMATION,
        )
        with request_context(ctx):
            bound = bind_ambient_context(draft)
        assert bound.user_id == "user-alice"
        assert bound.source == EventSource.AUTOMATION

    def test_no_context_leaves_draft_unchanged(self) -> None:
        draft = EventDraft.create(event_type="created", entity_type="task")
        assert bind_ambient_context(draft) is draft


# ---------------------------------------------------------------------------
# Update classification
# ---------------------------------------------------------------------------


class TestClassifyUpdate:
    @pytest.mark.parametrize(
        ("old", "new", "expected"),
        [
            ({"status": "todo"}, {"status": "completed"}, EventType.COMPLETED),
            ({"status": "completed"}, {"status": "todo"}, EventType.REOPENED),
            ({"status": "todo"}, {"status": "in_progress"}, EventType.STATUS_CHANGED),
            ({"assigned_to_user_id": None}, {"assigned_to_user_id": "u1"}, EventType.ASSIGNED),
            ({"assigned_to_user_id": "u1"}, {"assigned_to_user_id": None}, EventType.UNASSIGNED),
            ({"assigned_to_user_id": "u1"}, {"assigned_to_user_id": "u2"}, EventType.REASSIGNED),
            ({"section_id": "s1"}, {"section_id": "s2"}, EventType.MOVED),
            ({"position": 1}, {"position": 4}, EventType.REORDERED),
            ({"is_archived": False}, {"is_archived": True}, EventType.ARCHIVED),
            ({"is_archived": True}, {"is_archived": False}, EventType.UNARCHIVED),
            ({"title": "a"}, {"title": "b"}, EventType.UPDATED),
        ],
    )
    def test_event_type(self, old, new, expected) -> None:
        event_type, _ = classify_update(old, new)
        assert event_type == expected

    def test_status_takes_precedence_over_assignment(self) -> None:
        event_type, details = classify_update(
            {"status": "todo", "assigned_to_user_id": None},
            {"status": "completed", "assigned_to_user_id": "u1"},
        )
        assert event_type == EventType.COMPLETED
        assert details == {"previous_status": "todo", "new_status": "completed"}

    def test_key_missing_on_one_side_is_not_a_change(self) -> None:
        event_type, _ = classify_update({}, {"status": "completed"})
        assert event_type == EventType.UPDATED

    async def test_log_entity_updated_records_details(self, service, store) -> None:
        event_id = await service.log_entity_updated(
            EntityType.TASK,
            "task-1",
            {"section_id": "sec-1", "title": "Plan"},
            {"section_id": "sec-9", "title": "Plan"},
            user_id="user-alice",
            workspace_id="ws-1",
        )
        event = await store.get_by_id(event_id)
        assert event.event_type == EventType.MOVED
        assert event.context == {"previous_section": "sec-1", "new_section": "sec-9"}
        assert event.tags == ["task", "update", "moved"]
        assert event.delta == {"section_id": "sec-9"}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


class TestBuilders:
    async def test_created_tags_include_status(self, service, store) -> None:
        event_id = await service.log_entity_created(
            EntityType.TASK, "task-1", {"title": "Plan", "status": "todo"}
        )
        assert (await store.get_by_id(event_id)).tags == ["task", "create", "todo"]

    @pytest.mark.parametrize(
        ("event_type", "severity"),
        [
            (EventType.LOGIN, EventSeverity.INFO),
            (EventType.LOGOUT, EventSeverity.INFO),
            (EventType.LOGIN_FAILED, EventSeverity.WARNING),
            (EventType.SUSPICIOUS_ACTIVITY, EventSeverity.ERROR),
        ],
    )
    async def test_auth_event_severity(self, service, store, event_type, severity) -> None:
        event_id = await service.log_auth_event(event_type, "user-alice", ip_address="1.2.3.4")
        event = await store.get_by_id(event_id)
        assert event.severity == severity
        assert event.category == EventCategory.SECURITY
        assert event.entity_type == EntityType.SESSION
        assert event.ip_address == "1.2.3.4"

    async def test_auth_event_rejects_other_types(self, service) -> None:
        with pytest.raises(ValidationError):
            await service.log_auth_event(EventType.CREATED, "user-alice")

    async def test_member_added(self, service, store) -> None:
        event_id = await service.log_member_added(
            "ws-1", "user-bob", "member", membership_id="mem-2", user_id="user-alice"
        )
        event = await store.get_by_id(event_id)
        assert event.entity_type == EntityType.WORKSPACE_MEMBER
        assert event.related_entity_type == EntityType.USER
        assert event.related_entity_id == "user-bob"
        assert event.category == EventCategory.SECURITY
        assert event.tags == ["member", "add", "member"]

    async def test_search_event_context(self, service, store) -> None:
        event_id = await service.log_search_event(
            "launch", "tasks", 3, execution_time_ms=12.5, workspace_id="ws-1"
        )
        event = await store.get_by_id(event_id)
        assert event.severity == EventSeverity.DEBUG
        assert event.context["results_count"] == 3
        assert event.context["query"] == "launch"

    async def test_error_event(self, service, store) -> None:
        event_id = await service.log_error("E42", "boom", stack_trace="trace")
        event = await store.get_by_id(event_id)
        assert event.event_type == EventType.API_ERROR
        assert event.category == EventCategory.ERROR
        assert event.severity == EventSeverity.ERROR
        assert event.context["error_code"] == "E42"

    async def test_batch_operation(self, service, store) -> None:
        event_id = await service.log_batch_operation(
            "archive", EntityType.TASK, ["t1", "t2", "t3"], workspace_id="ws-1"
        )
        event = await store.get_by_id(event_id)
        assert event.context["entity_count"] == 3
        assert event.tags == ["batch", "archive", "task"]

    def test_api_call_draft_success(self) -> None:
        draft = build_api_call_draft(
            "GET", "/api/v1/events/recent", duration_ms=4.2, status_code=200
        )
        assert draft.event_type == EventType.API_CALL
        assert draft.category == EventCategory.SYSTEM
        assert draft.severity == EventSeverity.DEBUG
        assert draft.tags == ["get", "api", "events"]
        assert draft.context["pathname"] == "/api/v1/events/recent"

    def test_api_call_draft_failure(self) -> None:
        draft = build_api_call_draft(
            "POST", "/api/v1/analytics/aggregate", duration_ms=1.0,
            status_code=500, error_message="boom", category=EventCategory.SECURITY,
        )
        assert draft.event_type == EventType.API_ERROR
        assert draft.category == EventCategory.ERROR
        assert draft.severity == EventSeverity.ERROR
        assert draft.tags == ["post", "api", "analytics"]


# ---------------------------------------------------------------------------
# Immutability and causal grouping
# ---------------------------------------------------------------------------


class TestImmutability:
    async def test_created_at_cannot_be_reassigned(self, service, store) -> None:
        event_id = await service.log_entity_created(
            EntityType.TASK, "task-1", {"title": "Write launch plan"}, workspace_id="ws-1"
        )
        event = await store.get_by_id(event_id)

        with pytest.raises(PydanticValidationError):
            event.created_at = T0 + timedelta(days=1)
        assert event.created_at == T0

    async def test_redaction_keeps_created_at(self, service, store) -> None:
        event_id = await service.log_entity_created(
            EntityType.TASK, "task-1", {"title": "Write launch plan"}, workspace_id="ws-1"
        )

        assert await store.redact(event_id, now=T0 + timedelta(days=3))

        redacted = await store.get_by_id(event_id, include_deleted=True)
        assert redacted.is_deleted
        assert redacted.created_at == T0
        assert redacted.updated_at == T0 + timedelta(days=3)


class TestCausalBatch:
    async def test_create_then_assign_share_correlation(self, store, seeded_db) -> None:
        ticks = iter([T0, T0 + timedelta(seconds=1)])
        service = EventIngestionService(store, clock=lambda: next(ticks))
        created_id = await service.log_entity_created(
            EntityType.TASK, "task-1", {"title": "Write launch plan"},
            user_id="user-alice", workspace_id="ws-1", correlation_id="c",
        )
        assigned_id = await service.log_entity_updated(
            EntityType.TASK, "task-1",
            {"assigned_to_user_id": None},
            {"assigned_to_user_id": "user-bob"},
            user_id="user-alice", workspace_id="ws-1", correlation_id="c",
        )

        members = MembershipRepository(seeded_db)
        engine = ActivityQueryEngine(store, members, build_default_verifier(members))
        timeline = await engine.get_entity_timeline("user-alice", "task", "task-1")

        assert [e.id for e in timeline] == [assigned_id, created_id]
        assert [e.event_type for e in timeline] == [EventType.ASSIGNED, EventType.CREATED]
        assert {e.correlation_id for e in timeline} == {"c"}
