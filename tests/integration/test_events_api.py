# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Integration tests for the activity feed, timeline, correlation and export API."""

from __future__ import annotations

import csv
import io

import pytest
from httpx import ASGITransport, AsyncClient

from tasktrail.api.app import create_app
from tasktrail.core.constants import EntityType, EventCategory, EventType
from tasktrail.events.channel import get_event_channel
from tasktrail.events.store import EventQuery, EventStore


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-ID": user_id}


@pytest.fixture
def app(tmp_path, monkeypatch):
    """FastAPI app pointed at the test database, scheduler disabled."""
    monkeypatch.setenv("TASKTRAIL_DB_PATH", str(tmp_path / "tasktrail-test.db"))
    monkeypatch.delenv("TASKTRAIL_API_KEYS", raising=False)
    return create_app(enable_scheduler=False)


@pytest.fixture
async def store(seeded_db, make_event) -> EventStore:
    """Seeded event log.

    evt-0001..0003 are task-1 history in ws-1; evt-0004 is task-2 in ws-2;
    evt-0005 is Alice's own login outside any workspace.  evt-0001, 0002
    and 0004 share the correlation id ``cid-move``.
    """
    store = EventStore(seeded_db)
    for event in (
        make_event(correlation_id="cid-move"),
        make_event(event_type=EventType.MOVED, correlation_id="cid-move"),
        make_event(event_type=EventType.COMPLETED, user_id="user-bob"),
        make_event(
            workspace_id="ws-2",
            entity_id="task-2",
            user_id="user-carol",
            new_values={"title": "Survey users"},
            correlation_id="cid-move",
        ),
        make_event(
            event_type=EventType.LOGIN,
            entity_type=EntityType.USER,
            entity_id="user-alice",
            workspace_id=None,
            new_values=None,
            category=EventCategory.SECURITY,
        ),
    ):
        await store.insert(event)
    return store


@pytest.fixture
async def client(app, store):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class TestIdentity:
    async def test_missing_user_header(self, client) -> None:
        resp = await client.get("/api/v1/events/recent")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Authentication required"

    async def test_blank_user_header(self, client) -> None:
        resp = await client.get("/api/v1/events/recent", headers=_as("   "))
        assert resp.status_code == 401

    async def test_api_keys_enforced_when_configured(self, client, monkeypatch) -> None:
        monkeypatch.setenv("TASKTRAIL_API_KEYS", '["key-alpha"]')

        missing = await client.get("/api/v1/events/recent", headers=_as("user-alice"))
        wrong = await client.get(
            "/api/v1/events/recent", headers={**_as("user-alice"), "X-API-Key": "nope"}
        )
        valid = await client.get(
            "/api/v1/events/recent", headers={**_as("user-alice"), "X-API-Key": "key-alpha"}
        )

        assert missing.status_code == 401
        assert wrong.status_code == 403
        assert valid.status_code == 200

    async def test_request_id_and_correlation_headers(self, client) -> None:
        resp = await client.get(
            "/api/v1/events/recent",
            headers={**_as("user-alice"), "X-Request-ID": "req-1", "X-Correlation-ID": "cid-9"},
        )
        assert resp.headers["X-Request-ID"] == "req-1"
        assert resp.headers["X-Correlation-ID"] == "cid-9"


# ---------------------------------------------------------------------------
# GET /events/recent
# ---------------------------------------------------------------------------


class TestRecentActivity:
    async def test_scoped_to_memberships_and_own_events(self, client) -> None:
        resp = await client.get("/api/v1/events/recent", headers=_as("user-alice"))

        assert resp.status_code == 200
        body = resp.json()
        assert [e["id"] for e in body["data"]] == ["evt-0005", "evt-0003", "evt-0002", "evt-0001"]
        assert body["data"][1]["user_name"] == "Bob"
        assert body["data"][1]["workspace_name"] == "Product"
        assert body["data"][1]["description"] == "Write launch plan"
        assert body["pagination"] == {"limit": 50, "offset": 0, "hasMore": False}

    async def test_other_users_private_events_hidden(self, client) -> None:
        resp = await client.get("/api/v1/events/recent", headers=_as("user-bob"))
        assert [e["id"] for e in resp.json()["data"]] == ["evt-0003", "evt-0002", "evt-0001"]

    async def test_pagination(self, client) -> None:
        first = (await client.get(
            "/api/v1/events/recent", params={"limit": 3}, headers=_as("user-alice")
        )).json()
        second = (await client.get(
            "/api/v1/events/recent", params={"limit": 3, "offset": 3}, headers=_as("user-alice")
        )).json()

        assert len(first["data"]) == 3
        assert first["pagination"]["hasMore"] is True
        assert [e["id"] for e in second["data"]] == ["evt-0001"]
        assert second["pagination"]["hasMore"] is False

    async def test_limit_is_capped(self, client) -> None:
        resp = await client.get(
            "/api/v1/events/recent", params={"limit": 1000}, headers=_as("user-alice")
        )
        assert resp.json()["pagination"]["limit"] == 100

    async def test_workspace_filter(self, client) -> None:
        resp = await client.get(
            "/api/v1/events/recent", params={"workspaceId": "ws-2"}, headers=_as("user-carol")
        )
        assert [e["id"] for e in resp.json()["data"]] == ["evt-0004"]

    async def test_non_member_workspace_is_not_found(self, client) -> None:
        resp = await client.get(
            "/api/v1/events/recent", params={"workspaceId": "ws-2"}, headers=_as("user-alice")
        )
        assert resp.status_code == 404

    @pytest.mark.parametrize("categories", ["security", '["security"]'])
    async def test_category_filter(self, client, categories) -> None:
        resp = await client.get(
            "/api/v1/events/recent", params={"categories": categories}, headers=_as("user-alice")
        )
        assert [e["id"] for e in resp.json()["data"]] == ["evt-0005"]

    @pytest.mark.parametrize("categories", ["gossip", '["security"'])
    async def test_bad_category_parameter(self, client, categories) -> None:
        resp = await client.get(
            "/api/v1/events/recent", params={"categories": categories}, headers=_as("user-alice")
        )
        assert resp.status_code == 400

    async def test_feed_reads_are_not_logged(self, client, store) -> None:
        await client.get("/api/v1/events/recent", headers=_as("user-alice"))
        await get_event_channel().drain()
        assert await store.query(EventQuery(event_types=["api_call"])) == []


# ---------------------------------------------------------------------------
# GET /events/timeline/{entity_type}/{entity_id}
# ---------------------------------------------------------------------------


class TestEntityTimeline:
    async def test_member_sees_history(self, client) -> None:
        resp = await client.get("/api/v1/events/timeline/task/task-1", headers=_as("user-bob"))

        assert resp.status_code == 200
        body = resp.json()
        assert body["entityType"] == "task"
        assert body["entityId"] == "task-1"
        assert body["total"] == 3
        assert [e["event_type"] for e in body["data"]] == ["completed", "moved", "created"]

    @pytest.mark.parametrize(
        ("path", "status"),
        [
            ("/api/v1/events/timeline/task/task-2", 403),
            ("/api/v1/events/timeline/task/task-missing", 404),
            ("/api/v1/events/timeline/planet/p-1", 400),
            ("/api/v1/events/timeline/session/s-1", 403),
            ("/api/v1/events/timeline/workspace/ws-2", 403),
            ("/api/v1/events/timeline/workspace/no-such-ws", 403),
            ("/api/v1/events/timeline/user/user-carol", 403),
            ("/api/v1/events/timeline/user/no-such-user", 403),
        ],
    )
    async def test_access_decisions(self, client, path, status) -> None:
        resp = await client.get(path, headers=_as("user-alice"))
        assert resp.status_code == status

    async def test_own_user_timeline(self, client) -> None:
        resp = await client.get(
            "/api/v1/events/timeline/user/user-alice", headers=_as("user-alice")
        )
        assert [e["id"] for e in resp.json()["data"]] == ["evt-0005"]


# ---------------------------------------------------------------------------
# GET /events/correlation/{correlation_id}
# ---------------------------------------------------------------------------


class TestCorrelation:
    async def test_visible_events_in_causal_order(self, client) -> None:
        resp = await client.get("/api/v1/events/correlation/cid-move", headers=_as("user-alice"))

        body = resp.json()
        assert body["correlationId"] == "cid-move"
        assert [e["id"] for e in body["data"]] == ["evt-0001", "evt-0002"]
        assert body["total"] == 2

    async def test_scoped_per_requester(self, client) -> None:
        resp = await client.get("/api/v1/events/correlation/cid-move", headers=_as("user-carol"))
        assert [e["id"] for e in resp.json()["data"]] == ["evt-0004"]

    async def test_unknown_id(self, client) -> None:
        resp = await client.get("/api/v1/events/correlation/nope", headers=_as("user-alice"))
        assert resp.json() == {"data": [], "correlationId": "nope", "total": 0}


# ---------------------------------------------------------------------------
# GET /events/export
# ---------------------------------------------------------------------------


class TestExport:
    async def test_csv_download(self, client) -> None:
        resp = await client.get("/api/v1/events/export", headers=_as("user-alice"))

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        disposition = resp.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="activity-export-')
        assert disposition.endswith('.csv"')
        rows = list(csv.reader(io.StringIO(resp.text)))
        assert rows[0] == [
            "Date", "Time", "Event Type", "Entity Type", "User", "Description", "Workspace",
            "Severity",
        ]
        assert len(rows) == 5

    async def test_json_with_filters(self, client) -> None:
        resp = await client.get(
            "/api/v1/events/export",
            params={"format": "json", "eventTypes": "created,completed", "search": "bob"},
            headers=_as("user-alice"),
        )

        assert resp.headers["content-type"] == "application/json"
        assert [e["id"] for e in resp.json()] == ["evt-0003"]

    async def test_sorting(self, client) -> None:
        resp = await client.get(
            "/api/v1/events/export",
            params={"format": "json", "sort": "created_at", "direction": "asc"},
            headers=_as("user-alice"),
        )
        assert [e["id"] for e in resp.json()][0] == "evt-0001"

    @pytest.mark.parametrize(
        "params",
        [
            {"format": "xml"},
            {"dateRange": "decade"},
            {"sort": "color"},
            {"dateRange": "custom", "customStart": "2026-03-05", "customEnd": "2026-03-01"},
        ],
    )
    async def test_invalid_parameters(self, client, params) -> None:
        resp = await client.get("/api/v1/events/export", params=params, headers=_as("user-alice"))
        assert resp.status_code == 400

    async def test_export_is_recorded(self, client, store) -> None:
        resp = await client.get(
            "/api/v1/events/export", params={"workspaceId": "ws-1"}, headers=_as("user-alice")
        )
        await get_event_channel().drain()

        (export_event,) = await store.query(EventQuery(event_types=["export_generated"]))
        (api_call,) = await store.query(EventQuery(event_types=["api_call"]))

        assert export_event.user_id == "user-alice"
        assert export_event.entity_type == "workspace"
        assert export_event.context["row_count"] == 3
        assert api_call.category == "user_action"
        assert api_call.source == "api"
        assert api_call.context["pathname"] == "/api/v1/events/export"
        cid = resp.headers["X-Correlation-ID"]
        assert export_event.correlation_id == cid
        assert api_call.correlation_id == cid


# ---------------------------------------------------------------------------
# GET /health
# ---------------------------------------------------------------------------


class TestHealth:
    async def test_health(self, client) -> None:
        resp = await client.get("/api/v1/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["service"] == "tasktrail"
        assert body["database"] == "connected"
        assert body["ingestion"]["dropped"] == 0
