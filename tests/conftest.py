# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Shared test fixtures and configuration."""

import asyncio
import itertools
from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest

from tasktrail.core.constants import EntityType, EventCategory, EventSeverity, EventType
from tasktrail.events.models import Event
from tasktrail.events.store import EventStore
from tasktrail.storage.database import close_db, init_db

BASE_TIME = datetime(2026, 3, 4, 12, 0, tzinfo=UTC)

# users, workspaces and their active memberships
#   ws-1 "Product":  alice (owner), bob (member)
#   ws-2 "Research": carol (owner)
#   ws-3 "Archive":  soft-deleted, alice was a member
_SEED_SQL = [
    "INSERT INTO users (id, email, name) VALUES ('user-alice', 'alice@example.com', 'Alice')",
    "INSERT INTO users (id, email, name) VALUES ('user-bob', 'bob@example.com', 'Bob')",
    "INSERT INTO users (id, email, name) VALUES ('user-carol', 'carol@example.com', 'Carol')",
    "INSERT INTO workspaces (id, name, owner_id) VALUES ('ws-1', 'Product', 'user-alice')",
    "INSERT INTO workspaces (id, name, owner_id) VALUES ('ws-2', 'Research', 'user-carol')",
    "INSERT INTO workspaces (id, name, owner_id, is_deleted) "
    "VALUES ('ws-3', 'Archive', 'user-alice', 1)",
    "INSERT INTO workspace_members (id, workspace_id, user_id, role) "
    "VALUES ('mem-1', 'ws-1', 'user-alice', 'owner')",
    "INSERT INTO workspace_members (id, workspace_id, user_id, role) "
    "VALUES ('mem-2', 'ws-1', 'user-bob', 'member')",
    "INSERT INTO workspace_members (id, workspace_id, user_id, role) "
    "VALUES ('mem-3', 'ws-2', 'user-carol', 'owner')",
    "INSERT INTO workspace_members (id, workspace_id, user_id, role) "
    "VALUES ('mem-4', 'ws-3', 'user-alice', 'owner')",
    "INSERT INTO sections (id, workspace_id, name) VALUES ('sec-1', 'ws-1', 'Backlog')",
    "INSERT INTO sections (id, workspace_id, name) VALUES ('sec-2', 'ws-2', 'Ideas')",
    "INSERT INTO tasks (id, section_id, workspace_id, title, created_by_user_id) "
    "VALUES ('task-1', 'sec-1', 'ws-1', 'Write launch plan', 'user-alice')",
    "INSERT INTO tasks (id, section_id, workspace_id, title, created_by_user_id) "
    "VALUES ('task-2', 'sec-2', 'ws-2', 'Survey users', 'user-carol')",
    "INSERT INTO tasks (id, section_id, workspace_id, title, is_deleted) "
    "VALUES ('task-gone', 'sec-1', 'ws-1', 'Deleted task', 1)",
]


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset module-level singletons between tests."""
    import tasktrail.storage.database as db_mod
    from tasktrail.events.channel import set_event_channel
    from tasktrail.events.ingestion import set_ingestion_service

    db_mod._db = None
    set_event_channel(None)
    set_ingestion_service(None)
    yield
    set_event_channel(None)
    set_ingestion_service(None)


@pytest.fixture
async def db(tmp_path):
    """SQLite database file with all migrations applied."""
    conn = await init_db(tmp_path / "tasktrail-test.db")
    yield conn
    await close_db()


async def seed_workspaces(db: aiosqlite.Connection) -> None:
    for sql in _SEED_SQL:
        await db.execute(sql)
    await db.commit()


@pytest.fixture
async def seeded_db(db):
    """Database with the standard users, workspaces, sections and tasks."""
    await seed_workspaces(db)
    return db


@pytest.fixture
def make_event():
    """Factory for persisted-shape events with deterministic ids and times."""
    counter = itertools.count(1)

    def _make(**overrides) -> Event:
        n = next(counter)
        created_at = overrides.pop("created_at", BASE_TIME + timedelta(minutes=n))
        fields = {
            "id": f"evt-{n:04d}",
            "event_type": EventType.CREATED,
            "entity_type": EntityType.TASK,
            "entity_id": "task-1",
            "workspace_id": "ws-1",
            "user_id": "user-alice",
            "new_values": {"title": "Write launch plan"},
            "created_at": created_at,
            "updated_at": created_at,
        }
        fields.update(overrides)
        return Event(**fields)

    return _make


@pytest.fixture
def seeded_db_file(tmp_path, monkeypatch, make_event):
    """Seeded database file with a few recent events, exposed via TASKTRAIL_DB_PATH.

    For commands that open (and close) the database themselves.
    """
    path = tmp_path / "tasktrail-cli.db"
    now = datetime.now(UTC).replace(microsecond=0)
    events = [
        make_event(created_at=now - timedelta(hours=2)),
        make_event(
            created_at=now - timedelta(hours=1),
            event_type=EventType.COMPLETED,
            user_id="user-bob",
        ),
        make_event(
            created_at=now - timedelta(minutes=30),
            event_type=EventType.LOGIN_FAILED,
            entity_type=EntityType.USER,
            entity_id="user-carol",
            workspace_id=None,
            user_id="user-carol",
            new_values=None,
            category=EventCategory.SECURITY,
            severity=EventSeverity.WARNING,
        ),
        make_event(
            created_at=now - timedelta(minutes=20),
            event_type=EventType.SUSPICIOUS_ACTIVITY,
            entity_type=EntityType.USER,
            entity_id="user-carol",
            workspace_id=None,
            user_id="user-carol",
            new_values=None,
            category=EventCategory.SECURITY,
            severity=EventSeverity.CRITICAL,
        ),
    ]

    async def _build() -> None:
        conn = await init_db(path)
        try:
            await seed_workspaces(conn)
            store = EventStore(conn)
            for event in events:
                await store.insert(event)
        finally:
            await close_db()

    asyncio.run(_build())
    monkeypatch.setenv("TASKTRAIL_DB_PATH", str(path))
    return path
