# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Versioned database migrations for the tasktrail database.

Applied versions are tracked in a ``schema_migrations`` table.  Each
migration is idempotent and is recorded only after it ran successfully.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Migration registry infrastructure
# ---------------------------------------------------------------------------

MigrationFunc = Callable[[aiosqlite.Connection], Coroutine[Any, Any, None]]


@dataclass(frozen=True, slots=True)
class Migration:
    """A single database migration."""

    version: int
    name: str
    func: MigrationFunc


# Ordered list of all migrations.  New migrations are appended here.
_MIGRATIONS: list[Migration] = []


def _register(version: int, name: str) -> Callable[[MigrationFunc], MigrationFunc]:
    """Decorator that registers a migration function."""

    def decorator(fn: MigrationFunc) -> MigrationFunc:
        _MIGRATIONS.append(Migration(version=version, name=name, func=fn))
        return fn

    return decorator


# ---------------------------------------------------------------------------
# Schema-migrations bookkeeping table
# ---------------------------------------------------------------------------

_CREATE_SCHEMA_MIGRATIONS = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


async def _ensure_migrations_table(db: aiosqlite.Connection) -> None:
    await db.execute(_CREATE_SCHEMA_MIGRATIONS)
    await db.commit()


async def get_current_version(db: aiosqlite.Connection) -> int:
    """Return the highest applied migration version, or 0 if none."""
    await _ensure_migrations_table(db)
    cursor = await db.execute(
        "SELECT COALESCE(MAX(version), 0) FROM schema_migrations"
    )
    row = await cursor.fetchone()
    return int(row[0]) if row else 0


async def get_pending_migrations(db: aiosqlite.Connection) -> list[Migration]:
    """Return migrations that have not yet been applied."""
    current = await get_current_version(db)
    return [m for m in _MIGRATIONS if m.version > current]


async def run_migrations(db: aiosqlite.Connection) -> list[Migration]:
    """Run all pending migrations in order and return those applied."""
    await _ensure_migrations_table(db)

    current = await get_current_version(db)
    applied: list[Migration] = []

    for migration in _MIGRATIONS:
        if migration.version <= current:
            continue

        logger.info(
            "Applying migration %03d: %s", migration.version, migration.name
        )
        await migration.func(db)

        await db.execute(
            "INSERT OR IGNORE INTO schema_migrations (version, name) VALUES (?, ?)",
            (migration.version, migration.name),
        )
        await db.commit()

        applied.append(migration)
        logger.info("Migration %03d applied successfully.", migration.version)

    return applied


# =========================================================================
# Migration 001 -- Workspace domain tables
# =========================================================================

_CREATE_USERS = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S.000000+00:00', 'now')),
    is_deleted INTEGER NOT NULL DEFAULT 0
);
"""

_CREATE_WORKSPACES = """
CREATE TABLE IF NOT EXISTS workspaces (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    owner_id TEXT NOT NULL REFERENCES users(id),
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S.000000+00:00', 'now')),
    is_deleted INTEGER NOT NULL DEFAULT 0
);
"""

_CREATE_WORKSPACE_MEMBERS = """
CREATE TABLE IF NOT EXISTS workspace_members (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL REFERENCES workspaces(id),
    user_id TEXT NOT NULL REFERENCES users(id),
    role TEXT NOT NULL DEFAULT 'member'
        CHECK (role IN ('owner', 'admin', 'member', 'viewer')),
    joined_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S.000000+00:00', 'now')),
    is_deleted INTEGER NOT NULL DEFAULT 0,
    UNIQUE (workspace_id, user_id)
);
"""

_CREATE_SECTIONS = """
CREATE TABLE IF NOT EXISTS sections (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL REFERENCES workspaces(id),
    name TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    is_archived INTEGER NOT NULL DEFAULT 0,
    is_deleted INTEGER NOT NULL DEFAULT 0
);
"""

_CREATE_TASKS = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    section_id TEXT NOT NULL REFERENCES sections(id),
    workspace_id TEXT NOT NULL REFERENCES workspaces(id),
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'todo',
    priority TEXT NOT NULL DEFAULT 'medium',
    assigned_to_user_id TEXT REFERENCES users(id),
    created_by_user_id TEXT REFERENCES users(id),
    is_deleted INTEGER NOT NULL DEFAULT 0
);
"""

_INDEXES_001 = [
    "CREATE INDEX IF NOT EXISTS idx_members_user ON workspace_members(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_members_workspace ON workspace_members(workspace_id);",
    "CREATE INDEX IF NOT EXISTS idx_sections_workspace ON sections(workspace_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_workspace ON tasks(workspace_id);",
]


@_register(1, "workspace_schema")
async def _migration_001_workspace_schema(db: aiosqlite.Connection) -> None:
    """Create users, workspaces, memberships, sections and tasks."""
    await db.execute(_CREATE_USERS)
    await db.execute(_CREATE_WORKSPACES)
    await db.execute(_CREATE_WORKSPACE_MEMBERS)
    await db.execute(_CREATE_SECTIONS)
    await db.execute(_CREATE_TASKS)
    for idx_sql in _INDEXES_001:
        await db.execute(idx_sql)


# =========================================================================
# Migration 002 -- Event log
# =========================================================================

# No foreign keys: the trail must outlive the rows it describes.
_CREATE_EVENTS = """
CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY,
    workspace_id TEXT,
    user_id TEXT,
    event_type TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT,
    related_entity_type TEXT,
    related_entity_id TEXT,
    old_values TEXT,
    new_values TEXT,
    delta TEXT,
    category TEXT NOT NULL DEFAULT 'user_action',
    severity TEXT NOT NULL DEFAULT 'info',
    source TEXT NOT NULL DEFAULT 'web',
    correlation_id TEXT,
    session_id TEXT,
    ip_address TEXT,
    user_agent TEXT,
    context TEXT NOT NULL DEFAULT '{}',
    tags TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0
);
"""

_INDEXES_002 = [
    "CREATE INDEX IF NOT EXISTS idx_events_order ON events(created_at DESC, id DESC);",
    "CREATE INDEX IF NOT EXISTS idx_events_workspace ON events(workspace_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_events_user ON events(user_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_events_entity ON events(entity_type, entity_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_events_category ON events(workspace_id, category);",
    "CREATE INDEX IF NOT EXISTS idx_events_correlation ON events(correlation_id);",
    "CREATE INDEX IF NOT EXISTS idx_events_severity ON events(severity, created_at DESC);",
]


@_register(2, "event_log")
async def _migration_002_event_log(db: aiosqlite.Connection) -> None:
    """Create the append-only events table and its read indexes."""
    await db.execute(_CREATE_EVENTS)
    for idx_sql in _INDEXES_002:
        await db.execute(idx_sql)


# =========================================================================
# Migration 003 -- Derived activity summaries
# =========================================================================

# workspace_id '' is the global (all workspaces) scope.
_CREATE_ACTIVITY_SUMMARIES = """
CREATE TABLE IF NOT EXISTS activity_summaries (
    workspace_id TEXT NOT NULL DEFAULT '',
    period_type TEXT NOT NULL CHECK (period_type IN ('hour', 'day', 'week', 'month')),
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    event_count INTEGER NOT NULL DEFAULT 0,
    by_category TEXT NOT NULL DEFAULT '{}',
    by_event_type TEXT NOT NULL DEFAULT '{}',
    PRIMARY KEY (workspace_id, period_type, period_start)
);
"""

_CREATE_USER_ACTIVITY_SUMMARIES = """
CREATE TABLE IF NOT EXISTS user_activity_summaries (
    user_id TEXT NOT NULL,
    workspace_id TEXT NOT NULL DEFAULT '',
    period_type TEXT NOT NULL CHECK (period_type IN ('hour', 'day', 'week', 'month')),
    period_start TEXT NOT NULL,
    period_end TEXT NOT NULL,
    total_events INTEGER NOT NULL DEFAULT 0,
    tasks_created INTEGER NOT NULL DEFAULT 0,
    tasks_completed INTEGER NOT NULL DEFAULT 0,
    tasks_updated INTEGER NOT NULL DEFAULT 0,
    sections_created INTEGER NOT NULL DEFAULT 0,
    workspaces_created INTEGER NOT NULL DEFAULT 0,
    searches_performed INTEGER NOT NULL DEFAULT 0,
    logins INTEGER NOT NULL DEFAULT 0,
    active_minutes INTEGER NOT NULL DEFAULT 0,
    last_activity_at TEXT,
    most_active_hour INTEGER,
    PRIMARY KEY (user_id, workspace_id, period_type, period_start)
);
"""

_INDEXES_003 = [
    "CREATE INDEX IF NOT EXISTS idx_summaries_period ON activity_summaries(period_type, period_start);",
    "CREATE INDEX IF NOT EXISTS idx_user_summaries_period "
    "ON user_activity_summaries(period_type, period_start);",
]


@_register(3, "activity_summaries")
async def _migration_003_activity_summaries(db: aiosqlite.Connection) -> None:
    """Create the bucketed summary tables maintained by the aggregation engine."""
    await db.execute(_CREATE_ACTIVITY_SUMMARIES)
    await db.execute(_CREATE_USER_ACTIVITY_SUMMARIES)
    for idx_sql in _INDEXES_003:
        await db.execute(idx_sql)
