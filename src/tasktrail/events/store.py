# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Event persistence to the SQLite ``events`` table.

The store only ever appends rows.  The one permitted mutation is the
compliance redaction flag (``is_deleted``); events are never hard-deleted.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import aiosqlite

from tasktrail.core.constants import EventCategory, EventSeverity
from tasktrail.events.models import ActivityFeedItem, Event, format_timestamp
from tasktrail.storage.database import write_lock

_FEED_SELECT = """
SELECT e.*, u.name AS user_name, w.name AS workspace_name
FROM events e
LEFT JOIN users u ON e.user_id = u.id
LEFT JOIN workspaces w ON e.workspace_id = w.id
"""

_ORDER_DESC = " ORDER BY e.created_at DESC, e.id DESC"
_ORDER_ASC = " ORDER BY e.created_at ASC, e.id ASC"


@dataclass(slots=True)
class EventQuery:
    """Structured filter over the event log.

    ``workspace_ids`` restricts results to a set of workspaces (the
    caller's memberships); with ``visible_user_id`` the caller's own
    events are visible too.  ``workspace_id`` selects a single workspace.
    Date bounds are half-open: ``start <= created_at < end``.
    """

    workspace_id: str | None = None
    workspace_ids: Sequence[str] | None = None
    visible_user_id: str | None = None
    user_id: str | None = None
    user_ids: Sequence[str] = ()
    entity_types: Sequence[str] = ()
    entity_id: str | None = None
    event_types: Sequence[str] = ()
    categories: Sequence[str] = ()
    severities: Sequence[str] = ()
    sources: Sequence[str] = ()
    correlation_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    tags: Sequence[str] = ()
    include_deleted: bool = False
    ascending: bool = False
    limit: int = 100
    offset: int = 0


class EventStore:
    """Repository for appending and reading events in SQLite."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    async def insert(self, event: Event) -> None:
        """Persist a single event atomically."""
        async with write_lock(self._db):
            await self._db.execute(
                """
                INSERT INTO events (
                    id, workspace_id, user_id, event_type, entity_type, entity_id,
                    related_entity_type, related_entity_id, old_values, new_values,
                    delta, category, severity, source, correlation_id, session_id,
                    ip_address, user_agent, context, tags, created_at, updated_at,
                    is_deleted
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event.id,
                    event.workspace_id,
                    event.user_id,
                    str(event.event_type),
                    str(event.entity_type),
                    event.entity_id,
                    str(event.related_entity_type) if event.related_entity_type else None,
                    event.related_entity_id,
                    _dump(event.old_values),
                    _dump(event.new_values),
                    _dump(event.delta),
                    str(event.category),
                    str(event.severity),
                    str(event.source),
                    event.correlation_id,
                    event.session_id,
                    event.ip_address,
                    event.user_agent,
                    json.dumps(event.context, default=str),
                    json.dumps(event.tags),
                    format_timestamp(event.created_at),
                    format_timestamp(event.updated_at),
                    int(event.is_deleted),
                ),
            )
            await self._db.commit()

    async def redact(self, event_id: str, *, now: datetime | None = None) -> bool:
        """Flag an event as redacted.  Returns False if it does not exist."""
        stamp = format_timestamp(now or datetime.now(UTC))
        async with write_lock(self._db):
            cursor = await self._db.execute(
                "UPDATE events SET is_deleted = 1, updated_at = ? WHERE id = ? AND is_deleted = 0",
                (stamp, event_id),
            )
            await self._db.commit()
        if cursor.rowcount:
            return True
        return await self.get_by_id(event_id, include_deleted=True) is not None

    async def archive_older_than(
        self,
        cutoff: datetime,
        *,
        keep_critical: bool = True,
        now: datetime | None = None,
    ) -> int:
        """Redact events created before *cutoff* and return how many were flagged.

        With *keep_critical*, security events of severity error or critical
        are retained.
        """
        clauses = ["created_at < ?", "is_deleted = 0"]
        params: list[Any] = [format_timestamp(cutoff)]
        if keep_critical:
            clauses.append(
                "NOT (category = ? AND severity IN (?, ?))"
            )
            params.extend([
                str(EventCategory.SECURITY),
                str(EventSeverity.ERROR),
                str(EventSeverity.CRITICAL),
            ])
        stamp = format_timestamp(now or datetime.now(UTC))
        async with write_lock(self._db):
            cursor = await self._db.execute(
                "UPDATE events SET is_deleted = 1, updated_at = ? "
                f"WHERE {' AND '.join(clauses)}",  # noqa: S608
                [stamp, *params],
            )
            await self._db.commit()
        return cursor.rowcount

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    async def get_by_id(self, event_id: str, *, include_deleted: bool = False) -> Event | None:
        """Retrieve a single event by its ID."""
        query = "SELECT * FROM events WHERE id = ?"
        if not include_deleted:
            query += " AND is_deleted = 0"
        cursor = await self._db.execute(query, (event_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return Event.from_row(row)

    async def list_feed(
        self,
        *,
        workspace_id: str | None = None,
        user_id: str | None = None,
        categories: Sequence[str] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ActivityFeedItem]:
        """Newest-first page of non-redacted events with display names."""
        return await self.query(
            EventQuery(
                workspace_id=workspace_id,
                user_id=user_id,
                categories=tuple(categories or ()),
                limit=limit,
                offset=offset,
            )
        )

    async def entity_timeline(
        self, entity_type: str, entity_id: str, *, limit: int = 100
    ) -> list[ActivityFeedItem]:
        """Newest-first history of one entity."""
        return await self.query(
            EventQuery(entity_types=(entity_type,), entity_id=entity_id, limit=limit)
        )

    async def by_correlation(
        self,
        correlation_id: str,
        *,
        workspace_ids: Sequence[str] | None = None,
        visible_user_id: str | None = None,
    ) -> list[ActivityFeedItem]:
        """All events sharing *correlation_id*, oldest first."""
        return await self.query(
            EventQuery(
                correlation_id=correlation_id,
                workspace_ids=workspace_ids,
                visible_user_id=visible_user_id,
                ascending=True,
                limit=-1,
            )
        )

    async def list_window(
        self,
        start: datetime,
        end: datetime,
        *,
        workspace_id: str | None = None,
    ) -> list[Event]:
        """Every non-redacted event with ``start <= created_at < end``, oldest first."""
        clauses = ["is_deleted = 0", "created_at >= ?", "created_at < ?"]
        params: list[Any] = [format_timestamp(start), format_timestamp(end)]
        if workspace_id is not None:
            clauses.append("workspace_id = ?")
            params.append(workspace_id)
        cursor = await self._db.execute(
            f"SELECT * FROM events WHERE {' AND '.join(clauses)} "  # noqa: S608
            "ORDER BY created_at ASC, id ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [Event.from_row(row) for row in rows]

    async def query(self, q: EventQuery) -> list[ActivityFeedItem]:
        """Run a structured :class:`EventQuery`.

        A negative ``limit`` returns every matching row.
        """
        where, params = _build_where(q)
        order = _ORDER_ASC if q.ascending else _ORDER_DESC
        sql = f"{_FEED_SELECT}{where}{order} LIMIT ? OFFSET ?"  # noqa: S608
        params.extend([q.limit, max(q.offset, 0)])
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        return [ActivityFeedItem.from_row(row) for row in rows]

    async def count(self, q: EventQuery) -> int:
        """Return the number of events matching *q*, ignoring paging."""
        where, params = _build_where(q)
        cursor = await self._db.execute(
            f"SELECT COUNT(*) FROM events e{where}",  # noqa: S608
            params,
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def user_names(self, user_ids: Sequence[str]) -> dict[str, str]:
        if not user_ids:
            return {}
        placeholders = ", ".join("?" for _ in user_ids)
        cursor = await self._db.execute(
            f"SELECT id, name FROM users WHERE id IN ({placeholders})",  # noqa: S608
            list(user_ids),
        )
        rows = await cursor.fetchall()
        return {row["id"]: row["name"] for row in rows}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _in_clause(column: str, values: Sequence[str]) -> str:
    return f"{column} IN ({', '.join('?' for _ in values)})"


def _build_where(q: EventQuery) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []

    if not q.include_deleted:
        clauses.append("e.is_deleted = 0")
    if q.workspace_id is not None:
        clauses.append("e.workspace_id = ?")
        params.append(q.workspace_id)
    if q.workspace_ids is not None:
        scope = [_in_clause("e.workspace_id", q.workspace_ids)] if q.workspace_ids else []
        params.extend(q.workspace_ids)
        if q.visible_user_id is not None:
            scope.append("e.user_id = ?")
            params.append(q.visible_user_id)
        clauses.append("(" + " OR ".join(scope) + ")" if scope else "0 = 1")
    if q.user_id is not None:
        clauses.append("e.user_id = ?")
        params.append(q.user_id)
    if q.entity_id is not None:
        clauses.append("e.entity_id = ?")
        params.append(q.entity_id)
    if q.correlation_id is not None:
        clauses.append("e.correlation_id = ?")
        params.append(q.correlation_id)

    for column, values in (
        ("e.entity_type", q.entity_types),
        ("e.event_type", q.event_types),
        ("e.category", q.categories),
        ("e.severity", q.severities),
        ("e.source", q.sources),
        ("e.user_id", q.user_ids),
    ):
        if values:
            clauses.append(_in_clause(column, values))
            params.extend(str(v) for v in values)

    if q.start is not None:
        clauses.append("e.created_at >= ?")
        params.append(format_timestamp(q.start))
    if q.end is not None:
        clauses.append("e.created_at < ?")
        params.append(format_timestamp(q.end))
    if q.tags:
        clauses.append(
            "EXISTS (SELECT 1 FROM json_each(e.tags) WHERE json_each.value IN "
            f"({', '.join('?' for _ in q.tags)}))"
        )
        params.extend(q.tags)

    where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
    return where, params


def _dump(value: dict[str, Any] | None) -> str | None:
    return None if value is None else json.dumps(value, default=str)

