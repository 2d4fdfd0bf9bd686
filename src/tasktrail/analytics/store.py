# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Persistence for derived activity summaries."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import aiosqlite

from tasktrail.analytics.aggregator import ActivitySummary, UserActivitySummary
from tasktrail.events.models import format_timestamp
from tasktrail.storage.database import write_lock

_INSERT_SUMMARY = """
INSERT INTO activity_summaries (
    workspace_id, period_type, period_start, period_end,
    event_count, by_category, by_event_type
) VALUES (
    :workspace_id, :period_type, :period_start, :period_end,
    :event_count, :by_category, :by_event_type
)
"""

_INSERT_USER_SUMMARY = """
INSERT INTO user_activity_summaries (
    user_id, workspace_id, period_type, period_start, period_end,
    total_events, tasks_created, tasks_completed, tasks_updated,
    sections_created, workspaces_created, searches_performed, logins,
    active_minutes, last_activity_at, most_active_hour
) VALUES (
    :user_id, :workspace_id, :period_type, :period_start, :period_end,
    :total_events, :tasks_created, :tasks_completed, :tasks_updated,
    :sections_created, :workspaces_created, :searches_performed, :logins,
    :active_minutes, :last_activity_at, :most_active_hour
)
"""


class SummaryStore:
    """Repository for ``activity_summaries`` and ``user_activity_summaries``."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def replace_window(
        self,
        period_type: str,
        start: datetime,
        end: datetime,
        summaries: Sequence[ActivitySummary],
        user_summaries: Sequence[UserActivitySummary] = (),
        *,
        workspace_id: str | None = None,
    ) -> None:
        """Replace every stored bucket starting in ``[start, end)`` in one transaction.

        With *workspace_id* only that scope is replaced; otherwise all
        scopes are.  Buckets absent from the new summaries disappear.
        """
        clauses = ["period_type = ?", "period_start >= ?", "period_start < ?"]
        params: list[Any] = [period_type, format_timestamp(start), format_timestamp(end)]
        if workspace_id is not None:
            clauses.append("workspace_id = ?")
            params.append(workspace_id)
        where = " AND ".join(clauses)

        async with write_lock(self._db):
            try:
                await self._db.execute(
                    f"DELETE FROM activity_summaries WHERE {where}",  # noqa: S608
                    params,
                )
                await self._db.execute(
                    f"DELETE FROM user_activity_summaries WHERE {where}",  # noqa: S608
                    params,
                )
                await self._db.executemany(_INSERT_SUMMARY, [s.to_row() for s in summaries])
                await self._db.executemany(
                    _INSERT_USER_SUMMARY, [s.to_row() for s in user_summaries]
                )
                await self._db.commit()
            except Exception:
                await self._db.rollback()
                raise

    async def list_summaries(
        self,
        *,
        period_type: str,
        workspace_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> list[dict[str, Any]]:
        """Stored summaries for one scope, oldest bucket first."""
        clauses = ["period_type = ?", "workspace_id = ?"]
        params: list[Any] = [period_type, workspace_id or ""]
        if start is not None:
            clauses.append("period_start >= ?")
            params.append(format_timestamp(start))
        if end is not None:
            clauses.append("period_start < ?")
            params.append(format_timestamp(end))
        params.append(limit)
        cursor = await self._db.execute(
            f"SELECT * FROM activity_summaries WHERE {' AND '.join(clauses)} "  # noqa: S608
            "ORDER BY period_start ASC LIMIT ?",
            params,
        )
        rows = await cursor.fetchall()
        return [_row_to_dict(row) for row in rows]

    async def list_user_summaries(
        self,
        *,
        period_type: str,
        user_id: str | None = None,
        workspace_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 500,
    ) -> list[dict[str, Any]]:
        clauses = ["period_type = ?"]
        params: list[Any] = [period_type]
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if workspace_id is not None:
            clauses.append("workspace_id = ?")
            params.append(workspace_id)
        if start is not None:
            clauses.append("period_start >= ?")
            params.append(format_timestamp(start))
        if end is not None:
            clauses.append("period_start < ?")
            params.append(format_timestamp(end))
        params.append(limit)
        cursor = await self._db.execute(
            f"SELECT * FROM user_activity_summaries WHERE {' AND '.join(clauses)} "  # noqa: S608
            "ORDER BY period_start ASC, workspace_id ASC, user_id ASC LIMIT ?",
            params,
        )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


def _row_to_dict(row: aiosqlite.Row) -> dict[str, Any]:
    """Convert a summary row to a plain dict, parsing the JSON count maps."""
    d = dict(row)
    for key in ("by_category", "by_event_type"):
        if isinstance(d.get(key), str):
            try:
                d[key] = json.loads(d[key])
            except (json.JSONDecodeError, TypeError):
                d[key] = {}
    return d
