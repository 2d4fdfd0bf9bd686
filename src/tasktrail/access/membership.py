# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Read-only lookups over workspaces, memberships and workspace-owned entities.

An *active member* is a ``workspace_members`` row that is not soft-deleted
and whose workspace is not soft-deleted.
"""

from __future__ import annotations

import aiosqlite

_ACTIVE_MEMBERSHIP = """
SELECT 1 FROM workspace_members m
JOIN workspaces w ON w.id = m.workspace_id
WHERE m.user_id = ? AND m.workspace_id = ? AND m.is_deleted = 0 AND w.is_deleted = 0
LIMIT 1
"""

_USER_WORKSPACES = """
SELECT m.workspace_id FROM workspace_members m
JOIN workspaces w ON w.id = m.workspace_id
WHERE m.user_id = ? AND m.is_deleted = 0 AND w.is_deleted = 0
ORDER BY m.workspace_id
"""

_SHARED_WORKSPACE = """
SELECT 1 FROM workspace_members a
JOIN workspace_members b ON a.workspace_id = b.workspace_id
JOIN workspaces w ON w.id = a.workspace_id
WHERE a.user_id = ? AND b.user_id = ?
  AND a.is_deleted = 0 AND b.is_deleted = 0 AND w.is_deleted = 0
LIMIT 1
"""

# Tables whose rows belong to exactly one workspace.
_OWNED_TABLES = frozenset({"tasks", "sections"})


class MembershipRepository:
    """Membership and ownership queries used by the access verifier."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def is_active_member(self, user_id: str, workspace_id: str) -> bool:
        cursor = await self._db.execute(_ACTIVE_MEMBERSHIP, (user_id, workspace_id))
        return await cursor.fetchone() is not None

    async def workspace_ids_for_user(self, user_id: str) -> list[str]:
        """Workspaces in which *user_id* is an active member."""
        cursor = await self._db.execute(_USER_WORKSPACES, (user_id,))
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def share_workspace(self, user_a: str, user_b: str) -> bool:
        cursor = await self._db.execute(_SHARED_WORKSPACE, (user_a, user_b))
        return await cursor.fetchone() is not None

    async def owning_workspace(self, table: str, entity_id: str) -> str | None:
        """Workspace that owns a task or section, or None if absent or deleted."""
        if table not in _OWNED_TABLES:
            raise ValueError(f"Not a workspace-owned table: {table}")
        cursor = await self._db.execute(
            f"SELECT workspace_id FROM {table} WHERE id = ? AND is_deleted = 0",  # noqa: S608
            (entity_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def membership_workspace(self, membership_id: str) -> str | None:
        cursor = await self._db.execute(
            "SELECT workspace_id FROM workspace_members WHERE id = ? AND is_deleted = 0",
            (membership_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None
