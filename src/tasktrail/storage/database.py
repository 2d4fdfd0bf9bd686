# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""SQLite connection management.

A single process-wide ``aiosqlite`` connection is opened by :func:`init_db`
and shared by the event store, the read views and the aggregation engine.
"""

from __future__ import annotations

import asyncio
import weakref
from pathlib import Path

import aiosqlite

from tasktrail.core.exceptions import StorageError
from tasktrail.storage.migrations import run_migrations

_db: aiosqlite.Connection | None = None
_write_locks: weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock] = (
    weakref.WeakKeyDictionary()
)


async def init_db(
    db_path: Path | str = "tasktrail.db",
    *,
    auto_migrate: bool = True,
) -> aiosqlite.Connection:
    """Initialize database connection, optionally run migrations, return connection.

    Enables WAL mode and foreign keys for performance and integrity.
    When *auto_migrate* is True (the default), schema migrations are
    applied automatically on every initialization.
    """
    global _db

    if _db is not None:
        return _db

    try:
        _db = await aiosqlite.connect(str(db_path))
        _db.row_factory = aiosqlite.Row

        # Concurrent readers while the ingestion worker appends
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys=ON")

        if auto_migrate:
            await run_migrations(_db)

        return _db
    except Exception as exc:
        if _db is not None:
            await _db.close()
        _db = None
        msg = f"Failed to initialize database at {db_path}: {exc}"
        raise StorageError(msg) from exc


async def get_db() -> aiosqlite.Connection:
    """Get the active database connection.

    Raises StorageError if the database has not been initialized.
    """
    if _db is None:
        raise StorageError("Database not initialized. Call init_db() first.")
    return _db


async def close_db() -> None:
    """Close the database connection."""
    global _db

    if _db is not None:
        await _db.close()
        _db = None


def write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    """Lock serializing write transactions on *db*.

    Every writer commits on the same connection, so a commit issued by one
    writer would also commit another writer's half-finished transaction.
    Multi-statement writes hold this lock from their first statement until
    commit or rollback.
    """
    lock = _write_locks.get(db)
    if lock is None:
        lock = _write_locks[db] = asyncio.Lock()
    return lock
