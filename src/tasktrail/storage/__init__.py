# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Storage layer -- SQLite connection management and migrations."""

from tasktrail.storage.database import close_db, get_db, init_db, write_lock
from tasktrail.storage.migrations import run_migrations

__all__ = [
    "close_db",
    "get_db",
    "init_db",
    "run_migrations",
    "write_lock",
]
