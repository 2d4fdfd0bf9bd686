# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Correlation ids for grouping the events of one logical operation."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_current: ContextVar[str | None] = ContextVar("tasktrail_correlation_id", default=None)


def generate_correlation_id() -> str:
    """Return a new opaque, globally unique correlation token."""
    return uuid.uuid4().hex


def current_correlation_id() -> str | None:
    """Return the correlation id bound to the running operation, if any."""
    return _current.get()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Bind a correlation id for the duration of one logical operation.

    Every event ingested inside the block without an explicit correlation
    id is tagged with the bound one, including events emitted by side
    effects the operation triggers.  A nested scope reuses the enclosing id
    unless *correlation_id* is given explicitly.

    Usage::

        with correlation_scope() as cid:
            await move_task(...)
            await reorder_section(...)
    """
    cid = correlation_id or _current.get() or generate_correlation_id()
    token = _current.set(cid)
    try:
        yield cid
    finally:
        _current.reset(token)
