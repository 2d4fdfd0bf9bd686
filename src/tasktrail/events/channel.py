# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Best-effort ingestion channel.

Producers hand drafts to :meth:`EventChannel.submit`, which never raises
and never blocks on storage.  A background worker persists them through
the :class:`EventIngestionService`.  Failures are counted, logged on the
``tasktrail.events.channel`` logger and kept in a bounded dead-letter
buffer; they never reach the business operation that produced the event.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from tasktrail.events.ingestion import (
    EventIngestionService,
    bind_ambient_context,
    get_ingestion_service,
)
from tasktrail.events.models import EventDraft

logger = logging.getLogger("tasktrail.events.channel")

T = TypeVar("T")

# Module-level singleton
_event_channel: EventChannel | None = None


@dataclass(frozen=True, slots=True)
class DeadLetter:
    """A draft that could not be persisted."""

    draft: EventDraft | Mapping[str, Any]
    error: str
    failed_at: datetime


@dataclass(frozen=True, slots=True)
class ChannelStats:
    submitted: int = 0
    persisted: int = 0
    failed: int = 0
    dropped: int = 0
    pending: int = 0


class EventChannel:
    """Bounded queue of event drafts drained by a background asyncio task."""

    def __init__(
        self,
        ingestion: EventIngestionService | None = None,
        *,
        max_queue: int = 10_000,
        dead_letter_limit: int = 1_000,
    ) -> None:
        self._ingestion = ingestion
        self._queue: asyncio.Queue[EventDraft | Mapping[str, Any]] = asyncio.Queue(
            maxsize=max_queue
        )
        self._dead_letters: deque[DeadLetter] = deque(maxlen=dead_letter_limit)
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._closed = False
        self._submitted = 0
        self._persisted = 0
        self._failed = 0
        self._dropped = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    def stats(self) -> ChannelStats:
        return ChannelStats(
            submitted=self._submitted,
            persisted=self._persisted,
            failed=self._failed,
            dropped=self._dropped,
            pending=self._queue.qsize(),
        )

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    async def start(self) -> None:
        """Start the background worker."""
        if self._running:
            return
        self._running = True
        self._closed = False
        self._task = asyncio.create_task(self._loop())
        logger.info("Event channel started (capacity=%s)", self._queue.maxsize)

    async def stop(self) -> None:
        """Persist everything already queued, then stop the worker."""
        self._closed = True
        if self._running:
            await self.drain()
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info(
            "Event channel stopped (persisted=%s failed=%s dropped=%s)",
            self._persisted,
            self._failed,
            self._dropped,
        )

    async def drain(self) -> None:
        """Wait until every queued draft has been processed.

        Without a running worker the queue is processed inline.
        """
        if self._running:
            await self._queue.join()
            return
        while not self._queue.empty():
            draft = self._queue.get_nowait()
            try:
                await self._process(draft)
            finally:
                self._queue.task_done()

    # -----------------------------------------------------------------
    # Producer side
    # -----------------------------------------------------------------

    def submit(self, draft: EventDraft | Mapping[str, Any]) -> bool:
        """Queue *draft* for persistence.  Returns False if it was dropped.

        Ambient correlation and request context are bound here, in the
        producer's context.
        """
        if self._closed:
            self._dropped += 1
            logger.warning("Event dropped: channel closed")
            return False
        if isinstance(draft, EventDraft):
            draft = bind_ambient_context(draft)
        try:
            self._queue.put_nowait(draft)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning("Event dropped: ingestion queue full (%s)", self._queue.maxsize)
            return False
        self._submitted += 1
        return True

    # -----------------------------------------------------------------
    # Worker side
    # -----------------------------------------------------------------

    async def _loop(self) -> None:
        while self._running:
            draft = await self._queue.get()
            try:
                await self._process(draft)
            finally:
                self._queue.task_done()

    async def _process(self, draft: EventDraft | Mapping[str, Any]) -> None:
        ingestion = self._ingestion or get_ingestion_service()
        try:
            await ingestion.log(draft)
        except Exception as exc:
            self._failed += 1
            self._dead_letters.append(
                DeadLetter(draft=draft, error=str(exc), failed_at=datetime.now(UTC))
            )
            logger.error("Event ingestion failed: %s", exc)
        else:
            self._persisted += 1


async def record_mutation(
    mutation: Callable[[], Awaitable[T]],
    draft_factory: Callable[[T], EventDraft | Mapping[str, Any]],
    channel: EventChannel | None = None,
) -> T:
    """Run a business mutation, then submit the event that documents it.

    If *mutation* raises, nothing is submitted and the exception propagates.
    If building or submitting the event fails, the mutation's result is
    still returned.
    """
    result = await mutation()
    try:
        (channel or get_event_channel()).submit(draft_factory(result))
    except Exception:
        logger.exception("Failed to submit event for completed mutation")
    return result


def get_event_channel() -> EventChannel:
    """Return the module-level EventChannel singleton."""
    global _event_channel
    if _event_channel is None:
        _event_channel = EventChannel()
    return _event_channel


def set_event_channel(channel: EventChannel | None) -> None:
    """Replace the module-level EventChannel singleton (useful for testing)."""
    global _event_channel
    _event_channel = channel
