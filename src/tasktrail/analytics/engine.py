# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Aggregation engine and its periodic scheduler.

A pass recomputes every bucket of a window from the event log and replaces
the stored rows wholesale, so repeating a pass (or retrying a failed one)
always converges on the same summaries.  The scheduler re-aggregates the
current and previous bucket of each configured period on a fixed interval,
which also picks up events that arrived late for the previous bucket.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from tasktrail.analytics.aggregator import (
    ActivitySummary,
    bucket_bounds,
    iter_buckets,
    summarize_users,
    summarize_window,
)
from tasktrail.analytics.store import SummaryStore
from tasktrail.core.constants import PeriodType
from tasktrail.core.exceptions import AggregationError
from tasktrail.events.store import EventStore

logger = logging.getLogger("tasktrail.analytics.engine")

_DEFAULT_INTERVAL_SECONDS = 300


@dataclass(frozen=True, slots=True)
class AggregationResult:
    period_type: PeriodType
    window_start: datetime
    window_end: datetime
    buckets: int
    events: int
    summaries: int
    user_summaries: int


class AggregationEngine:
    """Recomputes bucketed summaries for a window from the event log."""

    def __init__(self, events: EventStore, summaries: SummaryStore) -> None:
        self._events = events
        self._summaries = summaries
        self.failures = 0
        self.last_error: str | None = None
        self.last_run_at: datetime | None = None

    async def run(
        self,
        period_type: PeriodType | str,
        start: datetime,
        end: datetime,
        *,
        workspace_id: str | None = None,
    ) -> AggregationResult:
        """Aggregate every bucket overlapping ``[start, end)``.

        Without *workspace_id* the global scope and every workspace seen in
        the window are recomputed.  Any failure is raised as
        :class:`AggregationError`; stored summaries are left as they were.
        """
        try:
            period_type = PeriodType(period_type)
            buckets = iter_buckets(start, end, period_type)
            if not buckets:
                return AggregationResult(period_type, start, end, 0, 0, 0, 0)
            window_start, window_end = buckets[0][0], buckets[-1][1]

            events = await self._events.list_window(
                window_start, window_end, workspace_id=workspace_id
            )

            scopes: list[str | None]
            if workspace_id is not None:
                scopes = [workspace_id]
            else:
                scopes = [None, *sorted({e.workspace_id for e in events if e.workspace_id})]

            summaries: list[ActivitySummary] = []
            for scope in scopes:
                summaries.extend(summarize_window(
                    events,
                    period_type=period_type,
                    start=window_start,
                    end=window_end,
                    workspace_id=scope,
                ))
            user_summaries = summarize_users(
                events, period_type=period_type, start=window_start, end=window_end
            )

            await self._summaries.replace_window(
                str(period_type),
                window_start,
                window_end,
                summaries,
                user_summaries,
                workspace_id=workspace_id,
            )
        except Exception as exc:
            self.failures += 1
            self.last_error = str(exc)
            logger.error(
                "Aggregation failed for %s [%s, %s): %s", period_type, start, end, exc
            )
            if isinstance(exc, AggregationError):
                raise
            raise AggregationError(f"Aggregation failed: {exc}") from exc

        self.last_run_at = datetime.now(UTC)
        logger.info(
            "Aggregated %s events into %s %s buckets (%s summaries, %s user summaries)",
            len(events),
            len(buckets),
            period_type,
            len(summaries),
            len(user_summaries),
        )
        return AggregationResult(
            period_type=period_type,
            window_start=window_start,
            window_end=window_end,
            buckets=len(buckets),
            events=len(events),
            summaries=len(summaries),
            user_summaries=len(user_summaries),
        )


def recent_window(now: datetime, period_type: PeriodType | str) -> tuple[datetime, datetime]:
    """The previous and current bucket of *period_type* around *now*."""
    current_start, current_end = bucket_bounds(now, period_type)
    previous_start, _ = bucket_bounds(current_start - timedelta(microseconds=1), period_type)
    return previous_start, current_end


class AggregationScheduler:
    """Asyncio loop that re-aggregates recent buckets at a fixed interval."""

    def __init__(
        self,
        engine: AggregationEngine,
        *,
        periods: Sequence[PeriodType | str] = (PeriodType.HOUR, PeriodType.DAY),
        interval: float = _DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._engine = engine
        self._periods = [PeriodType(p) for p in periods]
        self._interval = interval
        self._clock = clock or (lambda: datetime.now(UTC))
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the aggregation background loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Aggregation scheduler started (interval=%ss, periods=%s)",
            self._interval,
            ",".join(self._periods),
        )

    async def stop(self) -> None:
        """Gracefully stop the scheduler."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Aggregation scheduler stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except Exception:
                logger.exception("Aggregation tick failed")
            await asyncio.sleep(self._interval)

    async def tick(self) -> list[AggregationResult]:
        """Run one pass over every configured period.

        A failing period is skipped; it is retried on the next tick.
        """
        now = self._clock()
        results: list[AggregationResult] = []
        for period_type in self._periods:
            start, end = recent_window(now, period_type)
            try:
                results.append(await self._engine.run(period_type, start, end))
            except AggregationError:
                continue
        return results
