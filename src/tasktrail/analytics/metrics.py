# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Activity metrics and security summaries over a window of events."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo

from tasktrail.core.calendar import local_date, month_start, week_start
from tasktrail.core.constants import EventSeverity, EventType
from tasktrail.events.models import Event


@dataclass(frozen=True, slots=True)
class Breakdown:
    key: str
    count: int
    percentage: float


@dataclass(frozen=True, slots=True)
class ActivityMetrics:
    """Dashboard metrics for a window of events.

    ``hour_distribution`` always has exactly 24 entries (reference-timezone
    hours).  Percentages are 0-100 and every ratio is finite.
    """

    total_events: int = 0
    events_today: int = 0
    events_this_week: int = 0
    events_this_month: int = 0
    active_users: int = 0
    top_categories: list[Breakdown] = field(default_factory=list)
    top_event_types: list[Breakdown] = field(default_factory=list)
    entity_breakdown: list[Breakdown] = field(default_factory=list)
    hour_distribution: list[int] = field(default_factory=lambda: [0] * 24)
    peak_hour: int | None = None
    most_active_day: str | None = None
    daily_average: float = 0.0
    growth_rate: float = 0.0


@dataclass(frozen=True, slots=True)
class SecuritySummary:
    critical_count: int = 0
    failed_login_count: int = 0
    suspicious_activity_count: int = 0
    recent_alerts: list[Event] = field(default_factory=list)


def percentage(count: int, total: int) -> float:
    """``count / total`` as a percentage rounded to 2 places; 0 when total is 0."""
    if total <= 0:
        return 0.0
    return round(count / total * 100, 2)


def growth_rate(current: int | float, previous: int | float) -> float:
    """Relative change in percent; 0 when there is no previous value."""
    if not previous:
        return 0.0
    rate = (current - previous) / previous * 100
    return round(rate, 2) if math.isfinite(rate) else 0.0


def breakdown(counter: Counter[str], total: int, top_n: int | None = None) -> list[Breakdown]:
    """Counts sorted by count descending, then key, with their share of *total*."""
    ordered = sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))
    if top_n is not None:
        ordered = ordered[:top_n]
    return [Breakdown(key=k, count=c, percentage=percentage(c, total)) for k, c in ordered]


def compute_activity_metrics(
    events: Iterable[Event],
    *,
    now: datetime,
    tz: ZoneInfo,
    days: int = 7,
    previous_events: Sequence[Event] | None = None,
    top_n: int = 5,
) -> ActivityMetrics:
    """Compute :class:`ActivityMetrics` for *events*.

    *days* is the window length used for ``daily_average``.  When
    *previous_events* (the preceding window of equal length) is given,
    ``growth_rate`` compares the two totals.
    """
    live = [e for e in events if not e.is_deleted]
    total = len(live)
    today = local_date(now, tz)
    first_of_week = week_start(today)
    first_of_month = month_start(today)

    categories: Counter[str] = Counter()
    event_types: Counter[str] = Counter()
    entities: Counter[str] = Counter()
    per_day: Counter[str] = Counter()
    hours = [0] * 24
    users: set[str] = set()
    events_today = events_this_week = events_this_month = 0

    for event in live:
        local = event.created_at.astimezone(tz)
        day = local.date()
        categories[str(event.category)] += 1
        event_types[str(event.event_type)] += 1
        entities[str(event.entity_type)] += 1
        per_day[day.isoformat()] += 1
        hours[local.hour] += 1
        if event.user_id:
            users.add(event.user_id)
        if day == today:
            events_today += 1
        if first_of_week <= day <= today:
            events_this_week += 1
        if first_of_month <= day <= today:
            events_this_month += 1

    peak_hour: int | None = None
    if total:
        peak_hour = hours.index(max(hours))
    most_active_day: str | None = None
    if per_day:
        most_active_day = min(per_day, key=lambda d: (-per_day[d], d))

    previous_total = None
    if previous_events is not None:
        previous_total = sum(1 for e in previous_events if not e.is_deleted)

    return ActivityMetrics(
        total_events=total,
        events_today=events_today,
        events_this_week=events_this_week,
        events_this_month=events_this_month,
        active_users=len(users),
        top_categories=breakdown(categories, total, top_n),
        top_event_types=breakdown(event_types, total, top_n),
        entity_breakdown=breakdown(entities, total),
        hour_distribution=hours,
        peak_hour=peak_hour,
        most_active_day=most_active_day,
        daily_average=round(total / days, 2) if days > 0 else 0.0,
        growth_rate=growth_rate(total, previous_total or 0),
    )


def compute_security_summary(events: Iterable[Event], *, top_n: int = 10) -> SecuritySummary:
    """Counts of critical, failed-login and suspicious events plus the latest alerts."""
    live = [e for e in events if not e.is_deleted]
    critical = [e for e in live if e.severity == EventSeverity.CRITICAL]
    failed_logins = sum(1 for e in live if e.event_type == EventType.LOGIN_FAILED)
    suspicious = sum(1 for e in live if e.event_type == EventType.SUSPICIOUS_ACTIVITY)
    recent = sorted(critical, key=lambda e: (e.created_at, e.id), reverse=True)[:top_n]
    return SecuritySummary(
        critical_count=len(critical),
        failed_login_count=failed_logins,
        suspicious_activity_count=suspicious,
        recent_alerts=recent,
    )

