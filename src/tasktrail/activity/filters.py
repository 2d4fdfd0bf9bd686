# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""In-memory filtering, sorting and period grouping of activity feed items.

All calendar arithmetic happens in one reference timezone so that "today"
and "this week" mean the same thing for every item.  Weeks start on Sunday.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import StrEnum
from zoneinfo import ZoneInfo

from tasktrail.core.calendar import day_start, local_date, month_start, quarter_start, week_start
from tasktrail.core.constants import SEVERITY_RANK
from tasktrail.core.exceptions import ValidationError
from tasktrail.events.models import ActivityFeedItem


class DateRangePreset(StrEnum):
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    CUSTOM = "custom"


class SortField(StrEnum):
    CREATED_AT = "created_at"
    EVENT_TYPE = "event_type"
    ENTITY_TYPE = "entity_type"
    USER_NAME = "user_name"
    SEVERITY = "severity"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(slots=True)
class ActivityFilters:
    """Client-side view filters.  Empty sequences mean "no restriction"."""

    search_query: str = ""
    event_types: Sequence[str] = ()
    entity_types: Sequence[str] = ()
    severities: Sequence[str] = ()
    categories: Sequence[str] = ()
    user_ids: Sequence[str] = ()
    date_range: DateRangePreset = DateRangePreset.ALL
    custom_start: date | None = None
    custom_end: date | None = None


@dataclass(slots=True)
class GroupedActivities:
    today: list[ActivityFeedItem] = field(default_factory=list)
    yesterday: list[ActivityFeedItem] = field(default_factory=list)
    this_week: list[ActivityFeedItem] = field(default_factory=list)
    this_month: list[ActivityFeedItem] = field(default_factory=list)
    older: list[ActivityFeedItem] = field(default_factory=list)

    def as_dict(self) -> dict[str, list[ActivityFeedItem]]:
        return {
            "today": self.today,
            "yesterday": self.yesterday,
            "this_week": self.this_week,
            "this_month": self.this_month,
            "older": self.older,
        }


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def matches_search(item: ActivityFeedItem, query: str) -> bool:
    """Case-insensitive substring match over the item's display fields."""
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = (
        item.description,
        item.event_type,
        item.entity_type,
        item.user_name or "",
        item.workspace_name or "",
    )
    return any(needle in str(value).lower() for value in haystack)


def date_range_bounds(
    filters: ActivityFilters, today: date
) -> tuple[date | None, date | None]:
    """Inclusive ``(first_day, last_day)`` for the preset; None means open."""
    preset = filters.date_range
    if preset == DateRangePreset.ALL:
        return None, None
    if preset == DateRangePreset.TODAY:
        return today, None
    if preset == DateRangePreset.WEEK:
        return week_start(today), None
    if preset == DateRangePreset.MONTH:
        return month_start(today), None
    if preset == DateRangePreset.QUARTER:
        return quarter_start(today), None
    # A custom range missing either end does not filter.
    if filters.custom_start is None or filters.custom_end is None:
        return None, None
    if filters.custom_start > filters.custom_end:
        raise ValidationError("custom_start must not be after custom_end")
    return filters.custom_start, filters.custom_end


def date_range_window(
    filters: ActivityFilters, *, now: datetime, tz: ZoneInfo
) -> tuple[datetime | None, datetime | None]:
    """The preset as a half-open ``[start, end)`` instant range for storage queries."""
    first_day, last_day = date_range_bounds(filters, local_date(now, tz))
    start = day_start(first_day, tz) if first_day is not None else None
    end = day_start(last_day + timedelta(days=1), tz) if last_day is not None else None
    return start, end


def apply_filters(
    items: Iterable[ActivityFeedItem],
    filters: ActivityFilters,
    *,
    now: datetime,
    tz: ZoneInfo,
) -> list[ActivityFeedItem]:
    """Return the items satisfying the search AND every structured filter."""
    first_day, last_day = date_range_bounds(filters, local_date(now, tz))
    result: list[ActivityFeedItem] = []
    for item in items:
        if filters.event_types and item.event_type not in filters.event_types:
            continue
        if filters.entity_types and item.entity_type not in filters.entity_types:
            continue
        if filters.severities and item.severity not in filters.severities:
            continue
        if filters.categories and item.category not in filters.categories:
            continue
        if filters.user_ids and item.user_id not in filters.user_ids:
            continue
        day = local_date(item.created_at, tz)
        if first_day is not None and day < first_day:
            continue
        if last_day is not None and day > last_day:
            continue
        if not matches_search(item, filters.search_query):
            continue
        result.append(item)
    return result


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def _sort_key(sort_field: SortField):
    if sort_field == SortField.CREATED_AT:
        return lambda item: item.created_at
    if sort_field == SortField.SEVERITY:
        return lambda item: SEVERITY_RANK.get(item.severity, 0)
    if sort_field == SortField.USER_NAME:
        return lambda item: (item.user_name or "").lower()
    attr = str(sort_field)
    return lambda item: str(getattr(item, attr))


def sort_activities(
    items: Iterable[ActivityFeedItem],
    sort_field: SortField | str = SortField.CREATED_AT,
    direction: SortDirection | str = SortDirection.DESC,
) -> list[ActivityFeedItem]:
    """Stable sort: items with equal keys keep their input order."""
    try:
        sort_field = SortField(sort_field)
        direction = SortDirection(direction)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None
    return sorted(
        items,
        key=_sort_key(sort_field),
        reverse=direction == SortDirection.DESC,
    )


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def group_by_period(
    items: Iterable[ActivityFeedItem],
    *,
    now: datetime,
    tz: ZoneInfo,
) -> GroupedActivities:
    """Partition items into today, yesterday, this week, this month and older.

    The groups are disjoint: "this week" excludes today and yesterday, and
    "this month" excludes anything already in an earlier group.  Items
    dated after today are grouped with today.
    """
    today = local_date(now, tz)
    yesterday = today - timedelta(days=1)
    first_of_week = week_start(today)
    first_of_month = month_start(today)

    groups = GroupedActivities()
    for item in items:
        day = local_date(item.created_at, tz)
        if day >= today:
            groups.today.append(item)
        elif day == yesterday:
            groups.yesterday.append(item)
        elif day >= first_of_week:
            groups.this_week.append(item)
        elif day >= first_of_month:
            groups.this_month.append(item)
        else:
            groups.older.append(item)
    return groups
