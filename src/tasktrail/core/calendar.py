# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Calendar helpers evaluated in the configured reference timezone.

Weeks start on Sunday for feed presets and period grouping.
"""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tasktrail.core.exceptions import ConfigurationError


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown reference timezone: {name!r}") from exc


def local_date(dt: datetime, tz: ZoneInfo) -> date:
    return dt.astimezone(tz).date()


def day_start(day: date, tz: ZoneInfo) -> datetime:
    """First instant of the local calendar *day*."""
    return datetime.combine(day, time.min, tzinfo=tz)


def week_start(day: date) -> date:
    """Sunday on or before *day*."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def month_start(day: date) -> date:
    return day.replace(day=1)


def quarter_start(day: date) -> date:
    return date(day.year, ((day.month - 1) // 3) * 3 + 1, 1)
