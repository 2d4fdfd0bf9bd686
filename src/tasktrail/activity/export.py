# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CSV and JSON export of activity feed items."""

from __future__ import annotations

import csv
import io
import json
from collections.abc import Iterable
from enum import StrEnum
from zoneinfo import ZoneInfo

from tasktrail.events.models import ActivityFeedItem

CSV_HEADERS = [
    "Date",
    "Time",
    "Event Type",
    "Entity Type",
    "User",
    "Description",
    "Workspace",
    "Severity",
]


class ExportFormat(StrEnum):
    CSV = "csv"
    JSON = "json"


def to_csv(items: Iterable[ActivityFeedItem], *, tz: ZoneInfo) -> str:
    """Render items as CSV with every field quoted and embedded quotes doubled."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for item in items:
        local = item.created_at.astimezone(tz)
        writer.writerow([
            local.strftime("%Y-%m-%d"),
            local.strftime("%H:%M:%S"),
            item.event_type,
            item.entity_type,
            item.user_name or "",
            item.description,
            item.workspace_name or "",
            item.severity,
        ])
    return buf.getvalue()


def to_json(items: Iterable[ActivityFeedItem]) -> str:
    """Full dump of every field, ISO-8601 UTC timestamps."""
    return json.dumps([item.model_dump(mode="json") for item in items], indent=2)


def render(items: Iterable[ActivityFeedItem], fmt: ExportFormat | str, *, tz: ZoneInfo) -> str:
    if ExportFormat(fmt) == ExportFormat.CSV:
        return to_csv(items, tz=tz)
    return to_json(items)
