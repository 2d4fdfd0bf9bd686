# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Activity read views: feeds, timelines, filtering and export."""

from tasktrail.activity.export import ExportFormat, to_csv, to_json
from tasktrail.activity.filters import (
    ActivityFilters,
    DateRangePreset,
    GroupedActivities,
    apply_filters,
    group_by_period,
    sort_activities,
)
from tasktrail.activity.queries import ActivityPage, ActivityQueryEngine, build_query_engine

__all__ = [
    "ActivityFilters",
    "ActivityPage",
    "ActivityQueryEngine",
    "DateRangePreset",
    "ExportFormat",
    "GroupedActivities",
    "apply_filters",
    "build_query_engine",
    "group_by_period",
    "sort_activities",
    "to_csv",
    "to_json",
]
