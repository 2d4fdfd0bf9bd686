# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Activity analytics: bucketed summaries, metrics and security summaries."""

from tasktrail.analytics.aggregator import (
    ActivitySummary,
    UserActivitySummary,
    bucket_bounds,
    summarize_bucket,
    summarize_users,
    summarize_window,
)
from tasktrail.analytics.engine import AggregationEngine, AggregationScheduler
from tasktrail.analytics.metrics import (
    ActivityMetrics,
    SecuritySummary,
    compute_activity_metrics,
    compute_security_summary,
)
from tasktrail.analytics.store import SummaryStore

__all__ = [
    "ActivityMetrics",
    "ActivitySummary",
    "AggregationEngine",
    "AggregationScheduler",
    "SecuritySummary",
    "SummaryStore",
    "UserActivitySummary",
    "bucket_bounds",
    "compute_activity_metrics",
    "compute_security_summary",
    "summarize_bucket",
    "summarize_users",
    "summarize_window",
]
