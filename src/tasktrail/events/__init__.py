# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Event log: models, persistence, ingestion and correlation."""

from tasktrail.events.channel import EventChannel, get_event_channel, record_mutation
from tasktrail.events.correlation import correlation_scope, current_correlation_id
from tasktrail.events.ingestion import EventIngestionService, get_ingestion_service
from tasktrail.events.models import ActivityFeedItem, Event, EventDraft, compute_delta
from tasktrail.events.store import EventQuery, EventStore

__all__ = [
    "ActivityFeedItem",
    "Event",
    "EventChannel",
    "EventDraft",
    "EventIngestionService",
    "EventQuery",
    "EventStore",
    "compute_delta",
    "correlation_scope",
    "current_correlation_id",
    "get_event_channel",
    "get_ingestion_service",
    "record_mutation",
]
