# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Event data models: the caller-supplied draft, the stored event and feed items."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from tasktrail.core.constants import (
    EntityType,
    EventCategory,
    EventSeverity,
    EventSource,
    EventType,
)
from tasktrail.core.exceptions import ValidationError


def format_timestamp(dt: datetime) -> str:
    """Render *dt* as a fixed-width UTC ISO-8601 string.

    Fixed width keeps lexical and chronological order identical, which the
    ``(created_at, id)`` ordering in SQL relies on.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def compute_delta(
    old_values: Mapping[str, Any] | None,
    new_values: Mapping[str, Any] | None,
) -> dict[str, Any] | None:
    """Return the keys present in both snapshots whose values differ.

    The diff is shallow: nested objects are compared as whole values, so a
    change anywhere inside ``{"meta": {...}}`` reports ``meta`` with its new
    value.  Keys added or removed between snapshots are not part of the
    delta.  Returns None when either snapshot is missing.
    """
    if old_values is None or new_values is None:
        return None
    return {
        key: new_values[key]
        for key in new_values
        if key in old_values and old_values[key] != new_values[key]
    }


class EventDraft(BaseModel):
    """Everything a producer supplies for one event.

    ``id``, ``created_at`` and ``delta`` are assigned by the ingestion
    service and cannot be set here.
    """

    model_config = ConfigDict(extra="forbid")

    event_type: EventType
    entity_type: EntityType
    workspace_id: str | None = None
    user_id: str | None = None
    entity_id: str | None = None
    related_entity_type: EntityType | None = None
    related_entity_id: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    category: EventCategory = EventCategory.USER_ACTION
    severity: EventSeverity = EventSeverity.INFO
    source: EventSource = EventSource.WEB
    correlation_id: str | None = None
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)

    @classmethod
    def create(cls, **fields: Any) -> EventDraft:
        """Build a draft, reporting unknown enum values as :class:`ValidationError`."""
        try:
            return cls(**fields)
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
            raise ValidationError(f"Invalid event: {problems}") from exc


class Event(BaseModel):
    """A persisted, immutable event record."""

    model_config = ConfigDict(frozen=True)

    id: str
    event_type: EventType
    entity_type: EntityType
    workspace_id: str | None = None
    user_id: str | None = None
    entity_id: str | None = None
    related_entity_type: EntityType | None = None
    related_entity_id: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    delta: dict[str, Any] | None = None
    category: EventCategory = EventCategory.USER_ACTION
    severity: EventSeverity = EventSeverity.INFO
    source: EventSource = EventSource.WEB
    correlation_id: str | None = None
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Event:
        """Build an event from an ``events`` table row."""
        return cls(**_decode_row(row))


class ActivityFeedItem(Event):
    """An event joined with display names for feeds and exports."""

    user_name: str | None = None
    workspace_name: str | None = None
    description: str = "System Event"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ActivityFeedItem:
        data = _decode_row(row)
        data["description"] = describe_event(
            data["entity_type"], data.get("new_values"), data.get("old_values")
        )
        return cls(**data)


_DESCRIPTION_FIELDS: dict[str, tuple[str, str]] = {
    EntityType.TASK: ("title", "Unknown Task"),
    EntityType.SECTION: ("name", "Unknown Section"),
    EntityType.WORKSPACE: ("name", "Unknown Workspace"),
}


def describe_event(
    entity_type: str,
    new_values: Mapping[str, Any] | None,
    old_values: Mapping[str, Any] | None,
) -> str:
    """Human label for an event: the entity's title or name, newest snapshot first."""
    label = _DESCRIPTION_FIELDS.get(entity_type)
    if label is None:
        return "System Event"
    key, fallback = label
    for snapshot in (new_values, old_values):
        if snapshot and snapshot.get(key):
            return str(snapshot[key])
    return fallback


_JSON_COLUMNS = ("old_values", "new_values", "delta", "context", "tags")


def _decode_row(row: Mapping[str, Any]) -> dict[str, Any]:
    d = dict(row)
    for column in _JSON_COLUMNS:
        value = d.get(column)
        if isinstance(value, str):
            try:
                d[column] = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                d[column] = None
    if d.get("context") is None:
        d["context"] = {}
    if d.get("tags") is None:
        d["tags"] = []
    d["is_deleted"] = bool(d.get("is_deleted", 0))
    return d
