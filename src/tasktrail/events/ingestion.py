# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Event ingestion: validate, stamp, diff and persist one event at a time."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from tasktrail.core.constants import (
    AUTH_EVENT_TYPES,
    COMPLETED_STATUS,
    EntityType,
    EventCategory,
    EventSeverity,
    EventSource,
    EventType,
)
from tasktrail.core.exceptions import IngestionError, ValidationError
from tasktrail.events.context import current_request_context
from tasktrail.events.correlation import current_correlation_id
from tasktrail.events.models import Event, EventDraft, compute_delta
from tasktrail.events.store import EventStore

_logger = logging.getLogger("tasktrail.events.ingestion")

# Module-level singleton
_ingestion_service: EventIngestionService | None = None

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EventIngestionService:
    """Turns producer drafts into persisted, immutable events.

    :meth:`log` raises on invalid input (:class:`ValidationError`) and on
    persistence failure (:class:`IngestionError`).  Request handlers do not
    call it directly; they submit drafts to an :class:`EventChannel`, which
    absorbs those failures.
    """

    def __init__(
        self,
        store: EventStore | None = None,
        *,
        clock: Clock | None = None,
        log_dir: Path | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or _utcnow
        self._log_dir = log_dir
        if self._log_dir is not None:
            self._log_dir.mkdir(parents=True, exist_ok=True)

    async def _get_store(self) -> EventStore:
        if self._store is not None:
            return self._store
        from tasktrail.storage.database import get_db

        return EventStore(await get_db())

    async def log(self, draft: EventDraft | Mapping[str, Any]) -> str:
        """Validate and persist one event, returning its id."""
        if not isinstance(draft, EventDraft):
            draft = EventDraft.create(**dict(draft))

        event = self._materialize(draft)

        try:
            store = await self._get_store()
            await store.insert(event)
        except Exception as exc:
            raise IngestionError(f"Failed to persist event {event.id}: {exc}") from exc

        self._write_json_log(event)
        _logger.debug(
            "event=%s type=%s entity=%s/%s workspace=%s",
            event.id,
            event.event_type,
            event.entity_type,
            event.entity_id,
            event.workspace_id,
        )
        return event.id

    def _materialize(self, draft: EventDraft) -> Event:
        data = bind_ambient_context(draft).model_dump()
        now = self._clock()
        return Event(
            id=uuid.uuid4().hex,
            delta=compute_delta(draft.old_values, draft.new_values),
            created_at=now,
            updated_at=now,
            **data,
        )

    def _write_json_log(self, event: Event) -> None:
        """Append the event to the daily JSONL mirror, if one is configured."""
        if self._log_dir is None:
            return
        try:
            day = event.created_at.strftime("%Y-%m-%d")
            log_file = self._log_dir / f"events-{day}.jsonl"
            line = json.dumps(event.model_dump(mode="json"), default=str)
            with log_file.open("a") as fh:
                fh.write(line + "\n")
        except OSError:
            _logger.exception("Failed to write JSONL event mirror")

    # -----------------------------------------------------------------
    # Builders for common event shapes
    # -----------------------------------------------------------------

    async def log_entity_created(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        new_values: dict[str, Any],
        *,
        user_id: str | None = None,
        workspace_id: str | None = None,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Log the creation of a workspace, section, task or other entity."""
        tags = [str(entity_type), "create"]
        if new_values.get("status"):
            tags.append(str(new_values["status"]))
        return await self.log(EventDraft.create(
            event_type=EventType.CREATED,
            entity_type=entity_type,
            entity_id=entity_id,
            workspace_id=workspace_id,
            user_id=user_id,
            new_values=new_values,
            correlation_id=correlation_id,
            context=context or {},
            tags=tags,
        ))

    async def log_entity_updated(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
        *,
        user_id: str | None = None,
        workspace_id: str | None = None,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Log an update, deriving the most specific event type from the diff."""
        event_type, details = classify_update(old_values, new_values)
        return await self.log(EventDraft.create(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            workspace_id=workspace_id,
            user_id=user_id,
            old_values=old_values,
            new_values=new_values,
            correlation_id=correlation_id,
            context={**details, **(context or {})},
            tags=[str(entity_type), "update", str(event_type)],
        ))

    async def log_entity_deleted(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        old_values: dict[str, Any] | None = None,
        *,
        user_id: str | None = None,
        workspace_id: str | None = None,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        return await self.log(EventDraft.create(
            event_type=EventType.DELETED,
            entity_type=entity_type,
            entity_id=entity_id,
            workspace_id=workspace_id,
            user_id=user_id,
            old_values=old_values,
            correlation_id=correlation_id,
            context=context or {},
            tags=[str(entity_type), "delete"],
        ))

    async def log_entity_viewed(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        *,
        user_id: str | None = None,
        workspace_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        return await self.log(EventDraft.create(
            event_type=EventType.VIEWED,
            entity_type=entity_type,
            entity_id=entity_id,
            workspace_id=workspace_id,
            user_id=user_id,
            severity=EventSeverity.DEBUG,
            context=context or {},
            tags=[str(entity_type), "view"],
        ))

    async def log_member_added(
        self,
        workspace_id: str,
        member_user_id: str,
        role: str,
        *,
        membership_id: str | None = None,
        user_id: str | None = None,
        correlation_id: str | None = None,
    ) -> str:
        """Log a user joining a workspace with *role*."""
        return await self.log(EventDraft.create(
            event_type=EventType.MEMBER_ADDED,
            entity_type=EntityType.WORKSPACE_MEMBER,
            entity_id=membership_id,
            workspace_id=workspace_id,
            user_id=user_id,
            related_entity_type=EntityType.USER,
            related_entity_id=member_user_id,
            new_values={"user_id": member_user_id, "role": role},
            category=EventCategory.SECURITY,
            correlation_id=correlation_id,
            tags=["member", "add", role],
        ))

    async def log_auth_event(
        self,
        event_type: EventType | str,
        user_id: str | None,
        *,
        context: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str:
        """Log a login, logout, failed login, credential or MFA change."""
        if event_type not in AUTH_EVENT_TYPES:
            raise ValidationError(f"Not an authentication event type: {event_type!r}")
        event_type = EventType(event_type)
        if event_type == EventType.LOGIN_FAILED:
            severity = EventSeverity.WARNING
        elif event_type == EventType.SUSPICIOUS_ACTIVITY:
            severity = EventSeverity.ERROR
        else:
            severity = EventSeverity.INFO
        return await self.log(EventDraft.create(
            event_type=event_type,
            entity_type=EntityType.SESSION,
            entity_id=user_id,
            user_id=user_id,
            category=EventCategory.SECURITY,
            severity=severity,
            ip_address=ip_address,
            user_agent=user_agent,
            context=context or {},
            tags=[str(event_type), "authentication"],
        ))

    async def log_search_event(
        self,
        query: str,
        search_type: str,
        results_count: int,
        *,
        execution_time_ms: float | None = None,
        filters: dict[str, Any] | None = None,
        user_id: str | None = None,
        workspace_id: str | None = None,
    ) -> str:
        return await self.log(EventDraft.create(
            event_type=EventType.SEARCH_PERFORMED,
            entity_type=EntityType.WORKSPACE,
            entity_id=workspace_id,
            workspace_id=workspace_id,
            user_id=user_id,
            severity=EventSeverity.DEBUG,
            context={
                "query": query,
                "type": search_type,
                "filters": filters or {},
                "results_count": results_count,
                "execution_time_ms": execution_time_ms,
            },
            tags=["search", search_type],
        ))

    async def log_error(
        self,
        error_code: str,
        error_message: str,
        *,
        stack_trace: str | None = None,
        entity_type: EntityType | str = EntityType.USER,
        entity_id: str | None = None,
        user_id: str | None = None,
        workspace_id: str | None = None,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        return await self.log(EventDraft.create(
            event_type=EventType.API_ERROR,
            entity_type=entity_type,
            entity_id=entity_id,
            workspace_id=workspace_id,
            user_id=user_id,
            category=EventCategory.ERROR,
            severity=EventSeverity.ERROR,
            correlation_id=correlation_id,
            context={
                "error_code": error_code,
                "error_message": error_message,
                "stack_trace": stack_trace,
                **(context or {}),
            },
            tags=["error", error_code],
        ))

    async def log_batch_operation(
        self,
        operation: str,
        entity_type: EntityType | str,
        entity_ids: list[str],
        *,
        user_id: str | None = None,
        workspace_id: str | None = None,
        correlation_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Log one event summarizing an operation over many entities."""
        return await self.log(EventDraft.create(
            event_type=EventType.UPDATED,
            entity_type=entity_type,
            workspace_id=workspace_id,
            user_id=user_id,
            correlation_id=correlation_id,
            context={
                "operation_type": operation,
                "entity_count": len(entity_ids),
                "entity_ids": list(entity_ids),
                **(context or {}),
            },
            tags=["batch", operation, str(entity_type)],
        ))

    async def log_api_call(
        self,
        method: str,
        path: str,
        *,
        duration_ms: float,
        status_code: int | None = None,
        error_message: str | None = None,
        category: EventCategory | str | None = None,
        user_id: str | None = None,
        workspace_id: str | None = None,
        source: EventSource | str | None = None,
    ) -> str:
        """Log one wrapped API operation; *error_message* marks it as failed."""
        return await self.log(build_api_call_draft(
            method,
            path,
            duration_ms=duration_ms,
            status_code=status_code,
            error_message=error_message,
            category=category,
            user_id=user_id,
            workspace_id=workspace_id,
            source=source,
        ))


def build_api_call_draft(
    method: str,
    path: str,
    *,
    duration_ms: float,
    status_code: int | None = None,
    error_message: str | None = None,
    category: EventCategory | str | None = None,
    user_id: str | None = None,
    workspace_id: str | None = None,
    source: EventSource | str | None = None,
) -> EventDraft:
    failed = error_message is not None
    segments = [s for s in path.split("/") if s]
    # "/api/v1/events/recent" is tagged "events"
    if segments[:1] == ["api"]:
        segments = segments[1:]
    if segments and segments[0].startswith("v") and segments[0][1:].isdigit():
        segments = segments[1:]
    fields: dict[str, Any] = {
        "event_type": EventType.API_ERROR if failed else EventType.API_CALL,
        "entity_type": EntityType.SESSION,
        "workspace_id": workspace_id,
        "user_id": user_id,
        "category": EventCategory.ERROR if failed else (category or EventCategory.SYSTEM),
        "severity": EventSeverity.ERROR if failed else EventSeverity.DEBUG,
        "context": {
            "method": method,
            "pathname": path,
            "duration_ms": duration_ms,
            "status_code": status_code,
            "error_message": error_message,
        },
        "tags": [method.lower(), "api", segments[0] if segments else "root"],
    }
    if source is not None:
        fields["source"] = source
    return EventDraft.create(**fields)


def classify_update(
    old_values: Mapping[str, Any], new_values: Mapping[str, Any]
) -> tuple[EventType, dict[str, Any]]:
    """Pick the event type describing the most significant change.

    Precedence: status, then assignee, then section, then position, then
    the archived flag.  Returns the event type and the transition details
    recorded in the event context.
    """

    def changed(key: str) -> bool:
        return key in old_values and key in new_values and old_values[key] != new_values[key]

    if changed("status"):
        old_status, new_status = old_values["status"], new_values["status"]
        details = {"previous_status": old_status, "new_status": new_status}
        if new_status == COMPLETED_STATUS:
            return EventType.COMPLETED, details
        if old_status == COMPLETED_STATUS:
            return EventType.REOPENED, details
        return EventType.STATUS_CHANGED, details

    if changed("assigned_to_user_id"):
        old_assignee = old_values["assigned_to_user_id"]
        new_assignee = new_values["assigned_to_user_id"]
        details = {"previous_assignee": old_assignee, "new_assignee": new_assignee}
        if old_assignee is None:
            return EventType.ASSIGNED, details
        if new_assignee is None:
            return EventType.UNASSIGNED, details
        return EventType.REASSIGNED, details

    if changed("section_id"):
        return EventType.MOVED, {
            "previous_section": old_values["section_id"],
            "new_section": new_values["section_id"],
        }

    if changed("position"):
        return EventType.REORDERED, {
            "previous_position": old_values["position"],
            "new_position": new_values["position"],
        }

    if changed("is_archived"):
        if new_values["is_archived"]:
            return EventType.ARCHIVED, {}
        return EventType.UNARCHIVED, {}

    return EventType.UPDATED, {}


def get_ingestion_service() -> EventIngestionService:
    """Return the module-level EventIngestionService singleton."""
    global _ingestion_service
    if _ingestion_service is None:
        _ingestion_service = EventIngestionService()
    return _ingestion_service


def set_ingestion_service(service: EventIngestionService | None) -> None:
    """Replace the module-level EventIngestionService singleton (useful for testing)."""
    global _ingestion_service
    _ingestion_service = service


def bind_ambient_context(draft: EventDraft) -> EventDraft:
    """Fill unset provenance fields from the bound correlation scope and request.

    Must run in the producer's context: background workers do not see the
    request's context variables.
    """
    update: dict[str, Any] = {}
    if draft.correlation_id is None:
        cid = current_correlation_id()
        if cid is not None:
            update["correlation_id"] = cid

    ctx = current_request_context()
    if ctx is not None:
        for name in ("user_id", "session_id", "ip_address", "user_agent"):
            if getattr(draft, name) is None and getattr(ctx, name) is not None:
                update[name] = getattr(ctx, name)
        if "source" not in draft.model_fields_set:
            update["source"] = ctx.source

    return draft.model_copy(update=update) if update else draft
