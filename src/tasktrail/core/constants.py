# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Event enumerations and severity ordering."""

from enum import StrEnum


class EventType(StrEnum):
    # Lifecycle
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"

    # Status
    STATUS_CHANGED = "status_changed"
    COMPLETED = "completed"
    REOPENED = "reopened"

    # Assignment
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    REASSIGNED = "reassigned"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"

    # Organization
    MOVED = "moved"
    REORDERED = "reordered"
    DUPLICATED = "duplicated"
    MERGED = "merged"

    # Membership and permissions
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    MEMBER_INVITED = "member_invited"
    INVITATION_ACCEPTED = "invitation_accepted"
    INVITATION_DECLINED = "invitation_declined"
    ROLE_CHANGED = "role_changed"
    PERMISSION_CHANGED = "permission_changed"
    ACCESS_GRANTED = "access_granted"
    ACCESS_REVOKED = "access_revoked"

    # Authentication
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    PASSWORD_CHANGED = "password_changed"
    MFA_ENABLED = "mfa_enabled"
    MFA_DISABLED = "mfa_disabled"
    API_KEY_CREATED = "api_key_created"
    API_KEY_REVOKED = "api_key_revoked"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"

    # System
    SEARCH_PERFORMED = "search_performed"
    EXPORT_GENERATED = "export_generated"
    IMPORT_COMPLETED = "import_completed"
    BACKUP_CREATED = "backup_created"
    SETTINGS_CHANGED = "settings_changed"
    INTEGRATION_CONNECTED = "integration_connected"
    INTEGRATION_DISCONNECTED = "integration_disconnected"

    # Interaction
    VIEWED = "viewed"
    COMMENTED = "commented"
    MENTIONED = "mentioned"
    WATCHED = "watched"
    UNWATCHED = "unwatched"
    NOTIFICATION_SENT = "notification_sent"
    EMAIL_SENT = "email_sent"
    REMINDER_TRIGGERED = "reminder_triggered"

    # Request wrapper
    API_CALL = "api_call"
    API_ERROR = "api_error"


class EntityType(StrEnum):
    USER = "user"
    WORKSPACE = "workspace"
    WORKSPACE_MEMBER = "workspace_member"
    SECTION = "section"
    TASK = "task"
    COMMENT = "comment"
    ATTACHMENT = "attachment"
    NOTIFICATION = "notification"
    INTEGRATION = "integration"
    API_KEY = "api_key"
    SESSION = "session"


class EventCategory(StrEnum):
    USER_ACTION = "user_action"
    SYSTEM = "system"
    SECURITY = "security"
    INTEGRATION = "integration"
    AUTOMATION = "automation"
    ERROR = "error"


class EventSeverity(StrEnum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class EventSource(StrEnum):
    WEB = "web"
    API = "api"
    MOBILE = "mobile"
    INTEGRATION = "integration"
    SYSTEM = "system"
    AUTOMATION = "automation"
    WEBHOOK = "webhook"


class PeriodType(StrEnum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


# Sort rank only; severities carry no numeric meaning elsewhere.
SEVERITY_RANK: dict[str, int] = {
    EventSeverity.CRITICAL: 5,
    EventSeverity.ERROR: 4,
    EventSeverity.WARNING: 3,
    EventSeverity.INFO: 2,
    EventSeverity.DEBUG: 1,
}

AUTH_EVENT_TYPES: frozenset[EventType] = frozenset({
    EventType.LOGIN,
    EventType.LOGOUT,
    EventType.LOGIN_FAILED,
    EventType.PASSWORD_CHANGED,
    EventType.MFA_ENABLED,
    EventType.MFA_DISABLED,
    EventType.SUSPICIOUS_ACTIVITY,
})

COMPLETED_STATUS = "completed"
