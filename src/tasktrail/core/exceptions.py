# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Custom exception hierarchy for tasktrail.

``status_code`` is the HTTP status the API layer answers with when the
exception escapes a request handler.
"""


class TaskTrailError(Exception):
    """Base exception for all tasktrail errors."""

    status_code: int = 500


class ConfigurationError(TaskTrailError):
    """Invalid or missing configuration."""


class ValidationError(TaskTrailError):
    """Caller supplied an unknown enum value or a malformed argument."""

    status_code = 400


class StorageError(TaskTrailError):
    """Database or storage operation failed."""


class IngestionError(TaskTrailError):
    """An event could not be persisted."""


class AggregationError(TaskTrailError):
    """A summarization pass failed; the next pass retries the window."""


class AuthenticationError(TaskTrailError):
    """No authenticated identity was supplied."""

    status_code = 401


class AccessDeniedError(TaskTrailError):
    """The requester may not read the target entity's history."""

    status_code = 403


class NotFoundError(TaskTrailError):
    """The target entity does not exist or is soft-deleted."""

    status_code = 404
