# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Caller identity dependency.

Authentication itself is delegated to an upstream identity provider,
which forwards the authenticated user in the ``X-User-ID`` header.  When
API keys are configured the gateway must also present one of them.
"""

from __future__ import annotations

from fastapi import Security
from fastapi.security import APIKeyHeader

from tasktrail.core.config import get_settings
from tasktrail.core.exceptions import AccessDeniedError, AuthenticationError

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
_user_header = APIKeyHeader(name="X-User-ID", auto_error=False)


async def require_identity(
    user_id: str | None = Security(_user_header),
    api_key: str | None = Security(_api_key_header),
) -> str:
    """Return the authenticated user id or reject the request."""
    settings = get_settings()

    if settings.api_keys:
        if not api_key:
            raise AuthenticationError("Missing X-API-Key header")
        if api_key not in settings.api_keys:
            raise AccessDeniedError("Invalid API key")

    if not user_id or not user_id.strip():
        raise AuthenticationError("Authentication required")

    return user_id.strip()
