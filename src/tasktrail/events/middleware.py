# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Request-scoped event context and the operation wrapper that logs API calls."""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from tasktrail.core.constants import EventCategory
from tasktrail.events.context import (
    build_request_context,
    current_request_context,
    request_context,
)
from tasktrail.events.correlation import correlation_scope

logger = logging.getLogger("tasktrail.events.middleware")

P = ParamSpec("P")
R = TypeVar("R")

USER_HEADER = "X-User-ID"
CORRELATION_HEADER = "X-Correlation-ID"


class EventContextMiddleware(BaseHTTPMiddleware):
    """Binds provenance and a fresh correlation scope to every request.

    Everything ingested while the request is handled inherits the caller's
    identity, session, IP, user agent and source, and shares one
    correlation id (taken from ``X-Correlation-ID`` when the client sends
    one).
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        ctx = build_request_context(request, request.headers.get(USER_HEADER))
        with request_context(ctx), correlation_scope(
            request.headers.get(CORRELATION_HEADER)
        ) as cid:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = cid
        return response


def logged_operation(
    *,
    skip_logging: bool = False,
    category: EventCategory | str | None = None,
    sensitive: bool = False,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Wrap an async operation so each invocation emits one ``api_call`` event.

    A failing invocation emits ``api_error`` instead and the exception is
    re-raised unchanged.  Nothing is emitted when *skip_logging* or
    *sensitive* is set, or when the request carries no identity.  Emission
    goes through the best-effort channel and never changes the outcome.
    """

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        if skip_logging or sensitive:
            fn.skip_logging = True  # type: ignore[attr-defined]
            return fn

        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.monotonic()
            try:
                result = await fn(*args, **kwargs)
            except Exception as exc:
                _emit(start, category, error=exc)
                raise
            _emit(start, category, status_code=getattr(result, "status_code", 200))
            return result

        wrapper.skip_logging = False  # type: ignore[attr-defined]
        return wrapper

    return decorator


def _emit(
    start: float,
    category: EventCategory | str | None,
    *,
    error: Exception | None = None,
    status_code: int = 200,
) -> None:
    ctx = current_request_context()
    if ctx is None or not ctx.user_id:
        return
    duration_ms = round((time.monotonic() - start) * 1000, 1)
    try:
        from tasktrail.events.channel import get_event_channel
        from tasktrail.events.ingestion import build_api_call_draft

        draft = build_api_call_draft(
            ctx.method,
            ctx.path,
            duration_ms=duration_ms,
            status_code=getattr(error, "status_code", 500) if error is not None else status_code,
            error_message=str(error) if error is not None else None,
            category=category,
            user_id=ctx.user_id,
            source=ctx.source,
        )
        get_event_channel().submit(draft)
    except Exception:
        logger.exception("Failed to record api_call event for %s %s", ctx.method, ctx.path)

