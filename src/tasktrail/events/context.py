# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Per-request provenance shared between the HTTP layer and ingestion."""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass

from starlette.requests import Request

from tasktrail.core.constants import EventSource

_MOBILE_UA = re.compile(r"Mobile|Android|iPhone|iPad")


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Who is calling, from where, and through which surface."""

    user_id: str | None = None
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    source: EventSource = EventSource.WEB
    method: str = ""
    path: str = ""


_current: ContextVar[RequestContext | None] = ContextVar(
    "tasktrail_request_context", default=None
)


def current_request_context() -> RequestContext | None:
    return _current.get()


@contextmanager
def request_context(ctx: RequestContext) -> Iterator[RequestContext]:
    """Bind *ctx* as the ambient request context for the enclosed block."""
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def detect_source(path: str, user_agent: str | None) -> EventSource:
    """API paths are ``api``; mobile user agents are ``mobile``; the rest ``web``."""
    if path.startswith("/api/"):
        return EventSource.API
    if user_agent and _MOBILE_UA.search(user_agent):
        return EventSource.MOBILE
    return EventSource.WEB


def client_ip(request: Request) -> str | None:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def build_request_context(request: Request, user_id: str | None = None) -> RequestContext:
    user_agent = request.headers.get("user-agent")
    return RequestContext(
        user_id=user_id,
        session_id=request.headers.get("x-session-id") or uuid.uuid4().hex,
        ip_address=client_ip(request),
        user_agent=user_agent,
        source=detect_source(request.url.path, user_agent),
        method=request.method,
        path=request.url.path,
    )
