"""
Request-scoped context shared by the middleware, structured logs and the
keyed v1 API (which echoes the id back in `meta.requestId`).
"""
import uuid
from contextvars import ContextVar, Token
from typing import Optional

import structlog

_request_id: ContextVar[Optional[str]] = ContextVar("spacenexus_request_id", default=None)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def bind_request_id(request_id: Optional[str] = None) -> Token:
    """Bind `request_id` (a fresh UUID4 when empty) to the current context."""
    request_id = request_id or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return _request_id.set(request_id)


def release_request_id(token: Token) -> None:
    _request_id.reset(token)
    structlog.contextvars.unbind_contextvars("request_id")
