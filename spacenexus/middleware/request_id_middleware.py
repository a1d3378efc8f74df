"""
Request correlation: every response carries `X-Request-ID`, echoed from the
caller when it sent a usable one and generated otherwise.
"""

import time

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from spacenexus.core.context import bind_request_id, get_request_id, release_request_id
from spacenexus.core.logging_config import get_logger

logger = get_logger(__name__)

MAX_INBOUND_ID_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Must be the outermost middleware so every log line sees the id."""

    async def dispatch(self, request: Request, call_next) -> Response:
        inbound = request.headers.get("X-Request-ID", "")
        token = bind_request_id(inbound if len(inbound) <= MAX_INBOUND_ID_LENGTH else None)
        request_id = get_request_id()
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.debug(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            return response
        finally:
            release_request_id(token)
