"""
Tags responses with `X-System-Status: degraded` while any upstream circuit
breaker is open, so clients know feed data may be coming from cache.
"""
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from spacenexus.services.circuit_breaker_service import any_circuit_open


class DegradedInjectorMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        if any_circuit_open():
            response.headers["X-System-Status"] = "degraded"
        return response
