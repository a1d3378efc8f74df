"""
HTTP middleware: request IDs, per-IP rate limiting, degraded-status header.
"""
from spacenexus.middleware.degraded_injector import DegradedInjectorMiddleware
from spacenexus.middleware.rate_limiter import RateLimiterMiddleware
from spacenexus.middleware.request_id_middleware import RequestIDMiddleware

__all__ = ["DegradedInjectorMiddleware", "RateLimiterMiddleware", "RequestIDMiddleware"]
