"""
Per-IP Rate Limiting
====================
Fixed-window counters in Redis, one counter per (client IP, bucket).

Buckets are picked by path prefix; operator routes get a tighter budget than
page traffic. Counting is a single atomic Lua call (INCR, EXPIRE on first
hit). Without Redis the limiter FAILS OPEN: the request is served and tagged
`X-Rate-Limit-Status: degraded`.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from spacenexus.core.config import (
    RATE_LIMIT_ADMIN,
    RATE_LIMIT_ADMIN_WINDOW,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_DEFAULT_WINDOW,
)
from spacenexus.core.errors import rate_limited_error
from spacenexus.core.logging_config import get_logger
from spacenexus.core.redis_client import get_redis_or_none

logger = get_logger(__name__)

# KEYS[1] = counter key, ARGV[1] = window seconds
_COUNT_SCRIPT = """
local hits = redis.call('INCR', KEYS[1])
if hits == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return hits
"""

UNLIMITED_PATHS = frozenset({"/", "/healthz", "/readyz", "/health/deps", "/favicon.ico"})


@dataclass(frozen=True)
class RateBucket:
    name: str
    limit: int
    window: int


@dataclass(frozen=True)
class RateDecision:
    bucket: RateBucket
    hits: int

    @property
    def allowed(self) -> bool:
        return self.hits <= self.bucket.limit

    @property
    def remaining(self) -> int:
        return max(0, self.bucket.limit - self.hits)

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.bucket.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Window": str(self.bucket.window),
        }


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimiterMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        default_limit: int = RATE_LIMIT_DEFAULT,
        default_window: int = RATE_LIMIT_DEFAULT_WINDOW,
        admin_limit: int = RATE_LIMIT_ADMIN,
        admin_window: int = RATE_LIMIT_ADMIN_WINDOW,
    ):
        super().__init__(app)
        self.default_bucket = RateBucket("default", default_limit, default_window)
        # (path prefix, bucket); first match wins
        self.routes: Sequence[Tuple[str, RateBucket]] = (
            ("/api/admin", RateBucket("admin", admin_limit, admin_window)),
        )
        self._script_sha: Optional[str] = None

    def bucket_for(self, path: str) -> RateBucket:
        for prefix, bucket in self.routes:
            if path.startswith(prefix):
                return bucket
        return self.default_bucket

    async def _run_script(self, redis_client, key: str, window: int) -> int:
        if self._script_sha is None:
            self._script_sha = await redis_client.script_load(_COUNT_SCRIPT)
        return int(await redis_client.evalsha(self._script_sha, 1, key, str(window)))

    async def consume(self, ip: str, bucket: RateBucket) -> Optional[RateDecision]:
        """Count one hit. None means Redis is unavailable."""
        redis_client = await get_redis_or_none()
        if redis_client is None:
            return None

        key = f"rl:{ip}:{bucket.name}"
        try:
            try:
                hits = await self._run_script(redis_client, key, bucket.window)
            except Exception:
                # Script cache is emptied when Redis restarts
                self._script_sha = None
                hits = await self._run_script(redis_client, key, bucket.window)
        except Exception as e:
            logger.warning("rate_limiter_redis_error", error=str(e))
            return None
        return RateDecision(bucket, hits)

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path in UNLIMITED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        ip = client_ip(request)
        decision = await self.consume(ip, self.bucket_for(path))

        if decision is None:
            response = await call_next(request)
            response.headers["X-Rate-Limit-Status"] = "degraded"
            return response

        if not decision.allowed:
            logger.warning(
                "rate_limit_exceeded",
                client_ip=ip,
                path=path,
                method=request.method,
                bucket=decision.bucket.name,
                hits=decision.hits,
                limit=decision.bucket.limit,
            )
            return rate_limited_error(
                retry_after=decision.bucket.window,
                headers=decision.headers(),
            ).to_response()

        response = await call_next(request)
        response.headers.update(decision.headers())
        return response
