"""
Redis Connection
================
Lazily created async Redis client used by the rate limiter.

FAIL OPEN semantics: `get_redis_or_none()` never raises. With no REDIS_URL
configured it always returns None; after a failed connect it waits
RECONNECT_COOLDOWN_S before trying again so requests are not stalled on a
dead server.
"""

import time
from typing import Optional

import redis.asyncio as redis_async
from redis.asyncio import ConnectionPool, Redis

from spacenexus.core.config import REDIS_URL
from spacenexus.core.logging_config import get_logger

logger = get_logger(__name__)

RECONNECT_COOLDOWN_S = 30.0
MAX_CONNECTIONS = 20

_redis_client: Optional[Redis] = None
_redis_pool: Optional[ConnectionPool] = None
_next_attempt_at = 0.0


async def get_redis() -> Redis:
    """Get or create the global Redis client (pings on first connect)."""
    global _redis_client, _redis_pool

    if _redis_client is not None:
        return _redis_client
    if not REDIS_URL:
        raise ConnectionError("REDIS_URL is not configured")

    _redis_pool = ConnectionPool.from_url(
        REDIS_URL,
        max_connections=MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=1.0,
    )
    client = redis_async.Redis(connection_pool=_redis_pool)
    try:
        await client.ping()
    except Exception:
        await _reset(client)
        raise

    _redis_client = client
    logger.info("redis_connected")
    return _redis_client


async def _reset(client: Optional[Redis] = None) -> None:
    global _redis_client, _redis_pool
    for closable in (client or _redis_client, _redis_pool):
        if closable is None:
            continue
        try:
            await closable.aclose()
        except Exception as e:
            logger.debug("redis_close_failed", error=str(e))
    _redis_client = None
    _redis_pool = None


async def get_redis_or_none() -> Optional[Redis]:
    """The shared client, or None while Redis is unconfigured or unreachable."""
    global _next_attempt_at

    if not REDIS_URL:
        return None
    if _redis_client is None and time.monotonic() < _next_attempt_at:
        return None
    try:
        return await get_redis()
    except Exception as e:
        _next_attempt_at = time.monotonic() + RECONNECT_COOLDOWN_S
        logger.warning("redis_unavailable", error=str(e), retry_in_s=RECONNECT_COOLDOWN_S)
        return None


async def ping_redis() -> Optional[bool]:
    """Health check. None when Redis is not configured."""
    if not REDIS_URL:
        return None
    try:
        client = await get_redis()
        await client.ping()
        return True
    except Exception as e:
        logger.warning("redis_ping_failed", error=str(e))
        await _reset()
        return False


async def close_redis() -> None:
    """Shutdown hook."""
    if _redis_client is not None or _redis_pool is not None:
        await _reset()
        logger.info("redis_connection_closed")
