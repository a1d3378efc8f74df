"""
SpaceNexus API Entry Point
==========================
FastAPI application for the SpaceNexus platform: advertising, subscriptions,
space-industry intelligence, webhooks, offline sync and the keyed public API.

Middleware order (outermost first):
  RequestID -> DegradedInjector -> RateLimiter -> CORS -> routes

Environment:
  - PORT: listen port (default 8080)
  - DATABASE_URL: SQLAlchemy URL (SQLite by default)
  - REDIS_URL: enables per-IP rate limiting
  - ADMIN_TOKEN: shared token for /api/admin
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from spacenexus import __version__
from spacenexus.api import (
    admin_routes,
    ads_routes,
    feeds_routes,
    intel_routes,
    keys_routes,
    subscription_routes,
    sync_routes,
    v1_routes,
    webhook_routes,
)
from spacenexus.core.config import ALLOWED_ORIGINS, DATABASE_URL, PORT, REDIS_URL
from spacenexus.core.database import SessionLocal, init_db
from spacenexus.core.errors import register_exception_handlers
from spacenexus.core.logging_config import configure_logging
from spacenexus.core.redis_client import close_redis, ping_redis
from spacenexus.middleware import DegradedInjectorMiddleware, RateLimiterMiddleware, RequestIDMiddleware
from spacenexus.services.api_cache import get_api_cache
from spacenexus.services.cache_strategies import OfflineError
from spacenexus.services.circuit_breaker_service import any_circuit_open, get_circuit_breaker_status

configure_logging()
logger = logging.getLogger(__name__)

CACHE_CLEANUP_INTERVAL_SECONDS = 600


async def _cache_cleanup_loop():
    cache = get_api_cache()
    while True:
        await asyncio.sleep(CACHE_CLEANUP_INTERVAL_SECONDS)
        try:
            cache.cleanup()
        except Exception as e:
            logger.error(f"❌ Cache cleanup failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 SpaceNexus API starting up...")
    logger.info(f"   └─ PORT: {PORT}")
    logger.info(f"   └─ Database: {DATABASE_URL.split(':', 1)[0]}")
    logger.info(f"   └─ Redis: {'configured' if REDIS_URL else 'not configured (rate limiting off)'}")

    init_db()
    logger.info("✅ Database tables ready")

    cleanup_task = asyncio.create_task(_cache_cleanup_loop())

    yield

    logger.info("🛑 SpaceNexus API shutting down...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await close_redis()
    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="SpaceNexus API",
    description="Space industry intelligence platform",
    version=__version__,
    lifespan=lifespan,
)

register_exception_handlers(app)


@app.exception_handler(OfflineError)
async def offline_error_handler(request: Request, exc: OfflineError):
    logger.warning(f"⚠️ Offline: {request.url.path} has no upstream and no cached copy")
    return JSONResponse(status_code=503, content={"error": "You are offline", "offline": True})


for module in (
    ads_routes,
    subscription_routes,
    intel_routes,
    feeds_routes,
    sync_routes,
    webhook_routes,
    keys_routes,
    v1_routes,
    admin_routes,
):
    app.include_router(module.router)
logger.info("✅ Routers registered")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimiterMiddleware)
app.add_middleware(DegradedInjectorMiddleware)
# Added LAST so it executes FIRST
app.add_middleware(RequestIDMiddleware)


@app.get("/")
async def root():
    return {"service": "SpaceNexus API", "version": __version__, "status": "running"}


@app.get("/healthz")
async def healthz():
    """Liveness probe."""
    return {"status": "ok"}


@app.get("/readyz")
def readyz():
    """Readiness probe. Gates on the database."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return Response(status_code=200, content="OK")
    except Exception as e:
        return Response(status_code=503, content=f"Service Unavailable: {e}")
    finally:
        db.close()


@app.get("/health/deps")
async def health_deps():
    """Dependency snapshot; reports degradation without failing traffic routing."""
    redis_ok = await ping_redis()
    degraded = any_circuit_open() or redis_ok is False
    stats = get_api_cache().get_stats()
    return {
        "status": "degraded" if degraded else "healthy",
        "redis": "not_configured" if redis_ok is None else ("ok" if redis_ok else "unavailable"),
        "circuit_breakers": get_circuit_breaker_status(),
        "cache": {k: v for k, v in stats.items() if k != "entries"},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
