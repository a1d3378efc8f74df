"""
Admin Routes
============
Operator endpoints: data freshness, circuit breakers, the response cache,
the offline sync queue and manual webhook dispatch.

All routes require an admin user or the shared X-Admin-Token.
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from spacenexus.api.deps import require_admin
from spacenexus.core.database import get_db
from spacenexus.core.errors import not_found_error, success_response
from spacenexus.models.schemas import DispatchRequest, RefreshRequest
from spacenexus.services.api_cache import get_api_cache
from spacenexus.services.circuit_breaker_service import get_circuit_breaker, get_circuit_breaker_status
from spacenexus.services.freshness_tracker import FRESHNESS_POLICIES, FreshnessTracker
from spacenexus.services.sync_queue import SyncQueue
from spacenexus.services.webhook_dispatcher import dispatch_webhook, dispatch_webhook_background

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# ── Data freshness ──────────────────────────────────────────────────────────

@router.get("/data-freshness")
def data_freshness(db: Session = Depends(get_db)):
    tracker = FreshnessTracker(db)
    report = tracker.report()
    report["staleModules"] = tracker.get_stale_modules()
    return success_response(report)


@router.get("/data-freshness/{module}")
def module_freshness(module: str, db: Session = Depends(get_db)):
    return success_response(FreshnessTracker(db).get_freshness_info(module))


@router.post("/data-freshness/{module}/refresh")
def mark_module_refreshed(
    module: str,
    background_tasks: BackgroundTasks,
    body: Optional[RefreshRequest] = None,
    db: Session = Depends(get_db),
):
    """Record that a module's data was refreshed and notify subscribers."""
    tracker = FreshnessTracker(db)
    tracker.mark_refreshed(module, body.durationMs if body else None)
    if module not in FRESHNESS_POLICIES:
        logger.info(f"[ADMIN] {module} has no freshness policy; default TTL applies")

    background_tasks.add_task(dispatch_webhook_background, "data.refreshed", {"module": module})
    return success_response(tracker.get_freshness_info(module))


# ── Circuit breakers ────────────────────────────────────────────────────────

@router.get("/circuit-breakers")
async def circuit_breakers():
    return success_response({"breakers": get_circuit_breaker_status()})


@router.post("/circuit-breakers/{name}/reset")
async def reset_circuit_breaker(name: str):
    breaker = get_circuit_breaker(name)
    if breaker is None:
        raise not_found_error("Circuit breaker")
    breaker.reset()
    logger.warning(f"[ADMIN] Circuit breaker {name} manually reset")
    return success_response(breaker.get_status())


# ── Response cache ──────────────────────────────────────────────────────────

@router.get("/cache")
async def cache_stats():
    return success_response(get_api_cache().get_stats())


@router.delete("/cache")
async def clear_cache():
    cache = get_api_cache()
    cleared = len(cache.get_stats()["entries"])
    cache.clear()
    logger.info(f"[ADMIN] Cleared {cleared} cache entries")
    return success_response({"cleared": cleared})


# ── Sync queue ──────────────────────────────────────────────────────────────

@router.post("/sync/process")
def process_sync_queue(db: Session = Depends(get_db)):
    return success_response(SyncQueue(db).process())


# ── Webhooks ────────────────────────────────────────────────────────────────

@router.post("/webhooks/dispatch")
def manual_dispatch(body: DispatchRequest, db: Session = Depends(get_db)):
    summary = dispatch_webhook(db, body.event, body.data)
    return success_response({"event": body.event, **summary})
