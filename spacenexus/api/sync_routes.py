"""
Offline Sync Routes
Clients that were offline post their buffered actions here once they
reconnect. Actions are queued and replayed immediately; failures stay queued
for the next sync (up to SYNC_MAX_RETRIES attempts).
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacenexus.api.deps import get_optional_user
from spacenexus.core.database import get_db
from spacenexus.core.errors import success_response, validation_error
from spacenexus.models.schemas import SyncActionsRequest
from spacenexus.models.tables import User
from spacenexus.services.sync_queue import SyncQueue

router = APIRouter(prefix="/api/sync", tags=["sync"])

# Server-internal action types (e.g. webhook.deliver) are not accepted from clients
CLIENT_ACTION_TYPES = frozenset({"ad.event"})


@router.post("/actions")
def sync_actions(
    body: SyncActionsRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    rejected = sorted({a.type for a in body.actions if a.type not in CLIENT_ACTION_TYPES})
    if rejected:
        raise validation_error(
            f"Unsupported action type(s): {', '.join(rejected)}",
            {"actions": [f"Unsupported action type: {t}" for t in rejected]},
        )

    queue = SyncQueue(db)
    for action in body.actions:
        # Attribution comes from the authenticated caller, never the payload
        payload = {k: v for k, v in action.payload.items() if k != "userId"}
        if user is not None:
            payload["userId"] = user.id
        queue.enqueue(action.type, payload)
    summary = queue.process(only=CLIENT_ACTION_TYPES)
    return success_response({"queued": len(body.actions), **summary})


@router.get("/status")
def sync_status(db: Session = Depends(get_db)):
    queue = SyncQueue(db)
    return success_response({"pending": queue.count(), "maxRetries": queue.max_retries})
