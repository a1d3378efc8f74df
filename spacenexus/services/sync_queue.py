"""
Offline Sync Queue
==================
Persisted retry-with-cap queue of client actions.

Clients that were offline post their buffered actions to /api/sync/actions;
server-side failures (e.g. a webhook delivery that timed out) are queued here
too. `process()` replays items in insertion order through a handler per
action type:

  - handler returns      -> item removed
  - handler raises       -> retries + 1, item kept
  - retries reach the cap -> item dropped (logged)
"""
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from spacenexus.core.config import SYNC_MAX_RETRIES
from spacenexus.core.errors import safe_json_parse
from spacenexus.models.schemas import AdEventRequest
from spacenexus.models.tables import SyncQueueItem
from spacenexus.services.ad_server import record_impression

logger = logging.getLogger(__name__)

Handler = Callable[[Session, Dict[str, Any]], Any]


class UnknownActionError(Exception):
    def __init__(self, action_type: str):
        super().__init__(f"No handler registered for action type '{action_type}'")
        self.action_type = action_type


class SyncQueue:
    """Queue operations over the sync_queue table."""

    def __init__(self, db: Session, max_retries: int = SYNC_MAX_RETRIES):
        self.db = db
        self.max_retries = max_retries

    def enqueue(self, action_type: str, payload: Dict[str, Any]) -> int:
        item = SyncQueueItem(action_type=action_type, payload=json.dumps(payload, default=str))
        self.db.add(item)
        self.db.commit()
        logger.debug(f"[SYNC] Queued {action_type} as #{item.id}")
        return item.id

    def pending(self) -> List[SyncQueueItem]:
        return self.db.query(SyncQueueItem).order_by(SyncQueueItem.id.asc()).all()

    def remove(self, item_id: int) -> bool:
        deleted = self.db.query(SyncQueueItem).filter(SyncQueueItem.id == item_id).delete()
        self.db.commit()
        return deleted > 0

    def clear(self) -> int:
        deleted = self.db.query(SyncQueueItem).delete()
        self.db.commit()
        return deleted

    def count(self) -> int:
        return self.db.query(SyncQueueItem).count()

    def process(
        self,
        handlers: Optional[Dict[str, Handler]] = None,
        only: Optional[Iterable[str]] = None,
    ) -> Dict[str, int]:
        """
        Replay every queued item once, or only items whose type is in `only`.

        Returns:
            {'processed', 'failed', 'dropped', 'remaining'}
        """
        handlers = handlers if handlers is not None else DEFAULT_HANDLERS
        processed = failed = dropped = 0
        wanted = set(only) if only is not None else None

        for item in self.pending():
            if wanted is not None and item.action_type not in wanted:
                continue
            try:
                handler = handlers.get(item.action_type)
                if handler is None:
                    raise UnknownActionError(item.action_type)
                handler(self.db, safe_json_parse(item.payload, {}))
            except Exception as e:
                # A handler may leave the session mid-transaction
                self.db.rollback()
                failed += 1
                item.retries += 1
                item.last_error = str(e)[:1000]
                if item.retries >= self.max_retries:
                    logger.warning(
                        f"[SYNC] Dropping #{item.id} ({item.action_type}) after "
                        f"{item.retries} attempts: {e}"
                    )
                    self.db.delete(item)
                    dropped += 1
                else:
                    logger.info(f"[SYNC] #{item.id} ({item.action_type}) failed, retry {item.retries}/{self.max_retries}: {e}")
                self.db.commit()
                continue

            self.db.delete(item)
            self.db.commit()
            processed += 1

        summary = {
            'processed': processed,
            'failed': failed,
            'dropped': dropped,
            'remaining': self.count(),
        }
        if processed or failed:
            logger.info(f"[SYNC] Processed queue: {summary}")
        return summary


# ── Action handlers ─────────────────────────────────────────────────────────

def handle_ad_event(db: Session, payload: Dict[str, Any]) -> None:
    """
    Replay an ad impression/click recorded while the client was offline.

    A campaign that ended meanwhile makes the event a no-op; a failed write
    raises so the item stays queued.
    """
    event = AdEventRequest.model_validate(payload)
    record_impression(
        db,
        campaign_id=event.campaignId,
        placement_id=event.placementId,
        impression_type=event.type,
        module=event.module,
        session_id=event.sessionId,
        user_id=payload.get('userId'),
        raise_errors=True,
    )


def handle_webhook_delivery(db: Session, payload: Dict[str, Any]) -> None:
    """Retry a webhook delivery that failed earlier."""
    from spacenexus.services.webhook_dispatcher import redeliver

    if not payload.get('subscriptionId') or not payload.get('event'):
        raise ValueError("webhook.deliver requires subscriptionId and event")

    if not redeliver(db, payload['subscriptionId'], payload['event'], payload.get('data') or {}):
        raise RuntimeError(f"Webhook delivery to {payload['subscriptionId']} failed")


DEFAULT_HANDLERS: Dict[str, Handler] = {
    'ad.event': handle_ad_event,
    'webhook.deliver': handle_webhook_delivery,
}
