"""
Outbound Webhook Dispatcher
===========================
Delivers platform events to subscriber endpoints.

Each delivery POSTs

    {"event": ..., "timestamp": "<epoch ms>", "data": {...}}

signed with HMAC-SHA256 over the exact body using the subscriber's secret
(`X-Webhook-Signature`). The timestamp is part of the signed body so
recipients can reject replays.

A failed delivery increments the subscription's failure count and is queued
on the sync queue for retry; past WEBHOOK_MAX_FAILURES the subscription is
deactivated until the subscriber re-registers.
"""
import hashlib
import hmac
import json
import logging
import secrets
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Tuple

import requests
from sqlalchemy.orm import Session

from spacenexus.core.config import WEBHOOK_MAX_FAILURES, WEBHOOK_TIMEOUT_SECONDS
from spacenexus.core.database import SessionLocal
from spacenexus.core.logging_config import get_logger
from spacenexus.models.schemas import WEBHOOK_EVENTS
from spacenexus.models.tables import WebhookSubscription, utcnow
from spacenexus.services.sync_queue import SyncQueue

logger = logging.getLogger(__name__)
event_log = get_logger(__name__)

MAX_CONCURRENT_DELIVERIES = 8


def sign_payload(body: str, secret: str) -> str:
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


def verify_signature(body: str, secret: str, signature: str) -> bool:
    """Constant-time check of an `X-Webhook-Signature` value."""
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(body, secret), signature)


def build_body(event_type: str, payload: Dict[str, Any]) -> Tuple[str, str]:
    """Serialized body and its millisecond timestamp."""
    timestamp = str(int(time.time() * 1000))
    body = json.dumps(
        {"event": event_type, "timestamp": timestamp, "data": payload},
        separators=(",", ":"),
        default=str,
    )
    return body, timestamp


def _post(url: str, secret: str, event_type: str, payload: Dict[str, Any]) -> Tuple[bool, str]:
    """One HTTP attempt. Returns (ok, detail); never raises."""
    body, timestamp = build_body(event_type, payload)
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Event": event_type,
        "X-Webhook-Signature": sign_payload(body, secret),
        "X-Webhook-Timestamp": timestamp,
    }
    try:
        response = requests.post(url, data=body, headers=headers, timeout=WEBHOOK_TIMEOUT_SECONDS)
    except requests.RequestException as e:
        return False, str(e)
    if 200 <= response.status_code < 300:
        return True, f"HTTP {response.status_code}"
    return False, f"HTTP {response.status_code}"


def _record_result(
    db: Session,
    subscription: WebhookSubscription,
    event_type: str,
    payload: Dict[str, Any],
    ok: bool,
    detail: str,
    enqueue_on_failure: bool,
) -> None:
    if ok:
        subscription.failure_count = 0
        subscription.last_delivery_at = utcnow()
        db.commit()
        logger.info(f"[WEBHOOK] Delivered {event_type} to {subscription.url} ({detail})")
        return

    subscription.failure_count = (subscription.failure_count or 0) + 1
    logger.warning(
        f"[WEBHOOK] Delivery of {event_type} to {subscription.url} failed "
        f"({detail}), failures={subscription.failure_count}"
    )
    if subscription.failure_count > WEBHOOK_MAX_FAILURES:
        subscription.is_active = False
        logger.warning(
            f"[WEBHOOK] Subscription {subscription.id} deactivated after "
            f"{subscription.failure_count} consecutive failures"
        )
    db.commit()

    if enqueue_on_failure and subscription.is_active:
        SyncQueue(db).enqueue("webhook.deliver", {
            "subscriptionId": subscription.id,
            "event": event_type,
            "data": payload,
        })


def deliver(
    db: Session,
    subscription: WebhookSubscription,
    event_type: str,
    payload: Dict[str, Any],
    enqueue_on_failure: bool = True,
) -> bool:
    """Deliver one event to one subscription and record the outcome."""
    ok, detail = _post(subscription.url, subscription.secret, event_type, payload)
    _record_result(db, subscription, event_type, payload, ok, detail, enqueue_on_failure)
    return ok


def redeliver(db: Session, subscription_id: str, event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Retry a queued delivery. A subscription that was deleted or deactivated
    in the meantime counts as done.
    """
    subscription = db.get(WebhookSubscription, subscription_id)
    if subscription is None or not subscription.is_active:
        logger.info(f"[WEBHOOK] Skipping retry for inactive subscription {subscription_id}")
        return True
    return deliver(db, subscription, event_type, payload, enqueue_on_failure=False)


def active_subscriptions(db: Session, event_type: str) -> List[WebhookSubscription]:
    subscriptions = db.query(WebhookSubscription).filter(WebhookSubscription.is_active.is_(True)).all()
    # events is a JSON list; filter in Python so SQLite and PostgreSQL behave alike
    return [s for s in subscriptions if event_type in (s.events or [])]


def dispatch_webhook(db: Session, event_type: str, payload: Dict[str, Any]) -> Dict[str, int]:
    """
    Deliver `event_type` to every active subscriber concurrently.

    Never raises; returns {'total', 'succeeded', 'failed'}.
    """
    summary = {"total": 0, "succeeded": 0, "failed": 0}
    if event_type not in WEBHOOK_EVENTS:
        logger.warning(f"[WEBHOOK] Dispatching unregistered event type {event_type}")
    try:
        subscriptions = active_subscriptions(db, event_type)
        if not subscriptions:
            logger.debug(f"[WEBHOOK] No active subscriptions for {event_type}")
            return summary

        targets = [(s.url, s.secret) for s in subscriptions]
        workers = min(MAX_CONCURRENT_DELIVERIES, len(targets))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webhook") as pool:
            results = list(pool.map(lambda t: _post(t[0], t[1], event_type, payload), targets))

        # Session work stays on this thread
        for subscription, (ok, detail) in zip(subscriptions, results):
            try:
                _record_result(db, subscription, event_type, payload, ok, detail, True)
            except Exception as e:
                db.rollback()
                logger.error(f"[WEBHOOK] Failed to record delivery for {subscription.id}: {e}")

        succeeded = sum(1 for ok, _ in results if ok)
        summary = {"total": len(results), "succeeded": succeeded, "failed": len(results) - succeeded}
        event_log.info("webhook_dispatch_complete", event_type=event_type, **summary)
    except Exception as e:
        logger.error(f"[WEBHOOK] Dispatch of {event_type} failed unexpectedly: {e}")
    return summary


def dispatch_webhook_background(event_type: str, payload: Dict[str, Any]) -> None:
    """BackgroundTasks entry point: runs with its own session."""
    db = SessionLocal()
    try:
        dispatch_webhook(db, event_type, payload)
    finally:
        db.close()


def create_subscription(db: Session, user_id: str, url: str, events: List[str],
                        secret: Optional[str] = None) -> WebhookSubscription:
    subscription = WebhookSubscription(
        user_id=user_id,
        url=url,
        events=list(events),
        secret=secret or secrets.token_hex(32),
        is_active=True,
        failure_count=0,
    )
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    logger.info(f"[WEBHOOK] Subscription {subscription.id} created for {url} events={events}")
    return subscription
