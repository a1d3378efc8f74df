"""
Webhook Subscription Routes
Enterprise subscribers register HTTPS endpoints for platform events.
The signing secret is returned once, at creation.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spacenexus.api.deps import require_feature
from spacenexus.core.database import get_db
from spacenexus.core.errors import forbidden_error, not_found_error, success_response
from spacenexus.models.schemas import WEBHOOK_EVENTS, WebhookCreate, WebhookOut
from spacenexus.models.tables import User, WebhookSubscription
from spacenexus.services.webhook_dispatcher import create_subscription

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

require_api_access = require_feature("has_api_access")


@router.get("")
def list_webhooks(user: User = Depends(require_api_access), db: Session = Depends(get_db)):
    subscriptions = (
        db.query(WebhookSubscription)
        .filter(WebhookSubscription.user_id == user.id, WebhookSubscription.is_active.is_(True))
        .order_by(WebhookSubscription.created_at.desc())
        .all()
    )
    return success_response({
        "subscriptions": [WebhookOut.model_validate(s) for s in subscriptions],
        "total": len(subscriptions),
        "availableEvents": list(WEBHOOK_EVENTS),
    })


@router.post("")
def create_webhook(
    body: WebhookCreate,
    user: User = Depends(require_api_access),
    db: Session = Depends(get_db),
):
    subscription = create_subscription(db, user.id, body.url, body.events)
    data = WebhookOut.model_validate(subscription).model_dump(mode="json")
    data["secret"] = subscription.secret
    data["message"] = "Save the secret now. It is used to verify X-Webhook-Signature and will not be shown again."
    return success_response(data, status_code=201)


@router.delete("/{webhook_id}")
def delete_webhook(
    webhook_id: str,
    user: User = Depends(require_api_access),
    db: Session = Depends(get_db),
):
    subscription = db.get(WebhookSubscription, webhook_id)
    if subscription is None or not subscription.is_active:
        raise not_found_error("Webhook subscription")
    if subscription.user_id != user.id and not user.is_admin:
        raise forbidden_error()

    subscription.is_active = False
    db.commit()
    return success_response({"id": webhook_id, "isActive": False})
