"""
Stripe webhook.
Register this URL in the Stripe dashboard:
https://your-backend.com/api/payments/webhook
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from tutor_app.core.errors import MalformedWebhookEvent
from tutor_app.db.session import get_db
from tutor_app.dependencies.services import get_payment_client
from tutor_app.services.payment_client import StripePaymentClient
from tutor_app.services.payment_reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    payment_client: StripePaymentClient = Depends(get_payment_client),
):
    """
    Unreadable or badly signed events get a 400 so Stripe redelivers them.
    Once an event parses, it is always acknowledged; a failure while applying
    it is logged instead of bounced back.
    """
    payload = await request.body()
    # MalformedWebhookEvent propagates to the TutorError handler as a 400
    event = payment_client.parse_webhook(payload, stripe_signature)

    try:
        outcome = PaymentReconciler(db, payment_client=payment_client).handle_event(event)
    except MalformedWebhookEvent:
        raise
    except Exception:
        logger.exception("Failed to reconcile Stripe event %s (%s)", event.get("id"), event.get("type"))
        return {"received": True}

    logger.info("Stripe event %s (%s): %s", event.get("id"), event.get("type"), outcome)
    return {"received": True, "outcome": outcome}
