import logging
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from tutor_app.core.plans import PLAN_TYPES, PLANS
from tutor_app.db.session import get_db
from tutor_app.dependencies.auth import require_account
from tutor_app.dependencies.services import get_now, get_payment_client
from tutor_app.models.account import Account
from tutor_app.models.payment_event import PaymentEvent
from tutor_app.schemas.payments import CheckoutRequest
from tutor_app.services.payment_client import StripePaymentClient
from tutor_app.services.payment_reconciler import PaymentReconciler, STATE_ACTIVE

logger = logging.getLogger(__name__)

router = APIRouter()

HISTORY_LIMIT = 10


@router.get("/plans")
def get_plans():
    return {"plans": PLANS}


@router.post("/create-checkout")
async def create_checkout(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
    payment_client: StripePaymentClient = Depends(get_payment_client),
):
    if request.plan_type not in PLAN_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid plan type")

    reconciler = PaymentReconciler(db, payment_client=payment_client)
    customer_ref = await reconciler.ensure_customer_linked(account.id, account.email)
    session = await payment_client.create_checkout_session(customer_ref, account.id, request.plan_type)

    logger.info("Checkout session %s created for account %s (%s)", session["id"], account.id, request.plan_type)
    return {"sessionId": session["id"], "url": session["url"]}


@router.get("/verify/{session_id}")
def verify_payment(
    session_id: str,
    account: Account = Depends(require_account),
    now: datetime = Depends(get_now),
):
    """
    Polled by the success page after checkout. Premium only shows up once the
    webhook has been reconciled, so a pending answer is normal for a few seconds.
    """
    state = PaymentReconciler.describe_state(account, now)
    if state.entitlement == STATE_ACTIVE:
        return {
            "success": True,
            "isPremium": True,
            "premiumUntil": account.premium_until,
            "billingState": state.entitlement,
            "message": "Payment successful! You now have premium access.",
        }
    return {
        "success": False,
        "isPremium": False,
        "billingState": state.entitlement,
        "message": "Payment is being processed. Please wait a moment.",
    }


@router.get("/portal")
async def get_portal(
    account: Account = Depends(require_account),
    payment_client: StripePaymentClient = Depends(get_payment_client),
):
    if not account.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No Stripe customer found")
    url = await payment_client.create_portal_session(account.stripe_customer_id)
    return {"url": url}


@router.get("/history")
def get_history(
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    payments = (
        db.query(PaymentEvent)
        .filter(PaymentEvent.account_id == account.id)
        .order_by(PaymentEvent.created_at.desc(), PaymentEvent.id.desc())
        .limit(HISTORY_LIMIT)
        .all()
    )
    return {
        "payments": [
            {
                "id": p.id,
                "externalPaymentId": p.external_payment_id,
                "amount": p.amount,
                "currency": p.currency,
                "status": p.status,
                "planType": p.plan_type,
                "createdAt": p.created_at.isoformat() if p.created_at else None,
            }
            for p in payments
        ]
    }
