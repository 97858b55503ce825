"""
Payment reconciliation.

Applies Stripe webhook events to local entitlement state. Stripe delivers
events at least once and in no particular order, so every handler here is
safe to replay:

- checkout.session.completed is keyed on the external payment id; a second
  delivery finds the existing PaymentEvent and changes nothing.
- Each account remembers when premium was last granted and last revoked.
  An event older than the opposite transition is treated as stale.

Nothing here polls Stripe. State only moves when an event arrives.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tutor_app.core.errors import (
    DuplicatePaymentEvent,
    MalformedWebhookEvent,
    UnknownCustomerReference,
)
from tutor_app.core.plans import PLAN_MONTHLY, premium_until_for_plan
from tutor_app.models.account import Account
from tutor_app.models.payment_event import PaymentEvent
from tutor_app.services.account_store import AccountStore
from tutor_app.services.entitlement import compute_effective_state
from tutor_app.utils.clock import utcnow

logger = logging.getLogger(__name__)

EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_SUBSCRIPTION_DELETED = "customer.subscription.deleted"

OUTCOME_GRANTED = "granted"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_STALE = "stale"
OUTCOME_REVOKED = "revoked"
OUTCOME_UNKNOWN_ACCOUNT = "unknown_account"
OUTCOME_UNKNOWN_CUSTOMER = "unknown_customer"
OUTCOME_IGNORED = "ignored"

STATE_NONE = "none"
STATE_PENDING = "pending"
STATE_ACTIVE = "active"
CUSTOMER_ABSENT = "absent"
CUSTOMER_LINKED = "linked"


@dataclass(frozen=True)
class CheckoutCompleted:
    account_id: int
    plan_type: str
    external_payment_id: str
    amount: Optional[int] = None
    currency: str = "usd"
    status: str = "completed"
    occurred_at: Optional[datetime] = None


@dataclass(frozen=True)
class SubscriptionCancelled:
    customer_ref: str
    occurred_at: Optional[datetime] = None


@dataclass(frozen=True)
class BillingState:
    entitlement: str
    customer: str


def _event_time(raw: Dict[str, Any]) -> Optional[datetime]:
    created = raw.get("created")
    if created is None:
        return None
    try:
        return datetime.fromtimestamp(int(created), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_stripe_event(raw: Dict[str, Any]) -> Union[CheckoutCompleted, SubscriptionCancelled, None]:
    """
    Turn a decoded Stripe event into one of the reconciler's event types.
    Returns None for event types we don't act on.
    Raises MalformedWebhookEvent when a handled type is missing required fields.
    """
    if not isinstance(raw, dict):
        raise MalformedWebhookEvent("Webhook body is not a JSON object")
    event_type = raw.get("type")
    if event_type not in (EVENT_CHECKOUT_COMPLETED, EVENT_SUBSCRIPTION_DELETED):
        return None
    data = raw.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise MalformedWebhookEvent(f"{event_type} has no data.object")

    occurred_at = _event_time(raw)

    if event_type == EVENT_CHECKOUT_COMPLETED:
        metadata = obj.get("metadata")
        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise MalformedWebhookEvent("checkout.session.completed metadata is not an object")
        try:
            account_id = int(metadata.get("userId"))
        except (TypeError, ValueError):
            raise MalformedWebhookEvent("checkout.session.completed without a valid metadata.userId")
        external_payment_id = obj.get("payment_intent") or obj.get("subscription") or obj.get("id")
        if not external_payment_id:
            raise MalformedWebhookEvent("checkout.session.completed without a payment identifier")
        return CheckoutCompleted(
            account_id=account_id,
            plan_type=metadata.get("planType") or PLAN_MONTHLY,
            external_payment_id=str(external_payment_id),
            amount=obj.get("amount_total"),
            currency=(obj.get("currency") or "usd").lower(),
            status="completed",
            occurred_at=occurred_at,
        )

    customer_ref = obj.get("customer")
    if not customer_ref:
        raise MalformedWebhookEvent("customer.subscription.deleted without a customer")
    return SubscriptionCancelled(customer_ref=str(customer_ref), occurred_at=occurred_at)


class PaymentReconciler:
    def __init__(
        self,
        db: Session,
        payment_client=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.store = AccountStore(db)
        self.payment_client = payment_client
        self.clock = clock

    async def ensure_customer_linked(self, account_id: int, email: str) -> str:
        """Return the account's Stripe customer, creating and storing one on first use."""
        account = self.store.get(account_id)
        if account is None:
            raise ValueError(f"Account {account_id} not found")
        if account.stripe_customer_id:
            return account.stripe_customer_id

        customer_ref = await self.payment_client.create_customer(email, account_id)
        stored = self.store.link_customer_ref(account_id, customer_ref)
        if stored != customer_ref:
            logger.warning(
                "Account %s already linked to customer %s; discarding %s",
                account_id,
                stored,
                customer_ref,
            )
        else:
            logger.info("Linked account %s to Stripe customer %s", account_id, customer_ref)
        return stored

    def _payment_exists(self, external_payment_id: str) -> bool:
        return (
            self.db.query(PaymentEvent.id)
            .filter(PaymentEvent.external_payment_id == external_payment_id)
            .first()
            is not None
        )

    def _commit_payment(self, event: CheckoutCompleted) -> None:
        self.db.add(
            PaymentEvent(
                account_id=event.account_id,
                external_payment_id=event.external_payment_id,
                amount=event.amount,
                currency=event.currency,
                status=event.status,
                plan_type=event.plan_type,
            )
        )
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicatePaymentEvent(event.external_payment_id) from e

    def on_checkout_completed(self, event: CheckoutCompleted, now: Optional[datetime] = None) -> str:
        now = now or self.clock()
        try:
            if self._payment_exists(event.external_payment_id):
                raise DuplicatePaymentEvent(event.external_payment_id)

            account = self.store.get(event.account_id)
            if account is None:
                logger.warning(
                    "Checkout %s references unknown account %s; ignoring",
                    event.external_payment_id,
                    event.account_id,
                )
                return OUTCOME_UNKNOWN_ACCOUNT

            premium_until = premium_until_for_plan(event.plan_type, now)
            # Refused when a later grant or cancellation was already applied
            granted = self.store.grant_premium(
                event.account_id,
                premium_until,
                granted_at=event.occurred_at or now,
                commit=False,
            )
            self._commit_payment(event)
            if not granted:
                logger.info(
                    "Checkout %s for account %s predates its latest billing change; recorded without granting",
                    event.external_payment_id,
                    event.account_id,
                )
                return OUTCOME_STALE
        except DuplicatePaymentEvent as e:
            logger.info("%s; entitlement unchanged", e.message)
            return OUTCOME_DUPLICATE

        logger.info(
            "Account %s upgraded to premium (%s) until %s",
            event.account_id,
            event.plan_type,
            premium_until.isoformat(),
        )
        return OUTCOME_GRANTED

    def _account_for_customer(self, customer_ref: str) -> Account:
        account = self.store.get_by_customer_ref(customer_ref)
        if account is None:
            raise UnknownCustomerReference(customer_ref)
        return account

    def on_subscription_cancelled(self, event: SubscriptionCancelled, now: Optional[datetime] = None) -> str:
        now = now or self.clock()
        try:
            account = self._account_for_customer(event.customer_ref)
        except UnknownCustomerReference as e:
            logger.warning("Subscription cancellation ignored: %s", e.message)
            return OUTCOME_UNKNOWN_CUSTOMER

        if (
            event.occurred_at is not None
            and account.premium_granted_at is not None
            and event.occurred_at < account.premium_granted_at
        ):
            logger.info(
                "Cancellation for customer %s predates the latest grant on account %s; ignoring",
                event.customer_ref,
                account.id,
            )
            return OUTCOME_STALE

        self.store.revoke_premium(account.id, revoked_at=event.occurred_at or now)
        logger.info("Account %s subscription cancelled", account.id)
        return OUTCOME_REVOKED

    def handle_event(self, raw: Dict[str, Any]) -> str:
        """Parse and apply one decoded webhook event. Malformed events raise."""
        event = parse_stripe_event(raw)
        if isinstance(event, CheckoutCompleted):
            return self.on_checkout_completed(event)
        if isinstance(event, SubscriptionCancelled):
            return self.on_subscription_cancelled(event)
        logger.info("Ignoring Stripe event type %s", raw.get("type"))
        return OUTCOME_IGNORED

    @staticmethod
    def describe_state(account: Account, now: datetime) -> BillingState:
        entitlement, _ = compute_effective_state(account, now)
        customer = CUSTOMER_LINKED if account.stripe_customer_id else CUSTOMER_ABSENT
        if entitlement.is_premium:
            state = STATE_ACTIVE
        elif customer == CUSTOMER_LINKED:
            state = STATE_PENDING
        else:
            state = STATE_NONE
        return BillingState(entitlement=state, customer=customer)
