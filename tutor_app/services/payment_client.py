"""
Stripe client.
Customer, checkout and billing-portal calls, plus webhook signature checks.

The stripe SDK is synchronous, so each call runs in a worker thread and is
bounded by STRIPE_REQUEST_TIMEOUT. Any SDK error or timeout surfaces as
TransientDependencyFailure.
"""
import asyncio
import json
import logging
import os
from typing import Optional

import stripe

from tutor_app.core.errors import MalformedWebhookEvent, TransientDependencyFailure
from tutor_app.core.plans import PLAN_LIFETIME, PLAN_MONTHLY, PLAN_YEARLY

logger = logging.getLogger(__name__)

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "").strip()
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
STRIPE_REQUEST_TIMEOUT = float(os.getenv("STRIPE_REQUEST_TIMEOUT", "15"))
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

STRIPE_PRICES = {
    PLAN_MONTHLY: os.getenv("STRIPE_PRICE_MONTHLY", ""),
    PLAN_YEARLY: os.getenv("STRIPE_PRICE_YEARLY", ""),
    PLAN_LIFETIME: os.getenv("STRIPE_PRICE_LIFETIME", ""),
}


class StripePaymentClient:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        prices: Optional[dict] = None,
        frontend_url: str = FRONTEND_URL,
        timeout: float = STRIPE_REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.prices = dict(prices if prices is not None else STRIPE_PRICES)
        self.frontend_url = frontend_url.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _call(self, operation: str, fn, **params):
        if not self.configured:
            raise TransientDependencyFailure("stripe", "Payments are not configured")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, api_key=self.api_key, **params),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Stripe %s timed out after %ss", operation, self.timeout)
            raise TransientDependencyFailure("stripe", "Payment provider timed out") from e
        except stripe.StripeError as e:
            logger.error("Stripe %s failed: %s", operation, e)
            raise TransientDependencyFailure("stripe", "Payment provider request failed") from e

    async def create_customer(self, email: str, account_id: int) -> str:
        customer = await self._call(
            "create_customer",
            stripe.Customer.create,
            email=email,
            metadata={"userId": str(account_id)},
        )
        return customer.id

    async def create_checkout_session(self, customer_ref: str, account_id: int, plan_type: str) -> dict:
        price = self.prices.get(plan_type)
        if not price:
            raise TransientDependencyFailure("stripe", f"No Stripe price configured for plan '{plan_type}'")
        session = await self._call(
            "create_checkout_session",
            stripe.checkout.Session.create,
            customer=customer_ref,
            payment_method_types=["card"],
            line_items=[{"price": price, "quantity": 1}],
            # Lifetime is a one-time purchase, the others renew
            mode="payment" if plan_type == PLAN_LIFETIME else "subscription",
            success_url=f"{self.frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self.frontend_url}/payment/cancel",
            metadata={"userId": str(account_id), "planType": plan_type},
        )
        return {"id": session.id, "url": session.url}

    async def create_portal_session(self, customer_ref: str) -> str:
        session = await self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_ref,
            return_url=f"{self.frontend_url}/dashboard",
        )
        return session.url

    def parse_webhook(self, payload: bytes, signature_header: Optional[str]) -> dict:
        """
        Decode a webhook body. When a signing secret is configured the
        Stripe-Signature header must verify; otherwise the body is trusted.
        """
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedWebhookEvent("Webhook body is not UTF-8") from e

        if self.webhook_secret:
            try:
                stripe.WebhookSignature.verify_header(
                    text, signature_header or "", self.webhook_secret
                )
            except stripe.SignatureVerificationError as e:
                raise MalformedWebhookEvent("Invalid webhook signature") from e

        try:
            event = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedWebhookEvent("Invalid JSON") from e
        if not isinstance(event, dict) or not event.get("type"):
            raise MalformedWebhookEvent("Webhook event has no type")
        return event


def build_payment_client() -> StripePaymentClient:
    if not STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set - payments disabled")
    return StripePaymentClient(api_key=STRIPE_SECRET_KEY, webhook_secret=STRIPE_WEBHOOK_SECRET)
