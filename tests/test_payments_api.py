import hashlib
import hmac
import json
import time
from datetime import timedelta

import pytest

from conftest import NOW, FakePaymentClient, auth_headers, unix
from tutor_app.dependencies.services import get_payment_client
from tutor_app.models import PaymentEvent


def _checkout(account_id, payment_id="pi_1", plan_type="monthly"):
    return {
        "id": f"evt_{payment_id}",
        "type": "checkout.session.completed",
        "created": unix(NOW),
        "data": {"object": {
            "id": "cs_1",
            "payment_intent": payment_id,
            "amount_total": 999,
            "currency": "usd",
            "metadata": {"userId": str(account_id), "planType": plan_type},
        }},
    }


def test_plans_are_public(client):
    plans = client.get("/api/payments/plans").json()["plans"]

    assert [p["id"] for p in plans] == ["monthly", "yearly", "lifetime"]


def test_create_checkout_links_customer_once(client, db_session, make_account, payment_client):
    account = make_account()
    headers = auth_headers(account)

    for _ in range(2):
        r = client.post("/api/payments/create-checkout", json={"planType": "yearly"}, headers=headers)
        assert r.status_code == 200
        assert r.json()["sessionId"] == "cs_test_1"

    db_session.refresh(account)
    assert len(payment_client.customers_created) == 1
    assert account.stripe_customer_id == payment_client.customers_created[0]
    assert payment_client.checkouts[-1] == (account.stripe_customer_id, account.id, "yearly")


def test_create_checkout_rejects_unknown_plan(client, make_account, payment_client):
    r = client.post("/api/payments/create-checkout", json={"planType": "weekly"}, headers=auth_headers(make_account()))

    assert r.status_code == 400
    assert payment_client.customers_created == []


def test_create_checkout_requires_login(client):
    r = client.post("/api/payments/create-checkout", json={"planType": "monthly"})

    assert r.status_code == 401


def test_webhook_then_verify(client, make_account):
    account = make_account()

    r = client.post("/api/payments/webhook", content=json.dumps(_checkout(account.id)))
    assert r.status_code == 200
    assert r.json() == {"received": True, "outcome": "granted"}

    body = client.get("/api/payments/verify/cs_1", headers=auth_headers(account)).json()
    assert body["success"] is True
    assert body["isPremium"] is True


def test_verify_before_webhook_is_pending(client, make_account):
    account = make_account(stripe_customer_id="cus_9")

    body = client.get("/api/payments/verify/cs_1", headers=auth_headers(account)).json()

    assert body["success"] is False
    assert body["billingState"] == "pending"


def test_webhook_redelivery_is_acknowledged(client, db_session, make_account):
    account = make_account()
    payload = json.dumps(_checkout(account.id))

    client.post("/api/payments/webhook", content=payload)
    r = client.post("/api/payments/webhook", content=payload)

    assert r.status_code == 200
    assert r.json()["outcome"] == "duplicate"
    assert db_session.query(PaymentEvent).count() == 1


@pytest.mark.parametrize("payload", [
    b"not json",
    b"\xff\xfe",
    json.dumps({"data": {}}).encode(),
    json.dumps({"type": "checkout.session.completed", "data": {"object": {"metadata": {}}}}).encode(),
    json.dumps({"type": "checkout.session.completed", "data": "oops"}).encode(),
    json.dumps({"type": "checkout.session.completed", "data": {"object": ["oops"]}}).encode(),
    json.dumps({
        "type": "checkout.session.completed",
        "data": {"object": {"payment_intent": "pi_1", "metadata": "oops"}},
    }).encode(),
])
def test_malformed_webhook_gets_400(client, payload):
    r = client.post("/api/payments/webhook", content=payload)

    assert r.status_code == 400
    assert r.json()["error"] == "MALFORMED_WEBHOOK"


def test_webhook_internal_failure_is_acknowledged(client, make_account, monkeypatch):
    account = make_account()

    def explode(self, event, now=None):
        raise RuntimeError("boom")

    monkeypatch.setattr("tutor_app.services.payment_reconciler.PaymentReconciler.on_checkout_completed", explode)

    r = client.post("/api/payments/webhook", content=json.dumps(_checkout(account.id)))

    assert r.status_code == 200
    assert r.json() == {"received": True}


def test_webhook_signature_is_checked_when_secret_configured(client, make_account):
    from tutor_app.main import app

    secret = "whsec_test"
    app.dependency_overrides[get_payment_client] = lambda: FakePaymentClient(webhook_secret=secret)
    account = make_account()
    payload = json.dumps(_checkout(account.id))

    unsigned = client.post("/api/payments/webhook", content=payload, headers={"Stripe-Signature": "t=1,v1=bad"})
    assert unsigned.status_code == 400

    timestamp = int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    signed = client.post(
        "/api/payments/webhook",
        content=payload,
        headers={"Stripe-Signature": f"t={timestamp},v1={signature}"},
    )
    assert signed.status_code == 200
    assert signed.json()["outcome"] == "granted"


def test_portal_requires_customer(client, make_account):
    r = client.get("/api/payments/portal", headers=auth_headers(make_account()))

    assert r.status_code == 400


def test_portal_url(client, make_account):
    r = client.get("/api/payments/portal", headers=auth_headers(make_account(stripe_customer_id="cus_5")))

    assert r.json()["url"] == "https://billing.stripe.test/cus_5"


def test_history_lists_own_payments_newest_first(client, db_session, make_account):
    account = make_account()
    other = make_account()
    for i in range(12):
        db_session.add(PaymentEvent(
            account_id=account.id,
            external_payment_id=f"pi_{i}",
            amount=999,
            plan_type="monthly",
            created_at=NOW + timedelta(minutes=i),
        ))
    db_session.add(PaymentEvent(account_id=other.id, external_payment_id="pi_other", plan_type="monthly"))
    db_session.commit()

    payments = client.get("/api/payments/history", headers=auth_headers(account)).json()["payments"]

    assert len(payments) == 10
    assert payments[0]["externalPaymentId"] == "pi_11"
    assert all(p["externalPaymentId"] != "pi_other" for p in payments)
