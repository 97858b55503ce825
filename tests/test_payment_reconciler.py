import asyncio
from datetime import datetime, timedelta

import pytest

from conftest import NOW, FakePaymentClient, unix
from tutor_app.core.errors import MalformedWebhookEvent
from tutor_app.core.plans import LIFETIME_PREMIUM_UNTIL, premium_until_for_plan
from tutor_app.models import PaymentEvent
from tutor_app.services.account_store import AccountStore
from tutor_app.services.entitlement import EntitlementEvaluator
from tutor_app.services.payment_reconciler import (
    CUSTOMER_ABSENT,
    CUSTOMER_LINKED,
    OUTCOME_DUPLICATE,
    OUTCOME_GRANTED,
    OUTCOME_IGNORED,
    OUTCOME_REVOKED,
    OUTCOME_STALE,
    OUTCOME_UNKNOWN_ACCOUNT,
    OUTCOME_UNKNOWN_CUSTOMER,
    STATE_ACTIVE,
    STATE_NONE,
    STATE_PENDING,
    CheckoutCompleted,
    PaymentReconciler,
    parse_stripe_event,
)


def checkout_event(account_id, plan_type="monthly", payment_id="pi_123", created=NOW, **extra):
    obj = {
        "id": "cs_test_1",
        "payment_intent": payment_id,
        "amount_total": 999,
        "currency": "USD",
        "metadata": {"userId": str(account_id), "planType": plan_type},
    }
    obj.update(extra)
    return {
        "id": "evt_checkout",
        "type": "checkout.session.completed",
        "created": unix(created),
        "data": {"object": obj},
    }


def cancel_event(customer_ref, created=NOW):
    return {
        "id": "evt_cancel",
        "type": "customer.subscription.deleted",
        "created": unix(created),
        "data": {"object": {"id": "sub_1", "customer": customer_ref}},
    }


def reconciler(db_session, now=NOW, payment_client=None):
    return PaymentReconciler(db_session, payment_client=payment_client, clock=lambda: now)


@pytest.mark.parametrize("plan_type,expected", [
    ("monthly", NOW + timedelta(days=30)),
    ("yearly", NOW + timedelta(days=365)),
    ("lifetime", LIFETIME_PREMIUM_UNTIL),
    ("weekly", NOW + timedelta(days=30)),
])
def test_plan_durations(plan_type, expected):
    assert premium_until_for_plan(plan_type, NOW) == expected


def test_yearly_checkout_grants_unlimited_access(db_session, make_account):
    account = make_account()

    outcome = reconciler(db_session).handle_event(checkout_event(account.id, "yearly"))

    assert outcome == OUTCOME_GRANTED
    db_session.refresh(account)
    assert account.is_premium is True
    assert account.premium_until == NOW + timedelta(days=365)

    entitlement = EntitlementEvaluator(AccountStore(db_session)).evaluate(account, NOW + timedelta(seconds=1))
    assert entitlement.allowed and entitlement.unlimited

    payment = db_session.query(PaymentEvent).one()
    assert payment.external_payment_id == "pi_123"
    assert payment.amount == 999
    assert payment.currency == "usd"
    assert payment.plan_type == "yearly"


def test_redelivered_checkout_changes_nothing(db_session, make_account):
    account = make_account()
    event = checkout_event(account.id, "monthly")

    assert reconciler(db_session).handle_event(event) == OUTCOME_GRANTED
    db_session.refresh(account)
    first_until = account.premium_until

    later = NOW + timedelta(days=3)
    assert reconciler(db_session, now=later).handle_event(event) == OUTCOME_DUPLICATE

    db_session.refresh(account)
    assert account.premium_until == first_until
    assert db_session.query(PaymentEvent).count() == 1


def test_duplicate_caught_by_unique_constraint(db_session, make_account, monkeypatch):
    account = make_account()
    event = parse_stripe_event(checkout_event(account.id, "monthly"))
    assert reconciler(db_session).on_checkout_completed(event) == OUTCOME_GRANTED
    db_session.refresh(account)
    first_until = account.premium_until

    # Two deliveries racing: both pass the existence check
    racing = reconciler(db_session, now=NOW + timedelta(days=5))
    monkeypatch.setattr(racing, "_payment_exists", lambda external_payment_id: False)

    assert racing.on_checkout_completed(event) == OUTCOME_DUPLICATE
    db_session.refresh(account)
    assert account.premium_until == first_until
    assert db_session.query(PaymentEvent).count() == 1


def test_checkout_for_unknown_account_is_ignored(db_session):
    outcome = reconciler(db_session).handle_event(checkout_event(4242))

    assert outcome == OUTCOME_UNKNOWN_ACCOUNT
    assert db_session.query(PaymentEvent).count() == 0


def test_subscription_without_payment_intent_uses_subscription_id(db_session, make_account):
    account = make_account()
    raw = checkout_event(account.id, "monthly", payment_id=None, subscription="sub_77")

    reconciler(db_session).handle_event(raw)

    assert db_session.query(PaymentEvent).one().external_payment_id == "sub_77"


def test_cancellation_revokes_premium(db_session, make_account):
    account = make_account(stripe_customer_id="cus_1")
    reconciler(db_session).handle_event(checkout_event(account.id, "monthly"))

    cancelled_at = NOW + timedelta(days=10)
    outcome = reconciler(db_session, now=cancelled_at).handle_event(cancel_event("cus_1", created=cancelled_at))

    assert outcome == OUTCOME_REVOKED
    db_session.refresh(account)
    assert account.is_premium is False
    assert account.premium_until is None
    assert account.premium_revoked_at == cancelled_at


def test_cancellation_for_unknown_customer_is_a_noop(db_session, make_account, caplog):
    account = make_account(is_premium=True, premium_until=NOW + timedelta(days=5), stripe_customer_id="cus_1")

    with caplog.at_level("WARNING", logger="tutor_app.services.payment_reconciler"):
        outcome = reconciler(db_session).handle_event(cancel_event("cus_unknown"))

    assert outcome == OUTCOME_UNKNOWN_CUSTOMER
    assert any("cus_unknown" in r.getMessage() for r in caplog.records)
    db_session.refresh(account)
    assert account.is_premium is True


def test_cancellation_older_than_grant_is_stale(db_session, make_account):
    account = make_account(stripe_customer_id="cus_1")
    reconciler(db_session).handle_event(checkout_event(account.id, "monthly", created=NOW))

    outcome = reconciler(db_session).handle_event(cancel_event("cus_1", created=NOW - timedelta(hours=1)))

    assert outcome == OUTCOME_STALE
    db_session.refresh(account)
    assert account.is_premium is True


def test_checkout_older_than_cancellation_is_recorded_without_grant(db_session, make_account):
    account = make_account(stripe_customer_id="cus_1")
    reconciler(db_session).handle_event(cancel_event("cus_1", created=NOW))

    outcome = reconciler(db_session).handle_event(
        checkout_event(account.id, "monthly", created=NOW - timedelta(minutes=5))
    )

    assert outcome == OUTCOME_STALE
    db_session.refresh(account)
    assert account.is_premium is False
    assert db_session.query(PaymentEvent).count() == 1


def test_older_checkout_does_not_shorten_a_newer_grant(db_session, make_account):
    account = make_account(stripe_customer_id="cus_1")
    lifetime = checkout_event(account.id, "lifetime", payment_id="pi_life", created=NOW)
    monthly = checkout_event(account.id, "monthly", payment_id="pi_month", created=NOW - timedelta(days=1))

    assert reconciler(db_session).handle_event(lifetime) == OUTCOME_GRANTED
    assert reconciler(db_session).handle_event(monthly) == OUTCOME_STALE

    db_session.refresh(account)
    assert account.is_premium is True
    assert account.premium_until == LIFETIME_PREMIUM_UNTIL
    assert account.premium_granted_at == NOW
    assert db_session.query(PaymentEvent).count() == 2

    # Cancellation between the two checkouts is still older than the grant
    stale = cancel_event("cus_1", created=NOW - timedelta(hours=12))
    assert reconciler(db_session).handle_event(stale) == OUTCOME_STALE
    db_session.refresh(account)
    assert account.is_premium is True


def test_newer_monthly_checkout_keeps_later_expiry(db_session, make_account):
    account = make_account()
    reconciler(db_session).handle_event(
        checkout_event(account.id, "yearly", payment_id="pi_year", created=NOW)
    )

    later = NOW + timedelta(days=1)
    outcome = reconciler(db_session, now=later).handle_event(
        checkout_event(account.id, "monthly", payment_id="pi_month", created=later)
    )

    assert outcome == OUTCOME_GRANTED
    db_session.refresh(account)
    assert account.premium_until == NOW + timedelta(days=365)
    assert account.premium_granted_at == later


def test_unrelated_event_types_are_ignored(db_session):
    outcome = reconciler(db_session).handle_event({"type": "invoice.paid", "data": {"object": {}}})

    assert outcome == OUTCOME_IGNORED


@pytest.mark.parametrize("raw", [
    {"type": "checkout.session.completed", "data": {}},
    {"type": "checkout.session.completed", "data": {"object": {"payment_intent": "pi_1", "metadata": {}}}},
    {"type": "checkout.session.completed", "data": {"object": {"metadata": {"userId": "abc"}}}},
    {"type": "customer.subscription.deleted", "data": {"object": {"id": "sub_1"}}},
    {"type": "checkout.session.completed", "data": "oops"},
    {"type": "checkout.session.completed", "data": {"object": "oops"}},
    {"type": "checkout.session.completed", "data": {"object": {"payment_intent": "pi_1", "metadata": "oops"}}},
    ["not", "an", "object"],
])
def test_malformed_events_raise(raw):
    with pytest.raises(MalformedWebhookEvent):
        parse_stripe_event(raw)


def test_missing_plan_type_defaults_to_monthly():
    raw = checkout_event(1)
    del raw["data"]["object"]["metadata"]["planType"]

    event = parse_stripe_event(raw)

    assert isinstance(event, CheckoutCompleted)
    assert event.plan_type == "monthly"
    assert event.occurred_at == NOW


def test_ensure_customer_linked_creates_customer_once(db_session, make_account):
    account = make_account()
    client = FakePaymentClient()
    rec = reconciler(db_session, payment_client=client)

    first = asyncio.run(rec.ensure_customer_linked(account.id, account.email))
    second = asyncio.run(rec.ensure_customer_linked(account.id, account.email))

    assert first == second
    assert client.customers_created == [first]
    db_session.refresh(account)
    assert account.stripe_customer_id == first


def test_customer_link_keeps_the_first_ref(db_session, make_account):
    account = make_account()
    store = AccountStore(db_session)

    assert store.link_customer_ref(account.id, "cus_first") == "cus_first"
    assert store.link_customer_ref(account.id, "cus_second") == "cus_first"


def test_describe_state(make_account):
    none = make_account()
    pending = make_account(stripe_customer_id="cus_p")
    active = make_account(is_premium=True, premium_until=NOW + timedelta(days=1), stripe_customer_id="cus_a")
    lapsed = make_account(is_premium=True, premium_until=datetime(2020, 1, 1))

    assert PaymentReconciler.describe_state(none, NOW).entitlement == STATE_NONE
    assert PaymentReconciler.describe_state(pending, NOW).entitlement == STATE_PENDING
    assert PaymentReconciler.describe_state(active, NOW).entitlement == STATE_ACTIVE
    assert PaymentReconciler.describe_state(active, NOW).customer == CUSTOMER_LINKED
    assert PaymentReconciler.describe_state(lapsed, NOW).customer == CUSTOMER_ABSENT
    assert PaymentReconciler.describe_state(lapsed, NOW).entitlement == STATE_NONE
