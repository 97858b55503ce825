"""
Shared fixtures.

Every test gets its own in-memory SQLite database. API tests go through
FastAPI's TestClient with get_db, the AI client, the payment client and the
clock overridden, so no network call is ever made.
"""
import os
from datetime import datetime, timezone

import pytest

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["GEMINI_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tutor_app.core.errors import TransientDependencyFailure
from tutor_app.db.base import Base
from tutor_app.models import Account
from tutor_app.services.payment_client import StripePaymentClient
from tutor_app.utils.auth import create_access_token

NOW = datetime(2026, 3, 1, 12, 0, 0)


def unix(dt: datetime) -> int:
    """Stripe-style `created` value for a naive UTC datetime."""
    return int(dt.replace(tzinfo=timezone.utc).timestamp())


class FakeAIClient:
    configured = True

    def __init__(self):
        self.calls = []
        self.fail = False

    async def _respond(self, name, result):
        self.calls.append(name)
        if self.fail:
            raise TransientDependencyFailure("gemini", "AI service timed out")
        return result

    async def generate_writing_task(self, task_type):
        return await self._respond(
            "generate_writing_task",
            {"id": "gen-1", "mode": "WRITING", "type": task_type, "details": {"scenario": "A scenario"}},
        )

    async def generate_speaking_task(self, task_type):
        return await self._respond(
            "generate_speaking_task",
            {"id": "gen-2", "mode": "SPEAKING", "type": task_type, "details": {"prompt": "A prompt"}},
        )

    async def evaluate_writing(self, task, user_text):
        return await self._respond("evaluate_writing", {"score": 9, "feedback": "Good"})

    async def evaluate_speaking(self, task, audio_base64):
        return await self._respond("evaluate_speaking", {"score": 8, "transcript": "hello"})


class FakePaymentClient(StripePaymentClient):
    """Real webhook parsing, canned Stripe API responses."""

    def __init__(self, webhook_secret=""):
        super().__init__(api_key="sk_test_fake", webhook_secret=webhook_secret, prices={
            "monthly": "price_m", "yearly": "price_y", "lifetime": "price_l",
        })
        self.customers_created = []
        self.checkouts = []

    async def create_customer(self, email, account_id):
        customer_ref = f"cus_{account_id}_{len(self.customers_created) + 1}"
        self.customers_created.append(customer_ref)
        return customer_ref

    async def create_checkout_session(self, customer_ref, account_id, plan_type):
        self.checkouts.append((customer_ref, account_id, plan_type))
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    async def create_portal_session(self, customer_ref):
        return f"https://billing.stripe.test/{customer_ref}"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account(db_session):
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        values = {
            "email": f"user{counter['n']}@example.com",
            "hashed_password": "not-a-real-hash",
            "name": f"User {counter['n']}",
            "is_premium": False,
            "demo_tasks_used": 0,
        }
        values.update(fields)
        account = Account(**values)
        db_session.add(account)
        db_session.commit()
        db_session.refresh(account)
        return account

    return _make


@pytest.fixture
def ai_client():
    return FakeAIClient()


@pytest.fixture
def payment_client():
    return FakePaymentClient()


@pytest.fixture
def client(db_session, ai_client, payment_client):
    from tutor_app.db.session import get_db
    from tutor_app.dependencies.services import get_ai_client, get_now, get_payment_client
    from tutor_app.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_ai_client] = lambda: ai_client
    app.dependency_overrides[get_payment_client] = lambda: payment_client
    app.dependency_overrides[get_now] = lambda: NOW
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(account) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(account.id)})}"}
