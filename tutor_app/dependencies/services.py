"""
Service handles are built once at startup (see tutor_app.main) and kept on
app.state. Routes receive them through these dependencies, which tests override.
"""
from datetime import datetime
from fastapi import Request
from tutor_app.services.ai_client import GeminiClient
from tutor_app.services.payment_client import StripePaymentClient
from tutor_app.utils.clock import utcnow


def get_ai_client(request: Request) -> GeminiClient:
    return request.app.state.ai_client


def get_payment_client(request: Request) -> StripePaymentClient:
    return request.app.state.payment_client


def get_now() -> datetime:
    return utcnow()
