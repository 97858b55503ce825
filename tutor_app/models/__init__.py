from tutor_app.models.account import Account
from tutor_app.models.usage_event import UsageEvent
from tutor_app.models.payment_event import PaymentEvent

__all__ = [
    "Account",
    "UsageEvent",
    "PaymentEvent",
]
