from datetime import datetime, timedelta
from typing import Dict, List

# Free accounts get a fixed number of tasks (generate or evaluate) in total.
DEMO_LIMIT = 1

# -1 means unlimited (same convention as the plan limit tables)
UNLIMITED = -1

PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"
PLAN_LIFETIME = "lifetime"
PLAN_TYPES = (PLAN_MONTHLY, PLAN_YEARLY, PLAN_LIFETIME)

# Lifetime purchases get a far-future expiry instead of NULL so the
# premium_until column always says when access ends.
LIFETIME_PREMIUM_UNTIL = datetime(2099, 12, 31)

PLAN_DURATIONS: Dict[str, timedelta] = {
    PLAN_MONTHLY: timedelta(days=30),
    PLAN_YEARLY: timedelta(days=365),
}

PLANS: List[Dict] = [
    {
        "id": PLAN_MONTHLY,
        "name": "Monthly",
        "price": 9.99,
        "currency": "USD",
        "interval": "month",
        "features": [
            "Unlimited Writing Tasks",
            "Unlimited Speaking Tasks",
            "AI-Powered Evaluation",
            "Detailed Feedback",
            "Progress Tracking",
        ],
    },
    {
        "id": PLAN_YEARLY,
        "name": "Yearly",
        "price": 79.99,
        "currency": "USD",
        "interval": "year",
        "savings": "33%",
        "features": [
            "Everything in Monthly",
            "Priority Support",
            "New Features First",
            "Save 33%",
        ],
        "popular": True,
    },
    {
        "id": PLAN_LIFETIME,
        "name": "Lifetime",
        "price": 149.99,
        "currency": "USD",
        "interval": "one-time",
        "features": [
            "Everything Forever",
            "No Recurring Payments",
            "Lifetime Updates",
            "VIP Support",
        ],
    },
]


def premium_until_for_plan(plan_type: str, granted_at: datetime) -> datetime:
    """Expiry for a plan bought at granted_at. Unknown plans are billed as monthly."""
    if plan_type == PLAN_LIFETIME:
        return LIFETIME_PREMIUM_UNTIL
    return granted_at + PLAN_DURATIONS.get(plan_type, PLAN_DURATIONS[PLAN_MONTHLY])
