"""
Entitlement evaluation.

Decides whether an account may generate or evaluate a task right now.

Evaluation is split in two steps so the decision can be tested without a
database:

    entitlement, correction = compute_effective_state(account, now)
    if correction: store.expire_premium(...)

compute_effective_state is pure. The only side effect the evaluator is ever
allowed is the lazy-expiry correction: when a stored is_premium flag has
outlived premium_until, the flag is cleared the first time anyone looks.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from tutor_app.core.errors import EntitlementExhausted, Unauthenticated
from tutor_app.core.plans import DEMO_LIMIT, UNLIMITED
from tutor_app.models.account import Account
from tutor_app.services.account_store import AccountStore

logger = logging.getLogger(__name__)

REASON_PREMIUM = "premium"
REASON_DEMO = "demo"
REASON_DEMO_EXHAUSTED = "demo_exhausted"
REASON_UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class EffectiveEntitlement:
    is_premium: bool
    demo_remaining: int  # UNLIMITED for premium accounts
    reason: str
    account_id: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.reason in (REASON_PREMIUM, REASON_DEMO)

    @property
    def unlimited(self) -> bool:
        return self.demo_remaining == UNLIMITED


@dataclass(frozen=True)
class ExpireCorrection:
    """Instruction to clear a stale is_premium flag."""

    account_id: int
    observed_until: datetime


def is_premium_expired(account: Account, now: datetime) -> bool:
    return account.premium_until is not None and account.premium_until <= now


def compute_effective_state(
    account: Optional[Account], now: datetime
) -> Tuple[EffectiveEntitlement, Optional[ExpireCorrection]]:
    if account is None:
        return EffectiveEntitlement(False, 0, REASON_UNAUTHENTICATED), None

    correction = None
    is_premium = bool(account.is_premium)
    if is_premium and is_premium_expired(account, now):
        correction = ExpireCorrection(account.id, account.premium_until)
        is_premium = False

    if is_premium:
        return EffectiveEntitlement(True, UNLIMITED, REASON_PREMIUM, account.id), correction

    demo_remaining = max(0, DEMO_LIMIT - (account.demo_tasks_used or 0))
    reason = REASON_DEMO if demo_remaining > 0 else REASON_DEMO_EXHAUSTED
    return EffectiveEntitlement(False, demo_remaining, reason, account.id), correction


class EntitlementEvaluator:
    def __init__(self, store: AccountStore):
        self.store = store

    def apply_correction(self, correction: ExpireCorrection, now: datetime) -> bool:
        applied = self.store.expire_premium(correction.account_id, now)
        if applied:
            logger.info(
                "Premium expired for account %s (premium_until=%s)",
                correction.account_id,
                correction.observed_until.isoformat(),
            )
        return applied

    def evaluate(self, account: Optional[Account], now: datetime) -> EffectiveEntitlement:
        entitlement, correction = compute_effective_state(account, now)
        if correction is not None:
            self.apply_correction(correction, now)
        return entitlement


def require_access(entitlement: EffectiveEntitlement) -> EffectiveEntitlement:
    """Raise the matching error for a denied entitlement, otherwise pass it through."""
    if entitlement.reason == REASON_UNAUTHENTICATED:
        raise Unauthenticated()
    if not entitlement.allowed:
        raise EntitlementExhausted()
    return entitlement
