from datetime import datetime
from typing import Optional
from fastapi import Depends
from sqlalchemy.orm import Session
from tutor_app.db.session import get_db
from tutor_app.dependencies.auth import get_optional_account
from tutor_app.dependencies.services import get_now
from tutor_app.models.account import Account
from tutor_app.services.account_store import AccountStore
from tutor_app.services.entitlement import (
    EffectiveEntitlement,
    EntitlementEvaluator,
    require_access,
)


def get_entitlement(
    account: Optional[Account] = Depends(get_optional_account),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> EffectiveEntitlement:
    """Evaluate the caller once per request, applying lazy premium expiry."""
    return EntitlementEvaluator(AccountStore(db)).evaluate(account, now)


def require_entitlement(
    entitlement: EffectiveEntitlement = Depends(get_entitlement),
) -> EffectiveEntitlement:
    """Gate for routes that consume a task. Raises Unauthenticated / EntitlementExhausted."""
    return require_access(entitlement)
