from typing import Optional
from fastapi import Header, Depends
from sqlalchemy.orm import Session
from tutor_app.core.errors import Unauthenticated
from tutor_app.db.session import get_db
from tutor_app.models.account import Account
from tutor_app.services.account_store import AccountStore
from tutor_app.utils.auth import verify_token


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[len("Bearer "):].strip()
    # Reject common invalid token values sent by the frontend
    if not token or token.lower() in ("null", "undefined", "none"):
        return None
    return token


def get_optional_account(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> Optional[Account]:
    """
    Resolve the caller's account from the Authorization header.
    Missing, invalid or expired tokens yield None so public routes can
    still answer guests.
    """
    token = _bearer_token(authorization)
    if token is None:
        return None
    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None
    try:
        account_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None
    return AccountStore(db).get(account_id)


def require_account(account: Optional[Account] = Depends(get_optional_account)) -> Account:
    if account is None:
        raise Unauthenticated("Authentication required")
    return account
