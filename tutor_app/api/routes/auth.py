import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from tutor_app.db.session import get_db
from tutor_app.dependencies.auth import require_account
from tutor_app.dependencies.entitlement import get_entitlement
from tutor_app.dependencies.services import get_now
from tutor_app.models.account import Account
from tutor_app.schemas.auth import (
    AccountResponse,
    AuthResponse,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
)
from tutor_app.services.account_store import AccountStore
from tutor_app.services.entitlement import EffectiveEntitlement, EntitlementEvaluator
from tutor_app.utils.auth import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter()


def account_response(account: Account, entitlement: Optional[EffectiveEntitlement] = None) -> AccountResponse:
    """Serialize an account; isPremium reflects the evaluated entitlement when given."""
    is_premium = entitlement.is_premium if entitlement is not None else bool(account.is_premium)
    return AccountResponse(
        id=account.id,
        email=account.email,
        name=account.name,
        isPremium=is_premium,
        premiumUntil=account.premium_until,
        demoTasksUsed=account.demo_tasks_used or 0,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    store = AccountStore(db)
    email = request.email.lower()
    if store.get_by_email(email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    account = store.create(email, hash_password(request.password), request.name.strip())
    logger.info("Account %s registered", account.id)

    return AuthResponse(
        message="Registration successful",
        token=create_access_token({"sub": str(account.id)}),
        user=account_response(account),
    )


@router.post("/login", response_model=AuthResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    store = AccountStore(db)
    account = store.get_by_email(request.email.lower())
    if not account or not verify_password(request.password, account.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )

    # Login is one of the points where an expired premium flag gets cleared
    entitlement = EntitlementEvaluator(store).evaluate(account, now)

    return AuthResponse(
        message="Login successful",
        token=create_access_token({"sub": str(account.id)}),
        user=account_response(account, entitlement),
    )


@router.get("/me")
def get_me(
    account: Account = Depends(require_account),
    entitlement: EffectiveEntitlement = Depends(get_entitlement),
):
    return {"user": account_response(account, entitlement)}


@router.put("/profile")
def update_profile(
    request: ProfileUpdate,
    db: Session = Depends(get_db),
    account: Account = Depends(require_account),
):
    store = AccountStore(db)
    fields = {}

    if request.new_password:
        if not request.current_password or not verify_password(request.current_password, account.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Current password is incorrect"
            )
        fields["hashed_password"] = hash_password(request.new_password)

    if request.name and request.name.strip():
        fields["name"] = request.name.strip()

    if fields:
        store.update(account.id, **fields)

    return {"message": "Profile updated successfully"}
