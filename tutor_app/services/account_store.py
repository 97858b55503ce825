"""
Account store.
Data access for the entitlement columns of Account. No policy lives here.

Every mutation is a single UPDATE statement with its guard in the WHERE
clause, so concurrent requests for the same account serialize on the row
instead of on a read-modify-write in Python.
"""
from datetime import datetime
from typing import Optional
from sqlalchemy import case, or_
from sqlalchemy.orm import Session
from tutor_app.models.account import Account


class AccountStore:
    def __init__(self, db: Session):
        self.db = db

    def get(self, account_id: int) -> Optional[Account]:
        return self.db.query(Account).filter(Account.id == account_id).first()

    def get_by_email(self, email: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.email == email).first()

    def get_by_customer_ref(self, customer_ref: str) -> Optional[Account]:
        return self.db.query(Account).filter(Account.stripe_customer_id == customer_ref).first()

    def create(self, email: str, hashed_password: str, name: str) -> Account:
        account = Account(
            email=email,
            hashed_password=hashed_password,
            name=name,
            is_premium=False,
            demo_tasks_used=0,
        )
        self.db.add(account)
        self.db.commit()
        self.db.refresh(account)
        return account

    def _apply(self, query, values: dict, commit: bool) -> bool:
        updated = query.update(values, synchronize_session=False)
        if commit:
            self.db.commit()
        return updated > 0

    def update(self, account_id: int, commit: bool = True, **fields) -> bool:
        """Plain partial update. Returns False when the account does not exist."""
        if not fields:
            return self.get(account_id) is not None
        values = {getattr(Account, name): value for name, value in fields.items()}
        return self._apply(
            self.db.query(Account).filter(Account.id == account_id), values, commit
        )

    def expire_premium(self, account_id: int, now: datetime, commit: bool = True) -> bool:
        """
        Clear is_premium if, and only if, it is still set and premium_until has passed.
        Returns True for the call that actually flipped the flag.
        """
        query = self.db.query(Account).filter(
            Account.id == account_id,
            Account.is_premium.is_(True),
            Account.premium_until.isnot(None),
            Account.premium_until <= now,
        )
        return self._apply(query, {Account.is_premium: False}, commit)

    def increment_demo_counter(self, account_id: int, commit: bool = True) -> Optional[int]:
        """Atomically add one to demo_tasks_used and return the new value."""
        updated = self._apply(
            self.db.query(Account).filter(Account.id == account_id),
            {Account.demo_tasks_used: Account.demo_tasks_used + 1},
            commit=False,
        )
        if not updated:
            return None
        new_value = (
            self.db.query(Account.demo_tasks_used)
            .filter(Account.id == account_id)
            .scalar()
        )
        if commit:
            self.db.commit()
        return new_value

    def link_customer_ref(self, account_id: int, customer_ref: str) -> Optional[str]:
        """
        Store customer_ref only if the account has none yet.
        Returns whichever ref is stored afterwards, so a caller that lost a
        race gets the winner's ref.
        """
        query = self.db.query(Account).filter(
            Account.id == account_id,
            Account.stripe_customer_id.is_(None),
        )
        self._apply(query, {Account.stripe_customer_id: customer_ref}, commit=True)
        return (
            self.db.query(Account.stripe_customer_id)
            .filter(Account.id == account_id)
            .scalar()
        )

    def grant_premium(
        self,
        account_id: int,
        premium_until: Optional[datetime],
        granted_at: datetime,
        commit: bool = True,
    ) -> bool:
        """
        Grant premium unless the account already saw a grant or revocation
        later than granted_at. An existing later premium_until is kept.
        Returns False when the guard rejected the grant.
        """
        query = self.db.query(Account).filter(
            Account.id == account_id,
            or_(Account.premium_granted_at.is_(None), Account.premium_granted_at <= granted_at),
            or_(Account.premium_revoked_at.is_(None), Account.premium_revoked_at <= granted_at),
        )
        if premium_until is None:
            new_until = None
        else:
            new_until = case(
                (Account.premium_until > premium_until, Account.premium_until),
                else_=premium_until,
            )
        return self._apply(
            query,
            {
                Account.is_premium: True,
                Account.premium_until: new_until,
                Account.premium_granted_at: granted_at,
            },
            commit,
        )

    def revoke_premium(self, account_id: int, revoked_at: datetime, commit: bool = True) -> bool:
        return self._apply(
            self.db.query(Account).filter(Account.id == account_id),
            {
                Account.is_premium: False,
                Account.premium_until: None,
                Account.premium_revoked_at: revoked_at,
            },
            commit,
        )
