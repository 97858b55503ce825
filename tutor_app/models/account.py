from sqlalchemy import Column, Integer, String, Boolean, DateTime
from tutor_app.utils.clock import utcnow
from tutor_app.db.base import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    is_premium = Column(Boolean, default=False, nullable=False)
    premium_until = Column(DateTime, nullable=True)  # NULL with is_premium=True means no expiry
    premium_granted_at = Column(DateTime, nullable=True)  # Time of the checkout that last granted premium
    premium_revoked_at = Column(DateTime, nullable=True)  # Time of the last applied cancellation event
    demo_tasks_used = Column(Integer, default=0, nullable=False)
    stripe_customer_id = Column(String, unique=True, index=True, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
