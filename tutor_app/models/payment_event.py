from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from tutor_app.utils.clock import utcnow
from tutor_app.db.base import Base


class PaymentEvent(Base):
    """
    One row per completed checkout coming from Stripe.

    external_payment_id is the payment intent id (one-time purchases) or the
    subscription id (recurring plans). It is unique so a redelivered webhook
    can never produce a second row.
    """

    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    external_payment_id = Column(String, nullable=False, unique=True, index=True)

    # Amount in minor units (cents), as reported by Stripe
    amount = Column(Integer, nullable=True)
    currency = Column(String, nullable=False, default="usd")

    status = Column(String, nullable=False, default="completed")
    plan_type = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
