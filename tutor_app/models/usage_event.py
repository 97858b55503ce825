"""
Append-only record of every generate/evaluate call that consumed allowance.
Used for audit and analytics; enforcement reads Account.demo_tasks_used.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from tutor_app.utils.clock import utcnow
from tutor_app.db.base import Base


class UsageEvent(Base):
    __tablename__ = "usage_events"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    task_type = Column(String, nullable=False)
    task_mode = Column(String, nullable=False)  # WRITING or SPEAKING
    is_demo = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
