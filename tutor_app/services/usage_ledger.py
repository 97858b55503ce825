"""
Usage ledger: records consumed tasks and charges the demo allowance.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tutor_app.core.errors import LedgerWriteFailure
from tutor_app.models.usage_event import UsageEvent
from tutor_app.services.account_store import AccountStore
from tutor_app.services.entitlement import EffectiveEntitlement

logger = logging.getLogger(__name__)

TASK_MODE_WRITING = "WRITING"
TASK_MODE_SPEAKING = "SPEAKING"
TASK_MODES = (TASK_MODE_WRITING, TASK_MODE_SPEAKING)


@dataclass(frozen=True)
class TaskSummary:
    """The only task fields the ledger needs."""

    task_type: str
    task_mode: str

    def __post_init__(self) -> None:
        if not str(self.task_type).strip():
            raise ValueError("task_type is required")
        if self.task_mode not in TASK_MODES:
            raise ValueError(f"task_mode must be one of: {', '.join(TASK_MODES)}")


@dataclass(frozen=True)
class LedgerResult:
    recorded: bool
    is_demo: bool
    demo_tasks_used: Optional[int] = None


class UsageLedger:
    def __init__(self, db: Session):
        self.db = db
        self.store = AccountStore(db)

    def record_consumption(
        self,
        account_id: Optional[int],
        task: TaskSummary,
        entitlement: EffectiveEntitlement,
    ) -> LedgerResult:
        """
        Append a UsageEvent and, for non-premium accounts, bump demo_tasks_used.

        entitlement must be the one the request was gated with; premium status
        is never looked up again here. Both writes commit together.
        Raises LedgerWriteFailure if persistence fails.
        """
        is_demo = not entitlement.is_premium
        if account_id is None:
            # Guest usage is not recorded
            return LedgerResult(recorded=False, is_demo=is_demo)

        try:
            self.db.add(
                UsageEvent(
                    account_id=account_id,
                    task_type=task.task_type,
                    task_mode=task.task_mode,
                    is_demo=is_demo,
                )
            )
            demo_tasks_used = None
            if is_demo:
                demo_tasks_used = self.store.increment_demo_counter(account_id, commit=False)
                if demo_tasks_used is None:
                    raise LedgerWriteFailure(account_id, ValueError("account not found"))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LedgerWriteFailure(account_id, e) from e
        except LedgerWriteFailure:
            self.db.rollback()
            raise

        return LedgerResult(recorded=True, is_demo=is_demo, demo_tasks_used=demo_tasks_used)

    def record_consumption_safely(
        self,
        account_id: Optional[int],
        task: TaskSummary,
        entitlement: EffectiveEntitlement,
    ) -> LedgerResult:
        """
        Same as record_consumption, but a failed write is logged and reported
        as recorded=False instead of raised. The AI call has already been paid
        for, so the user still gets the result.
        """
        try:
            return self.record_consumption(account_id, task, entitlement)
        except LedgerWriteFailure as e:
            logger.error(
                "LEDGER_WRITE_FAILED account=%s task_type=%s task_mode=%s is_demo=%s: %s",
                account_id,
                task.task_type,
                task.task_mode,
                not entitlement.is_premium,
                e.cause,
                exc_info=True,
            )
            return LedgerResult(recorded=False, is_demo=not entitlement.is_premium)
