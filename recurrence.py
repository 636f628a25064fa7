import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import update
from sqlalchemy.orm import Session

from errors import PolicyViolation
from models import Expense, MonthlyExpense
from periods import reporting_zone, same_month, to_utc_naive, to_zone


logger = logging.getLogger(__name__)


def applied_in_period(item: MonthlyExpense, now: datetime, zone: ZoneInfo) -> bool:
    if item.last_applied_at is None:
        return False
    return same_month(item.last_applied_at, now, zone)


def _link_matches(column, value):
    return column.is_(None) if value is None else column == value


class RecurringEngine:
    """Turns monthly expense templates into dated expenses.

    The engine only stages changes on the session (add + flush); committing or
    rolling back is the caller's job so both writes share one transaction.
    """

    def __init__(self, session: Session, zone: Optional[ZoneInfo] = None) -> None:
        self.session = session
        self.zone = zone or reporting_zone()

    def apply(self, item: MonthlyExpense, now: datetime) -> Expense:
        if applied_in_period(item, now, self.zone):
            raise PolicyViolation("This monthly expense was already applied this month")
        expense = self._post_expense(item, now)
        self._link(item, expense, now)
        logger.info(
            f"monthly_expense_applied: user_id={item.user_id} "
            f"monthly_expense_id={item.id} expense_id={expense.id} date={expense.date}"
        )
        return expense

    def unlink(self, user_id: int, expense_id: int) -> int:
        """Reset every template of ``user_id`` that points at ``expense_id``."""
        result = self.session.execute(
            update(MonthlyExpense)
            .where(
                MonthlyExpense.user_id == user_id,
                MonthlyExpense.last_applied_expense_id == expense_id,
            )
            .values(last_applied_at=None, last_applied_expense_id=None)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount:
            logger.info(
                f"monthly_expense_unlinked: user_id={user_id} "
                f"expense_id={expense_id} templates={result.rowcount}"
            )
        return result.rowcount

    def _post_expense(self, item: MonthlyExpense, now: datetime) -> Expense:
        expense = Expense(
            user_id=item.user_id,
            name=item.name,
            tag=item.tag,
            amount=item.amount,
            date=to_zone(now, self.zone).date(),
        )
        self.session.add(expense)
        self.session.flush()
        return expense

    def _link(self, item: MonthlyExpense, expense: Expense, now: datetime) -> None:
        # Compare-and-set against the link the gate saw; a concurrent apply
        # that committed first leaves no matching row.
        result = self.session.execute(
            update(MonthlyExpense)
            .where(
                MonthlyExpense.id == item.id,
                _link_matches(MonthlyExpense.last_applied_at, item.last_applied_at),
                _link_matches(
                    MonthlyExpense.last_applied_expense_id,
                    item.last_applied_expense_id,
                ),
            )
            .values(
                last_applied_at=to_utc_naive(now),
                last_applied_expense_id=expense.id,
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount == 0:
            logger.warning(
                f"monthly_expense_apply_conflict: user_id={item.user_id} "
                f"monthly_expense_id={item.id}"
            )
            raise PolicyViolation("This monthly expense was already applied this month")
