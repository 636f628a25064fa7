from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from errors import (
    AuthenticationError,
    NotFound,
    PolicyViolation,
    ServiceError,
    StorageError,
    ValidationError,
)
from models import Expense, MonthlyExpense, User
from periods import reporting_zone, resolve_range
from recurrence import RecurringEngine
from schemas import ExpenseIn, LoginIn, MonthlyExpenseIn, RegisterIn
from security import hash_password, verify_password


logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(
    session: Session, failure: str, *, commit: bool = True
) -> Iterator[None]:
    """Commit the enclosed writes together, or roll all of them back.

    Store errors surface as ``StorageError`` with the driver error chained;
    ``ServiceError`` raised inside the block passes through after rollback.
    """
    try:
        yield
        if commit:
            session.commit()
    except ServiceError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"storage_error: {failure}")
        raise StorageError(failure) from exc
    except BaseException:
        session.rollback()
        raise


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, data: RegisterIn) -> User:
        with unit_of_work(self.session, "Could not save the user"):
            existing = self.session.scalar(
                select(User.id).where(User.email == data.email)
            )
            if existing:
                raise PolicyViolation("This email is already registered")
            user = User(
                name=data.name.strip(),
                email=data.email,
                password_hash=hash_password(data.password),
            )
            self.session.add(user)
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise PolicyViolation("This email is already registered") from exc
        logger.info(f"user_registered: user_id={user.id}")
        return user

    def authenticate(self, data: LoginIn) -> User:
        with unit_of_work(self.session, "Could not look up the user", commit=False):
            user = self.session.scalar(select(User).where(User.email == data.email))
        if not user or not verify_password(data.password, user.password_hash):
            raise AuthenticationError("Invalid credentials")
        return user

    def get(self, user_id: int) -> User:
        with unit_of_work(
            self.session, "Could not load the user profile", commit=False
        ):
            user = self.session.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user


class ExpenseService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(
        self, date_from: Optional[str] = None, date_to: Optional[str] = None
    ) -> list[Expense]:
        try:
            bounds = resolve_range(date_from, date_to)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        stmt = (
            select(Expense)
            .where(Expense.user_id == self.user_id)
            .order_by(Expense.date.desc(), Expense.id.desc())
        )
        if bounds.start:
            stmt = stmt.where(Expense.date >= bounds.start)
        if bounds.end:
            stmt = stmt.where(Expense.date <= bounds.end)
        with unit_of_work(self.session, "Could not list expenses", commit=False):
            return list(self.session.scalars(stmt).all())

    def create(self, data: ExpenseIn) -> Expense:
        expense = Expense(
            user_id=self.user_id,
            name=data.name,
            tag=data.tag,
            amount=data.amount,
            date=data.date,
        )
        with unit_of_work(self.session, "Could not save the expense"):
            self.session.add(expense)
            self.session.flush()
        return expense

    def delete(self, expense_id: int) -> None:
        """Delete an expense, first releasing any template that generated it.

        The unlink and the delete share one transaction.
        """
        with unit_of_work(self.session, "Could not delete the expense"):
            RecurringEngine(self.session).unlink(self.user_id, expense_id)
            result = self.session.execute(
                delete(Expense).where(
                    Expense.id == expense_id, Expense.user_id == self.user_id
                )
            )
            if result.rowcount == 0:
                raise NotFound("Expense not found")
        logger.info(f"expense_deleted: user_id={self.user_id} expense_id={expense_id}")


class MonthlyExpenseService:
    def __init__(
        self, session: Session, user_id: int, zone: Optional[ZoneInfo] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.zone = zone or reporting_zone()

    def list(self) -> list[MonthlyExpense]:
        stmt = (
            select(MonthlyExpense)
            .where(MonthlyExpense.user_id == self.user_id)
            .order_by(MonthlyExpense.id.desc())
        )
        with unit_of_work(
            self.session, "Could not list monthly expenses", commit=False
        ):
            return list(self.session.scalars(stmt).all())

    def create(self, data: MonthlyExpenseIn) -> MonthlyExpense:
        item = MonthlyExpense(
            user_id=self.user_id,
            name=data.name,
            tag=data.tag,
            amount=data.amount,
        )
        with unit_of_work(self.session, "Could not save the monthly expense"):
            self.session.add(item)
            self.session.flush()
        return item

    def delete(self, item_id: int) -> None:
        # Generated expenses stay in the ledger.
        with unit_of_work(self.session, "Could not delete the monthly expense"):
            result = self.session.execute(
                delete(MonthlyExpense).where(
                    MonthlyExpense.id == item_id,
                    MonthlyExpense.user_id == self.user_id,
                )
            )
            if result.rowcount == 0:
                raise NotFound("Monthly expense not found")
        logger.info(
            f"monthly_expense_deleted: user_id={self.user_id} "
            f"monthly_expense_id={item_id}"
        )

    def apply(self, item_id: int, now: datetime) -> tuple[Expense, MonthlyExpense]:
        """Materialize a template into an expense dated ``now``.

        The template row is locked for the rest of the transaction where the
        backend supports ``FOR UPDATE``. The link write is also conditional on
        the link the gate saw, so on SQLite the loser of two concurrent applies
        gets ``PolicyViolation`` and its expense is rolled back.
        """
        engine = RecurringEngine(self.session, self.zone)
        with unit_of_work(self.session, "Could not apply the monthly expense"):
            item = self._get_for_update(item_id)
            expense = engine.apply(item, now)
        return expense, item

    def _get_for_update(self, item_id: int) -> MonthlyExpense:
        stmt = (
            select(MonthlyExpense)
            .where(
                MonthlyExpense.id == item_id,
                MonthlyExpense.user_id == self.user_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        item = self.session.scalar(stmt)
        if not item:
            raise NotFound("Monthly expense not found")
        return item
