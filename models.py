import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


AMOUNT_TYPE = Numeric(12, 2, asdecimal=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    tag: Mapped[str] = mapped_column(String(60), nullable=False)
    amount: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False)
    date: Mapped[dt.date] = mapped_column("expense_date", Date, nullable=False)

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "expense_date", "id"),
        CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )


class MonthlyExpense(Base, TimestampMixin):
    """Recurring expense template.

    ``last_applied_at`` and ``last_applied_expense_id`` are set and cleared
    together. The link to ``expenses`` has no ON DELETE rule: deleting the
    expense goes through ``ExpenseService.delete`` which clears the link first,
    and deleting the template leaves the generated expense in place.
    """

    __tablename__ = "monthly_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    tag: Mapped[str] = mapped_column(String(60), nullable=False)
    amount: Mapped[Decimal] = mapped_column(AMOUNT_TYPE, nullable=False)
    # naive UTC
    last_applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_applied_expense_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("expenses.id", name="fk_monthly_expenses_last_applied_expense")
    )

    __table_args__ = (
        Index("ix_monthly_expenses_user", "user_id", "id"),
        Index("ix_monthly_expenses_last_expense", "user_id", "last_applied_expense_id"),
        CheckConstraint("amount > 0", name="ck_monthly_expenses_amount_positive"),
        CheckConstraint(
            "(last_applied_at IS NULL) = (last_applied_expense_id IS NULL)",
            name="ck_monthly_expenses_link_pair",
        ),
    )
