import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from periods import parse_iso_date


TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


class ExpenseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    tag: str = Field(..., min_length=1, max_length=60)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    date: dt.date

    @field_validator("date", mode="before")
    @classmethod
    def _strict_iso_date(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return parse_iso_date(value)
            except ValueError as exc:
                raise ValueError("date must use the YYYY-MM-DD format") from exc
        return value


class MonthlyExpenseIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    tag: str = Field(..., min_length=1, max_length=60)
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class RegisterIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=72)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    tag: str
    amount: Decimal
    date: dt.date

    @field_serializer("amount", when_used="json")
    def _amount(self, value: Decimal) -> float:
        return float(value)


class MonthlyExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    tag: str
    amount: Decimal
    last_applied_at: Optional[datetime] = Field(default=None, alias="lastAppliedAt")
    last_applied_expense_id: Optional[int] = Field(default=None, alias="lastExpenseId")

    @field_serializer("amount", when_used="json")
    def _amount(self, value: Decimal) -> float:
        return float(value)

    @field_serializer("last_applied_at", when_used="json")
    def _last_applied_at(self, value: Optional[datetime]) -> Optional[str]:
        return format_timestamp(value)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    name: str
    email: str
    created_at: datetime = Field(..., alias="createdAt")

    @field_serializer("created_at", when_used="json")
    def _created_at(self, value: datetime) -> Optional[str]:
        return format_timestamp(value)


class ExpenseList(BaseModel):
    expenses: list[ExpenseOut]


class ExpenseEnvelope(BaseModel):
    expense: ExpenseOut


class MonthlyExpenseList(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    monthly_expenses: list[MonthlyExpenseOut] = Field(..., alias="monthlyExpenses")


class MonthlyExpenseEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    monthly_expense: MonthlyExpenseOut = Field(..., alias="monthlyExpense")


class AppliedMonthlyExpense(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    expense: ExpenseOut
    monthly_expense: MonthlyExpenseOut = Field(..., alias="monthlyExpense")


class UserEnvelope(BaseModel):
    user: UserOut


class AuthOut(BaseModel):
    user: UserOut
    token: str
