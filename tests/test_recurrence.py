from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import PolicyViolation
from models import Expense, MonthlyExpense, User
from recurrence import RecurringEngine, applied_in_period


UTC = ZoneInfo("UTC")
BERLIN = ZoneInfo("Europe/Berlin")


def _template(last_applied_at=None) -> MonthlyExpense:
    return MonthlyExpense(
        id=1,
        user_id=1,
        name="Rent",
        tag="Housing",
        amount=Decimal("1000.00"),
        last_applied_at=last_applied_at,
        last_applied_expense_id=10 if last_applied_at else None,
    )


def test_never_applied_template_is_open():
    assert not applied_in_period(
        _template(), datetime(2023, 12, 9, tzinfo=timezone.utc), UTC
    )


def test_applied_earlier_same_month_is_gated():
    item = _template(datetime(2023, 12, 1, 8, 0))
    assert applied_in_period(item, datetime(2023, 12, 31, 23, 59, tzinfo=timezone.utc), UTC)


def test_gate_uses_calendar_month_not_thirty_days():
    item = _template(datetime(2023, 12, 31, 12, 0))
    assert not applied_in_period(item, datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc), UTC)


def test_same_month_number_in_another_year_is_open():
    item = _template(datetime(2022, 12, 15, 12, 0))
    assert not applied_in_period(item, datetime(2023, 12, 15, 12, 0, tzinfo=timezone.utc), UTC)


def test_gate_compares_months_in_reporting_zone():
    # 2023-11-30 23:30 UTC is already December in Berlin.
    item = _template(datetime(2023, 11, 30, 23, 30))
    now = datetime(2023, 12, 15, 12, 0, tzinfo=BERLIN)
    assert applied_in_period(item, now, BERLIN)
    assert not applied_in_period(item, now, UTC)


def _seeded_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    session = Session(engine)
    session.add(User(id=1, name="Ana", email="ana@example.com", password_hash="x"))
    session.add(
        MonthlyExpense(
            id=1, user_id=1, name="Rent", tag="Housing", amount=Decimal("1000.00")
        )
    )
    session.commit()
    return session


def test_engine_apply_posts_expense_and_links_template():
    with _seeded_session() as session:
        item = session.get(MonthlyExpense, 1)
        expense = RecurringEngine(session, UTC).apply(
            item, datetime(2023, 12, 9, 10, 30, tzinfo=timezone.utc)
        )
        session.commit()

        assert expense.id is not None
        assert expense.user_id == 1
        assert (expense.name, expense.tag) == ("Rent", "Housing")
        assert expense.amount == Decimal("1000.00")
        assert expense.date == date(2023, 12, 9)
        assert item.last_applied_at == datetime(2023, 12, 9, 10, 30)
        assert item.last_applied_expense_id == expense.id


def test_engine_expense_date_follows_reporting_zone():
    with _seeded_session() as session:
        item = session.get(MonthlyExpense, 1)
        expense = RecurringEngine(session, BERLIN).apply(
            item, datetime(2023, 12, 31, 23, 30, tzinfo=timezone.utc)
        )
        assert expense.date == date(2024, 1, 1)
        assert item.last_applied_at == datetime(2023, 12, 31, 23, 30)


def test_engine_refuses_second_apply_in_month():
    with _seeded_session() as session:
        engine = RecurringEngine(session, UTC)
        item = session.get(MonthlyExpense, 1)
        engine.apply(item, datetime(2023, 12, 1, tzinfo=timezone.utc))
        with pytest.raises(PolicyViolation):
            engine.apply(item, datetime(2023, 12, 20, tzinfo=timezone.utc))
        assert session.query(Expense).count() == 1


def test_engine_unlink_only_touches_matching_owner_templates():
    with _seeded_session() as session:
        engine = RecurringEngine(session, UTC)
        item = session.get(MonthlyExpense, 1)
        expense = engine.apply(item, datetime(2023, 12, 1, tzinfo=timezone.utc))
        session.commit()

        assert engine.unlink(2, expense.id) == 0
        assert engine.unlink(1, expense.id + 1) == 0
        assert engine.unlink(1, expense.id) == 1
        session.commit()

        session.refresh(item)
        assert item.last_applied_at is None
        assert item.last_applied_expense_id is None


def test_engine_link_fails_when_template_changed_since_read(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'gastos.db'}")
    Base.metadata.create_all(engine)
    with Session(engine) as setup:
        setup.add(User(id=1, name="Ana", email="ana@example.com", password_hash="x"))
        setup.add(
            MonthlyExpense(
                id=1, user_id=1, name="Rent", tag="Housing", amount=Decimal("1000.00")
            )
        )
        setup.commit()

    with Session(engine) as first, Session(engine) as second:
        stale = second.get(MonthlyExpense, 1)
        assert stale.last_applied_at is None

        RecurringEngine(first, UTC).apply(
            first.get(MonthlyExpense, 1), datetime(2023, 12, 9, tzinfo=timezone.utc)
        )
        first.commit()

        with pytest.raises(PolicyViolation):
            RecurringEngine(second, UTC).apply(
                stale, datetime(2023, 12, 10, tzinfo=timezone.utc)
            )
        second.rollback()

        assert second.query(Expense).count() == 1
    engine.dispose()
