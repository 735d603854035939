from contextlib import contextmanager
from datetime import date

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

import scheduler
from database import Base
from models import (
    Category,
    CategoryType,
    ExpenseStatus,
    Income,
    MonthlyExpense,
    RecurringIncome,
)
from scheduler import SchedulerManager
from services import run_housekeeping


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _seed(session) -> None:
    category = Category(name="Utilities", type=CategoryType.expense)
    session.add(category)
    session.flush()
    session.add(
        RecurringIncome(
            source="Salary",
            amount_cents=300_000,
            recurring_day=5,
            start_date=date(2025, 1, 1),
        )
    )
    session.add(
        MonthlyExpense(
            category_id=category.id,
            name="Internet",
            planned_amount_cents=5_000,
            actual_amount_cents=0,
            due_date=date(2025, 3, 1),
        )
    )
    session.commit()


def test_housekeeping_runs_every_step() -> None:
    session = make_session()
    _seed(session)

    totals = run_housekeeping(session, date(2025, 3, 10))
    assert totals["incomes_created"] == 1
    assert totals["expenses_overdue"] == 1

    again = run_housekeeping(session, date(2025, 3, 11))
    assert again["incomes_created"] == 0
    assert again["expenses_overdue"] == 0


def test_scheduler_job_uses_its_own_session(monkeypatch) -> None:
    session = make_session()
    _seed(session)

    @contextmanager
    def fake_scope():
        yield session
        session.commit()

    monkeypatch.setattr(scheduler, "session_scope", fake_scope)
    SchedulerManager()._run_job("test", date(2025, 3, 10))

    incomes = session.scalars(select(Income)).all()
    assert [(i.source, i.date) for i in incomes] == [("Salary", date(2025, 3, 5))]
    expense = session.scalars(select(MonthlyExpense)).one()
    assert expense.status == ExpenseStatus.overdue


def test_scheduler_job_swallows_failures(monkeypatch) -> None:
    @contextmanager
    def broken_scope():
        raise RuntimeError("database unavailable")
        yield

    monkeypatch.setattr(scheduler, "session_scope", broken_scope)
    SchedulerManager()._run_job("test")
