from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Credit, CreditStatus
from schemas import CreditIn, CreditOut, CreditPaymentIn, CreditUpdate
from services import CreditService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _credit_in(**overrides) -> CreditIn:
    values = dict(
        name="Car loan",
        amount_cents=100_000,
        monthly_payment_cents=10_000,
        monthly_payment_day=15,
        start_date=date(2025, 1, 1),
        end_date=date(2026, 1, 1),
    )
    values.update(overrides)
    return CreditIn(**values)


def test_new_credit_owes_full_amount() -> None:
    session = make_session()
    credit = CreditService(session).create(_credit_in(), today=date(2025, 1, 1))
    assert credit.current_balance_cents == 100_000
    assert credit.status == CreditStatus.active
    assert credit.initial_debt_cents is None


def test_old_credit_starts_from_initial_debt() -> None:
    session = make_session()
    credit = CreditService(session).create(
        _credit_in(is_old_credit=True, initial_debt_cents=40_000),
        today=date(2025, 1, 1),
    )
    assert credit.current_balance_cents == 40_000
    assert credit.payment_progress == 60.0


def test_initial_debt_cannot_exceed_amount() -> None:
    with pytest.raises(ValidationError):
        _credit_in(is_old_credit=True, initial_debt_cents=200_000)
    with pytest.raises(ValidationError):
        _credit_in(end_date=date(2024, 12, 1))


def test_derived_schedule_fields() -> None:
    credit = Credit(
        amount_cents=100_000,
        current_balance_cents=100_000,
        monthly_payment_cents=10_000,
        monthly_payment_day=15,
        start_date=date(2025, 1, 1),
        end_date=date(2026, 1, 1),
    )
    assert credit.total_interest_cents == 20_000
    assert credit.months_left(date(2025, 7, 20)) == 6
    assert credit.months_left(date(2026, 2, 1)) == 0
    assert credit.next_payment_on(date(2025, 3, 10)) == date(2025, 3, 15)
    assert credit.next_payment_on(date(2025, 3, 15)) == date(2025, 4, 15)

    credit.monthly_payment_day = 31
    assert credit.next_payment_on(date(2025, 1, 31)) == date(2025, 2, 28)


def test_credit_out_includes_schedule() -> None:
    session = make_session()
    credit = CreditService(session).create(_credit_in(), today=date(2025, 1, 1))
    out = CreditOut.from_credit(credit, date(2025, 3, 20))
    assert out.remaining_months == 10
    assert out.next_payment_date == date(2025, 4, 15)
    assert out.total_interest_cents == 20_000


def test_payment_reduces_balance_by_principal() -> None:
    session = make_session()
    service = CreditService(session)
    credit = service.create(_credit_in(), today=date(2025, 1, 1))

    payment = service.add_payment(
        credit.id,
        CreditPaymentIn(amount_cents=12_000, interest_cents=2_000),
        today=date(2025, 2, 15),
    )
    assert payment.principal_cents == 10_000
    assert payment.interest_cents == 2_000
    assert service.get(credit.id).current_balance_cents == 90_000


def test_payment_split_must_add_up() -> None:
    session = make_session()
    service = CreditService(session)
    credit = service.create(_credit_in(), today=date(2025, 1, 1))

    with pytest.raises(ValueError, match="add up"):
        service.add_payment(
            credit.id,
            CreditPaymentIn(amount_cents=10_000, principal_cents=8_000, interest_cents=1_000),
        )
    with pytest.raises(ValueError, match="outstanding balance"):
        service.add_payment(credit.id, CreditPaymentIn(amount_cents=150_000))


def test_paying_off_marks_credit_paid() -> None:
    session = make_session()
    service = CreditService(session)
    credit = service.create(_credit_in(), today=date(2025, 1, 1))

    service.add_payment(
        credit.id, CreditPaymentIn(amount_cents=100_000), today=date(2025, 6, 1)
    )
    assert service.get(credit.id).status == CreditStatus.paid
    with pytest.raises(ValueError, match="already paid"):
        service.add_payment(credit.id, CreditPaymentIn(amount_cents=1))


def test_credit_past_end_with_balance_is_overdue() -> None:
    session = make_session()
    service = CreditService(session)
    credit = service.create(_credit_in(), today=date(2025, 6, 1))

    assert service.refresh_statuses(date(2026, 1, 2)) == 1
    assert service.get(credit.id).status == CreditStatus.overdue


def test_amount_is_not_updatable() -> None:
    session = make_session()
    service = CreditService(session)
    credit = service.create(_credit_in(), today=date(2025, 1, 1))

    updated = service.update(
        credit.id,
        CreditUpdate(name="Car", amount_cents=1),
        today=date(2025, 1, 2),
    )
    assert updated.name == "Car"
    assert updated.amount_cents == 100_000


def test_upcoming_payments_window() -> None:
    session = make_session()
    service = CreditService(session)
    soon = service.create(_credit_in(monthly_payment_day=12), today=date(2025, 3, 1))
    service.create(_credit_in(name="Later", monthly_payment_day=28), today=date(2025, 3, 1))

    upcoming = service.upcoming(days=7, today=date(2025, 3, 10))
    assert [c.id for c in upcoming] == [soon.id]


def test_statistics_cover_active_credits() -> None:
    session = make_session()
    service = CreditService(session)
    first = service.create(_credit_in(), today=date(2025, 1, 1))
    service.create(_credit_in(name="Phone", amount_cents=20_000), today=date(2025, 1, 1))
    service.add_payment(
        first.id, CreditPaymentIn(amount_cents=50_000), today=date(2025, 2, 1)
    )

    stats = service.statistics()
    assert stats["active_credits"] == 2
    assert stats["total_debt_cents"] == 70_000
    assert stats["total_paid_cents"] == 50_000
    assert stats["monthly_payments_cents"] == 20_000
    assert stats["average_progress"] == 25.0
