from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import DebtStatus, DebtType
from schemas import DebtIn, DebtOut, DebtPaymentIn, DebtUpdate
from services import DebtService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_balance_cannot_exceed_amount() -> None:
    with pytest.raises(ValidationError):
        DebtIn(type=DebtType.owe, person="Arman", amount_cents=1_000, current_balance_cents=2_000)

    session = make_session()
    service = DebtService(session)
    debt = service.create(DebtIn(type=DebtType.owe, person="Arman", amount_cents=1_000))
    with pytest.raises(ValueError, match="cannot exceed"):
        service.update(debt.id, DebtUpdate(current_balance_cents=5_000))


def test_null_only_clears_optional_fields() -> None:
    with pytest.raises(ValidationError, match="person cannot be null"):
        DebtUpdate(person=None)
    with pytest.raises(ValidationError, match="amount_cents cannot be null"):
        DebtUpdate(amount_cents=None)

    session = make_session()
    service = DebtService(session)
    debt = service.create(
        DebtIn(
            type=DebtType.owe,
            person="Arman",
            amount_cents=1_000,
            description="Dinner",
            due_date=date(2025, 4, 1),
        )
    )
    debt = service.update(debt.id, DebtUpdate(description=None, due_date=None))
    assert debt.description is None
    assert debt.due_date is None
    assert debt.person == "Arman"


def test_payments_reduce_balance_until_paid() -> None:
    session = make_session()
    service = DebtService(session)
    debt = service.create(DebtIn(type=DebtType.owed, person="Dana", amount_cents=10_000))
    assert debt.current_balance_cents == 10_000
    assert debt.status == DebtStatus.active

    debt = service.add_payment(
        debt.id, DebtPaymentIn(amount_cents=4_000), today=date(2025, 3, 1)
    )
    assert debt.current_balance_cents == 6_000

    with pytest.raises(ValueError, match="outstanding balance"):
        service.add_payment(debt.id, DebtPaymentIn(amount_cents=7_000))

    debt = service.add_payment(
        debt.id, DebtPaymentIn(amount_cents=6_000), today=date(2025, 3, 2)
    )
    assert debt.current_balance_cents == 0
    assert debt.status == DebtStatus.paid

    out = DebtOut.model_validate(debt)
    assert [p.amount_cents for p in out.payments] == [4_000, 6_000]


def test_deleting_payment_restores_balance_and_reactivates() -> None:
    session = make_session()
    service = DebtService(session)
    debt = service.create(DebtIn(type=DebtType.owe, person="Arman", amount_cents=5_000))
    debt = service.add_payment(
        debt.id, DebtPaymentIn(amount_cents=5_000), today=date(2025, 3, 1)
    )
    assert debt.status == DebtStatus.paid

    debt = service.delete_payment(debt.id, debt.payments[0].id)
    assert debt.current_balance_cents == 5_000
    assert debt.status == DebtStatus.active
    assert debt.payments == []


def test_zero_balance_debt_is_created_paid() -> None:
    session = make_session()
    debt = DebtService(session).create(
        DebtIn(type=DebtType.owed, person="Dana", amount_cents=5_000, current_balance_cents=0)
    )
    assert debt.status == DebtStatus.paid


def test_statistics_net_balance() -> None:
    session = make_session()
    service = DebtService(session)
    service.create(DebtIn(type=DebtType.owe, person="Arman", amount_cents=3_000))
    service.create(DebtIn(type=DebtType.owed, person="Dana", amount_cents=10_000))
    service.create(
        DebtIn(type=DebtType.owed, person="Erlan", amount_cents=1_000, current_balance_cents=0)
    )

    stats = service.statistics()
    assert stats["total_owe_cents"] == 3_000
    assert stats["total_owed_cents"] == 10_000
    assert stats["net_balance_cents"] == 7_000
    assert stats["active_owe"] == 1
    assert stats["active_owed"] == 1
    assert stats["paid_debts"] == 1
    assert [d.type for d in service.list(type=DebtType.owe)] == [DebtType.owe]
