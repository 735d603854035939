from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import (
    DepositStatus,
    DepositTransaction,
    DepositTransactionType,
    DepositType,
    Income,
    IncomeUsage,
    UsageType,
)
from schemas import DepositIn, DepositTransactionIn, DepositTransactionUpdate
from services import DepositService, InsufficientFundsError, monthly_interest_cents


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _deposit_in(**overrides) -> DepositIn:
    values = dict(
        bank_name="Kaspi",
        account_number="KZ-001",
        amount_cents=100_000,
        interest_rate_bps=1_200,
        start_date=date(2025, 1, 10),
        end_date=date(2026, 1, 10),
        type=DepositType.savings,
    )
    values.update(overrides)
    return DepositIn(**values)


def test_monthly_interest_rounds_half_up() -> None:
    assert monthly_interest_cents(100_000, 1_200) == 1_000
    assert monthly_interest_cents(10, 6_000) == 1
    assert monthly_interest_cents(1, 6_000) == 0
    assert monthly_interest_cents(100_000, 0) == 0


def test_deposit_end_must_follow_start() -> None:
    with pytest.raises(ValidationError):
        _deposit_in(end_date=date(2025, 1, 10))


def test_interest_catches_up_month_by_month() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(_deposit_in(), today=date(2025, 1, 10))

    assert service.accrue_interest(date(2025, 4, 5)) == 3
    deposit = service.get(deposit.id)
    assert deposit.current_balance_cents == 103_030
    assert deposit.last_interest_accrued == date(2025, 4, 1)

    interest = service.transactions(deposit.id, DepositTransactionType.interest)
    assert [t.transaction_date for t in interest] == [
        date(2025, 4, 1),
        date(2025, 3, 1),
        date(2025, 2, 1),
    ]
    assert service.accrue_interest(date(2025, 4, 20)) == 0


def test_interest_stops_at_end_date() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(
        _deposit_in(end_date=date(2025, 3, 15)), today=date(2025, 1, 10)
    )

    assert service.accrue_interest(date(2025, 6, 1)) == 2
    assert service.get(deposit.id).last_interest_accrued == date(2025, 3, 1)


def test_maturity_without_renewal() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(
        _deposit_in(interest_rate_bps=0), today=date(2025, 1, 10)
    )

    assert service.process_maturity(date(2026, 1, 9)) == 0
    assert service.process_maturity(date(2026, 1, 10)) == 1
    assert service.get(deposit.id).status == DepositStatus.matured


def test_auto_renewal_extends_past_today() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(
        _deposit_in(
            interest_rate_bps=0,
            auto_renewal=True,
            start_date=date(2023, 6, 1),
            end_date=date(2024, 6, 1),
        ),
        today=date(2023, 6, 1),
    )

    service.process_maturity(date(2025, 7, 1))
    deposit = service.get(deposit.id)
    assert deposit.status == DepositStatus.active
    assert deposit.end_date == date(2026, 6, 1)


def test_funding_from_income_records_usage() -> None:
    session = make_session()
    income = Income(source="Salary", amount_cents=150_000, date=date(2025, 1, 5))
    session.add(income)
    session.commit()

    deposit = DepositService(session).create(
        _deposit_in(income_id=income.id), today=date(2025, 1, 10)
    )

    txns = session.scalars(select(DepositTransaction)).all()
    assert [(t.type, t.amount_cents, t.income_id) for t in txns] == [
        (DepositTransactionType.deposit, 100_000, income.id)
    ]
    usage = session.scalars(select(IncomeUsage)).one()
    assert usage.usage_type == UsageType.deposit
    assert usage.deposit_transaction_id == txns[0].id
    assert deposit.current_balance_cents == 100_000


def test_funding_beyond_income_creates_nothing() -> None:
    session = make_session()
    income = Income(source="Salary", amount_cents=50_000, date=date(2025, 1, 5))
    session.add(income)
    session.commit()
    service = DepositService(session)

    with pytest.raises(InsufficientFundsError):
        service.create(_deposit_in(income_id=income.id), today=date(2025, 1, 10))
    assert service.list() == []


def test_transactions_move_the_balance() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(_deposit_in(interest_rate_bps=0), today=date(2025, 1, 10))

    service.create_transaction(
        DepositTransactionIn(
            deposit_id=deposit.id,
            type=DepositTransactionType.deposit,
            amount_cents=20_000,
            transaction_date=date(2025, 2, 1),
        )
    )
    withdrawal = service.create_transaction(
        DepositTransactionIn(
            deposit_id=deposit.id,
            type=DepositTransactionType.withdrawal,
            amount_cents=50_000,
            transaction_date=date(2025, 2, 2),
        )
    )
    assert service.get(deposit.id).current_balance_cents == 70_000

    service.update_transaction(withdrawal.id, DepositTransactionUpdate(amount_cents=30_000))
    assert service.get(deposit.id).current_balance_cents == 90_000

    service.delete_transaction(withdrawal.id)
    assert service.get(deposit.id).current_balance_cents == 120_000


def test_overdrawing_withdrawal_is_rejected() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(_deposit_in(interest_rate_bps=0), today=date(2025, 1, 10))

    with pytest.raises(InsufficientFundsError):
        service.create_transaction(
            DepositTransactionIn(
                deposit_id=deposit.id,
                type=DepositTransactionType.withdrawal,
                amount_cents=100_001,
                transaction_date=date(2025, 2, 1),
            )
        )
    assert service.get(deposit.id).current_balance_cents == 100_000
    assert service.transactions(deposit.id) == []


def test_removing_a_spent_top_up_is_rejected() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(
        _deposit_in(amount_cents=0, interest_rate_bps=0), today=date(2025, 1, 10)
    )
    top_up = service.create_transaction(
        DepositTransactionIn(
            deposit_id=deposit.id,
            type=DepositTransactionType.deposit,
            amount_cents=10_000,
            transaction_date=date(2025, 2, 1),
        )
    )
    service.create_transaction(
        DepositTransactionIn(
            deposit_id=deposit.id,
            type=DepositTransactionType.withdrawal,
            amount_cents=8_000,
            transaction_date=date(2025, 2, 2),
        )
    )

    with pytest.raises(ValueError, match="negative"):
        service.delete_transaction(top_up.id)
    assert service.get(deposit.id).current_balance_cents == 2_000


def test_close_and_renew() -> None:
    session = make_session()
    service = DepositService(session)
    deposit = service.create(_deposit_in(), today=date(2025, 1, 10))

    renewed = service.renew(deposit.id)
    assert renewed.end_date == date(2027, 1, 10)

    closed = service.close(deposit.id)
    assert closed.status == DepositStatus.closed
    with pytest.raises(ValueError, match="cannot be renewed"):
        service.renew(deposit.id)
    with pytest.raises(ValueError, match="closed"):
        service.create_transaction(
            DepositTransactionIn(
                deposit_id=deposit.id,
                type=DepositTransactionType.deposit,
                amount_cents=1_000,
            )
        )


def test_statistics() -> None:
    session = make_session()
    service = DepositService(session)
    first = service.create(_deposit_in(), today=date(2025, 1, 10))
    service.create(
        _deposit_in(account_number="KZ-002", amount_cents=50_000, interest_rate_bps=0),
        today=date(2025, 1, 10),
    )
    service.accrue_interest(date(2025, 2, 2))

    stats = service.statistics(today=date(2025, 2, 2))
    assert stats["active_deposits_count"] == 2
    assert stats["total_balance_cents"] == 151_000
    assert stats["total_interest_earned_cents"] == 1_000
    assert stats["matured_deposits_count"] == 0

    since_march = service.statistics(start=date(2025, 3, 1), today=date(2025, 3, 2))
    assert since_march["total_interest_earned_cents"] == 0
    assert service.get(first.id).current_balance_cents == 101_000
