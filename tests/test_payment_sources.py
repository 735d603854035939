from datetime import date

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from models import (
    Category,
    CategoryType,
    Credit,
    CreditPayment,
    Deposit,
    DepositStatus,
    DepositTransaction,
    DepositTransactionType,
    DepositType,
    Income,
    IncomeUsage,
    MonthlyExpense,
    PaymentSourceType,
    UsageType,
)
from schemas import PaymentSourceIn
from services import (
    CreditService,
    InsufficientFundsError,
    MonthlyExpenseService,
    PaymentSource,
    PaymentSourceLedger,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _seed(session):
    groceries = Category(name="Groceries", type=CategoryType.expense)
    salary_cat = Category(name="Salary", type=CategoryType.income)
    session.add_all([groceries, salary_cat])
    session.flush()
    salary = Income(
        source="Salary",
        amount_cents=100_000,
        category_id=salary_cat.id,
        date=date(2025, 3, 1),
    )
    savings = Deposit(
        bank_name="Bank",
        account_number="ACC-1",
        amount_cents=50_000,
        current_balance_cents=50_000,
        start_date=date(2025, 1, 1),
        end_date=date(2026, 1, 1),
        type=DepositType.savings,
    )
    expense = MonthlyExpense(
        category_id=groceries.id,
        name="Groceries",
        planned_amount_cents=40_000,
        actual_amount_cents=0,
        due_date=date(2025, 3, 10),
    )
    session.add_all([salary, savings, expense])
    session.commit()
    return salary, savings, expense


def test_income_source_records_usage() -> None:
    session = make_session()
    salary, _, expense = _seed(session)
    service = MonthlyExpenseService(session)

    service.record_payment(
        expense.id,
        30_000,
        PaymentSource(type=PaymentSourceType.income, income_id=salary.id),
        date(2025, 3, 10),
    )

    usages = session.scalars(select(IncomeUsage)).all()
    assert len(usages) == 1
    assert usages[0].used_cents == 30_000
    assert usages[0].usage_type == UsageType.expense
    assert usages[0].monthly_expense_id == expense.id
    assert PaymentSourceLedger(session).available_cents(salary) == 70_000


def test_income_overdraw_leaves_nothing_behind() -> None:
    session = make_session()
    salary, _, expense = _seed(session)
    service = MonthlyExpenseService(session)
    source = PaymentSource(type=PaymentSourceType.income, income_id=salary.id)

    service.record_payment(expense.id, 80_000, source, date(2025, 3, 10))
    with pytest.raises(InsufficientFundsError):
        service.record_payment(expense.id, 30_000, source, date(2025, 3, 11))

    assert service.get(expense.id).actual_amount_cents == 80_000
    usages = session.scalars(select(IncomeUsage)).all()
    assert [u.used_cents for u in usages] == [80_000]


def test_deposit_source_withdraws_from_balance() -> None:
    session = make_session()
    _, savings, expense = _seed(session)

    MonthlyExpenseService(session).record_payment(
        expense.id,
        20_000,
        PaymentSource(type=PaymentSourceType.deposit, deposit_id=savings.id),
        date(2025, 3, 10),
    )

    deposit = session.get(Deposit, savings.id)
    assert deposit.current_balance_cents == 30_000
    txns = session.scalars(select(DepositTransaction)).all()
    assert len(txns) == 1
    assert txns[0].type == DepositTransactionType.withdrawal
    assert txns[0].amount_cents == 20_000


def test_deposit_overdraw_keeps_balance() -> None:
    session = make_session()
    _, savings, expense = _seed(session)

    with pytest.raises(InsufficientFundsError):
        MonthlyExpenseService(session).record_payment(
            expense.id,
            60_000,
            PaymentSource(type=PaymentSourceType.deposit, deposit_id=savings.id),
            date(2025, 3, 10),
        )

    assert session.get(Deposit, savings.id).current_balance_cents == 50_000
    assert session.scalars(select(DepositTransaction)).all() == []
    assert session.get(MonthlyExpense, expense.id).actual_amount_cents == 0


def test_closed_deposit_cannot_fund_payments() -> None:
    session = make_session()
    _, savings, expense = _seed(session)
    savings.status = DepositStatus.closed
    session.commit()

    with pytest.raises(ValueError, match="closed"):
        MonthlyExpenseService(session).record_payment(
            expense.id,
            1_000,
            PaymentSource(type=PaymentSourceType.deposit, deposit_id=savings.id),
        )


def test_cash_source_touches_no_balances() -> None:
    session = make_session()
    salary, savings, expense = _seed(session)

    MonthlyExpenseService(session).record_payment(expense.id, 5_000)

    assert session.scalars(select(IncomeUsage)).all() == []
    assert session.get(Deposit, savings.id).current_balance_cents == 50_000


def test_source_input_requires_matching_reference() -> None:
    with pytest.raises(ValidationError):
        PaymentSourceIn(type=PaymentSourceType.income)
    with pytest.raises(ValidationError):
        PaymentSourceIn(type=PaymentSourceType.deposit, income_id=1)
    with pytest.raises(ValidationError):
        PaymentSourceIn(type=PaymentSourceType.cash, card="visa")

    source = PaymentSource.from_input(
        PaymentSourceIn(type=PaymentSourceType.deposit, deposit_id=4)
    )
    assert source == PaymentSource(type=PaymentSourceType.deposit, deposit_id=4)


def _credit(session, name: str, monthly: int, balance: int) -> Credit:
    credit = Credit(
        name=name,
        amount_cents=max(balance, 100_000),
        current_balance_cents=balance,
        monthly_payment_cents=monthly,
        monthly_payment_day=10,
        start_date=date(2025, 1, 1),
        end_date=date(2026, 1, 1),
    )
    session.add(credit)
    session.commit()
    return credit


def test_pay_monthly_debits_source_once_for_the_total() -> None:
    session = make_session()
    salary, _, _ = _seed(session)
    car = _credit(session, "Car", 10_000, 80_000)
    phone = _credit(session, "Phone", 5_000, 3_000)

    payments = CreditService(session).pay_monthly(
        PaymentSource(type=PaymentSourceType.income, income_id=salary.id),
        date(2025, 3, 10),
    )

    assert sorted(p.amount_cents for p in payments) == [3_000, 10_000]
    usages = session.scalars(select(IncomeUsage)).all()
    assert len(usages) == 1
    assert usages[0].used_cents == 13_000
    assert usages[0].usage_type == UsageType.credit
    assert session.get(Credit, car.id).current_balance_cents == 70_000
    assert session.get(Credit, phone.id).current_balance_cents == 0
    assert session.get(Credit, phone.id).status.value == "paid"


def test_deleting_credit_releases_its_share_of_a_bulk_payment() -> None:
    session = make_session()
    salary, _, _ = _seed(session)
    car = _credit(session, "Car", 10_000, 80_000)
    phone = _credit(session, "Phone", 5_000, 3_000)
    service = CreditService(session)
    service.pay_monthly(
        PaymentSource(type=PaymentSourceType.income, income_id=salary.id),
        date(2025, 3, 10),
    )
    ledger = PaymentSourceLedger(session)
    assert ledger.available_cents(salary) == 87_000

    service.delete(car.id)
    usage = session.scalars(select(IncomeUsage)).one()
    assert usage.used_cents == 3_000
    assert ledger.available_cents(salary) == 97_000

    service.delete(phone.id)
    assert session.scalars(select(IncomeUsage)).all() == []
    assert ledger.available_cents(salary) == 100_000


def test_pay_monthly_rolls_back_when_source_is_short() -> None:
    session = make_session()
    salary, _, _ = _seed(session)
    car = _credit(session, "Car", 90_000, 200_000)
    phone = _credit(session, "Phone", 20_000, 100_000)

    with pytest.raises(InsufficientFundsError):
        CreditService(session).pay_monthly(
            PaymentSource(type=PaymentSourceType.income, income_id=salary.id),
            date(2025, 3, 10),
        )

    assert session.scalars(select(CreditPayment)).all() == []
    assert session.get(Credit, car.id).current_balance_cents == 200_000
    assert session.get(Credit, phone.id).current_balance_cents == 100_000


def test_pay_monthly_without_active_credits() -> None:
    session = make_session()
    with pytest.raises(ValueError, match="No active credits"):
        CreditService(session).pay_monthly()


def test_available_incomes_keeps_latest_per_category_with_money_left() -> None:
    session = make_session()
    salary, _, expense = _seed(session)
    older = Income(
        source="Salary",
        amount_cents=100_000,
        category_id=salary.category_id,
        date=date(2025, 2, 1),
    )
    bonus = Income(source="Bonus", amount_cents=20_000, date=date(2025, 3, 2))
    session.add_all([older, bonus])
    session.commit()

    MonthlyExpenseService(session).record_payment(
        expense.id,
        20_000,
        PaymentSource(type=PaymentSourceType.income, income_id=bonus.id),
    )

    available = PaymentSourceLedger(session).available_incomes()
    assert [item["income"].id for item in available] == [salary.id]
    assert available[0]["available_cents"] == 100_000
