from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from periods import add_months, days_in_month, months_between


class CategoryType(str, Enum):
    income = "income"
    expense = "expense"


class ExpenseStatus(str, Enum):
    planned = "planned"
    paid = "paid"
    overdue = "overdue"


class DepositType(str, Enum):
    fixed = "fixed"
    savings = "savings"
    investment = "investment"
    spending = "spending"


class DepositStatus(str, Enum):
    active = "active"
    matured = "matured"
    closed = "closed"


class DepositTransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    interest = "interest"


class CreditType(str, Enum):
    credit = "credit"
    loan = "loan"
    installment = "installment"


class CreditStatus(str, Enum):
    active = "active"
    paid = "paid"
    overdue = "overdue"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    paid = "paid"
    pending = "pending"
    overdue = "overdue"
    cancelled = "cancelled"


class RentStatus(str, Enum):
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class UtilitiesType(str, Enum):
    included = "included"
    fixed = "fixed"
    variable = "variable"


class RentPaymentType(str, Enum):
    rent = "rent"
    utilities = "utilities"
    deposit = "deposit"
    other = "other"


class DebtType(str, Enum):
    owe = "owe"
    owed = "owed"


class DebtStatus(str, Enum):
    active = "active"
    paid = "paid"


class PaymentSourceType(str, Enum):
    cash = "cash"
    income = "income"
    deposit = "deposit"


class UsageType(str, Enum):
    deposit = "deposit"
    credit = "credit"
    rent = "rent"
    expense = "expense"
    other = "other"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(SAEnum(CategoryType), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(7))
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class RecurringIncome(Base, TimestampMixin):
    """Template for a monthly income; never counted as realized income."""

    __tablename__ = "recurring_incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)
    recurring_day: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    auto_create: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    last_created_year: Mapped[Optional[int]] = mapped_column(Integer)
    last_created_month: Mapped[Optional[int]] = mapped_column(Integer)

    category: Mapped[Optional["Category"]] = relationship("Category")
    incomes: Mapped[list["Income"]] = relationship(
        "Income", back_populates="recurring_income"
    )

    __table_args__ = (
        CheckConstraint(
            "recurring_day >= 1 AND recurring_day <= 31",
            name="ck_recurring_income_day_range",
        ),
        CheckConstraint("amount_cents >= 0", name="ck_recurring_income_amount"),
        Index("ix_recurring_income_user_active", "user_id", "is_active"),
    )

    def occurrence_date(self, year: int, month: int) -> date:
        """Trigger date for a month; days past the month end snap to its last day."""
        return date(year, month, min(self.recurring_day, days_in_month(year, month)))


class Income(Base, TimestampMixin):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    is_auto_created: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    recurring_income_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_incomes.id", ondelete="SET NULL")
    )
    occurrence_year: Mapped[Optional[int]] = mapped_column(Integer)
    occurrence_month: Mapped[Optional[int]] = mapped_column(Integer)

    category: Mapped[Optional["Category"]] = relationship("Category")
    recurring_income: Mapped[Optional["RecurringIncome"]] = relationship(
        "RecurringIncome", back_populates="incomes"
    )
    usages: Mapped[list["IncomeUsage"]] = relationship(
        "IncomeUsage", back_populates="income"
    )

    __table_args__ = (
        UniqueConstraint(
            "recurring_income_id",
            "occurrence_year",
            "occurrence_month",
            name="uq_income_template_occurrence",
        ),
        CheckConstraint("amount_cents >= 0", name="ck_income_amount_positive"),
        Index("ix_incomes_user_date", "user_id", "date"),
    )


class IncomeUsage(Base, TimestampMixin):
    """Part of an income consumed as the funding source of a payment."""

    __tablename__ = "income_usages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    income_id: Mapped[int] = mapped_column(ForeignKey("incomes.id"), nullable=False)
    used_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    usage_type: Mapped[UsageType] = mapped_column(
        SAEnum(UsageType), nullable=False, default=UsageType.other
    )
    description: Mapped[Optional[str]] = mapped_column(String(500))
    usage_date: Mapped[date] = mapped_column(Date, nullable=False)
    deposit_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("deposit_transactions.id")
    )
    credit_payment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("credit_payments.id")
    )
    rent_payment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("rent_payments.id")
    )
    monthly_expense_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("monthly_expenses.id")
    )

    income: Mapped["Income"] = relationship("Income", back_populates="usages")

    __table_args__ = (
        CheckConstraint("used_cents >= 0", name="ck_income_usage_positive"),
        Index("ix_income_usage_user_income", "user_id", "income_id"),
    )


class MonthlyExpense(Base, TimestampMixin):
    __tablename__ = "monthly_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    planned_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[ExpenseStatus] = mapped_column(
        SAEnum(ExpenseStatus), default=ExpenseStatus.planned, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(500))
    source_income_id: Mapped[Optional[int]] = mapped_column(ForeignKey("incomes.id"))
    storage_deposit_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("deposits.id")
    )

    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        CheckConstraint("planned_amount_cents >= 0", name="ck_expense_planned"),
        CheckConstraint("actual_amount_cents >= 0", name="ck_expense_actual"),
        Index("ix_monthly_expenses_user_due", "user_id", "due_date"),
        Index("ix_monthly_expenses_user_status", "user_id", "status"),
    )

    @property
    def remaining_cents(self) -> int:
        return max(0, self.planned_amount_cents - (self.actual_amount_cents or 0))


class Deposit(Base, TimestampMixin):
    __tablename__ = "deposits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_number: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_balance_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_rate_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[DepositType] = mapped_column(SAEnum(DepositType), nullable=False)
    auto_renewal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[DepositStatus] = mapped_column(
        SAEnum(DepositStatus), default=DepositStatus.active, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(500))
    last_interest_accrued: Mapped[Optional[date]] = mapped_column(Date)

    transactions: Mapped[list["DepositTransaction"]] = relationship(
        "DepositTransaction",
        back_populates="deposit",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_deposit_amount"),
        CheckConstraint("current_balance_cents >= 0", name="ck_deposit_balance"),
        CheckConstraint(
            "interest_rate_bps >= 0 AND interest_rate_bps <= 10000",
            name="ck_deposit_rate_range",
        ),
        Index("ix_deposits_user_status", "user_id", "status"),
    )


class DepositTransaction(Base, TimestampMixin):
    __tablename__ = "deposit_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    deposit_id: Mapped[int] = mapped_column(ForeignKey("deposits.id"), nullable=False)
    type: Mapped[DepositTransactionType] = mapped_column(
        SAEnum(DepositTransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    income_id: Mapped[Optional[int]] = mapped_column(ForeignKey("incomes.id"))

    deposit: Mapped["Deposit"] = relationship("Deposit", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_deposit_txn_amount"),
        Index(
            "ix_deposit_txn_user_deposit_date",
            "user_id",
            "deposit_id",
            "transaction_date",
        ),
    )


class Credit(Base, TimestampMixin):
    __tablename__ = "credits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    bank_name: Mapped[Optional[str]] = mapped_column(String(200))
    type: Mapped[CreditType] = mapped_column(
        SAEnum(CreditType), default=CreditType.credit, nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_balance_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_rate_bps: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_old_credit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    initial_debt_cents: Mapped[Optional[int]] = mapped_column(Integer)
    monthly_payment_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_payment_day: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[CreditStatus] = mapped_column(
        SAEnum(CreditStatus), default=CreditStatus.active, nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(String(500))

    payments: Mapped[list["CreditPayment"]] = relationship(
        "CreditPayment", back_populates="credit", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_credit_amount"),
        CheckConstraint("current_balance_cents >= 0", name="ck_credit_balance"),
        CheckConstraint(
            "monthly_payment_day >= 1 AND monthly_payment_day <= 31",
            name="ck_credit_payment_day",
        ),
        Index("ix_credits_user_status", "user_id", "status"),
    )

    @property
    def total_interest_cents(self) -> int:
        months = months_between(self.start_date, self.end_date)
        if months == 0:
            return 0
        return max(0, self.monthly_payment_cents * months - self.amount_cents)

    @property
    def payment_progress(self) -> float:
        if self.amount_cents == 0:
            return 0.0
        paid = self.amount_cents - self.current_balance_cents
        return paid / self.amount_cents * 100

    def months_left(self, today: date) -> int:
        if self.end_date <= today:
            return 0
        return months_between(today, self.end_date)

    def next_payment_on(self, today: date) -> date:
        day = self.monthly_payment_day
        if today.day < day:
            target = today.replace(day=1)
        else:
            target = add_months(today.replace(day=1), 1)
        return target.replace(day=min(day, days_in_month(target.year, target.month)))


class CreditPayment(Base, TimestampMixin):
    __tablename__ = "credit_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    credit_id: Mapped[int] = mapped_column(ForeignKey("credits.id"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    principal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interest_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus), default=PaymentStatus.paid, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500))
    source_type: Mapped[PaymentSourceType] = mapped_column(
        SAEnum(PaymentSourceType), default=PaymentSourceType.cash, nullable=False
    )
    source_income_id: Mapped[Optional[int]] = mapped_column(ForeignKey("incomes.id"))
    source_deposit_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("deposits.id")
    )
    deposit_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("deposit_transactions.id")
    )
    # Shared usage of a bulk installment run. Not a foreign key: income_usages
    # already points back at credit_payments.
    income_usage_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)

    credit: Mapped["Credit"] = relationship("Credit", back_populates="payments")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_credit_payment_amount"),
        Index("ix_credit_payments_user_date", "user_id", "payment_date"),
    )


class RentProperty(Base, TimestampMixin):
    __tablename__ = "rent_properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    owner_name: Mapped[str] = mapped_column(String(200), nullable=False)
    rent_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    deposit_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[RentStatus] = mapped_column(
        SAEnum(RentStatus), default=RentStatus.active, nullable=False
    )
    utilities_type: Mapped[UtilitiesType] = mapped_column(
        SAEnum(UtilitiesType), default=UtilitiesType.variable, nullable=False
    )
    utilities_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    description: Mapped[Optional[str]] = mapped_column(Text)

    payments: Mapped[list["RentPayment"]] = relationship(
        "RentPayment", back_populates="property", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("rent_amount_cents >= 0", name="ck_rent_amount"),
        Index("ix_rent_properties_user_status", "user_id", "status"),
    )

    def monthly_total_cents(self) -> int:
        if self.utilities_type == UtilitiesType.fixed and self.utilities_amount_cents:
            return self.rent_amount_cents + self.utilities_amount_cents
        return self.rent_amount_cents


class RentPayment(Base, TimestampMixin):
    __tablename__ = "rent_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    property_id: Mapped[int] = mapped_column(
        ForeignKey("rent_properties.id"), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus), default=PaymentStatus.paid, nullable=False
    )
    payment_type: Mapped[RentPaymentType] = mapped_column(
        SAEnum(RentPaymentType), nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(String(500))
    source_type: Mapped[PaymentSourceType] = mapped_column(
        SAEnum(PaymentSourceType), default=PaymentSourceType.cash, nullable=False
    )
    source_income_id: Mapped[Optional[int]] = mapped_column(ForeignKey("incomes.id"))
    source_deposit_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("deposits.id")
    )
    deposit_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("deposit_transactions.id")
    )

    property: Mapped["RentProperty"] = relationship(
        "RentProperty", back_populates="payments"
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_rent_payment_amount"),
        Index("ix_rent_payments_user_date", "user_id", "payment_date"),
    )


class Debt(Base, TimestampMixin):
    __tablename__ = "debts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    type: Mapped[DebtType] = mapped_column(SAEnum(DebtType), nullable=False)
    person: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    current_balance_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    status: Mapped[DebtStatus] = mapped_column(
        SAEnum(DebtStatus), default=DebtStatus.active, nullable=False
    )

    payments: Mapped[list["DebtPayment"]] = relationship(
        "DebtPayment",
        back_populates="debt",
        cascade="all, delete-orphan",
        order_by="DebtPayment.payment_date",
    )

    __table_args__ = (
        CheckConstraint("current_balance_cents >= 0", name="ck_debt_balance"),
        CheckConstraint(
            "current_balance_cents <= amount_cents", name="ck_debt_balance_le_amount"
        ),
        Index("ix_debts_user_status", "user_id", "status"),
    )


class DebtPayment(Base, TimestampMixin):
    __tablename__ = "debt_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    debt_id: Mapped[int] = mapped_column(ForeignKey("debts.id"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))

    debt: Mapped["Debt"] = relationship("Debt", back_populates="payments")
