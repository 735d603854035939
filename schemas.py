import datetime as dt
from datetime import date
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import (
    CategoryType,
    CreditStatus,
    CreditType,
    DebtStatus,
    DebtType,
    DepositStatus,
    DepositTransactionType,
    DepositType,
    ExpenseStatus,
    PaymentSourceType,
    PaymentStatus,
    RentPaymentType,
    RentStatus,
    UsageType,
    UtilitiesType,
)


class LoginIn(BaseModel):
    access_key: str = Field(..., min_length=1)


class RefreshIn(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenPairOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: Optional[str] = Field(default=None, max_length=7)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    type: CategoryType
    color: Optional[str] = None
    archived_at: Optional[dt.datetime] = None


class PartialUpdate(BaseModel):
    """Base for PUT bodies: omitted fields are left alone.

    An explicit null only clears the fields named in `clearable`; for every
    other field it is rejected rather than written into a NOT NULL column.
    """

    clearable: ClassVar[frozenset] = frozenset()

    @model_validator(mode="after")
    def _reject_nulls(self) -> "PartialUpdate":
        for name in sorted(self.model_fields_set - self.clearable):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class PaymentSourceIn(BaseModel):
    """Where the money for a payment comes from."""

    model_config = ConfigDict(extra="forbid")

    type: PaymentSourceType = PaymentSourceType.cash
    income_id: Optional[int] = None
    deposit_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_reference(self) -> "PaymentSourceIn":
        if self.type == PaymentSourceType.income and self.income_id is None:
            raise ValueError("income_id is required for an income source")
        if self.type == PaymentSourceType.deposit and self.deposit_id is None:
            raise ValueError("deposit_id is required for a deposit source")
        return self


class IncomeIn(BaseModel):
    source: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)
    date: dt.date


class IncomeUpdate(PartialUpdate):
    clearable = frozenset({"category_id", "description"})

    source: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)
    date: Optional[dt.date] = None


class IncomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source: str
    amount_cents: int
    category_id: Optional[int]
    description: Optional[str]
    date: dt.date
    is_auto_created: bool
    recurring_income_id: Optional[int]
    occurrence_year: Optional[int]
    occurrence_month: Optional[int]


class AvailableIncomeOut(BaseModel):
    income: IncomeOut
    used_cents: int
    available_cents: int


class IncomeUsageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    income_id: int
    used_cents: int
    usage_type: UsageType
    description: Optional[str]
    usage_date: date


class RecurringIncomeIn(BaseModel):
    source: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)
    recurring_day: int = Field(..., ge=1, le=31)
    is_active: bool = True
    auto_create: bool = True
    start_date: date
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "RecurringIncomeIn":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class RecurringIncomeUpdate(PartialUpdate):
    clearable = frozenset({"category_id", "description", "end_date"})

    source: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)
    recurring_day: Optional[int] = Field(default=None, ge=1, le=31)
    is_active: Optional[bool] = None
    auto_create: Optional[bool] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class RecurringIncomeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source: str
    amount_cents: int
    category_id: Optional[int]
    description: Optional[str]
    recurring_day: int
    is_active: bool
    auto_create: bool
    start_date: date
    end_date: Optional[date]
    last_created_year: Optional[int]
    last_created_month: Optional[int]


class MonthlyExpenseIn(BaseModel):
    category_id: int
    name: str = Field(..., min_length=1, max_length=200)
    planned_amount_cents: int = Field(..., ge=0)
    actual_amount_cents: int = Field(default=0, ge=0)
    due_date: date
    is_recurring: bool = False
    status: ExpenseStatus = ExpenseStatus.planned
    description: Optional[str] = Field(default=None, max_length=500)
    source_income_id: Optional[int] = None
    storage_deposit_id: Optional[int] = None


class MonthlyExpenseUpdate(PartialUpdate):
    clearable = frozenset({"description", "source_income_id", "storage_deposit_id"})

    category_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    planned_amount_cents: Optional[int] = Field(default=None, ge=0)
    actual_amount_cents: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[date] = None
    is_recurring: Optional[bool] = None
    status: Optional[ExpenseStatus] = None
    description: Optional[str] = Field(default=None, max_length=500)
    source_income_id: Optional[int] = None
    storage_deposit_id: Optional[int] = None


class MonthlyExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_id: int
    name: str
    planned_amount_cents: int
    actual_amount_cents: int
    remaining_cents: int
    due_date: date
    is_recurring: bool
    status: ExpenseStatus
    description: Optional[str]
    source_income_id: Optional[int]
    storage_deposit_id: Optional[int]


class ExpensePaymentIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    payment_date: Optional[date] = None
    source: PaymentSourceIn = Field(default_factory=PaymentSourceIn)


class QuickExpenseIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    category: Optional[str] = Field(default=None, max_length=100)
    date: Optional[dt.date] = None
    source: PaymentSourceIn = Field(default_factory=PaymentSourceIn)


class MonthlyBudgetOut(BaseModel):
    year: int
    month: str
    total_planned_cents: int
    total_actual_cents: int
    progress_percent: float
    expenses: list[MonthlyExpenseOut]


class DepositIn(BaseModel):
    bank_name: str = Field(..., min_length=1, max_length=200)
    account_number: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., ge=0)
    current_balance_cents: Optional[int] = Field(default=None, ge=0)
    interest_rate_bps: int = Field(default=0, ge=0, le=10_000)
    start_date: date
    end_date: date
    type: DepositType
    auto_renewal: bool = False
    description: Optional[str] = Field(default=None, max_length=500)
    income_id: Optional[int] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "DepositIn":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class DepositUpdate(PartialUpdate):
    clearable = frozenset({"description"})

    bank_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    account_number: Optional[str] = Field(default=None, min_length=1, max_length=100)
    interest_rate_bps: Optional[int] = Field(default=None, ge=0, le=10_000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[DepositType] = None
    auto_renewal: Optional[bool] = None
    status: Optional[DepositStatus] = None
    description: Optional[str] = Field(default=None, max_length=500)


class DepositOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bank_name: str
    account_number: str
    amount_cents: int
    current_balance_cents: int
    interest_rate_bps: int
    start_date: date
    end_date: date
    type: DepositType
    auto_renewal: bool
    status: DepositStatus
    description: Optional[str]
    last_interest_accrued: Optional[date]


class DepositTransactionIn(BaseModel):
    deposit_id: int
    type: DepositTransactionType
    amount_cents: int = Field(..., gt=0)
    transaction_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)
    income_id: Optional[int] = None


class DepositTransactionUpdate(PartialUpdate):
    clearable = frozenset({"description"})

    type: Optional[DepositTransactionType] = None
    amount_cents: Optional[int] = Field(default=None, gt=0)
    transaction_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)


class DepositTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    deposit_id: int
    type: DepositTransactionType
    amount_cents: int
    transaction_date: date
    description: Optional[str]
    income_id: Optional[int]


class CreditIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    bank_name: Optional[str] = Field(default=None, max_length=200)
    type: CreditType = CreditType.credit
    amount_cents: int = Field(..., ge=0)
    interest_rate_bps: int = Field(default=0, ge=0, le=10_000)
    is_old_credit: bool = False
    initial_debt_cents: Optional[int] = Field(default=None, ge=0)
    monthly_payment_cents: int = Field(..., ge=0)
    monthly_payment_day: int = Field(..., ge=1, le=31)
    start_date: date
    end_date: date
    description: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _check_terms(self) -> "CreditIn":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if (
            self.initial_debt_cents is not None
            and self.initial_debt_cents > self.amount_cents
        ):
            raise ValueError("initial_debt_cents cannot exceed amount_cents")
        return self


class CreditUpdate(PartialUpdate):
    clearable = frozenset({"bank_name", "initial_debt_cents", "description"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    bank_name: Optional[str] = Field(default=None, max_length=200)
    type: Optional[CreditType] = None
    interest_rate_bps: Optional[int] = Field(default=None, ge=0, le=10_000)
    is_old_credit: Optional[bool] = None
    initial_debt_cents: Optional[int] = Field(default=None, ge=0)
    monthly_payment_cents: Optional[int] = Field(default=None, ge=0)
    monthly_payment_day: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[CreditStatus] = None
    description: Optional[str] = Field(default=None, max_length=500)


class CreditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    bank_name: Optional[str]
    type: CreditType
    amount_cents: int
    current_balance_cents: int
    interest_rate_bps: int
    is_old_credit: bool
    initial_debt_cents: Optional[int]
    monthly_payment_cents: int
    monthly_payment_day: int
    start_date: date
    end_date: date
    status: CreditStatus
    description: Optional[str]
    total_interest_cents: int
    payment_progress: float
    remaining_months: int = 0
    next_payment_date: Optional[date] = None

    @classmethod
    def from_credit(cls, credit: Any, today: date) -> "CreditOut":
        out = cls.model_validate(credit)
        out.remaining_months = credit.months_left(today)
        out.next_payment_date = credit.next_payment_on(today)
        return out


class CreditPaymentIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    principal_cents: Optional[int] = Field(default=None, ge=0)
    interest_cents: Optional[int] = Field(default=None, ge=0)
    payment_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    source: PaymentSourceIn = Field(default_factory=PaymentSourceIn)


class PayMonthlyIn(BaseModel):
    payment_date: Optional[date] = None
    source: PaymentSourceIn = Field(default_factory=PaymentSourceIn)


class CreditPaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    credit_id: int
    amount_cents: int
    principal_cents: int
    interest_cents: int
    payment_date: date
    status: PaymentStatus
    notes: Optional[str]
    source_type: PaymentSourceType
    source_income_id: Optional[int]
    source_deposit_id: Optional[int]


class RentPropertyIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=300)
    owner_name: str = Field(..., min_length=1, max_length=200)
    rent_amount_cents: int = Field(..., ge=0)
    deposit_cents: int = Field(default=0, ge=0)
    start_date: date
    end_date: Optional[date] = None
    status: RentStatus = RentStatus.active
    utilities_type: UtilitiesType = UtilitiesType.variable
    utilities_amount_cents: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "RentPropertyIn":
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class RentPropertyUpdate(PartialUpdate):
    clearable = frozenset({"end_date", "utilities_amount_cents", "description"})

    address: Optional[str] = Field(default=None, min_length=1, max_length=300)
    owner_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    rent_amount_cents: Optional[int] = Field(default=None, ge=0)
    deposit_cents: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[RentStatus] = None
    utilities_type: Optional[UtilitiesType] = None
    utilities_amount_cents: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None


class RentPropertyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    address: str
    owner_name: str
    rent_amount_cents: int
    deposit_cents: int
    start_date: date
    end_date: Optional[date]
    status: RentStatus
    utilities_type: UtilitiesType
    utilities_amount_cents: Optional[int]
    description: Optional[str]
    total_amount_cents: int = 0

    @classmethod
    def from_property(cls, prop: Any) -> "RentPropertyOut":
        out = cls.model_validate(prop)
        out.total_amount_cents = prop.monthly_total_cents()
        return out


class RentPaymentIn(BaseModel):
    property_id: int
    amount_cents: int = Field(..., gt=0)
    payment_date: date
    status: PaymentStatus = PaymentStatus.paid
    payment_type: RentPaymentType = RentPaymentType.rent
    notes: Optional[str] = Field(default=None, max_length=500)
    source: PaymentSourceIn = Field(default_factory=PaymentSourceIn)


class RentPaymentUpdate(PartialUpdate):
    clearable = frozenset({"notes"})

    payment_date: Optional[date] = None
    status: Optional[PaymentStatus] = None
    payment_type: Optional[RentPaymentType] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class RentPaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    property_id: int
    amount_cents: int
    payment_date: date
    status: PaymentStatus
    payment_type: RentPaymentType
    notes: Optional[str]
    source_type: PaymentSourceType
    source_income_id: Optional[int]
    source_deposit_id: Optional[int]


class DebtIn(BaseModel):
    type: DebtType
    person: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., gt=0)
    current_balance_cents: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=500)
    due_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_balance(self) -> "DebtIn":
        if (
            self.current_balance_cents is not None
            and self.current_balance_cents > self.amount_cents
        ):
            raise ValueError("current_balance_cents cannot exceed amount_cents")
        return self


class DebtUpdate(PartialUpdate):
    clearable = frozenset({"description", "due_date"})

    type: Optional[DebtType] = None
    person: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(default=None, gt=0)
    current_balance_cents: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=500)
    due_date: Optional[date] = None
    status: Optional[DebtStatus] = None


class DebtPaymentIn(BaseModel):
    amount_cents: int = Field(..., gt=0)
    payment_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)


class DebtPaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    debt_id: int
    amount_cents: int
    payment_date: date
    description: Optional[str]


class DebtOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: DebtType
    person: str
    amount_cents: int
    current_balance_cents: int
    description: Optional[str]
    due_date: Optional[date]
    status: DebtStatus
    payments: list[DebtPaymentOut] = Field(default_factory=list)
