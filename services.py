from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, joinedload

from rapidfuzz.distance import Levenshtein

from budgets import (
    MonthlyBudget,
    current_budget,
    future_budgets,
    group_expenses_by_month,
    monthly_stats,
    sort_budgets,
)
from models import (
    Category,
    CategoryType,
    Credit,
    CreditPayment,
    CreditStatus,
    Debt,
    DebtPayment,
    DebtStatus,
    DebtType,
    Deposit,
    DepositStatus,
    DepositTransaction,
    DepositTransactionType,
    DepositType,
    ExpenseStatus,
    Income,
    IncomeUsage,
    MonthlyExpense,
    PaymentSourceType,
    PaymentStatus,
    RecurringIncome,
    RentPayment,
    RentPaymentType,
    RentProperty,
    RentStatus,
    UsageType,
)
from periods import add_months, add_years, month_bounds, month_key
from recurrence import ReconcileResult, RecurringIncomeEngine, local_today
from schemas import (
    CategoryIn,
    CreditIn,
    CreditPaymentIn,
    CreditUpdate,
    DebtIn,
    DebtPaymentIn,
    DebtUpdate,
    DepositIn,
    DepositTransactionIn,
    DepositTransactionUpdate,
    DepositUpdate,
    IncomeIn,
    IncomeUpdate,
    MonthlyExpenseIn,
    MonthlyExpenseUpdate,
    PaymentSourceIn,
    QuickExpenseIn,
    RecurringIncomeIn,
    RecurringIncomeUpdate,
    RentPaymentIn,
    RentPaymentUpdate,
    RentPropertyIn,
    RentPropertyUpdate,
)


logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    pass


class InsufficientFundsError(ValueError):
    pass


class CategoryAmbiguous(ValueError):
    pass


def get_current_user_id() -> int:
    return 1


def monthly_interest_cents(balance_cents: int, rate_bps: int) -> int:
    """One month of simple interest: balance * rate / 12, rounded half up."""
    interest = Decimal(balance_cents) * Decimal(rate_bps) / Decimal(120_000)
    return int(interest.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _apply(target: object, values: dict) -> None:
    for field, value in values.items():
        setattr(target, field, value)


@dataclass(frozen=True)
class PaymentSource:
    type: PaymentSourceType = PaymentSourceType.cash
    income_id: Optional[int] = None
    deposit_id: Optional[int] = None

    @classmethod
    def cash(cls) -> "PaymentSource":
        return cls()

    @classmethod
    def from_input(cls, data: Optional[PaymentSourceIn]) -> "PaymentSource":
        if data is None:
            return cls()
        return cls(type=data.type, income_id=data.income_id, deposit_id=data.deposit_id)


@dataclass
class SourceDebit:
    source: PaymentSource
    amount_cents: int
    usage: Optional[IncomeUsage] = None
    transaction: Optional[DepositTransaction] = None


class PaymentSourceLedger:
    """Debits the income or deposit that funds a payment.

    Nothing is committed here; the caller commits the debit together with the
    payment row so both persist or neither does. The source row is re-read
    under a row lock and validated before anything is written.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def lock_income(self, income_id: int) -> Income:
        income = self.session.scalar(
            select(Income)
            .where(Income.id == income_id, Income.user_id == self.user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not income:
            raise NotFoundError("Income not found")
        return income

    def lock_deposit(self, deposit_id: int) -> Deposit:
        deposit = self.session.scalar(
            select(Deposit)
            .where(Deposit.id == deposit_id, Deposit.user_id == self.user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if not deposit:
            raise NotFoundError("Deposit not found")
        return deposit

    def used_cents(self, income_id: int) -> int:
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(IncomeUsage.used_cents), 0)).where(
                    IncomeUsage.income_id == income_id,
                    IncomeUsage.user_id == self.user_id,
                )
            ).scalar_one()
            or 0
        )

    def available_cents(self, income: Income) -> int:
        return max(0, income.amount_cents - self.used_cents(income.id))

    def ensure_income_covers(self, income_id: int, amount_cents: int) -> Income:
        income = self.lock_income(income_id)
        available = self.available_cents(income)
        if amount_cents > available:
            raise InsufficientFundsError(
                f"Insufficient funds in income: available {available}, "
                f"requested {amount_cents}"
            )
        return income

    def ensure_deposit_covers(self, deposit_id: int, amount_cents: int) -> Deposit:
        deposit = self.lock_deposit(deposit_id)
        if deposit.status == DepositStatus.closed:
            raise ValueError("Deposit is closed")
        if amount_cents > deposit.current_balance_cents:
            raise InsufficientFundsError(
                f"Insufficient funds in deposit: balance "
                f"{deposit.current_balance_cents}, requested {amount_cents}"
            )
        return deposit

    def debit(
        self,
        source: PaymentSource,
        amount_cents: int,
        *,
        usage_type: UsageType,
        description: Optional[str],
        on_date: date,
    ) -> SourceDebit:
        if amount_cents <= 0:
            raise ValueError("Amount must be positive")
        debit = SourceDebit(source=source, amount_cents=amount_cents)
        if source.type == PaymentSourceType.cash:
            return debit

        if source.type == PaymentSourceType.income:
            if source.income_id is None:
                raise ValueError("Income source requires income_id")
            income = self.ensure_income_covers(source.income_id, amount_cents)
            usage = IncomeUsage(
                user_id=self.user_id,
                income_id=income.id,
                used_cents=amount_cents,
                usage_type=usage_type,
                description=description,
                usage_date=on_date,
            )
            self.session.add(usage)
            debit.usage = usage
        elif source.type == PaymentSourceType.deposit:
            if source.deposit_id is None:
                raise ValueError("Deposit source requires deposit_id")
            deposit = self.ensure_deposit_covers(source.deposit_id, amount_cents)
            txn = DepositTransaction(
                user_id=self.user_id,
                deposit_id=deposit.id,
                type=DepositTransactionType.withdrawal,
                amount_cents=amount_cents,
                transaction_date=on_date,
                description=description,
            )
            deposit.current_balance_cents -= amount_cents
            self.session.add(txn)
            debit.transaction = txn
        self.session.flush()
        logger.info(
            f"source_debited: type={source.type.value} income_id={source.income_id} "
            f"deposit_id={source.deposit_id} amount_cents={amount_cents}"
        )
        return debit

    def release_transaction(self, transaction_id: int) -> None:
        """Undo a withdrawal made for a payment that is being removed."""
        txn = self.session.get(DepositTransaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            return
        deposit = self.lock_deposit(txn.deposit_id)
        if txn.type == DepositTransactionType.withdrawal:
            deposit.current_balance_cents += txn.amount_cents
        self.session.execute(
            update(IncomeUsage)
            .where(IncomeUsage.deposit_transaction_id == txn.id)
            .values(deposit_transaction_id=None)
        )
        self.session.delete(txn)

    def available_incomes(self) -> list[dict]:
        """Most recent income per category that still has money left."""
        incomes = self.session.scalars(
            select(Income)
            .where(Income.user_id == self.user_id)
            .order_by(Income.date.desc(), Income.id.desc())
        ).all()
        latest: dict[Optional[int], Income] = {}
        for income in incomes:
            latest.setdefault(income.category_id, income)
        result = []
        for income in latest.values():
            used = self.used_cents(income.id)
            available = max(0, income.amount_cents - used)
            if available > 0:
                result.append(
                    {"income": income, "used_cents": used, "available_cents": available}
                )
        result.sort(key=lambda item: item["income"].date, reverse=True)
        return result


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(
        self, type: Optional[CategoryType] = None, include_archived: bool = False
    ) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if type is not None:
            stmt = stmt.where(Category.type == type)
        if not include_archived:
            stmt = stmt.where(Category.archived_at.is_(None))
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def require(self, category_id: int, type: CategoryType) -> Category:
        category = self.get(category_id)
        if category.type != type:
            raise ValueError("Category type mismatch")
        return category

    def create(self, data: CategoryIn, commit: bool = True) -> Category:
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == data.type,
                func.lower(Category.name) == data.name.strip().lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
        )
        self.session.add(category)
        if commit:
            self.session.commit()
            self.session.refresh(category)
        else:
            self.session.flush()
        return category

    def archive(self, category_id: int) -> None:
        category = self.get(category_id)
        category.archived_at = datetime.utcnow()
        self.session.commit()

    def restore(self, category_id: int, commit: bool = True) -> None:
        category = self.get(category_id)
        category.archived_at = None
        if commit:
            self.session.commit()

    def resolve_expense_category(
        self, name: Optional[str], commit: bool = True
    ) -> Category:
        """Find an expense category by a loosely typed name, creating it if new.

        Exact case-insensitive match wins; otherwise the closest name within
        one edit is used, and a tie between several is an error. With
        `commit=False` a created or restored category is only flushed, so the
        caller's rollback discards it.
        """
        raw = (name or "").strip() or "Uncategorized"
        lowered = raw.lower()
        exact = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == CategoryType.expense,
                func.lower(Category.name) == lowered,
            )
        )
        if exact:
            if exact.archived_at is not None:
                self.restore(exact.id, commit=commit)
            return exact

        candidates = self.list_all(type=CategoryType.expense)
        best_distance: Optional[int] = None
        best: list[Category] = []
        for category in candidates:
            dist = int(Levenshtein.distance(lowered, category.name.strip().lower()))
            if best_distance is None or dist < best_distance:
                best_distance = dist
                best = [category]
            elif dist == best_distance:
                best.append(category)

        if best_distance is not None and best_distance <= 1:
            if len(best) > 1:
                options = ", ".join(sorted({c.name for c in best}))
                raise CategoryAmbiguous(
                    f"Category '{raw}' is ambiguous; matches: {options}"
                )
            return best[0]
        return self.create(CategoryIn(name=raw, type=CategoryType.expense), commit=commit)


class IncomeService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None:
            CategoryService(self.session, self.user_id).require(
                category_id, CategoryType.income
            )

    def list(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        category_id: Optional[int] = None,
    ) -> list[Income]:
        stmt = select(Income).where(Income.user_id == self.user_id)
        if start:
            stmt = stmt.where(Income.date >= start)
        if end:
            stmt = stmt.where(Income.date <= end)
        if category_id is not None:
            stmt = stmt.where(Income.category_id == category_id)
        stmt = stmt.order_by(Income.date.desc(), Income.id.desc())
        return self.session.scalars(stmt).all()

    def get(self, income_id: int) -> Income:
        income = self.session.get(Income, income_id)
        if not income or income.user_id != self.user_id:
            raise NotFoundError("Income not found")
        return income

    def create(self, data: IncomeIn) -> Income:
        self._check_category(data.category_id)
        income = Income(
            user_id=self.user_id,
            source=data.source.strip(),
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            description=data.description,
            date=data.date,
        )
        self.session.add(income)
        self.session.commit()
        self.session.refresh(income)
        return income

    def update(self, income_id: int, data: IncomeUpdate) -> Income:
        income = self.get(income_id)
        values = data.model_dump(exclude_unset=True)
        if "category_id" in values:
            self._check_category(values["category_id"])
        if "amount_cents" in values:
            used = PaymentSourceLedger(self.session, self.user_id).used_cents(income.id)
            if values["amount_cents"] < used:
                raise ValueError("Income amount cannot be less than the amount used")
        _apply(income, values)
        self.session.commit()
        self.session.refresh(income)
        return income

    def delete(self, income_id: int) -> None:
        income = self.get(income_id)
        has_usage = self.session.scalar(
            select(IncomeUsage.id).where(IncomeUsage.income_id == income.id).limit(1)
        )
        if has_usage:
            raise ValueError("Income is used as a payment source and cannot be deleted")
        self.session.delete(income)
        self.session.commit()

    def usages(self, income_id: int) -> list[IncomeUsage]:
        income = self.get(income_id)
        return self.session.scalars(
            select(IncomeUsage)
            .where(IncomeUsage.income_id == income.id)
            .order_by(IncomeUsage.usage_date.desc(), IncomeUsage.id.desc())
        ).all()

    def stats(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or local_today()
        incomes = self.list()
        by_category: dict[str, int] = {}
        by_month: dict[str, int] = {}
        for income in incomes:
            name = income.category.name if income.category else "Uncategorized"
            by_category[name] = by_category.get(name, 0) + income.amount_cents
            key = month_key(income.date)
            by_month[key] = by_month.get(key, 0) + income.amount_cents
        current = by_month.get(month_key(today), 0)
        return {
            "total_cents": sum(i.amount_cents for i in incomes),
            "count": len(incomes),
            "current_month_cents": current,
            "by_category": [
                {"category": name, "amount_cents": amount}
                for name, amount in sorted(
                    by_category.items(), key=lambda item: item[1], reverse=True
                )
            ],
            "by_month": [
                {"month": key, "amount_cents": by_month[key]} for key in sorted(by_month)
            ],
        }


class RecurringIncomeService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_category(self, category_id: Optional[int]) -> None:
        if category_id is not None:
            CategoryService(self.session, self.user_id).require(
                category_id, CategoryType.income
            )

    def list(self, active_only: bool = False) -> list[RecurringIncome]:
        stmt = select(RecurringIncome).where(RecurringIncome.user_id == self.user_id)
        if active_only:
            stmt = stmt.where(RecurringIncome.is_active.is_(True))
        stmt = stmt.order_by(RecurringIncome.recurring_day, RecurringIncome.id)
        return self.session.scalars(stmt).all()

    def get(self, template_id: int) -> RecurringIncome:
        template = self.session.get(RecurringIncome, template_id)
        if not template or template.user_id != self.user_id:
            raise NotFoundError("Recurring income not found")
        return template

    def create(self, data: RecurringIncomeIn) -> RecurringIncome:
        self._check_category(data.category_id)
        template = RecurringIncome(
            user_id=self.user_id,
            source=data.source.strip(),
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            description=data.description,
            recurring_day=data.recurring_day,
            is_active=data.is_active,
            auto_create=data.auto_create,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        self.session.add(template)
        self.session.commit()
        self.session.refresh(template)
        return template

    def update(self, template_id: int, data: RecurringIncomeUpdate) -> RecurringIncome:
        template = self.get(template_id)
        values = data.model_dump(exclude_unset=True)
        if "category_id" in values:
            self._check_category(values["category_id"])
        start = values.get("start_date", template.start_date)
        end = values.get("end_date", template.end_date)
        if end is not None and end < start:
            raise ValueError("end_date must not be before start_date")
        _apply(template, values)
        self.session.commit()
        self.session.refresh(template)
        return template

    def delete(self, template_id: int) -> None:
        template = self.get(template_id)
        # generated incomes stay in the ledger
        self.session.execute(
            update(Income)
            .where(Income.recurring_income_id == template.id)
            .values(recurring_income_id=None)
        )
        self.session.delete(template)
        self.session.commit()

    def toggle(self, template_id: int) -> RecurringIncome:
        template = self.get(template_id)
        template.is_active = not template.is_active
        self.session.commit()
        self.session.refresh(template)
        return template

    def process(self, today: Optional[date] = None) -> ReconcileResult:
        engine = RecurringIncomeEngine(self.session)
        try:
            result = engine.reconcile_user(self.user_id, today)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"recurring_income_processed: user_id={self.user_id} "
            f"created={len(result.created)} skipped={result.skipped}"
        )
        return result

    def history(self, template_id: int) -> list[Income]:
        template = self.get(template_id)
        return self.session.scalars(
            select(Income)
            .where(Income.recurring_income_id == template.id)
            .order_by(Income.date.desc(), Income.id.desc())
        ).all()


class MonthlyExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _check_category(self, category_id: int) -> None:
        CategoryService(self.session, self.user_id).require(
            category_id, CategoryType.expense
        )

    def list(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        category_id: Optional[int] = None,
        status: Optional[ExpenseStatus] = None,
    ) -> list[MonthlyExpense]:
        stmt = select(MonthlyExpense).where(MonthlyExpense.user_id == self.user_id)
        if start:
            stmt = stmt.where(MonthlyExpense.due_date >= start)
        if end:
            stmt = stmt.where(MonthlyExpense.due_date <= end)
        if category_id is not None:
            stmt = stmt.where(MonthlyExpense.category_id == category_id)
        if status is not None:
            stmt = stmt.where(MonthlyExpense.status == status)
        stmt = stmt.order_by(MonthlyExpense.due_date.desc(), MonthlyExpense.id.desc())
        return self.session.scalars(stmt).all()

    def get(self, expense_id: int) -> MonthlyExpense:
        expense = self.session.get(MonthlyExpense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        return expense

    def create(self, data: MonthlyExpenseIn) -> MonthlyExpense:
        self._check_category(data.category_id)
        expense = MonthlyExpense(
            user_id=self.user_id,
            category_id=data.category_id,
            name=data.name.strip(),
            planned_amount_cents=data.planned_amount_cents,
            actual_amount_cents=data.actual_amount_cents,
            due_date=data.due_date,
            is_recurring=data.is_recurring,
            status=data.status,
            description=data.description,
            source_income_id=data.source_income_id,
            storage_deposit_id=data.storage_deposit_id,
        )
        self._settle_status(expense)
        self.session.add(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def update(self, expense_id: int, data: MonthlyExpenseUpdate) -> MonthlyExpense:
        expense = self.get(expense_id)
        values = data.model_dump(exclude_unset=True)
        if "category_id" in values and values["category_id"] != expense.category_id:
            self._check_category(values["category_id"])
        _apply(expense, values)
        if "actual_amount_cents" in values or "planned_amount_cents" in values:
            self._settle_status(expense)
        self.session.commit()
        self.session.refresh(expense)
        return expense

    def delete(self, expense_id: int) -> None:
        expense = self.get(expense_id)
        for usage in self.session.scalars(
            select(IncomeUsage).where(IncomeUsage.monthly_expense_id == expense.id)
        ).all():
            self.session.delete(usage)
        self.session.delete(expense)
        self.session.commit()

    @staticmethod
    def _settle_status(expense: MonthlyExpense) -> None:
        actual = expense.actual_amount_cents or 0
        if actual > 0 and actual >= expense.planned_amount_cents:
            expense.status = ExpenseStatus.paid

    def _apply_payment(
        self,
        expense: MonthlyExpense,
        amount_cents: int,
        source: PaymentSource,
        on_date: date,
    ) -> None:
        ledger = PaymentSourceLedger(self.session, self.user_id)
        debit = ledger.debit(
            source,
            amount_cents,
            usage_type=UsageType.expense,
            description=f"Payment for {expense.name}",
            on_date=on_date,
        )
        if debit.usage is not None:
            debit.usage.monthly_expense_id = expense.id
            expense.source_income_id = source.income_id
        if debit.transaction is not None:
            expense.storage_deposit_id = source.deposit_id
        expense.actual_amount_cents = (expense.actual_amount_cents or 0) + amount_cents
        self._settle_status(expense)

    def record_payment(
        self,
        expense_id: int,
        amount_cents: int,
        source: Optional[PaymentSource] = None,
        on_date: Optional[date] = None,
    ) -> MonthlyExpense:
        if amount_cents <= 0:
            raise ValueError("Payment amount must be positive")
        expense = self.get(expense_id)
        try:
            self._apply_payment(
                expense,
                amount_cents,
                source or PaymentSource.cash(),
                on_date or local_today(),
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(expense)
        logger.info(
            f"expense_payment_recorded: expense_id={expense.id} "
            f"amount_cents={amount_cents} status={expense.status.value}"
        )
        return expense

    def quick_add(
        self, data: QuickExpenseIn, today: Optional[date] = None
    ) -> MonthlyExpense:
        on_date = data.date or today or local_today()
        try:
            category = CategoryService(
                self.session, self.user_id
            ).resolve_expense_category(data.category, commit=False)
            expense = MonthlyExpense(
                user_id=self.user_id,
                category_id=category.id,
                name=data.name.strip(),
                planned_amount_cents=data.amount_cents,
                actual_amount_cents=0,
                due_date=on_date,
                status=ExpenseStatus.planned,
            )
            self.session.add(expense)
            self.session.flush()
            self._apply_payment(
                expense, data.amount_cents, PaymentSource.from_input(data.source), on_date
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(expense)
        return expense

    def budgets(self, today: Optional[date] = None) -> list[MonthlyBudget]:
        today = today or local_today()
        return sort_budgets(group_expenses_by_month(self.list(), today), descending=True)

    def future_budgets(self, today: Optional[date] = None) -> list[MonthlyBudget]:
        today = today or local_today()
        start, _ = month_bounds(today.year, today.month)
        expenses = self.list(start=start)
        return future_budgets(group_expenses_by_month(expenses, today), today)

    def current_budget(self, today: Optional[date] = None) -> MonthlyBudget:
        today = today or local_today()
        start, end = month_bounds(today.year, today.month)
        budgets = group_expenses_by_month(self.list(start=start, end=end), today)
        return current_budget(budgets, today)

    def stats_by_month(
        self, months: int = 6, today: Optional[date] = None
    ) -> list[dict]:
        today = today or local_today()
        expenses = self.list(start=add_months(today, -months))
        return monthly_stats(expenses, today, months)

    def overdue(self, today: Optional[date] = None) -> list[MonthlyExpense]:
        today = today or local_today()
        stmt = (
            select(MonthlyExpense)
            .where(
                MonthlyExpense.user_id == self.user_id,
                MonthlyExpense.status == ExpenseStatus.planned,
                MonthlyExpense.due_date < today,
            )
            .order_by(MonthlyExpense.due_date)
        )
        return self.session.scalars(stmt).all()

    def mark_overdue(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        result = self.session.execute(
            update(MonthlyExpense)
            .where(
                MonthlyExpense.user_id == self.user_id,
                MonthlyExpense.status == ExpenseStatus.planned,
                MonthlyExpense.due_date < today,
            )
            .values(status=ExpenseStatus.overdue)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        self.session.expire_all()
        return int(result.rowcount or 0)


class DepositService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list(
        self,
        status: Optional[DepositStatus] = None,
        type: Optional[DepositType] = None,
    ) -> list[Deposit]:
        stmt = select(Deposit).where(Deposit.user_id == self.user_id)
        if status is not None:
            stmt = stmt.where(Deposit.status == status)
        if type is not None:
            stmt = stmt.where(Deposit.type == type)
        stmt = stmt.order_by(Deposit.created_at.desc(), Deposit.id.desc())
        return self.session.scalars(stmt).all()

    def get(self, deposit_id: int) -> Deposit:
        deposit = self.session.get(Deposit, deposit_id)
        if not deposit or deposit.user_id != self.user_id:
            raise NotFoundError("Deposit not found")
        return deposit

    def create(self, data: DepositIn, today: Optional[date] = None) -> Deposit:
        today = today or local_today()
        ledger = PaymentSourceLedger(self.session, self.user_id)
        if data.income_id is not None:
            ledger.ensure_income_covers(data.income_id, data.amount_cents)
        balance = (
            data.current_balance_cents
            if data.current_balance_cents is not None
            else data.amount_cents
        )
        deposit = Deposit(
            user_id=self.user_id,
            bank_name=data.bank_name.strip(),
            account_number=data.account_number.strip(),
            amount_cents=data.amount_cents,
            current_balance_cents=balance,
            interest_rate_bps=data.interest_rate_bps,
            start_date=data.start_date,
            end_date=data.end_date,
            type=data.type,
            auto_renewal=data.auto_renewal,
            status=DepositStatus.active,
            description=data.description,
            last_interest_accrued=max(data.start_date, today),
        )
        try:
            self.session.add(deposit)
            self.session.flush()
            if data.income_id is not None and data.amount_cents > 0:
                txn = DepositTransaction(
                    user_id=self.user_id,
                    deposit_id=deposit.id,
                    type=DepositTransactionType.deposit,
                    amount_cents=data.amount_cents,
                    transaction_date=data.start_date,
                    description="Initial funding",
                    income_id=data.income_id,
                )
                self.session.add(txn)
                self.session.flush()
                self.session.add(
                    IncomeUsage(
                        user_id=self.user_id,
                        income_id=data.income_id,
                        used_cents=data.amount_cents,
                        usage_type=UsageType.deposit,
                        deposit_transaction_id=txn.id,
                        description=f"Deposit {deposit.account_number}",
                        usage_date=data.start_date,
                    )
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(deposit)
        return deposit

    def update(self, deposit_id: int, data: DepositUpdate) -> Deposit:
        deposit = self.get(deposit_id)
        values = data.model_dump(exclude_unset=True)
        start = values.get("start_date", deposit.start_date)
        end = values.get("end_date", deposit.end_date)
        if end <= start:
            raise ValueError("end_date must be after start_date")
        _apply(deposit, values)
        self.session.commit()
        self.session.refresh(deposit)
        return deposit

    def delete(self, deposit_id: int) -> None:
        deposit = self.get(deposit_id)
        txn_ids = [t.id for t in deposit.transactions]
        if txn_ids:
            for usage in self.session.scalars(
                select(IncomeUsage).where(IncomeUsage.deposit_transaction_id.in_(txn_ids))
            ).all():
                self.session.delete(usage)
            for model in (CreditPayment, RentPayment):
                self.session.execute(
                    update(model)
                    .where(model.deposit_transaction_id.in_(txn_ids))
                    .values(deposit_transaction_id=None)
                )
        for model in (CreditPayment, RentPayment):
            self.session.execute(
                update(model)
                .where(model.source_deposit_id == deposit.id)
                .values(source_deposit_id=None)
            )
        self.session.execute(
            update(MonthlyExpense)
            .where(MonthlyExpense.storage_deposit_id == deposit.id)
            .values(storage_deposit_id=None)
        )
        self.session.delete(deposit)
        self.session.commit()

    def close(self, deposit_id: int) -> Deposit:
        deposit = self.get(deposit_id)
        deposit.status = DepositStatus.closed
        self.session.commit()
        self.session.refresh(deposit)
        return deposit

    def renew(self, deposit_id: int) -> Deposit:
        deposit = self.get(deposit_id)
        if deposit.status == DepositStatus.closed:
            raise ValueError("Closed deposits cannot be renewed")
        deposit.end_date = add_years(deposit.end_date, 1)
        deposit.status = DepositStatus.active
        self.session.commit()
        self.session.refresh(deposit)
        return deposit

    # transactions

    def transactions(
        self,
        deposit_id: Optional[int] = None,
        type: Optional[DepositTransactionType] = None,
    ) -> list[DepositTransaction]:
        stmt = select(DepositTransaction).where(
            DepositTransaction.user_id == self.user_id
        )
        if deposit_id is not None:
            stmt = stmt.where(DepositTransaction.deposit_id == deposit_id)
        if type is not None:
            stmt = stmt.where(DepositTransaction.type == type)
        stmt = stmt.order_by(
            DepositTransaction.transaction_date.desc(), DepositTransaction.id.desc()
        )
        return self.session.scalars(stmt).all()

    def get_transaction(self, transaction_id: int) -> DepositTransaction:
        txn = self.session.get(DepositTransaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFoundError("Transaction not found")
        return txn

    @staticmethod
    def _effect(type: DepositTransactionType, amount_cents: int) -> int:
        if type == DepositTransactionType.withdrawal:
            return -amount_cents
        return amount_cents

    def create_transaction(
        self, data: DepositTransactionIn, today: Optional[date] = None
    ) -> DepositTransaction:
        on_date = data.transaction_date or today or local_today()
        ledger = PaymentSourceLedger(self.session, self.user_id)
        deposit = ledger.lock_deposit(data.deposit_id)
        if deposit.status == DepositStatus.closed:
            raise ValueError("Deposit is closed")
        new_balance = deposit.current_balance_cents + self._effect(
            data.type, data.amount_cents
        )
        if new_balance < 0:
            raise InsufficientFundsError("Insufficient funds in deposit")
        funding_income_id = (
            data.income_id if data.type == DepositTransactionType.deposit else None
        )
        if funding_income_id is not None:
            ledger.ensure_income_covers(funding_income_id, data.amount_cents)
        try:
            txn = DepositTransaction(
                user_id=self.user_id,
                deposit_id=deposit.id,
                type=data.type,
                amount_cents=data.amount_cents,
                transaction_date=on_date,
                description=data.description,
                income_id=funding_income_id,
            )
            self.session.add(txn)
            self.session.flush()
            if funding_income_id is not None:
                self.session.add(
                    IncomeUsage(
                        user_id=self.user_id,
                        income_id=funding_income_id,
                        used_cents=data.amount_cents,
                        usage_type=UsageType.deposit,
                        deposit_transaction_id=txn.id,
                        description=f"Top-up {deposit.account_number}",
                        usage_date=on_date,
                    )
                )
            deposit.current_balance_cents = new_balance
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(txn)
        return txn

    def update_transaction(
        self, transaction_id: int, data: DepositTransactionUpdate
    ) -> DepositTransaction:
        txn = self.get_transaction(transaction_id)
        ledger = PaymentSourceLedger(self.session, self.user_id)
        deposit = ledger.lock_deposit(txn.deposit_id)
        values = data.model_dump(exclude_unset=True)
        new_type = values.get("type", txn.type)
        new_amount = values.get("amount_cents", txn.amount_cents)

        base = deposit.current_balance_cents - self._effect(txn.type, txn.amount_cents)
        new_balance = base + self._effect(new_type, new_amount)
        if new_balance < 0:
            raise InsufficientFundsError("Insufficient funds in deposit")

        usages = self.session.scalars(
            select(IncomeUsage).where(IncomeUsage.deposit_transaction_id == txn.id)
        ).all()
        keep_income = (
            txn.income_id if new_type == DepositTransactionType.deposit else None
        )
        if keep_income is not None:
            income = ledger.lock_income(keep_income)
            already = sum(u.used_cents for u in usages)
            available = ledger.available_cents(income) + already
            if new_amount > available:
                raise InsufficientFundsError(
                    f"Insufficient funds in income: available {available}, "
                    f"requested {new_amount}"
                )
        try:
            for usage in usages:
                self.session.delete(usage)
            _apply(txn, values)
            txn.income_id = keep_income
            deposit.current_balance_cents = new_balance
            self.session.flush()
            if keep_income is not None:
                self.session.add(
                    IncomeUsage(
                        user_id=self.user_id,
                        income_id=keep_income,
                        used_cents=new_amount,
                        usage_type=UsageType.deposit,
                        deposit_transaction_id=txn.id,
                        description=f"Top-up {deposit.account_number}",
                        usage_date=txn.transaction_date,
                    )
                )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(txn)
        return txn

    def delete_transaction(self, transaction_id: int) -> None:
        txn = self.get_transaction(transaction_id)
        ledger = PaymentSourceLedger(self.session, self.user_id)
        deposit = ledger.lock_deposit(txn.deposit_id)
        new_balance = deposit.current_balance_cents - self._effect(
            txn.type, txn.amount_cents
        )
        if new_balance < 0:
            raise ValueError("Removing this transaction would make the balance negative")
        try:
            for usage in self.session.scalars(
                select(IncomeUsage).where(IncomeUsage.deposit_transaction_id == txn.id)
            ).all():
                self.session.delete(usage)
            for model in (CreditPayment, RentPayment):
                self.session.execute(
                    update(model)
                    .where(model.deposit_transaction_id == txn.id)
                    .values(deposit_transaction_id=None)
                )
            deposit.current_balance_cents = new_balance
            self.session.delete(txn)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    # housekeeping

    def accrue_interest(self, today: Optional[date] = None) -> int:
        """Post monthly interest on the first of every month not yet accrued."""
        today = today or local_today()
        deposits = self.list(status=DepositStatus.active)
        posted = 0
        for deposit in deposits:
            if deposit.interest_rate_bps <= 0 or deposit.last_interest_accrued is None:
                continue
            next_accrual = add_months(deposit.last_interest_accrued.replace(day=1), 1)
            while next_accrual <= today and next_accrual <= deposit.end_date:
                interest = monthly_interest_cents(
                    deposit.current_balance_cents, deposit.interest_rate_bps
                )
                if interest <= 0:
                    break
                self.session.add(
                    DepositTransaction(
                        user_id=deposit.user_id,
                        deposit_id=deposit.id,
                        type=DepositTransactionType.interest,
                        amount_cents=interest,
                        transaction_date=next_accrual,
                        description="Monthly interest",
                    )
                )
                deposit.current_balance_cents += interest
                deposit.last_interest_accrued = next_accrual
                posted += 1
                next_accrual = add_months(next_accrual, 1)
        self.session.commit()
        if posted:
            logger.info(
                f"deposit_interest_accrued: user_id={self.user_id} posted={posted}"
            )
        return posted

    def process_maturity(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        changed = 0
        for deposit in self.list(status=DepositStatus.active):
            if deposit.end_date > today:
                continue
            if deposit.auto_renewal:
                while deposit.end_date <= today:
                    deposit.end_date = add_years(deposit.end_date, 1)
            else:
                deposit.status = DepositStatus.matured
            changed += 1
        self.session.commit()
        return changed

    def refresh(self, today: Optional[date] = None) -> None:
        today = today or local_today()
        self.accrue_interest(today)
        self.process_maturity(today)

    def statistics(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        today: Optional[date] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        deposits = self.list()
        active = [d for d in deposits if d.status == DepositStatus.active]
        stmt = select(func.coalesce(func.sum(DepositTransaction.amount_cents), 0)).where(
            DepositTransaction.user_id == self.user_id,
            DepositTransaction.type == DepositTransactionType.interest,
        )
        if start:
            stmt = stmt.where(DepositTransaction.transaction_date >= start)
        if end:
            stmt = stmt.where(DepositTransaction.transaction_date <= end)
        interest = int(self.session.execute(stmt).scalar_one() or 0)
        return {
            "total_balance_cents": sum(d.current_balance_cents for d in active),
            "total_interest_earned_cents": interest,
            "active_deposits_count": len(active),
            "matured_deposits_count": sum(
                1
                for d in deposits
                if d.status == DepositStatus.matured
                or (d.status == DepositStatus.active and d.end_date <= today)
            ),
        }

    def available_incomes(self) -> list[dict]:
        return PaymentSourceLedger(self.session, self.user_id).available_incomes()


class CreditService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list(self, status: Optional[CreditStatus] = None) -> list[Credit]:
        stmt = select(Credit).where(Credit.user_id == self.user_id)
        if status is not None:
            stmt = stmt.where(Credit.status == status)
        stmt = stmt.order_by(Credit.created_at.desc(), Credit.id.desc())
        return self.session.scalars(stmt).all()

    def get(self, credit_id: int) -> Credit:
        credit = self.session.get(Credit, credit_id)
        if not credit or credit.user_id != self.user_id:
            raise NotFoundError("Credit not found")
        return credit

    @staticmethod
    def _settle_status(credit: Credit, today: date) -> None:
        if credit.current_balance_cents == 0 and credit.status in (
            CreditStatus.active,
            CreditStatus.overdue,
        ):
            credit.status = CreditStatus.paid
        elif (
            credit.status == CreditStatus.active
            and credit.current_balance_cents > 0
            and today > credit.end_date
        ):
            credit.status = CreditStatus.overdue

    def create(self, data: CreditIn, today: Optional[date] = None) -> Credit:
        today = today or local_today()
        if data.is_old_credit and data.initial_debt_cents is not None:
            balance = data.initial_debt_cents
        else:
            balance = data.amount_cents
        credit = Credit(
            user_id=self.user_id,
            name=data.name.strip(),
            bank_name=data.bank_name,
            type=data.type,
            amount_cents=data.amount_cents,
            current_balance_cents=balance,
            interest_rate_bps=data.interest_rate_bps,
            is_old_credit=data.is_old_credit,
            initial_debt_cents=balance if data.is_old_credit else None,
            monthly_payment_cents=data.monthly_payment_cents,
            monthly_payment_day=data.monthly_payment_day,
            start_date=data.start_date,
            end_date=data.end_date,
            status=CreditStatus.active,
            description=data.description,
        )
        self._settle_status(credit, today)
        self.session.add(credit)
        self.session.commit()
        self.session.refresh(credit)
        return credit

    def update(
        self, credit_id: int, data: CreditUpdate, today: Optional[date] = None
    ) -> Credit:
        today = today or local_today()
        credit = self.get(credit_id)
        values = data.model_dump(exclude_unset=True)
        start = values.get("start_date", credit.start_date)
        end = values.get("end_date", credit.end_date)
        if end <= start:
            raise ValueError("end_date must be after start_date")
        initial = values.get("initial_debt_cents")
        if initial is not None and initial > credit.amount_cents:
            raise ValueError("initial_debt_cents cannot exceed amount_cents")
        _apply(credit, values)
        if "is_old_credit" in values or "initial_debt_cents" in values:
            if credit.is_old_credit and credit.initial_debt_cents is not None:
                credit.current_balance_cents = credit.initial_debt_cents
            elif not credit.is_old_credit:
                credit.initial_debt_cents = None
        self._settle_status(credit, today)
        self.session.commit()
        self.session.refresh(credit)
        return credit

    def delete(self, credit_id: int) -> None:
        credit = self.get(credit_id)
        # Bulk runs insert payments by credit_id; reload the collection.
        self.session.expire(credit, ["payments"])
        payment_ids = [p.id for p in credit.payments]
        if payment_ids:
            for usage in self.session.scalars(
                select(IncomeUsage).where(IncomeUsage.credit_payment_id.in_(payment_ids))
            ).all():
                self.session.delete(usage)
        self._release_shared_usages(credit.payments)
        self.session.delete(credit)
        self.session.commit()

    def _release_shared_usages(self, payments: list[CreditPayment]) -> None:
        """Give back this credit's share of usages debited by `pay_monthly`."""
        shares: dict[int, int] = {}
        for payment in payments:
            if payment.income_usage_id is not None:
                shares[payment.income_usage_id] = (
                    shares.get(payment.income_usage_id, 0) + payment.amount_cents
                )
        for usage_id, cents in shares.items():
            usage = self.session.get(IncomeUsage, usage_id)
            if usage is None:
                continue
            usage.used_cents = max(usage.used_cents - cents, 0)
            if usage.used_cents == 0:
                self.session.delete(usage)

    def add_payment(
        self, credit_id: int, data: CreditPaymentIn, today: Optional[date] = None
    ) -> CreditPayment:
        on_date = data.payment_date or today or local_today()
        credit = self.get(credit_id)
        if credit.status == CreditStatus.paid:
            raise ValueError("Credit is already paid off")
        if data.amount_cents > credit.current_balance_cents:
            raise ValueError("Payment exceeds the outstanding balance")

        if data.principal_cents is None and data.interest_cents is None:
            principal, interest = data.amount_cents, 0
        elif data.principal_cents is None:
            interest = data.interest_cents
            principal = data.amount_cents - interest
        elif data.interest_cents is None:
            principal = data.principal_cents
            interest = data.amount_cents - principal
        else:
            principal, interest = data.principal_cents, data.interest_cents
        if principal < 0 or interest < 0 or principal + interest != data.amount_cents:
            raise ValueError("Principal and interest must add up to the amount")

        source = PaymentSource.from_input(data.source)
        ledger = PaymentSourceLedger(self.session, self.user_id)
        try:
            debit = ledger.debit(
                source,
                data.amount_cents,
                usage_type=UsageType.credit,
                description=f"Payment for {credit.name}",
                on_date=on_date,
            )
            payment = CreditPayment(
                user_id=self.user_id,
                credit_id=credit.id,
                amount_cents=data.amount_cents,
                principal_cents=principal,
                interest_cents=interest,
                payment_date=on_date,
                status=PaymentStatus.paid,
                notes=data.notes,
                source_type=source.type,
                source_income_id=source.income_id,
                source_deposit_id=source.deposit_id,
                deposit_transaction_id=(
                    debit.transaction.id if debit.transaction else None
                ),
            )
            self.session.add(payment)
            self.session.flush()
            if debit.usage is not None:
                debit.usage.credit_payment_id = payment.id
            credit.current_balance_cents = max(
                0, credit.current_balance_cents - principal
            )
            self._settle_status(credit, on_date)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(payment)
        logger.info(
            f"credit_payment_added: credit_id={credit.id} payment_id={payment.id} "
            f"amount_cents={payment.amount_cents} "
            f"balance_cents={credit.current_balance_cents}"
        )
        return payment

    def payments(self, credit_id: int) -> list[CreditPayment]:
        credit = self.get(credit_id)
        return self.session.scalars(
            select(CreditPayment)
            .where(CreditPayment.credit_id == credit.id)
            .order_by(CreditPayment.payment_date.desc(), CreditPayment.id.desc())
        ).all()

    def all_payments(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[CreditPayment]:
        stmt = (
            select(CreditPayment)
            .options(joinedload(CreditPayment.credit))
            .where(CreditPayment.user_id == self.user_id)
        )
        if start:
            stmt = stmt.where(CreditPayment.payment_date >= start)
        if end:
            stmt = stmt.where(CreditPayment.payment_date <= end)
        stmt = stmt.order_by(CreditPayment.payment_date.desc(), CreditPayment.id.desc())
        return self.session.scalars(stmt).all()

    def pay_monthly(
        self,
        source: Optional[PaymentSource] = None,
        on_date: Optional[date] = None,
    ) -> list[CreditPayment]:
        """Pay one installment on every active credit from a single source.

        The source is debited once for the sum; each payment references it.
        Payments funded by an income share one usage, and deleting a credit
        gives its share of that usage back.
        """
        on_date = on_date or local_today()
        source = source or PaymentSource.cash()
        credits = [
            c
            for c in self.list(status=CreditStatus.active)
            if c.current_balance_cents > 0 and c.monthly_payment_cents > 0
        ]
        if not credits:
            raise ValueError("No active credits to pay")
        amounts = {
            c.id: min(c.monthly_payment_cents, c.current_balance_cents) for c in credits
        }
        total = sum(amounts.values())

        ledger = PaymentSourceLedger(self.session, self.user_id)
        payments: list[CreditPayment] = []
        try:
            debit = ledger.debit(
                source,
                total,
                usage_type=UsageType.credit,
                description=f"Monthly installments for {len(credits)} credits",
                on_date=on_date,
            )
            for credit in credits:
                amount = amounts[credit.id]
                payment = CreditPayment(
                    user_id=self.user_id,
                    credit_id=credit.id,
                    amount_cents=amount,
                    principal_cents=amount,
                    interest_cents=0,
                    payment_date=on_date,
                    status=PaymentStatus.paid,
                    notes="Monthly installment",
                    source_type=source.type,
                    source_income_id=source.income_id,
                    source_deposit_id=source.deposit_id,
                    deposit_transaction_id=(
                        debit.transaction.id if debit.transaction else None
                    ),
                    income_usage_id=debit.usage.id if debit.usage else None,
                )
                self.session.add(payment)
                payments.append(payment)
                credit.current_balance_cents -= amount
                self._settle_status(credit, on_date)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(
            f"credit_monthly_paid: user_id={self.user_id} payments={len(payments)} "
            f"total_cents={total}"
        )
        return payments

    def refresh_statuses(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        changed = 0
        for credit in self.list(status=CreditStatus.active):
            before = credit.status
            self._settle_status(credit, today)
            if credit.status != before:
                changed += 1
        self.session.commit()
        return changed

    def statistics(self) -> dict[str, object]:
        credits = self.list()
        active = [c for c in credits if c.status == CreditStatus.active]
        total_debt = sum(c.current_balance_cents for c in active)
        total_amount = sum(c.amount_cents for c in active)
        return {
            "total_credits": len(credits),
            "active_credits": len(active),
            "paid_credits": sum(1 for c in credits if c.status == CreditStatus.paid),
            "overdue_credits": sum(
                1 for c in credits if c.status == CreditStatus.overdue
            ),
            "total_debt_cents": total_debt,
            "monthly_payments_cents": sum(c.monthly_payment_cents for c in active),
            "total_interest_cents": sum(c.total_interest_cents for c in active),
            "total_amount_cents": total_amount,
            "total_paid_cents": total_amount - total_debt,
            "average_progress": (
                sum(c.payment_progress for c in active) / len(active) if active else 0.0
            ),
        }

    def upcoming(self, days: int = 7, today: Optional[date] = None) -> list[Credit]:
        today = today or local_today()
        upcoming = []
        for credit in self.list(status=CreditStatus.active):
            days_until = (credit.next_payment_on(today) - today).days
            if 0 <= days_until <= days:
                upcoming.append(credit)
        upcoming.sort(key=lambda c: c.next_payment_on(today))
        return upcoming


class RentService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list(
        self, status: Optional[RentStatus] = None, today: Optional[date] = None
    ) -> list[RentProperty]:
        self.refresh_statuses(today)
        stmt = select(RentProperty).where(RentProperty.user_id == self.user_id)
        if status is not None:
            stmt = stmt.where(RentProperty.status == status)
        stmt = stmt.order_by(RentProperty.start_date.desc(), RentProperty.id.desc())
        return self.session.scalars(stmt).all()

    def get(self, property_id: int) -> RentProperty:
        prop = self.session.get(RentProperty, property_id)
        if not prop or prop.user_id != self.user_id:
            raise NotFoundError("Rent property not found")
        return prop

    @staticmethod
    def _settle_status(prop: RentProperty, today: date) -> None:
        if (
            prop.status == RentStatus.active
            and prop.end_date is not None
            and today > prop.end_date
        ):
            prop.status = RentStatus.completed

    def refresh_statuses(self, today: Optional[date] = None) -> int:
        today = today or local_today()
        props = self.session.scalars(
            select(RentProperty).where(
                RentProperty.user_id == self.user_id,
                RentProperty.status == RentStatus.active,
                RentProperty.end_date.is_not(None),
                RentProperty.end_date < today,
            )
        ).all()
        for prop in props:
            prop.status = RentStatus.completed
        if props:
            self.session.commit()
        return len(props)

    def create(self, data: RentPropertyIn, today: Optional[date] = None) -> RentProperty:
        prop = RentProperty(user_id=self.user_id, **data.model_dump())
        self._settle_status(prop, today or local_today())
        self.session.add(prop)
        self.session.commit()
        self.session.refresh(prop)
        return prop

    def update(
        self,
        property_id: int,
        data: RentPropertyUpdate,
        today: Optional[date] = None,
    ) -> RentProperty:
        prop = self.get(property_id)
        values = data.model_dump(exclude_unset=True)
        start = values.get("start_date", prop.start_date)
        end = values.get("end_date", prop.end_date)
        if end is not None and end <= start:
            raise ValueError("end_date must be after start_date")
        _apply(prop, values)
        self._settle_status(prop, today or local_today())
        self.session.commit()
        self.session.refresh(prop)
        return prop

    def delete(self, property_id: int) -> None:
        prop = self.get(property_id)
        ledger = PaymentSourceLedger(self.session, self.user_id)
        for payment in list(prop.payments):
            self._release(ledger, payment)
        self.session.delete(prop)
        self.session.commit()

    def payments(
        self,
        property_id: Optional[int] = None,
        status: Optional[PaymentStatus] = None,
    ) -> list[RentPayment]:
        stmt = select(RentPayment).where(RentPayment.user_id == self.user_id)
        if property_id is not None:
            stmt = stmt.where(RentPayment.property_id == property_id)
        if status is not None:
            stmt = stmt.where(RentPayment.status == status)
        stmt = stmt.order_by(RentPayment.payment_date.desc(), RentPayment.id.desc())
        return self.session.scalars(stmt).all()

    def get_payment(self, payment_id: int) -> RentPayment:
        payment = self.session.get(RentPayment, payment_id)
        if not payment or payment.user_id != self.user_id:
            raise NotFoundError("Rent payment not found")
        return payment

    def create_payment(self, data: RentPaymentIn) -> RentPayment:
        prop = self.get(data.property_id)
        source = PaymentSource.from_input(data.source)
        ledger = PaymentSourceLedger(self.session, self.user_id)
        try:
            debit = ledger.debit(
                source,
                data.amount_cents,
                usage_type=UsageType.rent,
                description=f"{data.payment_type.value.capitalize()} for {prop.address}",
                on_date=data.payment_date,
            )
            payment = RentPayment(
                user_id=self.user_id,
                property_id=prop.id,
                amount_cents=data.amount_cents,
                payment_date=data.payment_date,
                status=data.status,
                payment_type=data.payment_type,
                notes=data.notes,
                source_type=source.type,
                source_income_id=source.income_id,
                source_deposit_id=source.deposit_id,
                deposit_transaction_id=(
                    debit.transaction.id if debit.transaction else None
                ),
            )
            self.session.add(payment)
            self.session.flush()
            if debit.usage is not None:
                debit.usage.rent_payment_id = payment.id
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(payment)
        return payment

    def update_payment(self, payment_id: int, data: RentPaymentUpdate) -> RentPayment:
        payment = self.get_payment(payment_id)
        _apply(payment, data.model_dump(exclude_unset=True))
        self.session.commit()
        self.session.refresh(payment)
        return payment

    def _release(self, ledger: PaymentSourceLedger, payment: RentPayment) -> None:
        for usage in self.session.scalars(
            select(IncomeUsage).where(IncomeUsage.rent_payment_id == payment.id)
        ).all():
            self.session.delete(usage)
        txn_id = payment.deposit_transaction_id
        if txn_id is not None:
            payment.deposit_transaction_id = None
            self.session.flush()
            ledger.release_transaction(txn_id)
        self.session.delete(payment)

    def delete_payment(self, payment_id: int) -> None:
        payment = self.get_payment(payment_id)
        try:
            self._release(PaymentSourceLedger(self.session, self.user_id), payment)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def statistics(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        today: Optional[date] = None,
    ) -> dict[str, object]:
        today = today or local_today()
        props = self.list(today=today)
        month_start, month_end = month_bounds(today.year, today.month)
        paid = self.payments(status=PaymentStatus.paid)
        this_month = sum(
            p.amount_cents for p in paid if month_start <= p.payment_date <= month_end
        )
        active = [p for p in props if p.status == RentStatus.active]
        pending = len(self.payments(status=PaymentStatus.pending))
        upcoming = sum(p.monthly_total_cents() for p in active)

        monthly: dict[str, dict] = {}
        for payment in sorted(paid, key=lambda p: p.payment_date):
            if start and payment.payment_date < start:
                continue
            if end and payment.payment_date > end:
                continue
            key = month_key(payment.payment_date)
            entry = monthly.setdefault(
                key,
                {"month": key, "rent_cents": 0, "utilities_cents": 0, "total_cents": 0},
            )
            if payment.payment_type == RentPaymentType.utilities:
                entry["utilities_cents"] += payment.amount_cents
            elif payment.payment_type == RentPaymentType.rent:
                entry["rent_cents"] += payment.amount_cents
            entry["total_cents"] += payment.amount_cents
        return {
            "total_expense_this_month_cents": this_month,
            "active_properties_count": len(active),
            "pending_payments_count": pending,
            "upcoming_payment_amount_cents": upcoming,
            "monthly": [monthly[key] for key in sorted(monthly)],
        }


class DebtService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list(
        self, type: Optional[DebtType] = None, status: Optional[DebtStatus] = None
    ) -> list[Debt]:
        stmt = (
            select(Debt)
            .options(joinedload(Debt.payments))
            .where(Debt.user_id == self.user_id)
        )
        if type is not None:
            stmt = stmt.where(Debt.type == type)
        if status is not None:
            stmt = stmt.where(Debt.status == status)
        stmt = stmt.order_by(Debt.created_at.desc(), Debt.id.desc())
        return self.session.scalars(stmt).unique().all()

    def get(self, debt_id: int) -> Debt:
        debt = self.session.get(Debt, debt_id)
        if not debt or debt.user_id != self.user_id:
            raise NotFoundError("Debt not found")
        return debt

    @staticmethod
    def _settle_status(debt: Debt) -> None:
        if debt.current_balance_cents == 0:
            debt.status = DebtStatus.paid
        else:
            debt.status = DebtStatus.active

    def create(self, data: DebtIn) -> Debt:
        balance = (
            data.current_balance_cents
            if data.current_balance_cents is not None
            else data.amount_cents
        )
        debt = Debt(
            user_id=self.user_id,
            type=data.type,
            person=data.person.strip(),
            amount_cents=data.amount_cents,
            current_balance_cents=balance,
            description=data.description,
            due_date=data.due_date,
        )
        self._settle_status(debt)
        self.session.add(debt)
        self.session.commit()
        self.session.refresh(debt)
        return debt

    def update(self, debt_id: int, data: DebtUpdate) -> Debt:
        debt = self.get(debt_id)
        values = data.model_dump(exclude_unset=True)
        amount = values.get("amount_cents", debt.amount_cents)
        balance = values.get("current_balance_cents", debt.current_balance_cents)
        if balance > amount:
            raise ValueError("Balance cannot exceed the debt amount")
        _apply(debt, values)
        if "current_balance_cents" in values or "status" not in values:
            self._settle_status(debt)
        self.session.commit()
        self.session.refresh(debt)
        return debt

    def delete(self, debt_id: int) -> None:
        debt = self.get(debt_id)
        self.session.delete(debt)
        self.session.commit()

    def add_payment(
        self, debt_id: int, data: DebtPaymentIn, today: Optional[date] = None
    ) -> Debt:
        debt = self.get(debt_id)
        if data.amount_cents <= 0:
            raise ValueError("Payment amount must be positive")
        if data.amount_cents > debt.current_balance_cents:
            raise ValueError("Payment exceeds the outstanding balance")
        debt.payments.append(
            DebtPayment(
                user_id=self.user_id,
                amount_cents=data.amount_cents,
                payment_date=data.payment_date or today or local_today(),
                description=data.description,
            )
        )
        debt.current_balance_cents -= data.amount_cents
        self._settle_status(debt)
        self.session.commit()
        self.session.refresh(debt)
        return debt

    def delete_payment(self, debt_id: int, payment_id: int) -> Debt:
        debt = self.get(debt_id)
        payment = self.session.get(DebtPayment, payment_id)
        if not payment or payment.debt_id != debt.id:
            raise NotFoundError("Payment not found")
        debt.current_balance_cents = min(
            debt.amount_cents, debt.current_balance_cents + payment.amount_cents
        )
        debt.payments.remove(payment)
        debt.status = DebtStatus.active
        self.session.commit()
        self.session.refresh(debt)
        return debt

    def statistics(self) -> dict[str, object]:
        debts = self.list()
        owe = [d for d in debts if d.type == DebtType.owe]
        owed = [d for d in debts if d.type == DebtType.owed]
        total_owe = sum(
            d.current_balance_cents for d in owe if d.status == DebtStatus.active
        )
        total_owed = sum(
            d.current_balance_cents for d in owed if d.status == DebtStatus.active
        )
        return {
            "total_owe_cents": total_owe,
            "total_owed_cents": total_owed,
            "active_owe": sum(1 for d in owe if d.status == DebtStatus.active),
            "active_owed": sum(1 for d in owed if d.status == DebtStatus.active),
            "paid_debts": sum(1 for d in debts if d.status == DebtStatus.paid),
            "net_balance_cents": total_owed - total_owe,
        }


def _user_ids(session: Session) -> list[int]:
    ids: set[int] = set()
    for model in (RecurringIncome, Deposit, MonthlyExpense, Credit, RentProperty):
        ids.update(session.scalars(select(model.user_id).distinct()).all())
    return sorted(ids)


def run_housekeeping(
    session: Session, today: Optional[date] = None
) -> dict[str, int]:
    """Periodic upkeep for every user; one failing step does not stop the rest."""
    today = today or local_today()
    totals = {
        "incomes_created": 0,
        "interest_posted": 0,
        "deposits_matured": 0,
        "expenses_overdue": 0,
        "credits_updated": 0,
        "rents_completed": 0,
    }
    try:
        result = RecurringIncomeEngine(session).reconcile_all(today)
        session.commit()
        totals["incomes_created"] = len(result.created)
    except Exception:
        session.rollback()
        logger.exception("housekeeping_failed: step=recurring_incomes")

    for user_id in _user_ids(session):
        deposits = DepositService(session, user_id)
        steps = (
            ("interest_posted", deposits.accrue_interest),
            ("deposits_matured", deposits.process_maturity),
            ("expenses_overdue", MonthlyExpenseService(session, user_id).mark_overdue),
            ("credits_updated", CreditService(session, user_id).refresh_statuses),
            ("rents_completed", RentService(session, user_id).refresh_statuses),
        )
        for key, step in steps:
            try:
                totals[key] += step(today)
            except Exception:
                session.rollback()
                logger.exception(f"housekeeping_failed: step={key} user_id={user_id}")
    return totals
