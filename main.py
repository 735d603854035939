import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query
from sqlalchemy.orm import Session

from auth import AuthContext, AuthError, login, refresh_tokens, require_auth
from budgets import MonthlyBudget, budget_progress_percent
from config import get_settings
from database import get_db
from models import (
    CategoryType,
    CreditStatus,
    DebtStatus,
    DebtType,
    DepositStatus,
    DepositTransactionType,
    DepositType,
    ExpenseStatus,
    PaymentStatus,
    RentStatus,
)
from periods import resolve_period
from recurrence import local_today
from scheduler import SchedulerManager
from schemas import (
    AvailableIncomeOut,
    CategoryIn,
    CategoryOut,
    CreditIn,
    CreditOut,
    CreditPaymentIn,
    CreditPaymentOut,
    CreditUpdate,
    DebtIn,
    DebtOut,
    DebtPaymentIn,
    DebtUpdate,
    DepositIn,
    DepositOut,
    DepositTransactionIn,
    DepositTransactionOut,
    DepositTransactionUpdate,
    DepositUpdate,
    ExpensePaymentIn,
    IncomeIn,
    IncomeOut,
    IncomeUpdate,
    IncomeUsageOut,
    LoginIn,
    MonthlyBudgetOut,
    MonthlyExpenseIn,
    MonthlyExpenseOut,
    MonthlyExpenseUpdate,
    PayMonthlyIn,
    QuickExpenseIn,
    RecurringIncomeIn,
    RecurringIncomeOut,
    RecurringIncomeUpdate,
    RefreshIn,
    RentPaymentIn,
    RentPaymentOut,
    RentPaymentUpdate,
    RentPropertyIn,
    RentPropertyOut,
    RentPropertyUpdate,
    TokenPairOut,
)
from services import (
    CategoryService,
    CreditService,
    DebtService,
    DepositService,
    IncomeService,
    MonthlyExpenseService,
    NotFoundError,
    PaymentSource,
    RecurringIncomeService,
    RentService,
)


logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Ledger")
public = APIRouter(prefix="/api/v1")
api = APIRouter(prefix="/api/v1", dependencies=[Depends(require_auth)])

scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    if get_settings().scheduler_enabled:
        scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


@contextmanager
def service_errors() -> Iterator[None]:
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def envelope(
    data: Any = None, *, message: Optional[str] = None, count: Optional[int] = None
) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if count is not None:
        body["count"] = count
    if message is not None:
        body["message"] = message
    return body


def period_range(
    period: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> tuple[Optional[date], Optional[date]]:
    try:
        if period:
            resolved = resolve_period(period, start, end, today=local_today())
            return resolved.start, resolved.end
        return (
            date.fromisoformat(start) if start else None,
            date.fromisoformat(end) if end else None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _dump(items, schema) -> list[dict]:
    return [schema.model_validate(item).model_dump(mode="json") for item in items]


def _budget_out(budget: MonthlyBudget) -> dict:
    return MonthlyBudgetOut(
        year=budget.year,
        month=budget.month,
        total_planned_cents=budget.total_planned_cents,
        total_actual_cents=budget.total_actual_cents,
        progress_percent=budget_progress_percent(budget),
        expenses=[MonthlyExpenseOut.model_validate(e) for e in budget.expenses],
    ).model_dump(mode="json")


def _credit_out(credit, today: date) -> dict:
    return CreditOut.from_credit(credit, today).model_dump(mode="json")


def _property_out(prop) -> dict:
    return RentPropertyOut.from_property(prop).model_dump(mode="json")


# auth


@public.post("/auth/login")
def auth_login(payload: LoginIn):
    try:
        tokens = login(payload.access_key)
    except AuthError as exc:
        raise HTTPException(
            status_code=401, detail={"code": exc.code, "message": exc.message}
        ) from exc
    return envelope(TokenPairOut(**tokens).model_dump())


@public.post("/auth/refresh")
def auth_refresh(payload: RefreshIn):
    try:
        tokens = refresh_tokens(payload.refresh_token)
    except AuthError as exc:
        raise HTTPException(
            status_code=401, detail={"code": exc.code, "message": exc.message}
        ) from exc
    return envelope(TokenPairOut(**tokens).model_dump())


# categories


@api.get("/categories")
def list_categories(
    type: Optional[CategoryType] = None,
    include_archived: bool = False,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = CategoryService(db, ctx.user_id).list_all(type, include_archived)
    return envelope(_dump(items, CategoryOut), count=len(items))


@api.post("/categories", status_code=201)
def create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        category = CategoryService(db, ctx.user_id).create(payload)
    return envelope(CategoryOut.model_validate(category).model_dump(mode="json"))


@api.post("/categories/{category_id}/archive")
def archive_category(
    category_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        CategoryService(db, ctx.user_id).archive(category_id)
    return envelope(message="Category archived")


@api.post("/categories/{category_id}/restore")
def restore_category(
    category_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        CategoryService(db, ctx.user_id).restore(category_id)
    return envelope(message="Category restored")


# income


@api.get("/income")
def list_income(
    start: Optional[date] = None,
    end: Optional[date] = None,
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = IncomeService(db, ctx.user_id).list(start, end, category_id)
    return envelope(_dump(items, IncomeOut), count=len(items))


@api.get("/income/stats")
def income_stats(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    return envelope(IncomeService(db, ctx.user_id).stats())


@api.get("/income/{income_id}")
def get_income(
    income_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        income = IncomeService(db, ctx.user_id).get(income_id)
    return envelope(IncomeOut.model_validate(income).model_dump(mode="json"))


@api.get("/income/{income_id}/usages")
def income_usages(
    income_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        usages = IncomeService(db, ctx.user_id).usages(income_id)
    return envelope(_dump(usages, IncomeUsageOut), count=len(usages))


@api.post("/income", status_code=201)
def create_income(
    payload: IncomeIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        income = IncomeService(db, ctx.user_id).create(payload)
    return envelope(IncomeOut.model_validate(income).model_dump(mode="json"))


@api.put("/income/{income_id}")
def update_income(
    income_id: int,
    payload: IncomeUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        income = IncomeService(db, ctx.user_id).update(income_id, payload)
    return envelope(IncomeOut.model_validate(income).model_dump(mode="json"))


@api.delete("/income/{income_id}")
def delete_income(
    income_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        IncomeService(db, ctx.user_id).delete(income_id)
    return envelope(message="Income deleted")


# recurring income


@api.get("/recurring-income")
def list_recurring_income(
    active_only: bool = False,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = RecurringIncomeService(db, ctx.user_id).list(active_only)
    return envelope(_dump(items, RecurringIncomeOut), count=len(items))


@api.post("/recurring-income/process")
def process_recurring_income(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    with service_errors():
        result = RecurringIncomeService(db, ctx.user_id).process()
    return envelope(
        _dump(result.created, IncomeOut),
        message=result.message,
        count=len(result.created),
    )


@api.get("/recurring-income/{template_id}")
def get_recurring_income(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        template = RecurringIncomeService(db, ctx.user_id).get(template_id)
    return envelope(RecurringIncomeOut.model_validate(template).model_dump(mode="json"))


@api.post("/recurring-income", status_code=201)
def create_recurring_income(
    payload: RecurringIncomeIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        template = RecurringIncomeService(db, ctx.user_id).create(payload)
    return envelope(RecurringIncomeOut.model_validate(template).model_dump(mode="json"))


@api.put("/recurring-income/{template_id}")
def update_recurring_income(
    template_id: int,
    payload: RecurringIncomeUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        template = RecurringIncomeService(db, ctx.user_id).update(template_id, payload)
    return envelope(RecurringIncomeOut.model_validate(template).model_dump(mode="json"))


@api.delete("/recurring-income/{template_id}")
def delete_recurring_income(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        RecurringIncomeService(db, ctx.user_id).delete(template_id)
    return envelope(message="Recurring income deleted")


@api.patch("/recurring-income/{template_id}/toggle")
def toggle_recurring_income(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        template = RecurringIncomeService(db, ctx.user_id).toggle(template_id)
    state = "activated" if template.is_active else "deactivated"
    return envelope(
        RecurringIncomeOut.model_validate(template).model_dump(mode="json"),
        message=f"Recurring income {state}",
    )


@api.get("/recurring-income/{template_id}/history")
def recurring_income_history(
    template_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        items = RecurringIncomeService(db, ctx.user_id).history(template_id)
    return envelope(_dump(items, IncomeOut), count=len(items))


# monthly expenses


@api.get("/monthly-expenses")
def list_monthly_expenses(
    start: Optional[date] = None,
    end: Optional[date] = None,
    category_id: Optional[int] = None,
    status: Optional[ExpenseStatus] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = MonthlyExpenseService(db, ctx.user_id).list(start, end, category_id, status)
    return envelope(_dump(items, MonthlyExpenseOut), count=len(items))


@api.get("/monthly-expenses/budgets")
def monthly_budgets(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    budgets = MonthlyExpenseService(db, ctx.user_id).budgets()
    return envelope([_budget_out(b) for b in budgets], count=len(budgets))


@api.get("/monthly-expenses/budgets/future")
def future_monthly_budgets(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    budgets = MonthlyExpenseService(db, ctx.user_id).future_budgets()
    return envelope([_budget_out(b) for b in budgets], count=len(budgets))


@api.get("/monthly-expenses/budgets/current")
def current_monthly_budget(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    budget = MonthlyExpenseService(db, ctx.user_id).current_budget()
    return envelope(_budget_out(budget))


@api.get("/monthly-expenses/stats/by-month")
def monthly_expense_stats(
    months: int = Query(default=6, ge=1, le=120),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    return envelope(MonthlyExpenseService(db, ctx.user_id).stats_by_month(months))


@api.get("/monthly-expenses/overdue")
def overdue_monthly_expenses(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    items = MonthlyExpenseService(db, ctx.user_id).overdue()
    return envelope(_dump(items, MonthlyExpenseOut), count=len(items))


@api.post("/monthly-expenses/update-overdue")
def update_overdue_monthly_expenses(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    count = MonthlyExpenseService(db, ctx.user_id).mark_overdue()
    return envelope(message=f"Updated {count} expenses", count=count)


@api.post("/monthly-expenses/quick", status_code=201)
def quick_add_expense(
    payload: QuickExpenseIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        expense = MonthlyExpenseService(db, ctx.user_id).quick_add(payload)
    return envelope(MonthlyExpenseOut.model_validate(expense).model_dump(mode="json"))


@api.get("/monthly-expenses/{expense_id}")
def get_monthly_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        expense = MonthlyExpenseService(db, ctx.user_id).get(expense_id)
    return envelope(MonthlyExpenseOut.model_validate(expense).model_dump(mode="json"))


@api.post("/monthly-expenses", status_code=201)
def create_monthly_expense(
    payload: MonthlyExpenseIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        expense = MonthlyExpenseService(db, ctx.user_id).create(payload)
    return envelope(MonthlyExpenseOut.model_validate(expense).model_dump(mode="json"))


@api.put("/monthly-expenses/{expense_id}")
def update_monthly_expense(
    expense_id: int,
    payload: MonthlyExpenseUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        expense = MonthlyExpenseService(db, ctx.user_id).update(expense_id, payload)
    return envelope(MonthlyExpenseOut.model_validate(expense).model_dump(mode="json"))


@api.delete("/monthly-expenses/{expense_id}")
def delete_monthly_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        MonthlyExpenseService(db, ctx.user_id).delete(expense_id)
    return envelope(message="Expense deleted")


@api.post("/monthly-expenses/{expense_id}/payments")
def pay_monthly_expense(
    expense_id: int,
    payload: ExpensePaymentIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        expense = MonthlyExpenseService(db, ctx.user_id).record_payment(
            expense_id,
            payload.amount_cents,
            PaymentSource.from_input(payload.source),
            payload.payment_date,
        )
    return envelope(MonthlyExpenseOut.model_validate(expense).model_dump(mode="json"))


# credits


@api.get("/credits")
def list_credits(
    status: Optional[CreditStatus] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    today = local_today()
    items = CreditService(db, ctx.user_id).list(status)
    return envelope([_credit_out(c, today) for c in items], count=len(items))


@api.get("/credits/statistics")
def credit_statistics(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    return envelope(CreditService(db, ctx.user_id).statistics())


@api.get("/credits/upcoming")
def upcoming_credit_payments(
    days: int = Query(default=7, ge=0, le=366),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    today = local_today()
    items = CreditService(db, ctx.user_id).upcoming(days, today)
    return envelope([_credit_out(c, today) for c in items], count=len(items))


@api.get("/credits/payments")
def all_credit_payments(
    bounds: tuple = Depends(period_range),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = CreditService(db, ctx.user_id).all_payments(*bounds)
    return envelope(_dump(items, CreditPaymentOut), count=len(items))


@api.post("/credits/pay-monthly")
def pay_monthly_installments(
    payload: PayMonthlyIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        payments = CreditService(db, ctx.user_id).pay_monthly(
            PaymentSource.from_input(payload.source), payload.payment_date
        )
    total = sum(p.amount_cents for p in payments)
    return envelope(
        {
            "payments_count": len(payments),
            "total_amount_cents": total,
            "payments": _dump(payments, CreditPaymentOut),
        },
        message=f"Paid {len(payments)} installments",
    )


@api.get("/credits/{credit_id}")
def get_credit(
    credit_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        credit = CreditService(db, ctx.user_id).get(credit_id)
    return envelope(_credit_out(credit, local_today()))


@api.post("/credits", status_code=201)
def create_credit(
    payload: CreditIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        credit = CreditService(db, ctx.user_id).create(payload)
    return envelope(_credit_out(credit, local_today()))


@api.put("/credits/{credit_id}")
def update_credit(
    credit_id: int,
    payload: CreditUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        credit = CreditService(db, ctx.user_id).update(credit_id, payload)
    return envelope(_credit_out(credit, local_today()))


@api.delete("/credits/{credit_id}")
def delete_credit(
    credit_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        CreditService(db, ctx.user_id).delete(credit_id)
    return envelope(message="Credit deleted")


@api.get("/credits/{credit_id}/payments")
def credit_payments(
    credit_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        items = CreditService(db, ctx.user_id).payments(credit_id)
    return envelope(_dump(items, CreditPaymentOut), count=len(items))


@api.post("/credits/{credit_id}/payments", status_code=201)
def add_credit_payment(
    credit_id: int,
    payload: CreditPaymentIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    service = CreditService(db, ctx.user_id)
    with service_errors():
        payment = service.add_payment(credit_id, payload)
        credit = service.get(credit_id)
    return envelope(
        {
            "payment": CreditPaymentOut.model_validate(payment).model_dump(mode="json"),
            "credit": _credit_out(credit, local_today()),
        },
        message="Payment added",
    )


# deposits


@api.get("/deposits")
def list_deposits(
    status: Optional[DepositStatus] = None,
    type: Optional[DepositType] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    service = DepositService(db, ctx.user_id)
    service.refresh()
    items = service.list(status, type)
    return envelope(_dump(items, DepositOut), count=len(items))


@api.get("/deposits/statistics")
def deposit_statistics(
    bounds: tuple = Depends(period_range),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    return envelope(DepositService(db, ctx.user_id).statistics(*bounds))


@api.get("/deposits/available-incomes")
def available_incomes(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    items = [
        AvailableIncomeOut(
            income=IncomeOut.model_validate(item["income"]),
            used_cents=item["used_cents"],
            available_cents=item["available_cents"],
        ).model_dump(mode="json")
        for item in DepositService(db, ctx.user_id).available_incomes()
    ]
    return envelope(items, count=len(items))


@api.get("/deposits/transactions")
def list_deposit_transactions(
    deposit_id: Optional[int] = None,
    type: Optional[DepositTransactionType] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = DepositService(db, ctx.user_id).transactions(deposit_id, type)
    return envelope(_dump(items, DepositTransactionOut), count=len(items))


@api.post("/deposits/transactions", status_code=201)
def create_deposit_transaction(
    payload: DepositTransactionIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        txn = DepositService(db, ctx.user_id).create_transaction(payload)
    return envelope(DepositTransactionOut.model_validate(txn).model_dump(mode="json"))


@api.put("/deposits/transactions/{transaction_id}")
def update_deposit_transaction(
    transaction_id: int,
    payload: DepositTransactionUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        txn = DepositService(db, ctx.user_id).update_transaction(
            transaction_id, payload
        )
    return envelope(DepositTransactionOut.model_validate(txn).model_dump(mode="json"))


@api.delete("/deposits/transactions/{transaction_id}")
def delete_deposit_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        DepositService(db, ctx.user_id).delete_transaction(transaction_id)
    return envelope(message="Transaction deleted")


@api.get("/deposits/{deposit_id}")
def get_deposit(
    deposit_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        deposit = DepositService(db, ctx.user_id).get(deposit_id)
    return envelope(DepositOut.model_validate(deposit).model_dump(mode="json"))


@api.post("/deposits", status_code=201)
def create_deposit(
    payload: DepositIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        deposit = DepositService(db, ctx.user_id).create(payload)
    return envelope(DepositOut.model_validate(deposit).model_dump(mode="json"))


@api.put("/deposits/{deposit_id}")
def update_deposit(
    deposit_id: int,
    payload: DepositUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        deposit = DepositService(db, ctx.user_id).update(deposit_id, payload)
    return envelope(DepositOut.model_validate(deposit).model_dump(mode="json"))


@api.delete("/deposits/{deposit_id}")
def delete_deposit(
    deposit_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        DepositService(db, ctx.user_id).delete(deposit_id)
    return envelope(message="Deposit deleted")


@api.patch("/deposits/{deposit_id}/close")
def close_deposit(
    deposit_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        deposit = DepositService(db, ctx.user_id).close(deposit_id)
    return envelope(
        DepositOut.model_validate(deposit).model_dump(mode="json"),
        message="Deposit closed",
    )


@api.patch("/deposits/{deposit_id}/renew")
def renew_deposit(
    deposit_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        deposit = DepositService(db, ctx.user_id).renew(deposit_id)
    return envelope(
        DepositOut.model_validate(deposit).model_dump(mode="json"),
        message="Deposit renewed",
    )


# rent


@api.get("/rent")
def list_rent_properties(
    status: Optional[RentStatus] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = RentService(db, ctx.user_id).list(status)
    return envelope([_property_out(p) for p in items], count=len(items))


@api.get("/rent/statistics")
def rent_statistics(
    bounds: tuple = Depends(period_range),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    return envelope(RentService(db, ctx.user_id).statistics(*bounds))


@api.get("/rent/payments")
def list_rent_payments(
    property_id: Optional[int] = None,
    status: Optional[PaymentStatus] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = RentService(db, ctx.user_id).payments(property_id, status)
    return envelope(_dump(items, RentPaymentOut), count=len(items))


@api.post("/rent/payments", status_code=201)
def create_rent_payment(
    payload: RentPaymentIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        payment = RentService(db, ctx.user_id).create_payment(payload)
    return envelope(RentPaymentOut.model_validate(payment).model_dump(mode="json"))


@api.put("/rent/payments/{payment_id}")
def update_rent_payment(
    payment_id: int,
    payload: RentPaymentUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        payment = RentService(db, ctx.user_id).update_payment(payment_id, payload)
    return envelope(RentPaymentOut.model_validate(payment).model_dump(mode="json"))


@api.delete("/rent/payments/{payment_id}")
def delete_rent_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        RentService(db, ctx.user_id).delete_payment(payment_id)
    return envelope(message="Payment deleted")


@api.get("/rent/{property_id}")
def get_rent_property(
    property_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        prop = RentService(db, ctx.user_id).get(property_id)
    return envelope(_property_out(prop))


@api.post("/rent", status_code=201)
def create_rent_property(
    payload: RentPropertyIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        prop = RentService(db, ctx.user_id).create(payload)
    return envelope(_property_out(prop))


@api.put("/rent/{property_id}")
def update_rent_property(
    property_id: int,
    payload: RentPropertyUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        prop = RentService(db, ctx.user_id).update(property_id, payload)
    return envelope(_property_out(prop))


@api.delete("/rent/{property_id}")
def delete_rent_property(
    property_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        RentService(db, ctx.user_id).delete(property_id)
    return envelope(message="Rent property deleted")


# debts


@api.get("/debts")
def list_debts(
    type: Optional[DebtType] = None,
    status: Optional[DebtStatus] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    items = DebtService(db, ctx.user_id).list(type, status)
    return envelope(_dump(items, DebtOut), count=len(items))


@api.get("/debts/statistics")
def debt_statistics(
    db: Session = Depends(get_db), ctx: AuthContext = Depends(require_auth)
):
    return envelope(DebtService(db, ctx.user_id).statistics())


@api.get("/debts/{debt_id}")
def get_debt(
    debt_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        debt = DebtService(db, ctx.user_id).get(debt_id)
    return envelope(DebtOut.model_validate(debt).model_dump(mode="json"))


@api.post("/debts", status_code=201)
def create_debt(
    payload: DebtIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        debt = DebtService(db, ctx.user_id).create(payload)
    return envelope(DebtOut.model_validate(debt).model_dump(mode="json"))


@api.put("/debts/{debt_id}")
def update_debt(
    debt_id: int,
    payload: DebtUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        debt = DebtService(db, ctx.user_id).update(debt_id, payload)
    return envelope(DebtOut.model_validate(debt).model_dump(mode="json"))


@api.delete("/debts/{debt_id}")
def delete_debt(
    debt_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        DebtService(db, ctx.user_id).delete(debt_id)
    return envelope(message="Debt deleted")


@api.post("/debts/{debt_id}/payments", status_code=201)
def add_debt_payment(
    debt_id: int,
    payload: DebtPaymentIn,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        debt = DebtService(db, ctx.user_id).add_payment(debt_id, payload)
    return envelope(
        DebtOut.model_validate(debt).model_dump(mode="json"), message="Payment added"
    )


@api.delete("/debts/{debt_id}/payments/{payment_id}")
def delete_debt_payment(
    debt_id: int,
    payment_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_auth),
):
    with service_errors():
        debt = DebtService(db, ctx.user_id).delete_payment(debt_id, payment_id)
    return envelope(
        DebtOut.model_validate(debt).model_dump(mode="json"), message="Payment deleted"
    )


app.include_router(public)
app.include_router(api)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
