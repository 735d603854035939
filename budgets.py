"""Month-bucketed views over monthly expenses.

Budgets are derived on every read and never stored. A bucket is keyed by the
due date's year and zero-padded month, so the same expense always lands in
exactly one bucket.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence

from models import MonthlyExpense
from periods import add_months, month_key


@dataclass
class MonthlyBudget:
    year: int
    month: str
    total_planned_cents: int = 0
    total_actual_cents: int = 0
    expenses: list[MonthlyExpense] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month}"

    def add(self, expense: MonthlyExpense) -> None:
        self.expenses.append(expense)
        self.total_planned_cents += expense.planned_amount_cents
        self.total_actual_cents += expense.actual_amount_cents or 0


def _bucket_key(value: date) -> tuple[int, str]:
    return value.year, f"{value.month:02d}"


def group_expenses_by_month(
    expenses: Iterable[MonthlyExpense], today: date
) -> list[MonthlyBudget]:
    """Partition expenses into one budget per calendar month of their due date.

    The current month is always present, empty if nothing is due in it. The
    returned order is unspecified; use ``sort_budgets`` for a stable order.
    """
    buckets: dict[tuple[int, str], MonthlyBudget] = {}
    current = _bucket_key(today)
    buckets[current] = MonthlyBudget(year=current[0], month=current[1])
    for expense in expenses:
        key = _bucket_key(expense.due_date)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = MonthlyBudget(year=key[0], month=key[1])
            buckets[key] = bucket
        bucket.add(expense)
    return list(buckets.values())


def sort_budgets(
    budgets: Iterable[MonthlyBudget], *, descending: bool = True
) -> list[MonthlyBudget]:
    return sorted(budgets, key=lambda b: (b.year, b.month), reverse=descending)


def current_budget(
    budgets: Iterable[MonthlyBudget], today: date
) -> Optional[MonthlyBudget]:
    year, month = _bucket_key(today)
    for budget in budgets:
        if budget.year == year and budget.month == month:
            return budget
    return None


def future_budgets(budgets: Iterable[MonthlyBudget], today: date) -> list[MonthlyBudget]:
    """Budgets from the current month onward, oldest first."""
    current = _bucket_key(today)
    upcoming = [b for b in budgets if (b.year, b.month) >= current]
    return sort_budgets(upcoming, descending=False)


def budget_progress_percent(budget: MonthlyBudget) -> float:
    if budget.total_planned_cents <= 0:
        return 0.0
    return round(budget.total_actual_cents / budget.total_planned_cents * 100, 2)


def monthly_stats(
    expenses: Sequence[MonthlyExpense], today: date, months: int = 6
) -> list[dict]:
    """Planned and actual totals per month from `months` ago onward, ascending.

    There is no upper bound: months after `today` that already hold planned
    expenses are included.

    Months without any expense are left out.
    """
    since = add_months(today, -months)
    stats: dict[str, dict] = {}
    for expense in expenses:
        if expense.due_date < since:
            continue
        key = month_key(expense.due_date)
        entry = stats.setdefault(
            key, {"month": key, "planned_cents": 0, "actual_cents": 0, "count": 0}
        )
        entry["planned_cents"] += expense.planned_amount_cents
        entry["actual_cents"] += expense.actual_amount_cents or 0
        entry["count"] += 1
    return [stats[key] for key in sorted(stats)]
