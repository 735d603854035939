from datetime import date

from budgets import (
    MonthlyBudget,
    budget_progress_percent,
    current_budget,
    future_budgets,
    group_expenses_by_month,
    monthly_stats,
    sort_budgets,
)
from models import MonthlyExpense


def _expense(due: date, planned: int, actual=None) -> MonthlyExpense:
    return MonthlyExpense(
        category_id=1,
        name=f"Expense {due.isoformat()}",
        planned_amount_cents=planned,
        actual_amount_cents=actual,
        due_date=due,
    )


def test_expenses_are_bucketed_by_due_month() -> None:
    expenses = [
        _expense(date(2025, 1, 3), 10_000, 5_000),
        _expense(date(2025, 1, 28), 20_000),
        _expense(date(2025, 3, 1), 7_000, 7_000),
    ]
    budgets = {b.key: b for b in group_expenses_by_month(expenses, date(2025, 2, 14))}

    assert set(budgets) == {"2025-01", "2025-02", "2025-03"}
    january = budgets["2025-01"]
    assert january.month == "01"
    assert january.total_planned_cents == 30_000
    assert january.total_actual_cents == 5_000
    assert len(january.expenses) == 2

    february = budgets["2025-02"]
    assert february.expenses == []
    assert february.total_planned_cents == 0

    assert sum(len(b.expenses) for b in budgets.values()) == len(expenses)


def test_current_month_bucket_exists_without_expenses() -> None:
    budgets = group_expenses_by_month([], date(2025, 6, 30))
    assert [(b.year, b.month) for b in budgets] == [(2025, "06")]
    assert current_budget(budgets, date(2025, 6, 1)) is budgets[0]


def test_budgets_sort_newest_first_across_years() -> None:
    expenses = [
        _expense(date(2024, 12, 5), 1_000),
        _expense(date(2025, 2, 5), 1_000),
        _expense(date(2024, 11, 5), 1_000),
    ]
    budgets = sort_budgets(group_expenses_by_month(expenses, date(2025, 1, 10)))
    assert [b.key for b in budgets] == ["2025-02", "2025-01", "2024-12", "2024-11"]

    oldest_first = sort_budgets(budgets, descending=False)
    assert [b.key for b in oldest_first][0] == "2024-11"


def test_future_budgets_start_at_current_month() -> None:
    expenses = [
        _expense(date(2025, 1, 5), 1_000),
        _expense(date(2025, 4, 5), 1_000),
        _expense(date(2025, 3, 5), 1_000),
    ]
    today = date(2025, 3, 20)
    budgets = future_budgets(group_expenses_by_month(expenses, today), today)
    assert [b.key for b in budgets] == ["2025-03", "2025-04"]


def test_progress_percent() -> None:
    assert budget_progress_percent(MonthlyBudget(year=2025, month="01")) == 0.0

    budget = MonthlyBudget(year=2025, month="01")
    budget.add(_expense(date(2025, 1, 1), 30_000, 10_000))
    assert budget_progress_percent(budget) == 33.33


def test_monthly_stats_window_is_ascending_and_skips_old_months() -> None:
    expenses = [
        _expense(date(2024, 6, 1), 9_999),
        _expense(date(2025, 2, 10), 1_000, 500),
        _expense(date(2025, 1, 10), 2_000, 2_000),
        _expense(date(2025, 1, 20), 3_000),
    ]
    stats = monthly_stats(expenses, date(2025, 3, 15), months=6)

    assert [s["month"] for s in stats] == ["2025-01", "2025-02"]
    assert stats[0] == {
        "month": "2025-01",
        "planned_cents": 5_000,
        "actual_cents": 2_000,
        "count": 2,
    }
