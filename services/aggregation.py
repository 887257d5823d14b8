"""Pure grouping and summation helpers over lists of expenses."""
import calendar
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from models.budget import Budget, BudgetProgress
from models.expense import Expense
from services.errors import ValidationError


def month_range(year: int, month: int) -> Tuple[str, str]:
    """
    Returns the first and last day of a calendar month as YYYY-MM-DD strings.

    The last day comes from the month's real day count, so February is
    28 or 29 days depending on the year.
    """
    if not 1 <= month <= 12:
        raise ValidationError(f"month must be between 1 and 12, got {month}")
    if not 1 <= year <= 9999:
        raise ValidationError(f"year must be between 1 and 9999, got {year}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1).isoformat(), date(year, month, last_day).isoformat()


def previous_month(year: int, month: int) -> Tuple[int, int]:
    if month == 1:
        return year - 1, 12
    return year, month - 1


def group_by_date(expenses: Iterable[Expense]) -> Dict[str, List[Expense]]:
    """Groups expenses under their date string, keeping the source order within each date."""
    grouped: Dict[str, List[Expense]] = {}
    for expense in expenses:
        grouped.setdefault(expense.date, []).append(expense)
    return grouped


def filter_month(expenses: Iterable[Expense], year: int, month: int) -> List[Expense]:
    start, end = month_range(year, month)
    return [e for e in expenses if start <= e.date <= end]


def sum_amounts(expenses: Iterable[Expense]) -> float:
    return sum((e.amount for e in expenses), 0)


def total_for_date(expenses: Iterable[Expense], day: str) -> float:
    return sum_amounts(e for e in expenses if e.date == day)


def total_for_month(expenses: Iterable[Expense], year: int, month: int) -> float:
    return sum_amounts(filter_month(expenses, year, month))


def month_totals(expenses: Iterable[Expense], year: int) -> Dict[int, float]:
    """Sum per month for a year. Every month 1..12 is present, empty months are 0."""
    expenses = list(expenses)
    return {month: total_for_month(expenses, year, month) for month in range(1, 13)}


def category_totals(expenses: Iterable[Expense], year: int, month: int) -> Dict[str, float]:
    """Sum per label for one month. Labels with no expenses are left out."""
    totals: Dict[str, float] = {}
    for expense in filter_month(expenses, year, month):
        totals[expense.label] = totals.get(expense.label, 0) + expense.amount
    return totals


def budget_progress(spent: float, budget: Optional[Budget], previous_month_total: float = 0) -> BudgetProgress:
    """
    Measures a month's spend against a budget.

    With no budget (or a zero one) percent_used stays 0 and the month is never
    over budget. The change from the previous month is a percentage and is 0
    when nothing was spent the month before.
    """
    limit = budget.amount if budget else 0
    percent_used = (spent / limit) * 100 if limit > 0 else 0
    change = 0
    if previous_month_total > 0:
        change = ((spent - previous_month_total) / previous_month_total) * 100
    return BudgetProgress(
        budget=limit,
        spent=spent,
        remaining=limit - spent,
        percent_used=percent_used,
        over_budget=percent_used > 100,
        previous_month_total=previous_month_total,
        change_from_previous_month=change,
    )
