"""
In-memory snapshot of expenses and budgets for synchronous reads.

The cache is owned by whoever creates it. Nothing refreshes it in the
background: call refresh() after writes, or ensure_fresh() before reads to
reload once max_age has passed. Writes made by other clients are only seen
after the next refresh.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from models.budget import Budget, BudgetProgress
from models.expense import Expense
from services import aggregation
from utils.api_client import ExpenseApiClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(minutes=5)

ExpenseLoader = Callable[[], Awaitable[List[Expense]]]
BudgetLoader = Callable[[], Awaitable[List[Budget]]]


class ExpenseCache:
    """Time-boxed snapshot of expenses and budgets, refreshed explicitly by its owner."""

    def __init__(
        self,
        load_expenses: ExpenseLoader,
        load_budgets: BudgetLoader,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._load_expenses = load_expenses
        self._load_budgets = load_budgets
        self.max_age = max_age
        self._clock = clock
        self._expenses: List[Expense] = []
        self._budgets: List[Budget] = []
        self.last_updated: Optional[datetime] = None

    @classmethod
    def from_client(cls, client: ExpenseApiClient, max_age: timedelta = DEFAULT_MAX_AGE) -> "ExpenseCache":
        return cls(client.list_expenses, client.list_budgets, max_age=max_age)

    @property
    def is_stale(self) -> bool:
        if self.last_updated is None:
            return True
        return self._clock() - self.last_updated >= self.max_age

    async def refresh(self) -> None:
        """Reloads both lists. On failure the previous snapshot is kept and the error re-raised."""
        try:
            expenses = await self._load_expenses()
            budgets = await self._load_budgets()
        except Exception as e:
            logger.error(f"Error refreshing expense cache: {e}")
            raise
        self._expenses = list(expenses)
        self._budgets = list(budgets)
        self.last_updated = self._clock()
        logger.debug(f"Expense cache refreshed: {len(self._expenses)} expenses, {len(self._budgets)} budgets.")

    async def ensure_fresh(self) -> bool:
        """Refreshes only when stale. Returns True if a reload happened."""
        if not self.is_stale:
            return False
        await self.refresh()
        return True

    def invalidate(self) -> None:
        self.last_updated = None

    # --- Synchronous reads from the snapshot ---

    @property
    def expenses(self) -> List[Expense]:
        return list(self._expenses)

    @property
    def budgets(self) -> List[Budget]:
        return list(self._budgets)

    def expenses_for_date(self, day: str) -> List[Expense]:
        return [e for e in self._expenses if e.date == day]

    def expenses_for_month(self, year: int, month: int) -> Dict[str, List[Expense]]:
        return aggregation.group_by_date(aggregation.filter_month(self._expenses, year, month))

    def total_for_date(self, day: str) -> float:
        return aggregation.total_for_date(self._expenses, day)

    def total_for_month(self, year: int, month: int) -> float:
        return aggregation.total_for_month(self._expenses, year, month)

    def category_totals(self, year: int, month: int) -> Dict[str, float]:
        return aggregation.category_totals(self._expenses, year, month)

    def current_budget(self, budget_type: str = "monthly") -> Optional[Budget]:
        # Budgets load in insertion order, so the last match is the newest
        matches = [b for b in self._budgets if b.type == budget_type]
        return matches[-1] if matches else None

    def budget_progress(self, year: int, month: int) -> BudgetProgress:
        spent = self.total_for_month(year, month)
        prev_year, prev_month = aggregation.previous_month(year, month)
        previous_total = self.total_for_month(prev_year, prev_month) if prev_year >= 1 else 0
        return aggregation.budget_progress(spent, self.current_budget("monthly"), previous_total)
