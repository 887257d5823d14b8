"""Async HTTP client for the expense calendar API."""
import logging
from typing import Any, Dict, List, Optional

import httpx

import config
from models.budget import Budget, BudgetProgress
from models.expense import Expense

logger = logging.getLogger(__name__)

API_PREFIX = "/api"


class ApiError(Exception):
    """
    A failed API call. status_code is 0 when the server could not be reached.
    The message is meant to be shown to the user as is.
    """

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"[{status_code}] {detail}")
        self.status_code = status_code
        self.detail = detail


class ExpenseApiClient:
    """One method per REST endpoint. Errors are raised as ApiError and never retried."""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or config.API_BASE_URL, timeout=timeout)

    async def __aenter__(self) -> "ExpenseApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(0, f"Could not reach the server: {e}") from e
        if response.is_error:
            detail = _error_detail(response)
            logger.warning(f"{method} {path} returned {response.status_code}: {detail}")
            raise ApiError(response.status_code, detail)
        return response

    # --- Expenses ---

    async def create_expense(self, date: str, amount: float, description: str = "", label: str = "") -> Expense:
        body = {"date": date, "amount": amount, "description": description, "label": label}
        response = await self._request("POST", "/expenses", json=body)
        return Expense.model_validate(response.json())

    async def get_expenses_by_date(self, day: str) -> List[Expense]:
        response = await self._request("GET", f"/expenses/by-date/{day}")
        return [Expense.model_validate(item) for item in response.json()]

    async def get_month(self, year: int, month: int) -> Dict[str, List[Expense]]:
        response = await self._request("GET", "/expenses", params={"year": year, "month": month})
        return {day: [Expense.model_validate(item) for item in items] for day, items in response.json().items()}

    async def get_month_totals(self, year: int) -> Dict[int, float]:
        response = await self._request("GET", "/expenses/summary", params={"year": year})
        return {int(month): total for month, total in response.json().items()}

    async def get_category_totals(self, year: int, month: int) -> Dict[str, float]:
        response = await self._request("GET", "/expenses/categories", params={"year": year, "month": month})
        return response.json()

    async def list_expenses(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Expense]:
        params = {key: value for key, value in (("start", start), ("end", end)) if value is not None}
        response = await self._request("GET", "/expenses/range", params=params)
        return [Expense.model_validate(item) for item in response.json()]

    async def update_expense(self, expense_id: str, **fields: Any) -> Expense:
        response = await self._request("PUT", f"/expenses/{expense_id}", json=fields)
        return Expense.model_validate(response.json())

    async def delete_expense(self, expense_id: str) -> None:
        await self._request("DELETE", f"/expenses/{expense_id}")

    async def export_csv(self) -> str:
        response = await self._request("GET", "/expenses/export")
        return response.text

    # --- Budgets ---

    async def create_budget(
        self,
        budget_type: str,
        amount: float,
        start_date: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Budget:
        body = {"type": budget_type, "amount": amount}
        if start_date is not None:
            body["startDate"] = start_date
        if category is not None:
            body["category"] = category
        response = await self._request("POST", "/budgets", json=body)
        return Budget.model_validate(response.json())

    async def list_budgets(self, budget_type: Optional[str] = None) -> List[Budget]:
        params = {"type": budget_type} if budget_type else {}
        response = await self._request("GET", "/budgets", params=params)
        return [Budget.model_validate(item) for item in response.json()]

    async def get_budget_progress(self, year: int, month: int) -> BudgetProgress:
        response = await self._request("GET", "/budgets/progress", params={"year": year, "month": month})
        return BudgetProgress.model_validate(response.json())


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    return str(detail) if detail else response.reason_phrase or "Request failed"
