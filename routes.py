"""API Routes for expenses and budgets"""
from datetime import date
from typing import Annotated, Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response
from motor.motor_asyncio import AsyncIOMotorCollection

import config
from models.budget import Budget, BudgetProgress
from models.expense import Expense
from services import budgets_service, expenses_service
from services.errors import ExpenseCalendarError, NotFoundError, StoreError, ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)

SERVER_ERROR_DETAIL = "An unexpected server error occurred."

# --- Dependency Functions ---
def get_expenses_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB expenses collection from the request state."""
    collection = getattr(request.state, "expenses_collection", None)
    if collection is None:
        logger.error("Expenses collection not found in application state. Check MongoDB connection.")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)
    return collection

def get_budgets_collection(request: Request) -> AsyncIOMotorCollection:
    """Dependency to get the MongoDB budgets collection from the request state."""
    collection = getattr(request.state, "budgets_collection", None)
    if collection is None:
        logger.error("Budgets collection not found in application state. Check MongoDB connection.")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)
    return collection

def get_allowed_categories() -> frozenset:
    """Label allow-list from EXPENSE_CATEGORIES. Empty means free text."""
    return config.EXPENSE_CATEGORIES

# Type hints for the dependencies
ExpensesCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_expenses_collection)]
BudgetsCollectionDep = Annotated[AsyncIOMotorCollection, Depends(get_budgets_collection)]
AllowedCategoriesDep = Annotated[frozenset, Depends(get_allowed_categories)]

YearQuery = Annotated[int, Query(ge=1, le=9999, description="Four digit year.")]
MonthQuery = Annotated[int, Query(ge=1, le=12, description="Month number, 1-12.")]


def http_error(endpoint: str, error: ExpenseCalendarError) -> HTTPException:
    """Maps a service error to an HTTP error. Store failures never leak their message."""
    if isinstance(error, ValidationError):
        logger.warning(f"{endpoint} rejected invalid input: {error}")
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, NotFoundError):
        logger.warning(f"{endpoint}: {error}")
        return HTTPException(status_code=404, detail="Not found")
    if isinstance(error, StoreError):
        logger.error(f"{endpoint} store error: {error}")
    else:
        logger.error(f"{endpoint} failed: {error}")
    return HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)


# --- Expense Routes ---

@router.post("/expenses", status_code=201, response_model=Expense, summary="Create Expense")
async def create_expense(
    collection: ExpensesCollectionDep,
    categories: AllowedCategoriesDep,
    payload: Annotated[Dict[str, Any], Body()],
) -> Expense:
    """Creates a dated expense entry. Requires `date` (YYYY-MM-DD) and a numeric `amount` >= 0."""
    logger.info(f"POST /expenses endpoint called for date {payload.get('date')!r}")
    try:
        return await expenses_service.create_expense(collection, payload, categories)
    except ExpenseCalendarError as e:
        raise http_error("POST /expenses", e)
    except Exception as e:
        logger.exception(f"Unexpected error creating expense: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/expenses/by-date/{day}", response_model=List[Expense], summary="Get Expenses For A Date")
async def get_expenses_by_date(collection: ExpensesCollectionDep, day: str) -> List[Expense]:
    """All expenses on one date, newest first. Empty list when there are none."""
    logger.info(f"GET /expenses/by-date/{day} endpoint called.")
    try:
        return await expenses_service.get_expenses_by_date(collection, day)
    except ExpenseCalendarError as e:
        raise http_error("GET /expenses/by-date", e)
    except Exception as e:
        logger.exception(f"Unexpected error fetching expenses for {day}: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/expenses", response_model=Dict[str, List[Expense]], summary="Get Month Grouped By Date")
async def get_expenses_for_month(
    collection: ExpensesCollectionDep,
    year: YearQuery,
    month: MonthQuery,
) -> Dict[str, List[Expense]]:
    """Expenses of a full calendar month, keyed by date."""
    logger.info(f"GET /expenses endpoint called for {year}-{month:02d}")
    try:
        return await expenses_service.get_expenses_for_month(collection, year, month)
    except ExpenseCalendarError as e:
        raise http_error("GET /expenses", e)
    except Exception as e:
        logger.exception(f"Unexpected error fetching expenses for {year}-{month}: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/expenses/summary", response_model=Dict[int, float], summary="Get Monthly Totals")
async def get_monthly_summary(collection: ExpensesCollectionDep, year: YearQuery) -> Dict[int, float]:
    """Totals for months 1-12 of a year. Months without expenses are 0."""
    logger.info(f"GET /expenses/summary endpoint called for {year}")
    try:
        return await expenses_service.get_month_totals(collection, year)
    except ExpenseCalendarError as e:
        raise http_error("GET /expenses/summary", e)
    except Exception as e:
        logger.exception(f"Unexpected error computing summary for {year}: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/expenses/categories", response_model=Dict[str, float], summary="Get Category Totals")
async def get_category_totals(
    collection: ExpensesCollectionDep,
    year: YearQuery,
    month: MonthQuery,
) -> Dict[str, float]:
    logger.info(f"GET /expenses/categories endpoint called for {year}-{month:02d}")
    try:
        return await expenses_service.get_category_totals(collection, year, month)
    except ExpenseCalendarError as e:
        raise http_error("GET /expenses/categories", e)
    except Exception as e:
        logger.exception(f"Unexpected error computing category totals for {year}-{month}: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/expenses/range", response_model=List[Expense], summary="Get Expenses In A Date Range")
async def get_expenses_in_range(
    collection: ExpensesCollectionDep,
    start: Optional[str] = Query(None, description="First date (inclusive), YYYY-MM-DD."),
    end: Optional[str] = Query(None, description="Last date (inclusive), YYYY-MM-DD."),
) -> List[Expense]:
    logger.info(f"GET /expenses/range endpoint called with start={start} end={end}")
    try:
        return await expenses_service.get_expenses_by_date_range(collection, start, end)
    except ExpenseCalendarError as e:
        raise http_error("GET /expenses/range", e)
    except Exception as e:
        logger.exception(f"Unexpected error fetching expense range: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/expenses/export", summary="Export Expenses As CSV", response_class=Response)
async def export_expenses(collection: ExpensesCollectionDep) -> Response:
    logger.info("GET /expenses/export endpoint called.")
    try:
        content = await expenses_service.export_expenses_csv(collection)
    except ExpenseCalendarError as e:
        raise http_error("GET /expenses/export", e)
    except Exception as e:
        logger.exception(f"Unexpected error exporting expenses: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)
    filename = f"expenses-{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

@router.put("/expenses/{expense_id}", response_model=Expense, summary="Update Expense")
async def update_expense(
    collection: ExpensesCollectionDep,
    categories: AllowedCategoriesDep,
    expense_id: str,
    payload: Annotated[Dict[str, Any], Body()],
) -> Expense:
    """Partial update: only the fields present in the body are replaced."""
    logger.info(f"PUT /expenses/{expense_id} endpoint called with fields {sorted(payload)}")
    try:
        return await expenses_service.update_expense(collection, expense_id, payload, categories)
    except ExpenseCalendarError as e:
        raise http_error("PUT /expenses", e)
    except Exception as e:
        logger.exception(f"Unexpected error updating expense {expense_id}: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.delete("/expenses/{expense_id}", summary="Delete Expense")
async def delete_expense(collection: ExpensesCollectionDep, expense_id: str):
    logger.info(f"DELETE /expenses/{expense_id} endpoint called.")
    try:
        return await expenses_service.delete_expense(collection, expense_id)
    except ExpenseCalendarError as e:
        raise http_error("DELETE /expenses", e)
    except Exception as e:
        logger.exception(f"Unexpected error deleting expense {expense_id}: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)


# --- Budget Routes ---

@router.post("/budgets", status_code=201, response_model=Budget, summary="Add Budget")
async def create_budget(collection: BudgetsCollectionDep, payload: Annotated[Dict[str, Any], Body()]) -> Budget:
    """Adds a weekly or monthly budget. Earlier budgets are kept; the newest one is current."""
    logger.info(f"POST /budgets endpoint called for type {payload.get('type')!r}")
    try:
        return await budgets_service.create_budget(collection, payload)
    except ExpenseCalendarError as e:
        raise http_error("POST /budgets", e)
    except Exception as e:
        logger.exception(f"Unexpected error creating budget: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/budgets", response_model=List[Budget], summary="List Budgets")
async def list_budgets(
    collection: BudgetsCollectionDep,
    budget_type: Optional[str] = Query(None, alias="type", description="'weekly' or 'monthly'."),
) -> List[Budget]:
    logger.info(f"GET /budgets endpoint called (type={budget_type})")
    try:
        return await budgets_service.list_budgets(collection, budget_type)
    except ExpenseCalendarError as e:
        raise http_error("GET /budgets", e)
    except Exception as e:
        logger.exception(f"Unexpected error listing budgets: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)

@router.get("/budgets/progress", response_model=BudgetProgress, summary="Get Monthly Budget Progress")
async def get_budget_progress(
    budgets: BudgetsCollectionDep,
    expenses: ExpensesCollectionDep,
    year: YearQuery,
    month: MonthQuery,
) -> BudgetProgress:
    logger.info(f"GET /budgets/progress endpoint called for {year}-{month:02d}")
    try:
        return await budgets_service.get_budget_progress(budgets, expenses, year, month)
    except ExpenseCalendarError as e:
        raise http_error("GET /budgets/progress", e)
    except Exception as e:
        logger.exception(f"Unexpected error computing budget progress: {e}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL)
