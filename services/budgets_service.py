"""Service layer for budgets. Budgets are append-only."""
import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from models.budget import Budget, BudgetCreate, BudgetProgress
from services import expenses_service
from services.aggregation import budget_progress, month_range, previous_month
from services.errors import StoreError, ValidationError
from services.expenses_service import parse_payload, utcnow

logger = logging.getLogger(__name__)

BUDGET_TYPES = ("weekly", "monthly")
INSERTION_ORDER = [("created_at", ASCENDING), ("_id", ASCENDING)]
LATEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


def type_filter(budget_type: Optional[str]) -> Dict[str, Any]:
    if budget_type is None:
        return {}
    if budget_type not in BUDGET_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(BUDGET_TYPES)}")
    return {"type": budget_type}


async def create_budget(collection: AsyncIOMotorCollection, data: Dict[str, Any]) -> Budget:
    payload = parse_payload(BudgetCreate, data)
    now = utcnow()
    doc = payload.model_dump()
    if doc["start_date"] is None:
        doc["start_date"] = now.date().isoformat()
    doc["created_at"] = now
    try:
        result = await collection.insert_one(doc)
    except PyMongoError as e:
        logger.error(f"Database error inserting {payload.type} budget: {e}")
        raise StoreError(f"Database error inserting budget: {e}") from e

    doc["_id"] = result.inserted_id
    logger.info(f"Created {payload.type} budget {result.inserted_id} of {payload.amount} from {doc['start_date']}.")
    return Budget.from_document(doc)


async def list_budgets(collection: AsyncIOMotorCollection, budget_type: Optional[str] = None) -> List[Budget]:
    """Budgets in the order they were added, optionally of one type."""
    return await _find_budgets(collection, type_filter(budget_type), INSERTION_ORDER)


async def get_current_budget(collection: AsyncIOMotorCollection, budget_type: str = "monthly") -> Optional[Budget]:
    """The most recently added budget of the given type, or None."""
    budgets = await _find_budgets(collection, type_filter(budget_type), LATEST_FIRST, limit=1)
    return budgets[0] if budgets else None


async def get_budget_progress(
    budgets: AsyncIOMotorCollection,
    expenses: AsyncIOMotorCollection,
    year: int,
    month: int,
) -> BudgetProgress:
    """Spend for a month against the current monthly budget, compared with the previous month."""
    start, end = month_range(year, month)
    spent = await expenses_service.sum_amount(expenses, start, end)
    prev_year, prev_month = previous_month(year, month)
    previous_total = 0
    if prev_year >= 1:
        prev_start, prev_end = month_range(prev_year, prev_month)
        previous_total = await expenses_service.sum_amount(expenses, prev_start, prev_end)
    budget = await get_current_budget(budgets, "monthly")
    return budget_progress(spent, budget, previous_total)


async def _find_budgets(collection: AsyncIOMotorCollection, query: Dict[str, Any], sort, limit: int = 0) -> List[Budget]:
    budgets = []
    try:
        async for doc in collection.find(query, sort=sort, limit=limit):
            try:
                budgets.append(Budget.from_document(doc))
            except PydanticValidationError as e:
                logger.error(f"Data validation error for budget ID {doc.get('_id', 'N/A')}: {e}")
                continue
    except PyMongoError as e:
        logger.error(f"Database error querying budgets with {query}: {e}")
        raise StoreError(f"Database error querying budgets: {e}") from e
    return budgets
