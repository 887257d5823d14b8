"""Service layer for storing and querying expense records."""
import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection # Type hint for collection
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from models.expense import Expense, ExpenseCreate, ExpenseUpdate, validate_iso_date
from services.aggregation import category_totals, group_by_date, month_range
from services.errors import NotFoundError, StoreError, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Newest first within a date; _id breaks ties between writes in the same millisecond
NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]
BY_DATE_NEWEST_FIRST = [("date", ASCENDING)] + NEWEST_FIRST

CSV_HEADER = ["Date", "Amount", "Category", "Description"]


def utcnow() -> datetime:
    # MongoDB keeps milliseconds; match what a later read returns
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def describe_validation_error(error: PydanticValidationError) -> str:
    """Flattens a pydantic error into 'field: message' pairs."""
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


def parse_payload(model: Type[ModelT], data: Any) -> ModelT:
    """Validates raw request data against a model, raising the domain ValidationError."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_error(e)) from e


def check_label(label: str, allowed_categories: Optional[frozenset]) -> None:
    # An omitted label stays valid under an allow-list
    if allowed_categories and label and label not in allowed_categories:
        raise ValidationError(f"label must be one of: {', '.join(sorted(allowed_categories))}")


def check_date(value: Any, field: str = "date") -> str:
    try:
        return validate_iso_date(value)
    except ValueError as e:
        raise ValidationError(f"{field}: {e}") from e


def to_object_id(expense_id: str) -> ObjectId:
    # A malformed id cannot match any record
    if not ObjectId.is_valid(expense_id):
        raise NotFoundError(f"Expense {expense_id} not found")
    return ObjectId(expense_id)


def date_filter(start_date: Optional[str], end_date: Optional[str]) -> Dict[str, Any]:
    """Builds an inclusive range filter on the YYYY-MM-DD date string."""
    bounds = {}
    if start_date is not None:
        bounds["$gte"] = check_date(start_date, "start_date")
    if end_date is not None:
        bounds["$lte"] = check_date(end_date, "end_date")
    if "$gte" in bounds and "$lte" in bounds and bounds["$gte"] > bounds["$lte"]:
        raise ValidationError("start_date must not be after end_date")
    return {"date": bounds} if bounds else {}


async def find_expenses(collection: AsyncIOMotorCollection, query: Dict[str, Any], sort) -> List[Expense]:
    expenses = []
    try:
        cursor = collection.find(query, sort=sort)
        async for doc in cursor:
            try:
                expenses.append(Expense.from_document(doc))
            except PydanticValidationError as e:
                logger.error(f"Data validation error for document ID {doc.get('_id', 'N/A')}: {e}")
                # Skip invalid documents
                continue
    except PyMongoError as e:
        logger.error(f"Database error querying expenses with {query}: {e}")
        raise StoreError(f"Database error querying expenses: {e}") from e
    logger.debug(f"Query {query} matched {len(expenses)} expenses.")
    return expenses


# --- Write operations ---

async def create_expense(
    collection: AsyncIOMotorCollection,
    data: Dict[str, Any],
    allowed_categories: Optional[frozenset] = None,
) -> Expense:
    """Validates and inserts one expense, returning the stored record with its new id."""
    payload = parse_payload(ExpenseCreate, data)
    check_label(payload.label, allowed_categories)

    now = utcnow()
    doc = payload.model_dump()
    doc["created_at"] = now
    doc["updated_at"] = now
    try:
        result = await collection.insert_one(doc)
    except PyMongoError as e:
        logger.error(f"Database error inserting expense for {payload.date}: {e}")
        raise StoreError(f"Database error inserting expense: {e}") from e

    doc["_id"] = result.inserted_id
    logger.info(f"Created expense {result.inserted_id} on {payload.date} for {payload.amount}.")
    return Expense.from_document(doc)


async def update_expense(
    collection: AsyncIOMotorCollection,
    expense_id: str,
    data: Dict[str, Any],
    allowed_categories: Optional[frozenset] = None,
) -> Expense:
    """Replaces only the supplied fields of an expense."""
    oid = to_object_id(expense_id)
    changes = parse_payload(ExpenseUpdate, data).changes()
    if "label" in changes:
        check_label(changes["label"], allowed_categories)

    try:
        if changes:
            changes["updated_at"] = utcnow()
            doc = await collection.find_one_and_update(
                {"_id": oid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        else:
            doc = await collection.find_one({"_id": oid})
    except PyMongoError as e:
        logger.error(f"Database error updating expense {expense_id}: {e}")
        raise StoreError(f"Database error updating expense: {e}") from e

    if doc is None:
        raise NotFoundError(f"Expense {expense_id} not found")
    logger.info(f"Updated expense {expense_id}: {sorted(changes)}")
    return Expense.from_document(doc)


async def delete_expense(collection: AsyncIOMotorCollection, expense_id: str) -> Dict[str, Any]:
    oid = to_object_id(expense_id)
    try:
        result = await collection.delete_one({"_id": oid})
    except PyMongoError as e:
        logger.error(f"Database error deleting expense {expense_id}: {e}")
        raise StoreError(f"Database error deleting expense: {e}") from e

    if result.deleted_count == 0:
        raise NotFoundError(f"Expense {expense_id} not found")
    logger.info(f"Deleted expense {expense_id}.")
    return {"ok": True}


# --- Read operations ---

async def get_expenses_by_date(collection: AsyncIOMotorCollection, day: str) -> List[Expense]:
    """All expenses on exactly this date, newest first."""
    day = check_date(day)
    return await find_expenses(collection, {"date": day}, NEWEST_FIRST)


async def get_expenses_by_date_range(
    collection: AsyncIOMotorCollection,
    start_date: Optional[str],
    end_date: Optional[str],
) -> List[Expense]:
    """
    Expenses dated between start_date and end_date, both inclusive.

    Dates are compared as YYYY-MM-DD strings. A bound of None leaves that side
    open. Results are in date order, newest first within a date.
    """
    query = date_filter(start_date, end_date)
    return await find_expenses(collection, query, BY_DATE_NEWEST_FIRST)


async def sum_amount(
    collection: AsyncIOMotorCollection,
    start_date: Optional[str],
    end_date: Optional[str],
) -> float:
    """Total amount over an inclusive date range. 0 when nothing matches."""
    pipeline = [
        {"$match": date_filter(start_date, end_date)},
        {"$group": {"_id": None, "total": {"$sum": "$amount"}}},
    ]
    total = 0
    try:
        async for doc in collection.aggregate(pipeline):
            total = doc.get("total") or 0
    except PyMongoError as e:
        logger.error(f"Database error summing expenses {start_date}..{end_date}: {e}")
        raise StoreError(f"Database error summing expenses: {e}") from e
    return total


async def get_expenses_for_month(collection: AsyncIOMotorCollection, year: int, month: int) -> Dict[str, List[Expense]]:
    start, end = month_range(year, month)
    expenses = await get_expenses_by_date_range(collection, start, end)
    return group_by_date(expenses)


async def get_month_totals(collection: AsyncIOMotorCollection, year: int) -> Dict[int, float]:
    totals = {}
    for month in range(1, 13):
        start, end = month_range(year, month)
        totals[month] = await sum_amount(collection, start, end)
    return totals


async def get_category_totals(collection: AsyncIOMotorCollection, year: int, month: int) -> Dict[str, float]:
    start, end = month_range(year, month)
    expenses = await get_expenses_by_date_range(collection, start, end)
    return category_totals(expenses, year, month)


# --- Export ---

def format_amount(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else str(amount)


async def export_expenses_csv(collection: AsyncIOMotorCollection) -> str:
    """Renders every expense as CSV (Date, Amount, Category, Description) in date order."""
    expenses = await get_expenses_by_date_range(collection, None, None)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for expense in expenses:
        writer.writerow([expense.date, format_amount(expense.amount), expense.label, expense.description])
    logger.info(f"Exported {len(expenses)} expenses to CSV.")
    return buffer.getvalue()
