"""Pydantic models for budgets and budget progress"""
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.expense import IsoDate

BudgetType = Literal["weekly", "monthly"]


class BudgetCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: BudgetType
    amount: Annotated[float, Field(gt=0, strict=True, allow_inf_nan=False)]
    start_date: Optional[IsoDate] = None
    category: Optional[str] = None


class Budget(BaseModel):
    """A spending ceiling for a weekly or monthly period. Budgets are append-only."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    type: BudgetType
    amount: float
    start_date: str
    category: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Budget":
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


class BudgetProgress(BaseModel):
    """Spend for a month measured against the current monthly budget."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    budget: float = 0
    spent: float = 0
    remaining: float = 0
    percent_used: float = 0
    over_budget: bool = False
    previous_month_total: float = 0
    change_from_previous_month: float = 0
