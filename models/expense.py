"""Pydantic models for Expense data"""
import re
from datetime import date, datetime
from typing import Annotated, Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_iso_date(value: Any) -> str:
    """Accepts a date or a YYYY-MM-DD string and returns the ISO string."""
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        raise ValueError("date must be a YYYY-MM-DD string")
    # Rejects impossible days such as 2025-02-30
    datetime.strptime(value, "%Y-%m-%d")
    return value


IsoDate = Annotated[str, BeforeValidator(validate_iso_date)]

# Strict so that "250" or true are rejected; ints are still accepted
Amount = Annotated[float, Field(ge=0, strict=True, allow_inf_nan=False)]


class ExpenseCreate(BaseModel):
    """Payload for a new expense entry."""
    model_config = ConfigDict(extra="ignore")

    date: IsoDate
    amount: Amount
    description: Optional[str] = ""
    label: Optional[str] = Field(default="", validation_alias=AliasChoices("label", "category"))

    @field_validator("description", "label")
    @classmethod
    def blank_if_none(cls, value: Optional[str]) -> str:
        return "" if value is None else value


class ExpenseUpdate(BaseModel):
    """Partial update. Only fields that are supplied (and not null) are written."""
    model_config = ConfigDict(extra="ignore")

    date: Optional[IsoDate] = None
    amount: Optional[Amount] = None
    description: Optional[str] = None
    label: Optional[str] = Field(default=None, validation_alias=AliasChoices("label", "category"))

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Expense(BaseModel):
    """
    A stored expense record as returned by the API.
    Serialized with camelCase keys (createdAt, updatedAt).
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: str
    date: str
    amount: float
    description: str = ""
    label: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Expense":
        """Builds an Expense from a raw MongoDB document."""
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)
