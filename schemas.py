from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from csv_utils import MAX_AMOUNT_CENTS
from periods import parse_month_token, parse_timestamp


class ExpenseIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    amount_cents: int = Field(..., ge=0, le=MAX_AMOUNT_CENTS)
    category: str = Field(..., min_length=1, max_length=100)
    occurred_on: datetime
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("occurred_on", mode="before")
    @classmethod
    def _parse_occurred_on(cls, value: Any) -> Any:
        if value is None or value == "":
            return value
        return parse_timestamp(value)


class ExpenseUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    amount_cents: Optional[int] = Field(default=None, ge=0, le=MAX_AMOUNT_CENTS)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    occurred_on: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("occurred_on", mode="before")
    @classmethod
    def _parse_occurred_on(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return parse_timestamp(value)


class BudgetIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(..., min_length=1, max_length=100)
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    amount_cents: int = Field(..., ge=0, le=MAX_AMOUNT_CENTS)

    @field_validator("month")
    @classmethod
    def _month_in_calendar(cls, value: str) -> str:
        parse_month_token(value)
        return value
