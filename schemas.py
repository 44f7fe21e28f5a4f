from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    external_link_id: Optional[str] = Field(default=None, max_length=255)


class CategoryIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)


class TransactionIn(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    date: date
    account_id: str = Field(..., min_length=1)
    category_id: Optional[str] = None
    payee: str = Field(..., min_length=1, max_length=200)
    amount: int
    notes: Optional[str] = None


class BulkCreateIn(CamelModel):
    transactions: list[TransactionIn]


class BulkDeleteIn(CamelModel):
    ids: list[str]


class TransactionOut(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    date: date
    account_id: str
    category_id: Optional[str]
    payee: str
    amount: int
    notes: Optional[str]


class CategorySlice(CamelModel):
    name: str
    value: int


class DayPoint(CamelModel):
    date: date
    income: int
    expenses: int


class SummaryOut(CamelModel):
    remaining_amount: int
    remaining_change: float
    income_amount: int
    income_change: float
    expenses_amount: int
    expenses_change: float
    categories: list[CategorySlice]
    days: list[DayPoint]
