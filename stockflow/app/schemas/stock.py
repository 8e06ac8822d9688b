from __future__ import annotations

from datetime import date, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, Field, computed_field, model_validator

from stockflow.app.db.models.core_types import ReasonKind, ReferenceType

T = TypeVar("T")


class BatchBalance(BaseModel):
    batch_id: int
    batch_label: str
    production_date: date
    quantity: int


class Allocation(BaseModel):
    batch_id: int
    batch_label: str
    quantity: int


class ItemStock(BaseModel):
    item_id: int
    item_code: str
    item_name: str
    total_quantity: int
    batches: list[BatchBalance]


class StockAdjust(BaseModel):
    location_id: int
    item_id: int
    batch_id: int
    new_quantity: int = Field(ge=0)
    note: str = Field(min_length=3, max_length=1000)


class StockHistoryFilter(BaseModel):
    location_id: int | None = None
    item_id: int | None = None
    batch_id: int | None = None
    reasons: list[ReasonKind] | None = None
    actor_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=25, ge=1)

    @model_validator(mode="after")
    def _check_range(self) -> "StockHistoryFilter":
        if self.created_from and self.created_to and self.created_from > self.created_to:
            raise ValueError("created_from must be before created_to")
        return self


class StockHistoryRead(BaseModel):
    id: int
    location_id: int
    item_id: int
    batch_id: int
    delta: int
    previous_quantity: int
    resulting_quantity: int
    reason: ReasonKind
    actor_id: str
    reference_type: ReferenceType | None
    reference_id: int | None
    note: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class Page(BaseModel, Generic[T]):
    items: list[T]
    page: int
    page_size: int
    total: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size
