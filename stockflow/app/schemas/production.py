from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator


class BatchLineCreate(BaseModel):
    item_id: int
    quantity: int = Field(gt=0)


class ProductionBatchCreate(BaseModel):
    location_id: int
    label: str | None = Field(default=None, min_length=1, max_length=64)
    production_date: date | None = None
    lines: list[BatchLineCreate] = Field(min_length=1)

    @field_validator("label")
    @classmethod
    def _strip_label(cls, label: str | None) -> str | None:
        if label is None:
            return None
        label = label.strip()
        if not label:
            raise ValueError("label must not be blank")
        return label

    @field_validator("lines")
    @classmethod
    def _unique_items(cls, lines: list[BatchLineCreate]) -> list[BatchLineCreate]:
        if len({ln.item_id for ln in lines}) != len(lines):
            raise ValueError("duplicate item_id in production lines")
        return lines


class LegacyBatchRequest(BaseModel):
    location_id: int | None = None


class BatchLineRead(BaseModel):
    item_id: int
    quantity: int

    class Config:
        from_attributes = True


class BatchRead(BaseModel):
    id: int
    label: str
    location_id: int
    production_date: date
    created_by: str | None
    created_at: datetime
    lines: list[BatchLineRead] = []

    class Config:
        from_attributes = True
