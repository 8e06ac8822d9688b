from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from stockflow.app.db.models.core_types import POStatus, TOStatus


# ---------- Commands ----------
class POLineCreate(BaseModel):
    item_id: int
    requested_quantity: int = Field(gt=0)


class POCreate(BaseModel):
    source_location_id: int
    destination_location_id: int
    lines: list[POLineCreate] = Field(min_length=1)

    @field_validator("lines")
    @classmethod
    def _unique_items(cls, lines: list[POLineCreate]) -> list[POLineCreate]:
        seen = set()
        for ln in lines:
            if ln.item_id in seen:
                raise ValueError(f"duplicate item_id {ln.item_id}")
            seen.add(ln.item_id)
        return lines


class TOLineCreate(BaseModel):
    item_id: int
    batch_id: int | None = None  # None -> allocation FIFO par label de batch
    quantity: int = Field(gt=0)


class TOCreate(BaseModel):
    purchase_order_id: int
    employee_id: int
    lines: list[TOLineCreate] = Field(min_length=1)


class ROLineCreate(BaseModel):
    item_id: int
    batch_id: int
    received_quantity: int = Field(ge=0)


class ROCreate(BaseModel):
    transfer_order_id: int
    lines: list[ROLineCreate] = Field(min_length=1)


# ---------- Read models ----------
class POLineRead(BaseModel):
    item_id: int
    requested_quantity: int

    class Config:
        from_attributes = True


class PurchaseOrderRead(BaseModel):
    id: int
    po_number: str
    source_location_id: int
    destination_location_id: int
    status: POStatus
    is_active: bool
    created_by: str
    created_at: datetime
    lines: list[POLineRead]

    class Config:
        from_attributes = True


class TOLineRead(BaseModel):
    item_id: int
    batch_id: int
    shipped_quantity: int

    class Config:
        from_attributes = True


class TransferOrderRead(BaseModel):
    id: int
    to_number: str
    purchase_order_id: int
    employee_id: int
    status: TOStatus
    created_by: str
    created_at: datetime
    lines: list[TOLineRead]

    class Config:
        from_attributes = True


class ROLineRead(BaseModel):
    item_id: int
    batch_id: int
    shipped_quantity: int
    received_quantity: int
    discrepancy: int

    class Config:
        from_attributes = True


class ReceiveOrderRead(BaseModel):
    id: int
    ro_number: str
    transfer_order_id: int
    created_by: str
    created_at: datetime
    total_discrepancy: int
    lines: list[ROLineRead]

    class Config:
        from_attributes = True
