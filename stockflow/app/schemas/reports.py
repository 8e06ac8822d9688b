from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

from stockflow.app.db.models.core_types import TOStatus


class StockLevelRow(BaseModel):
    location_id: int
    location_code: str
    item_id: int
    item_code: str
    item_name: str
    batch_id: int
    batch_label: str
    production_date: date
    quantity: int


class TransferHistoryRow(BaseModel):
    transfer_order_id: int
    to_number: str
    purchase_order_id: int
    po_number: str
    source_location_code: str
    destination_location_code: str
    employee_code: str
    status: TOStatus
    shipped_quantity: int
    received_quantity: int | None = None  # None tant que non reçu
    receive_order_id: int | None = None
    created_at: datetime


class ProductionSummaryRow(BaseModel):
    batch_id: int
    batch_label: str
    production_date: date
    location_code: str
    item_id: int
    item_code: str
    quantity: int
