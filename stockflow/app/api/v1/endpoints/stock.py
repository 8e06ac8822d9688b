from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError as PydanticValidationError

from stockflow.app.api.deps import get_actor, get_inventory
from stockflow.app.db.models.core_types import ReasonKind
from stockflow.app.schemas.stock import ItemStock, Page, StockAdjust, StockHistoryFilter, StockHistoryRead
from stockflow.services.inventory import InventoryService

router = APIRouter(prefix="/stock")


class StockAdjustResult(BaseModel):
    location_id: int
    item_id: int
    batch_id: int
    quantity: int


@router.get("", response_model=list[ItemStock])
def get_stock(
    location_id: int,
    item_id: int | None = None,
    batch_id: int | None = None,
    inventory: InventoryService = Depends(get_inventory),
):
    """
    Stock (READ ONLY)
    - groupé par item, détail par batch
    - seules les quantités > 0 sont exposées
    """
    return inventory.get_stock(location_id, item_id, batch_id)


@router.put("", response_model=StockAdjustResult)
def adjust_stock(
    payload: StockAdjust,
    actor_id: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory),
):
    quantity = inventory.adjust_stock(payload, actor_id)
    return StockAdjustResult(
        location_id=payload.location_id,
        item_id=payload.item_id,
        batch_id=payload.batch_id,
        quantity=quantity,
    )


@router.get("/history", response_model=Page[StockHistoryRead])
def stock_history(
    location_id: int | None = None,
    item_id: int | None = None,
    batch_id: int | None = None,
    reason: list[ReasonKind] | None = Query(default=None),
    actor_id: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=25, ge=1),
    inventory: InventoryService = Depends(get_inventory),
):
    try:
        filters = StockHistoryFilter(
            location_id=location_id,
            item_id=item_id,
            batch_id=batch_id,
            reasons=reason,
            actor_id=actor_id,
            created_from=created_from,
            created_to=created_to,
            page=page,
            page_size=page_size,
        )
    except PydanticValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return inventory.get_stock_history(filters)
