from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query

from stockflow.app.api.deps import get_actor, get_workflow
from stockflow.app.db.models.core_types import POStatus
from stockflow.app.schemas.orders import POCreate, PurchaseOrderRead
from stockflow.app.schemas.stock import Page
from stockflow.services.procurement import OrderWorkflow

router = APIRouter(prefix="/purchase-orders")


@router.get("", response_model=Page[PurchaseOrderRead])
def list_pos(
    location_id: int | None = None,
    direction: Literal["incoming", "outgoing"] | None = None,
    status: POStatus | None = None,
    only_active: bool = False,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=10, ge=1, le=100),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    return workflow.list_purchase_orders(
        location_id=location_id,
        direction=direction,
        status=status,
        only_active=only_active,
        page=page,
        page_size=page_size,
    )


@router.get("/{po_id}", response_model=PurchaseOrderRead)
def get_po(po_id: int, workflow: OrderWorkflow = Depends(get_workflow)):
    return workflow.get_purchase_order(po_id)


@router.post("", response_model=PurchaseOrderRead, status_code=201)
def create_po(
    payload: POCreate,
    actor_id: str = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    return workflow.create_purchase_order(payload, actor_id)


@router.post("/{po_id}/deactivate", response_model=PurchaseOrderRead)
def deactivate_po(
    po_id: int,
    actor_id: str = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    """Seulement depuis CREATED ; sinon 409 et is_active inchangé."""
    return workflow.deactivate_purchase_order(po_id, actor_id)
