from __future__ import annotations

from fastapi import APIRouter, Depends

from stockflow.app.api.deps import get_actor, get_inventory, get_workflow
from stockflow.app.schemas.orders import TOCreate, TransferOrderRead
from stockflow.app.schemas.stock import BatchBalance
from stockflow.services.inventory import InventoryService
from stockflow.services.procurement import OrderWorkflow

router = APIRouter(prefix="/transfer-orders")


# routes fixes AVANT /{to_id}
@router.get("/available-batches", response_model=list[BatchBalance])
def available_batches(
    location_id: int,
    item_id: int,
    inventory: InventoryService = Depends(get_inventory),
):
    """Batches disponibles (qty > 0) pour l'écran d'expédition, plus ancien label d'abord."""
    return inventory.get_available_batches(location_id, item_id)


@router.get("/incoming", response_model=list[TransferOrderRead])
def incoming(location_id: int, workflow: OrderWorkflow = Depends(get_workflow)):
    return workflow.list_incoming_transfer_orders(location_id)


@router.get("/{to_id}", response_model=TransferOrderRead)
def get_to(to_id: int, workflow: OrderWorkflow = Depends(get_workflow)):
    return workflow.get_transfer_order(to_id)


@router.post("", response_model=TransferOrderRead, status_code=201)
def create_to(
    payload: TOCreate,
    actor_id: str = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    """
    Expédition : allocation par batch + décrément du stock source.
    Tout ou rien ; l'erreur indique l'index de la ligne fautive.
    """
    return workflow.create_transfer_order(payload, actor_id)
