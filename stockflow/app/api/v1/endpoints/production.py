from __future__ import annotations

from fastapi import APIRouter, Depends

from stockflow.app.api.deps import get_actor, get_inventory
from stockflow.app.schemas.production import BatchRead, LegacyBatchRequest, ProductionBatchCreate
from stockflow.services.inventory import InventoryService

router = APIRouter(prefix="/production")


@router.get("/batches", response_model=list[BatchRead])
def list_batches(location_id: int | None = None, inventory: InventoryService = Depends(get_inventory)):
    return inventory.list_batches(location_id)


@router.get("/batches/{batch_id}", response_model=BatchRead)
def get_batch(batch_id: int, inventory: InventoryService = Depends(get_inventory)):
    return inventory.get_batch(batch_id)


@router.post("/batches", response_model=BatchRead, status_code=201)
def create_batch(
    payload: ProductionBatchCreate,
    actor_id: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory),
):
    return inventory.create_production_batch(payload, actor_id)


@router.post("/legacy-batch", response_model=BatchRead)
def legacy_batch(
    payload: LegacyBatchRequest | None = None,
    actor_id: str = Depends(get_actor),
    inventory: InventoryService = Depends(get_inventory),
):
    # idempotent : renvoie le batch existant si déjà créé
    return inventory.ensure_legacy_batch(payload.location_id if payload else None)
