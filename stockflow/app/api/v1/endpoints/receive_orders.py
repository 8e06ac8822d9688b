from __future__ import annotations

from fastapi import APIRouter, Depends

from stockflow.app.api.deps import get_actor, get_workflow
from stockflow.app.schemas.orders import ReceiveOrderRead, ROCreate
from stockflow.services.procurement import OrderWorkflow

router = APIRouter(prefix="/receive-orders")


@router.get("/{ro_id}", response_model=ReceiveOrderRead)
def get_ro(ro_id: int, workflow: OrderWorkflow = Depends(get_workflow)):
    return workflow.get_receive_order(ro_id)


@router.post("", response_model=ReceiveOrderRead, status_code=201)
def create_ro(
    payload: ROCreate,
    actor_id: str = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
):
    return workflow.create_receive_order(payload, actor_id)
