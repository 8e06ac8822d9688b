from __future__ import annotations

from fastapi import Header, HTTPException, Request

from stockflow.app.db.session import Database
from stockflow.services.inventory import InventoryService
from stockflow.services.procurement import OrderWorkflow


def get_database(request: Request) -> Database:
    # construit une seule fois dans le lifespan (main.py)
    return request.app.state.database


def get_workflow(request: Request) -> OrderWorkflow:
    return OrderWorkflow(get_database(request))


def get_inventory(request: Request) -> InventoryService:
    return InventoryService(get_database(request))


def get_actor(x_actor_id: str | None = Header(default=None, alias="X-Actor-Id")) -> str:
    """Identité fournie par le système d'auth externe (jamais résolue ici)."""
    actor = (x_actor_id or "").strip()
    if not actor:
        raise HTTPException(status_code=400, detail="Missing X-Actor-Id header")
    return actor
