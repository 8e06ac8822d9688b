from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text

from stockflow.app.api.deps import get_database
from stockflow.app.db.session import Database
from stockflow.services.transactions import run_in_snapshot

router = APIRouter(prefix="/health")


@router.get("")
def health(database: Database = Depends(get_database)):
    run_in_snapshot(database, lambda db: db.execute(text("SELECT 1")).scalar_one())
    return {"status": "ok", "database": database.dialect}
