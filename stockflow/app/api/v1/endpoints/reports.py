from __future__ import annotations

from fastapi import APIRouter, Depends

from stockflow.app.api.deps import get_database
from stockflow.app.db.session import Database
from stockflow.app.schemas.reports import ProductionSummaryRow, StockLevelRow, TransferHistoryRow
from stockflow.services import reports

router = APIRouter(prefix="/reports")


@router.get("/stock-levels", response_model=list[StockLevelRow])
def stock_levels(location_id: int | None = None, database: Database = Depends(get_database)):
    return reports.stock_levels(database, location_id)


@router.get("/transfer-history", response_model=list[TransferHistoryRow])
def transfer_history(location_id: int | None = None, database: Database = Depends(get_database)):
    return reports.transfer_history(database, location_id)


@router.get("/production-summary", response_model=list[ProductionSummaryRow])
def production_summary(location_id: int | None = None, database: Database = Depends(get_database)):
    return reports.production_summary(database, location_id)
