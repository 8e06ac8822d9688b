"""
Projections de lecture pour les collaborateurs (exports, écrans de suivi).

Aucune règle métier ici : uniquement des jointures, chacune dans un seul
snapshot (run_in_snapshot) pour rester cohérente à un instant T.
"""

from __future__ import annotations

from sqlalchemy import select, func
from sqlalchemy.orm import Session, aliased

from stockflow.app.db.models.models_v1 import (
    Batch,
    BatchLine,
    Employee,
    Item,
    Location,
    PurchaseOrder,
    ReceiveOrder,
    ReceiveOrderLine,
    Stock,
    TransferOrder,
    TransferOrderLine,
)
from stockflow.app.db.session import Database
from stockflow.app.schemas.reports import ProductionSummaryRow, StockLevelRow, TransferHistoryRow
from stockflow.services.transactions import run_in_snapshot


def stock_levels(database: Database, location_id: int | None = None) -> list[StockLevelRow]:
    def work(db: Session) -> list[StockLevelRow]:
        stmt = (
            select(
                Location.id, Location.code,
                Item.id, Item.code, Item.name,
                Batch.id, Batch.label, Batch.production_date,
                Stock.quantity,
            )
            .select_from(Stock)
            .join(Location, Location.id == Stock.location_id)
            .join(Item, Item.id == Stock.item_id)
            .join(Batch, Batch.id == Stock.batch_id)
            .where(Stock.quantity > 0)
            .order_by(Location.code.asc(), Item.code.asc(), Batch.label.asc())
        )
        if location_id is not None:
            stmt = stmt.where(Stock.location_id == location_id)

        return [
            StockLevelRow(
                location_id=loc_id,
                location_code=loc_code,
                item_id=item_id,
                item_code=item_code,
                item_name=item_name,
                batch_id=batch_id,
                batch_label=label,
                production_date=production_date,
                quantity=qty,
            )
            for loc_id, loc_code, item_id, item_code, item_name, batch_id, label, production_date, qty
            in db.execute(stmt).all()
        ]

    return run_in_snapshot(database, work)


def transfer_history(database: Database, location_id: int | None = None) -> list[TransferHistoryRow]:
    """Une ligne par TO : PO parent, trajet, employé, quantités expédiées / reçues."""

    def work(db: Session) -> list[TransferHistoryRow]:
        source = aliased(Location)
        destination = aliased(Location)

        shipped = (
            select(
                TransferOrderLine.transfer_order_id.label("to_id"),
                func.sum(TransferOrderLine.shipped_quantity).label("shipped"),
            )
            .group_by(TransferOrderLine.transfer_order_id)
            .subquery()
        )

        stmt = (
            select(
                TransferOrder,
                PurchaseOrder.id,
                source.code,
                destination.code,
                Employee.code,
                shipped.c.shipped,
                ReceiveOrder.id,
            )
            .join(PurchaseOrder, PurchaseOrder.id == TransferOrder.purchase_order_id)
            .join(source, source.id == PurchaseOrder.source_location_id)
            .join(destination, destination.id == PurchaseOrder.destination_location_id)
            .join(Employee, Employee.id == TransferOrder.employee_id)
            .join(shipped, shipped.c.to_id == TransferOrder.id)
            .outerjoin(ReceiveOrder, ReceiveOrder.transfer_order_id == TransferOrder.id)
            .order_by(TransferOrder.id.desc())
        )
        if location_id is not None:
            stmt = stmt.where(
                (PurchaseOrder.source_location_id == location_id)
                | (PurchaseOrder.destination_location_id == location_id)
            )

        rows = db.execute(stmt).all()

        # quantités reçues par RO, une seule requête
        ro_ids = [ro_id for *_, ro_id in rows if ro_id is not None]
        received: dict[int, int] = {}
        if ro_ids:
            received = {
                int(ro_id): int(total)
                for ro_id, total in db.execute(
                    select(ReceiveOrderLine.receive_order_id, func.sum(ReceiveOrderLine.received_quantity))
                    .where(ReceiveOrderLine.receive_order_id.in_(ro_ids))
                    .group_by(ReceiveOrderLine.receive_order_id)
                ).all()
            }

        out = []
        for to, po_id, src_code, dst_code, emp_code, shipped_qty, ro_id in rows:
            received_qty = received.get(ro_id) if ro_id is not None else None
            out.append(
                TransferHistoryRow(
                    transfer_order_id=to.id,
                    to_number=to.to_number,
                    purchase_order_id=po_id,
                    po_number=f"PO{po_id:05d}",
                    source_location_code=src_code,
                    destination_location_code=dst_code,
                    employee_code=emp_code,
                    status=to.status,
                    shipped_quantity=int(shipped_qty),
                    received_quantity=received_qty,
                    receive_order_id=ro_id,
                    created_at=to.created_at,
                )
            )
        return out

    return run_in_snapshot(database, work)


def production_summary(database: Database, location_id: int | None = None) -> list[ProductionSummaryRow]:
    """Quantité produite par batch et par item (lignes de batch, hors LEGACY qui n'en a pas)."""

    def work(db: Session) -> list[ProductionSummaryRow]:
        stmt = (
            select(
                Batch.id, Batch.label, Batch.production_date,
                Location.code,
                Item.id, Item.code,
                BatchLine.quantity,
            )
            .join(BatchLine, BatchLine.batch_id == Batch.id)
            .join(Location, Location.id == Batch.location_id)
            .join(Item, Item.id == BatchLine.item_id)
            .order_by(Batch.production_date.desc(), Batch.label.asc(), Item.code.asc())
        )
        if location_id is not None:
            stmt = stmt.where(Batch.location_id == location_id)

        return [
            ProductionSummaryRow(
                batch_id=batch_id,
                batch_label=label,
                production_date=production_date,
                location_code=loc_code,
                item_id=item_id,
                item_code=item_code,
                quantity=qty,
            )
            for batch_id, label, production_date, loc_code, item_id, item_code, qty in db.execute(stmt).all()
        ]

    return run_in_snapshot(database, work)
