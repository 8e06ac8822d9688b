"""
Procurement service : workflow PurchaseOrder -> TransferOrder -> ReceiveOrder.

Ce module orchestre les flux (PO, expédition, réception) mais ne calcule
AUCUNE quantité lui-même. Toute écriture de stock passe par :
    stockflow.services.ledger.StockLedger
et le choix des batches par :
    stockflow.services.allocation.BatchAllocator

Chaque opération publique = une transaction (run_in_transaction) :
tout passe ou rien ne passe, aucune ligne partiellement appliquée.
"""

from __future__ import annotations

import json
import logging
from collections import OrderedDict

from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from stockflow.app.db.models.models_v1 import (
    AuditLog,
    PurchaseOrder,
    PurchaseOrderLine,
    ReceiveOrder,
    ReceiveOrderLine,
    TransferOrder,
    TransferOrderLine,
)
from stockflow.app.db.models.core_types import POStatus, ReasonKind, ReferenceType, TOStatus
from stockflow.app.db.session import Database
from stockflow.app.schemas.orders import POCreate, PurchaseOrderRead, ROCreate, TOCreate
from stockflow.app.schemas.stock import Page
from stockflow.services.allocation import BatchAllocator
from stockflow.services.errors import (
    ConflictError,
    DomainError,
    InsufficientStock,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from stockflow.services.ledger import StockLedger
from stockflow.services.master_data import require_employee, require_item, require_location
from stockflow.services.transactions import run_in_snapshot, run_in_transaction

logger = logging.getLogger(__name__)

# PO sur lesquels on peut encore expédier
SHIPPABLE_PO_STATUSES = {
    POStatus.created,
    POStatus.in_transit,
}


class OrderWorkflow:
    def __init__(self, database: Database):
        self.database = database

    # ---------- Purchase Orders ----------
    def create_purchase_order(self, payload: POCreate, actor_id: str) -> PurchaseOrder:
        return run_in_transaction(self.database, lambda db: self._create_purchase_order(db, payload, actor_id))

    def _create_purchase_order(self, db: Session, payload: POCreate, actor_id: str) -> PurchaseOrder:
        if payload.source_location_id == payload.destination_location_id:
            raise ValidationError(
                "source_location_id and destination_location_id must differ",
                location_id=payload.source_location_id,
            )
        require_location(db, payload.source_location_id)
        require_location(db, payload.destination_location_id)

        for idx, ln in enumerate(payload.lines):
            try:
                require_item(db, ln.item_id)
            except DomainError as e:
                raise e.at_line(idx)

        po = PurchaseOrder(
            source_location_id=payload.source_location_id,
            destination_location_id=payload.destination_location_id,
            status=POStatus.created,
            is_active=True,
            created_by=actor_id,
        )
        for ln in payload.lines:
            po.lines.append(PurchaseOrderLine(item_id=ln.item_id, requested_quantity=ln.requested_quantity))
        db.add(po)
        db.flush()

        logger.info("%s created by %s (%d lines)", po.po_number, actor_id, len(po.lines))
        return po

    def deactivate_purchase_order(self, po_id: int, actor_id: str) -> PurchaseOrder:
        return run_in_transaction(self.database, lambda db: self._deactivate_purchase_order(db, po_id, actor_id))

    def _deactivate_purchase_order(self, db: Session, po_id: int, actor_id: str) -> PurchaseOrder:
        po = self._lock_purchase_order(db, po_id)

        # Règle : désactivation uniquement depuis CREATED
        if po.status != POStatus.created or not po.is_active:
            raise ConflictError(
                "Only POs in CREATED status can be deactivated",
                purchase_order_id=po_id,
                status=po.status.value,
            )

        po.status = POStatus.deactivated
        po.is_active = False
        self._audit(db, actor_id, "po.deactivated", "purchase_order", po.id, {"po_number": po.po_number})
        db.flush()

        logger.info("%s deactivated by %s", po.po_number, actor_id)
        return po

    def get_purchase_order(self, po_id: int) -> PurchaseOrder:
        return run_in_snapshot(self.database, lambda db: self._load_purchase_order(db, po_id))

    def list_purchase_orders(
        self,
        *,
        location_id: int | None = None,
        direction: str | None = None,
        status: POStatus | None = None,
        only_active: bool = False,
        page: int = 1,
        page_size: int = 10,
    ) -> Page[PurchaseOrderRead]:
        def work(db: Session) -> Page[PurchaseOrderRead]:
            stmt = select(PurchaseOrder).options(selectinload(PurchaseOrder.lines))
            if location_id is not None:
                if direction == "incoming":
                    stmt = stmt.where(PurchaseOrder.destination_location_id == location_id)
                elif direction == "outgoing":
                    stmt = stmt.where(PurchaseOrder.source_location_id == location_id)
                else:
                    stmt = stmt.where(
                        (PurchaseOrder.destination_location_id == location_id)
                        | (PurchaseOrder.source_location_id == location_id)
                    )
            if status is not None:
                stmt = stmt.where(PurchaseOrder.status == status)
            if only_active:
                stmt = stmt.where(PurchaseOrder.is_active.is_(True))

            total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            rows = (
                db.execute(stmt.order_by(PurchaseOrder.id.desc()).offset((page - 1) * page_size).limit(page_size))
                .scalars()
                .all()
            )
            return Page[PurchaseOrderRead](
                items=[PurchaseOrderRead.model_validate(po) for po in rows],
                page=page,
                page_size=page_size,
                total=int(total),
            )

        return run_in_snapshot(self.database, work)

    # ---------- Transfer Orders ----------
    def create_transfer_order(self, payload: TOCreate, actor_id: str) -> TransferOrder:
        return run_in_transaction(self.database, lambda db: self._create_transfer_order(db, payload, actor_id))

    def _create_transfer_order(self, db: Session, payload: TOCreate, actor_id: str) -> TransferOrder:
        po = self._lock_purchase_order(db, payload.purchase_order_id)
        if not po.is_active or po.status not in SHIPPABLE_PO_STATUSES:
            raise ConflictError(
                f"{po.po_number} cannot be shipped (status={po.status.value}, active={po.is_active})",
                purchase_order_id=po.id,
                status=po.status.value,
            )
        require_employee(db, payload.employee_id)

        po_items = {ln.item_id for ln in po.lines}
        ledger = StockLedger(db)
        allocator = BatchAllocator(ledger)

        to = TransferOrder(
            purchase_order_id=po.id,
            employee_id=payload.employee_id,
            status=TOStatus.created,
            created_by=actor_id,
        )
        db.add(to)
        db.flush()  # to.id pour la référence d'historique

        # (item, batch) -> quantité expédiée ; plusieurs lignes peuvent viser le même batch
        shipped: "OrderedDict[tuple[int, int], int]" = OrderedDict()

        for idx, ln in enumerate(payload.lines):
            try:
                if ln.item_id not in po_items:
                    raise ValidationError(
                        f"Item {ln.item_id} is not on {po.po_number}",
                        item_id=ln.item_id,
                        rule="item_on_purchase_order",
                    )
                allocations = allocator.allocate(po.source_location_id, ln.item_id, ln.quantity, ln.batch_id)
                for alloc in allocations:
                    try:
                        ledger.apply_delta(
                            po.source_location_id,
                            ln.item_id,
                            alloc.batch_id,
                            -alloc.quantity,
                            ReasonKind.transfer_out,
                            actor_id,
                            reference_type=ReferenceType.transfer_order,
                            reference_id=to.id,
                        )
                    except InsufficientStock as exc:
                        # l'allocateur a verrouillé et validé : un refus ici est une faute interne
                        logger.error("ledger refused an approved allocation: %s", exc)
                        raise InvariantViolation(
                            "Ledger refused a decrement approved by the allocator",
                            **exc.details,
                        ) from exc
                    key = (ln.item_id, alloc.batch_id)
                    shipped[key] = shipped.get(key, 0) + alloc.quantity
            except DomainError as e:
                raise e.at_line(idx)

        for (item_id, batch_id), qty in shipped.items():
            to.lines.append(TransferOrderLine(item_id=item_id, batch_id=batch_id, shipped_quantity=qty))

        po.status = POStatus.in_transit
        db.flush()

        logger.info(
            "%s shipped for %s from location %s (%d batch lines)",
            to.to_number, po.po_number, po.source_location_id, len(to.lines),
        )
        return to

    def get_transfer_order(self, to_id: int) -> TransferOrder:
        return run_in_snapshot(self.database, lambda db: self._load_transfer_order(db, to_id))

    def list_incoming_transfer_orders(self, location_id: int) -> list[TransferOrder]:
        """TO en attente de réception pour une location (destination du PO)."""

        def work(db: Session) -> list[TransferOrder]:
            return list(
                db.execute(
                    select(TransferOrder)
                    .options(selectinload(TransferOrder.lines))
                    .join(PurchaseOrder, PurchaseOrder.id == TransferOrder.purchase_order_id)
                    .where(PurchaseOrder.destination_location_id == location_id)
                    .where(TransferOrder.status == TOStatus.created)
                    .order_by(TransferOrder.id.desc())
                )
                .scalars()
                .all()
            )

        return run_in_snapshot(self.database, work)

    # ---------- Receive Orders ----------
    def create_receive_order(self, payload: ROCreate, actor_id: str) -> ReceiveOrder:
        return run_in_transaction(self.database, lambda db: self._create_receive_order(db, payload, actor_id))

    def _create_receive_order(self, db: Session, payload: ROCreate, actor_id: str) -> ReceiveOrder:
        to = db.execute(
            select(TransferOrder)
            .options(selectinload(TransferOrder.lines))
            .where(TransferOrder.id == payload.transfer_order_id)
            .with_for_update()
        ).scalar_one_or_none()
        if not to:
            raise NotFoundError(
                f"Transfer Order {payload.transfer_order_id} not found",
                transfer_order_id=payload.transfer_order_id,
            )
        if to.status != TOStatus.created or self._has_receive_order(db, to.id):
            raise ConflictError(
                f"{to.to_number} has already been received",
                transfer_order_id=to.id,
                status=to.status.value,
            )

        po = self._lock_purchase_order(db, to.purchase_order_id)
        shipped = {(l.item_id, l.batch_id): l.shipped_quantity for l in to.lines}

        received: dict[tuple[int, int], int] = {}
        for idx, ln in enumerate(payload.lines):
            key = (ln.item_id, ln.batch_id)
            if key not in shipped:
                raise ValidationError(
                    f"Item {ln.item_id} / batch {ln.batch_id} was not shipped on {to.to_number}",
                    line=idx,
                    item_id=ln.item_id,
                    batch_id=ln.batch_id,
                    rule="line_on_transfer_order",
                )
            if key in received:
                raise ValidationError(
                    f"Item {ln.item_id} / batch {ln.batch_id} received twice",
                    line=idx,
                    item_id=ln.item_id,
                    batch_id=ln.batch_id,
                    rule="unique_receive_line",
                )
            if ln.received_quantity > shipped[key]:
                raise ValidationError(
                    f"Received quantity {ln.received_quantity} exceeds shipped quantity {shipped[key]}",
                    line=idx,
                    item_id=ln.item_id,
                    batch_id=ln.batch_id,
                    shipped=shipped[key],
                    received=ln.received_quantity,
                    rule="received_le_shipped",
                )
            received[key] = ln.received_quantity

        ro = ReceiveOrder(transfer_order_id=to.id, created_by=actor_id)
        db.add(ro)
        db.flush()

        ledger = StockLedger(db)
        discrepancies = []
        # ordre des lignes du TO ; une ligne absente de la réception = reçue 0
        for (item_id, batch_id), shipped_qty in shipped.items():
            received_qty = received.get((item_id, batch_id), 0)
            ro.lines.append(
                ReceiveOrderLine(
                    item_id=item_id,
                    batch_id=batch_id,
                    shipped_quantity=shipped_qty,
                    received_quantity=received_qty,
                    discrepancy=shipped_qty - received_qty,
                )
            )
            if received_qty > 0:
                ledger.apply_delta(
                    po.destination_location_id,
                    item_id,
                    batch_id,
                    received_qty,
                    ReasonKind.receive_in,
                    actor_id,
                    reference_type=ReferenceType.receive_order,
                    reference_id=ro.id,
                )
            if received_qty < shipped_qty:
                discrepancies.append(
                    {"item_id": item_id, "batch_id": batch_id, "shipped": shipped_qty, "received": received_qty}
                )

        # écart = trace d'audit uniquement, aucune compensation
        if discrepancies:
            logger.warning("%s received with discrepancies on %s: %s", ro.ro_number, to.to_number, discrepancies)
            self._audit(
                db, actor_id, "ro.discrepancy", "receive_order", ro.id,
                {"transfer_order_id": to.id, "lines": discrepancies},
            )

        to.status = TOStatus.fulfilled
        db.flush()
        self._refresh_po_status(db, po)
        db.flush()

        logger.info("%s received %s at location %s", ro.ro_number, to.to_number, po.destination_location_id)
        return ro

    def get_receive_order(self, ro_id: int) -> ReceiveOrder:
        def work(db: Session) -> ReceiveOrder:
            ro = db.execute(
                select(ReceiveOrder).options(selectinload(ReceiveOrder.lines)).where(ReceiveOrder.id == ro_id)
            ).scalar_one_or_none()
            if not ro:
                raise NotFoundError(f"Receive Order {ro_id} not found", receive_order_id=ro_id)
            return ro

        return run_in_snapshot(self.database, work)

    # ---------- Helpers ----------
    def _lock_purchase_order(self, db: Session, po_id: int) -> PurchaseOrder:
        po = db.execute(
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.lines))
            .where(PurchaseOrder.id == po_id)
            .with_for_update()
        ).scalar_one_or_none()
        if not po:
            raise NotFoundError(f"Purchase Order {po_id} not found", purchase_order_id=po_id)
        return po

    def _load_purchase_order(self, db: Session, po_id: int) -> PurchaseOrder:
        po = db.execute(
            select(PurchaseOrder).options(selectinload(PurchaseOrder.lines)).where(PurchaseOrder.id == po_id)
        ).scalar_one_or_none()
        if not po:
            raise NotFoundError(f"Purchase Order {po_id} not found", purchase_order_id=po_id)
        return po

    def _load_transfer_order(self, db: Session, to_id: int) -> TransferOrder:
        to = db.execute(
            select(TransferOrder).options(selectinload(TransferOrder.lines)).where(TransferOrder.id == to_id)
        ).scalar_one_or_none()
        if not to:
            raise NotFoundError(f"Transfer Order {to_id} not found", transfer_order_id=to_id)
        return to

    def _has_receive_order(self, db: Session, to_id: int) -> bool:
        return db.execute(
            select(ReceiveOrder.id).where(ReceiveOrder.transfer_order_id == to_id)
        ).scalar_one_or_none() is not None

    def _refresh_po_status(self, db: Session, po: PurchaseOrder) -> None:
        # PO FULFILLED quand tous ses TO ont leur RO
        pending = db.execute(
            select(func.count(TransferOrder.id))
            .where(TransferOrder.purchase_order_id == po.id)
            .where(TransferOrder.status != TOStatus.fulfilled)
        ).scalar_one()
        if int(pending) == 0:
            po.status = POStatus.fulfilled

    def _audit(self, db: Session, actor_id: str, action: str, entity_type: str, entity_id: int, meta: dict) -> None:
        db.add(
            AuditLog(
                actor_id=actor_id,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                meta=json.dumps(meta, sort_keys=True),
            )
        )
