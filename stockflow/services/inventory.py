from __future__ import annotations

import logging
from collections import OrderedDict

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.db.models.models_v1 import Batch, Item, Stock
from stockflow.app.db.models.core_types import ReasonKind
from stockflow.app.db.session import Database
from stockflow.app.schemas.production import BatchRead, ProductionBatchCreate
from stockflow.app.schemas.stock import (
    BatchBalance,
    ItemStock,
    Page,
    StockAdjust,
    StockHistoryFilter,
    StockHistoryRead,
)
from stockflow.services.batches import BatchRegistry
from stockflow.services.ledger import StockLedger
from stockflow.services.master_data import require_item, require_location
from stockflow.services.transactions import run_in_snapshot, run_in_transaction

logger = logging.getLogger(__name__)


class InventoryService:
    """
    Façade transactionnelle : production, batch LEGACY, ajustements manuels,
    lectures de stock / historique.

    Chaque méthode publique = une transaction (écriture) ou un snapshot (lecture).
    Les objets retournés sont des read models pydantic, utilisables après
    fermeture de la session.
    """

    def __init__(self, database: Database):
        self.database = database

    def _ledger(self, db: Session) -> StockLedger:
        return StockLedger(db, history_page_size_max=self.database.settings.history_page_size_max)

    def _registry(self, db: Session) -> BatchRegistry:
        return BatchRegistry(db, self._ledger(db))

    # ---------- Production ----------
    def create_production_batch(self, payload: ProductionBatchCreate, actor_id: str) -> BatchRead:
        def work(db: Session) -> BatchRead:
            batch = self._registry(db).create_production_batch(payload, actor_id)
            return BatchRead.model_validate(batch)

        return run_in_transaction(self.database, work)

    def ensure_legacy_batch(self, location_id: int | None = None) -> BatchRead:
        def work(db: Session) -> BatchRead:
            batch = self._registry(db).ensure_legacy_batch(location_id)
            return BatchRead.model_validate(batch)

        return run_in_transaction(self.database, work)

    def get_batch(self, batch_id: int) -> BatchRead:
        return run_in_snapshot(
            self.database,
            lambda db: BatchRead.model_validate(self._registry(db).get_batch(batch_id)),
        )

    def list_batches(self, location_id: int | None = None) -> list[BatchRead]:
        return run_in_snapshot(
            self.database,
            lambda db: [BatchRead.model_validate(b) for b in self._registry(db).list_batches(location_id)],
        )

    # ---------- Ajustement manuel ----------
    def adjust_stock(self, payload: StockAdjust, actor_id: str) -> int:
        """
        Fixe une quantité absolue pour (location, item, batch).

        Le ledger reçoit le delta (new - current) en MANUAL_ADJUSTMENT.
        Quantité inchangée : aucune écriture, aucune ligne d'historique.
        """

        def work(db: Session) -> int:
            require_location(db, payload.location_id, must_be_active=False)
            require_item(db, payload.item_id, must_be_active=False)
            self._registry(db).get_batch(payload.batch_id)

            ledger = self._ledger(db)
            current = ledger.get_quantity(payload.location_id, payload.item_id, payload.batch_id, lock=True)
            delta = payload.new_quantity - current
            if delta == 0:
                return current

            resulting = ledger.apply_delta(
                payload.location_id,
                payload.item_id,
                payload.batch_id,
                delta,
                ReasonKind.manual_adjustment,
                actor_id,
                note=payload.note,
            )
            logger.info(
                "manual adjustment loc=%s item=%s batch=%s %s -> %s by %s",
                payload.location_id, payload.item_id, payload.batch_id, current, resulting, actor_id,
            )
            return resulting

        return run_in_transaction(self.database, work)

    # ---------- Lectures ----------
    def get_available_batches(self, location_id: int, item_id: int) -> list[BatchBalance]:
        def work(db: Session) -> list[BatchBalance]:
            require_location(db, location_id, must_be_active=False)
            require_item(db, item_id, must_be_active=False)
            return self._ledger(db).available_batches(location_id, item_id)

        return run_in_snapshot(self.database, work)

    def get_stock_history(self, filters: StockHistoryFilter) -> Page[StockHistoryRead]:
        return run_in_snapshot(self.database, lambda db: self._ledger(db).history(filters))

    def get_stock(
        self,
        location_id: int,
        item_id: int | None = None,
        batch_id: int | None = None,
    ) -> list[ItemStock]:
        """Stock > 0 d'une location, groupé par item avec le détail par batch."""

        def work(db: Session) -> list[ItemStock]:
            require_location(db, location_id, must_be_active=False)

            stmt = (
                select(Item.id, Item.code, Item.name, Batch.id, Batch.label, Batch.production_date, Stock.quantity)
                .select_from(Stock)
                .join(Item, Item.id == Stock.item_id)
                .join(Batch, Batch.id == Stock.batch_id)
                .where(Stock.location_id == location_id)
                .where(Stock.quantity > 0)
                .order_by(Item.code.asc(), Batch.label.asc())
            )
            if item_id is not None:
                stmt = stmt.where(Stock.item_id == item_id)
            if batch_id is not None:
                stmt = stmt.where(Stock.batch_id == batch_id)

            grouped: "OrderedDict[int, ItemStock]" = OrderedDict()
            for i_id, code, name, b_id, label, production_date, qty in db.execute(stmt).all():
                entry = grouped.get(i_id)
                if entry is None:
                    entry = ItemStock(item_id=i_id, item_code=code, item_name=name, total_quantity=0, batches=[])
                    grouped[i_id] = entry
                entry.batches.append(
                    BatchBalance(batch_id=b_id, batch_label=label, production_date=production_date, quantity=qty)
                )
                entry.total_quantity += int(qty)
            return list(grouped.values())

        return run_in_snapshot(self.database, work)
