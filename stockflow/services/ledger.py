from __future__ import annotations

import logging

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockflow.app.db.models.models_v1 import Batch, Stock, StockHistory
from stockflow.app.db.models.core_types import ReasonKind, ReferenceType
from stockflow.app.schemas.stock import (
    BatchBalance,
    Page,
    StockHistoryFilter,
    StockHistoryRead,
)
from stockflow.services.errors import InsufficientStock, InvariantViolation, ValidationError

logger = logging.getLogger(__name__)


class StockLedger:
    """
    Compteur autoritaire par (location, item, batch).

    Seul endroit où Stock.quantity est modifié. Chaque mutation écrit sa
    ligne StockHistory dans la MÊME transaction que l'appelant : les deux
    passent ou aucune (le commit appartient à l'appelant).

    Sérialisation par clé :
        UPDATE stock SET quantity = quantity + :delta
        WHERE id = :id AND quantity + :delta >= 0
    L'UPDATE pose le verrou ligne (Postgres) / le verrou d'écriture (SQLite),
    la condition garantit quantity >= 0 sans lecture préalable.
    """

    def __init__(self, db: Session, *, history_page_size_max: int = 200):
        self.db = db
        self.history_page_size_max = history_page_size_max

    # ---------- Écriture ----------
    def apply_delta(
        self,
        location_id: int,
        item_id: int,
        batch_id: int,
        delta: int,
        reason: ReasonKind,
        actor_id: str,
        *,
        reference_type: ReferenceType | None = None,
        reference_id: int | None = None,
        note: str | None = None,
    ) -> int:
        if delta == 0:
            raise ValidationError("delta must be non-zero", location_id=location_id, item_id=item_id, batch_id=batch_id)

        stock_id = self._get_or_create_stock_id(location_id, item_id, batch_id)

        updated = self.db.execute(
            update(Stock)
            .where(Stock.id == stock_id)
            .where(Stock.quantity + delta >= 0)
            .values(quantity=Stock.quantity + delta)
            .execution_options(synchronize_session=False)
        ).rowcount

        if updated != 1:
            available = self._read_quantity(stock_id)
            raise InsufficientStock(
                f"Insufficient stock (available={available}, requested={-delta})",
                location_id=location_id,
                item_id=item_id,
                batch_id=batch_id,
                available=available,
                requested=-delta,
            )

        resulting = self._read_quantity(stock_id)
        if resulting < 0:
            # ne doit jamais arriver (contrainte + UPDATE conditionnel)
            logger.error(
                "negative stock after delta loc=%s item=%s batch=%s qty=%s",
                location_id, item_id, batch_id, resulting,
            )
            raise InvariantViolation(
                "Stock quantity went negative",
                location_id=location_id,
                item_id=item_id,
                batch_id=batch_id,
                resulting_quantity=resulting,
            )

        self.db.add(
            StockHistory(
                location_id=location_id,
                item_id=item_id,
                batch_id=batch_id,
                delta=delta,
                previous_quantity=resulting - delta,
                resulting_quantity=resulting,
                reason=reason,
                actor_id=actor_id,
                reference_type=reference_type,
                reference_id=reference_id,
                note=note,
            )
        )
        self.db.flush()
        return resulting

    def _get_or_create_stock_id(self, location_id: int, item_id: int, batch_id: int) -> int:
        stock_id = self._find_stock_id(location_id, item_id, batch_id)
        if stock_id is not None:
            return stock_id

        # Création paresseuse ; deux créateurs concurrents -> l'un prend l'IntegrityError
        try:
            with self.db.begin_nested():
                sl = Stock(location_id=location_id, item_id=item_id, batch_id=batch_id, quantity=0)
                self.db.add(sl)
                self.db.flush()
                return int(sl.id)
        except IntegrityError:
            stock_id = self._find_stock_id(location_id, item_id, batch_id)
            if stock_id is None:
                raise
            return stock_id

    def _find_stock_id(self, location_id: int, item_id: int, batch_id: int) -> int | None:
        return self.db.execute(
            select(Stock.id)
            .where(Stock.location_id == location_id)
            .where(Stock.item_id == item_id)
            .where(Stock.batch_id == batch_id)
        ).scalar_one_or_none()

    def _read_quantity(self, stock_id: int) -> int:
        return int(self.db.execute(select(Stock.quantity).where(Stock.id == stock_id)).scalar_one())

    # ---------- Lecture ----------
    def get_quantity(self, location_id: int, item_id: int, batch_id: int, *, lock: bool = False) -> int:
        stmt = (
            select(Stock.quantity)
            .where(Stock.location_id == location_id)
            .where(Stock.item_id == item_id)
            .where(Stock.batch_id == batch_id)
        )
        if lock:
            stmt = stmt.with_for_update()
        qty = self.db.execute(stmt).scalar_one_or_none()
        return int(qty) if qty is not None else 0

    def available_batches(self, location_id: int, item_id: int, *, lock: bool = False) -> list[BatchBalance]:
        """Batches avec quantité > 0, triés par label croissant (le plus ancien d'abord)."""
        stmt = (
            select(Stock.batch_id, Batch.label, Batch.production_date, Stock.quantity)
            .join(Batch, Batch.id == Stock.batch_id)
            .where(Stock.location_id == location_id)
            .where(Stock.item_id == item_id)
            .where(Stock.quantity > 0)
            .order_by(Batch.label.asc(), Stock.batch_id.asc())
        )
        if lock:
            stmt = stmt.with_for_update(of=Stock)

        return [
            BatchBalance(
                batch_id=int(batch_id),
                batch_label=label,
                production_date=production_date,
                quantity=int(qty),
            )
            for batch_id, label, production_date, qty in self.db.execute(stmt).all()
        ]

    def history(self, filters: StockHistoryFilter) -> Page[StockHistoryRead]:
        page_size = min(filters.page_size, self.history_page_size_max)

        stmt = select(StockHistory)
        if filters.location_id is not None:
            stmt = stmt.where(StockHistory.location_id == filters.location_id)
        if filters.item_id is not None:
            stmt = stmt.where(StockHistory.item_id == filters.item_id)
        if filters.batch_id is not None:
            stmt = stmt.where(StockHistory.batch_id == filters.batch_id)
        if filters.reasons:
            stmt = stmt.where(StockHistory.reason.in_(filters.reasons))
        if filters.actor_id is not None:
            stmt = stmt.where(StockHistory.actor_id == filters.actor_id)
        if filters.created_from is not None:
            stmt = stmt.where(StockHistory.created_at >= filters.created_from)
        if filters.created_to is not None:
            stmt = stmt.where(StockHistory.created_at <= filters.created_to)

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = (
            self.db.execute(
                stmt.order_by(StockHistory.id.desc())
                .offset((filters.page - 1) * page_size)
                .limit(page_size)
            )
            .scalars()
            .all()
        )
        return Page[StockHistoryRead](
            items=[StockHistoryRead.model_validate(h) for h in rows],
            page=filters.page,
            page_size=page_size,
            total=int(total),
        )

    def replay(self, location_id: int, item_id: int, batch_id: int) -> int:
        """Somme des deltas de l'historique d'une clé (contrôle d'audit)."""
        return int(
            self.db.execute(
                select(func.coalesce(func.sum(StockHistory.delta), 0))
                .where(StockHistory.location_id == location_id)
                .where(StockHistory.item_id == item_id)
                .where(StockHistory.batch_id == batch_id)
            ).scalar_one()
        )
