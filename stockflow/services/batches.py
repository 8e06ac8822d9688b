from __future__ import annotations

import logging
import re
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from stockflow.app.db.models.models_v1 import Batch, BatchLine, Location
from stockflow.app.db.models.core_types import (
    LEGACY_BATCH_LABEL,
    LocationKind,
    ReasonKind,
    ReferenceType,
)
from stockflow.app.schemas.production import ProductionBatchCreate
from stockflow.services.errors import ConflictError, DomainError, NotFoundError, ValidationError
from stockflow.services.ledger import StockLedger
from stockflow.services.master_data import require_item, require_location

logger = logging.getLogger(__name__)

LEGACY_PRODUCTION_DATE = date(2000, 1, 1)
DEFAULT_LABEL_RE = re.compile(r"B(\d+)")


def get_production_location_id(db: Session) -> int:
    """
    Retourne l'id de la première location PRODUCTION (ordre des codes).
    Sert de propriétaire par défaut au batch LEGACY.
    """
    loc_id = db.execute(
        select(Location.id)
        .where(Location.kind == LocationKind.production)
        .order_by(Location.code.asc(), Location.id.asc())
        .limit(1)
    ).scalar_one_or_none()
    if loc_id is None:
        raise NotFoundError("No PRODUCTION location found, cannot own the LEGACY batch")
    return int(loc_id)


class BatchRegistry:
    def __init__(self, db: Session, ledger: StockLedger):
        self.db = db
        self.ledger = ledger

    def find(self, location_id: int, label: str) -> Batch | None:
        return self.db.execute(
            select(Batch).where(Batch.location_id == location_id).where(Batch.label == label)
        ).scalar_one_or_none()

    def get_batch(self, batch_id: int) -> Batch:
        batch = self.db.execute(
            select(Batch).options(selectinload(Batch.lines)).where(Batch.id == batch_id)
        ).scalar_one_or_none()
        if not batch:
            raise NotFoundError(f"Batch {batch_id} not found", batch_id=batch_id)
        return batch

    def list_batches(self, location_id: int | None = None) -> list[Batch]:
        stmt = select(Batch).options(selectinload(Batch.lines)).order_by(Batch.production_date.desc(), Batch.id.desc())
        if location_id is not None:
            stmt = stmt.where(Batch.location_id == location_id)
        return list(self.db.execute(stmt).scalars().all())

    def ensure_legacy_batch(self, location_id: int | None = None) -> Batch:
        """
        Get-or-create idempotent du batch sentinelle LEGACY.

        Deux appels concurrents convergent vers la même ligne
        (contrainte unique + SAVEPOINT puis relecture).
        """
        if location_id is None:
            location_id = get_production_location_id(self.db)
        else:
            require_location(self.db, location_id, kind=LocationKind.production, must_be_active=False)

        existing = self.find(location_id, LEGACY_BATCH_LABEL)
        if existing:
            return existing

        try:
            with self.db.begin_nested():
                batch = Batch(
                    label=LEGACY_BATCH_LABEL,
                    location_id=location_id,
                    production_date=LEGACY_PRODUCTION_DATE,
                )
                self.db.add(batch)
                self.db.flush()
        except IntegrityError:
            batch = self.find(location_id, LEGACY_BATCH_LABEL)
            if batch is None:
                raise
            return batch

        logger.info("LEGACY batch created id=%s location=%s", batch.id, location_id)
        return batch

    def create_production_batch(self, payload: ProductionBatchCreate, actor_id: str) -> Batch:
        """
        Crée le batch + ses lignes, puis +quantité au ledger par ligne (PRODUCTION).
        Tout dans la transaction de l'appelant.
        """
        require_location(self.db, payload.location_id, kind=LocationKind.production)

        label = payload.label or self._next_label(payload.location_id)
        if label == LEGACY_BATCH_LABEL:
            raise ValidationError(f"Batch label {LEGACY_BATCH_LABEL} is reserved", label=label)
        if self.find(payload.location_id, label):
            raise ConflictError(
                f"Batch {label} already exists at this location",
                location_id=payload.location_id,
                label=label,
            )

        for idx, ln in enumerate(payload.lines):
            try:
                require_item(self.db, ln.item_id)
            except DomainError as e:
                raise e.at_line(idx)

        batch = Batch(
            label=label,
            location_id=payload.location_id,
            production_date=payload.production_date or date.today(),
            created_by=actor_id,
        )
        self.db.add(batch)
        try:
            with self.db.begin_nested():
                self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Batch {label} already exists at this location",
                location_id=payload.location_id,
                label=label,
            ) from exc

        for ln in payload.lines:
            batch.lines.append(BatchLine(item_id=ln.item_id, quantity=ln.quantity))
            self.ledger.apply_delta(
                payload.location_id,
                ln.item_id,
                batch.id,
                ln.quantity,
                ReasonKind.production,
                actor_id,
                reference_type=ReferenceType.batch,
                reference_id=batch.id,
            )

        self.db.flush()
        logger.info("production batch %s created location=%s lines=%d", label, payload.location_id, len(payload.lines))
        return batch

    def _next_label(self, location_id: int) -> str:
        # B001, B002... par location : plus grand suffixe B### existant + 1
        labels = self.db.execute(
            select(Batch.label).where(Batch.location_id == location_id).where(Batch.label.like("B%"))
        ).scalars().all()
        numbers = [int(m.group(1)) for m in map(DEFAULT_LABEL_RE.fullmatch, labels) if m]
        return f"B{max(numbers, default=0) + 1:03d}"
