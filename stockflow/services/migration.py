"""
Migration du stock pré-batch (legacy_stock_levels) vers le batch LEGACY.

Règles :
- une ligne legacy = UNE transaction (apply_delta + suppression + checkpoint)
- un échec laisse les lignes précédentes commitées et la ligne fautive intacte
- relancer reprend après le dernier checkpoint (idempotent)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockflow.app.db.models.models_v1 import LegacyStockLevel, MigrationCheckpoint
from stockflow.app.db.models.core_types import ReasonKind, ReferenceType
from stockflow.app.db.session import Database
from stockflow.services.batches import BatchRegistry
from stockflow.services.ledger import StockLedger
from stockflow.services.transactions import run_in_snapshot, run_in_transaction

logger = logging.getLogger(__name__)

CHECKPOINT_NAME = "legacy_stock_levels"


@dataclass
class MigrationReport:
    legacy_batch_id: int
    rows_migrated: int = 0
    quantity_migrated: int = 0
    skipped_empty: int = 0
    last_source_id: int = 0
    remaining: int = 0
    migrated_ids: list[int] = field(default_factory=list)


def _checkpoint(db: Session) -> MigrationCheckpoint:
    cp = db.get(MigrationCheckpoint, CHECKPOINT_NAME)
    if cp is None:
        cp = MigrationCheckpoint(name=CHECKPOINT_NAME, last_source_id=0, rows_migrated=0)
        db.add(cp)
        db.flush()
    return cp


def _next_source_ids(database: Database, after_id: int, limit: int | None) -> list[int]:
    def work(db: Session) -> list[int]:
        stmt = (
            select(LegacyStockLevel.id)
            .where(LegacyStockLevel.id > after_id)
            .order_by(LegacyStockLevel.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [int(i) for i in db.execute(stmt).scalars().all()]

    return run_in_snapshot(database, work)


def _migrate_row(db: Session, source_id: int, legacy_batch_id: int, actor_id: str) -> tuple[int, bool]:
    """Retourne (quantité migrée, ligne traitée)."""
    row = db.execute(
        select(LegacyStockLevel).where(LegacyStockLevel.id == source_id).with_for_update()
    ).scalar_one_or_none()

    cp = _checkpoint(db)
    if row is None:
        # déjà traitée par un autre run : on avance seulement le checkpoint
        cp.last_source_id = max(cp.last_source_id, source_id)
        return 0, False

    qty = int(row.quantity)
    if qty > 0:
        StockLedger(db).apply_delta(
            row.location_id,
            row.item_id,
            legacy_batch_id,
            qty,
            ReasonKind.legacy_migration,
            actor_id,
            reference_type=ReferenceType.legacy_stock,
            reference_id=row.id,
        )

    db.delete(row)
    cp.last_source_id = max(cp.last_source_id, source_id)
    cp.rows_migrated += 1
    db.flush()
    return qty, True


def migrate_legacy_stock(
    database: Database,
    actor_id: str,
    *,
    batch_size: int | None = None,
    location_id: int | None = None,
) -> MigrationReport:
    """
    Re-home du stock sans batch vers (location, item, LEGACY).

    batch_size limite le nombre de lignes traitées par appel (None = tout).
    location_id choisit la location PRODUCTION propriétaire du batch LEGACY.
    """

    def ensure_legacy(db: Session) -> int:
        return int(BatchRegistry(db, StockLedger(db)).ensure_legacy_batch(location_id).id)

    legacy_batch_id = run_in_transaction(database, ensure_legacy)
    start_after = run_in_transaction(database, lambda db: int(_checkpoint(db).last_source_id))

    report = MigrationReport(legacy_batch_id=legacy_batch_id, last_source_id=start_after)
    logger.info("legacy stock migration starting after source id %s (legacy batch %s)", start_after, legacy_batch_id)

    for source_id in _next_source_ids(database, start_after, batch_size):
        qty, processed = run_in_transaction(
            database,
            lambda db, sid=source_id: _migrate_row(db, sid, legacy_batch_id, actor_id),
        )
        report.last_source_id = source_id
        if not processed:
            continue
        report.rows_migrated += 1
        report.migrated_ids.append(source_id)
        if qty > 0:
            report.quantity_migrated += qty
        else:
            report.skipped_empty += 1
        logger.info("legacy row %s re-homed (qty=%s)", source_id, qty)

    report.remaining = len(_next_source_ids(database, report.last_source_id, None))
    logger.info(
        "legacy stock migration done: %d rows, %d units, %d remaining",
        report.rows_migrated, report.quantity_migrated, report.remaining,
    )
    return report
