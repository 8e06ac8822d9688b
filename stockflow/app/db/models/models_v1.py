from __future__ import annotations

from datetime import datetime, date

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockflow.app.db.base import Base, BigIntPK, utcnow
from stockflow.app.db.models.core_types import (
    LocationKind,
    ReasonKind,
    POStatus,
    TOStatus,
    ReferenceType,
)

# ---------- MASTER DATA ----------
class Item(Base):
    __tablename__ = "items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    uom: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Location(Base):
    __tablename__ = "locations"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    kind: Mapped[LocationKind] = mapped_column(Enum(LocationKind, name="location_kind"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Employee(Base):
    __tablename__ = "employees"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


# ---------- PRODUCTION ----------
class Batch(Base):
    __tablename__ = "batches"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    label: Mapped[str] = mapped_column(String(64), nullable=False)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    production_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(128))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    location: Mapped[Location] = relationship()
    lines: Mapped[list["BatchLine"]] = relationship(back_populates="batch", cascade="all, delete-orphan")

    __table_args__ = (UniqueConstraint("location_id", "label", name="uq_batch_location_label"),)


class BatchLine(Base):
    __tablename__ = "batch_lines"
    batch_id: Mapped[int] = mapped_column(ForeignKey("batches.id", ondelete="CASCADE"), primary_key=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    batch: Mapped[Batch] = relationship(back_populates="lines")
    item: Mapped[Item] = relationship()

    __table_args__ = (CheckConstraint("quantity > 0", name="ck_batch_line_qty_pos"),)


# ---------- INVENTORY ----------
class Stock(Base):
    __tablename__ = "stock"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    batch_id: Mapped[int] = mapped_column(ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    batch: Mapped[Batch] = relationship()
    item: Mapped[Item] = relationship()
    location: Mapped[Location] = relationship()

    __table_args__ = (
        UniqueConstraint("location_id", "item_id", "batch_id", name="uq_stock_location_item_batch"),
        CheckConstraint("quantity >= 0", name="ck_stock_quantity_nonneg"),
    )


class StockHistory(Base):
    __tablename__ = "stock_history"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    batch_id: Mapped[int] = mapped_column(ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False)

    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    resulting_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[ReasonKind] = mapped_column(Enum(ReasonKind, name="reason_kind"), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reference_type: Mapped[ReferenceType | None] = mapped_column(Enum(ReferenceType, name="reference_type"))
    reference_id: Mapped[int | None] = mapped_column(BigInteger)
    note: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("delta <> 0", name="ck_stock_history_delta_nonzero"),
        CheckConstraint("resulting_quantity >= 0", name="ck_stock_history_result_nonneg"),
        CheckConstraint(
            "previous_quantity + delta = resulting_quantity",
            name="ck_stock_history_arithmetic",
        ),
        Index("ix_stock_history_key", "location_id", "item_id", "batch_id", "id"),
        Index("ix_stock_history_created", "created_at"),
    )


# ---------- ORDERS ----------
class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    source_location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    destination_location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"),
        nullable=False,
    )
    status: Mapped[POStatus] = mapped_column(Enum(POStatus, name="po_status"), default=POStatus.created, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    lines: Mapped[list["PurchaseOrderLine"]] = relationship(back_populates="po", cascade="all, delete-orphan")
    transfer_orders: Mapped[list["TransferOrder"]] = relationship(back_populates="purchase_order")

    __table_args__ = (
        CheckConstraint("source_location_id <> destination_location_id", name="ck_po_locations_differ"),
        Index("ix_purchase_orders_source", "source_location_id"),
        Index("ix_purchase_orders_destination", "destination_location_id"),
    )

    @property
    def po_number(self) -> str:
        return f"PO{self.id:05d}"


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"
    po_id: Mapped[int] = mapped_column(ForeignKey("purchase_orders.id", ondelete="CASCADE"), primary_key=True)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True)
    requested_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    po: Mapped[PurchaseOrder] = relationship(back_populates="lines")

    __table_args__ = (CheckConstraint("requested_quantity > 0", name="ck_po_line_qty_pos"),)


class TransferOrder(Base):
    __tablename__ = "transfer_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False)
    status: Mapped[TOStatus] = mapped_column(Enum(TOStatus, name="to_status"), default=TOStatus.created, nullable=False)

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    purchase_order: Mapped[PurchaseOrder] = relationship(back_populates="transfer_orders")
    lines: Mapped[list["TransferOrderLine"]] = relationship(back_populates="transfer_order", cascade="all, delete-orphan")
    receive_order: Mapped["ReceiveOrder"] = relationship(back_populates="transfer_order", uselist=False)

    @property
    def to_number(self) -> str:
        return f"TO{self.id:05d}"


class TransferOrderLine(Base):
    __tablename__ = "transfer_order_lines"
    transfer_order_id: Mapped[int] = mapped_column(
        ForeignKey("transfer_orders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("batches.id", ondelete="RESTRICT"), primary_key=True)
    shipped_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    transfer_order: Mapped[TransferOrder] = relationship(back_populates="lines")

    __table_args__ = (CheckConstraint("shipped_quantity > 0", name="ck_to_line_qty_pos"),)


class ReceiveOrder(Base):
    __tablename__ = "receive_orders"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    # une seule réception clôt un TO
    transfer_order_id: Mapped[int] = mapped_column(
        ForeignKey("transfer_orders.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )

    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    transfer_order: Mapped[TransferOrder] = relationship(back_populates="receive_order")
    lines: Mapped[list["ReceiveOrderLine"]] = relationship(back_populates="receive_order", cascade="all, delete-orphan")

    @property
    def ro_number(self) -> str:
        return f"RO{self.id:05d}"

    @property
    def total_discrepancy(self) -> int:
        return sum(l.discrepancy for l in self.lines)


class ReceiveOrderLine(Base):
    __tablename__ = "receive_order_lines"
    receive_order_id: Mapped[int] = mapped_column(
        ForeignKey("receive_orders.id", ondelete="CASCADE"),
        primary_key=True,
    )
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True)
    batch_id: Mapped[int] = mapped_column(ForeignKey("batches.id", ondelete="RESTRICT"), primary_key=True)
    shipped_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    received_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    discrepancy: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    receive_order: Mapped[ReceiveOrder] = relationship(back_populates="lines")

    __table_args__ = (
        CheckConstraint("received_quantity >= 0", name="ck_ro_line_received_nonneg"),
        CheckConstraint("received_quantity <= shipped_quantity", name="ck_ro_line_received_le_shipped"),
        CheckConstraint("discrepancy = shipped_quantity - received_quantity", name="ck_ro_line_discrepancy"),
    )


# ---------- LEGACY (pré-batch) ----------
class LegacyStockLevel(Base):
    __tablename__ = "legacy_stock_levels"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    location_id: Mapped[int] = mapped_column(ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_legacy_stock_qty_nonneg"),)


class MigrationCheckpoint(Base):
    __tablename__ = "migration_checkpoints"
    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_source_id: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    rows_migrated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


# ---------- AUDIT ----------
class AuditLog(Base):
    __tablename__ = "audit_log"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    actor_id: Mapped[str | None] = mapped_column(String(128))
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    meta: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_entity", "entity_type", "entity_id"),)
