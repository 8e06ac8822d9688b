"""initial stock ledger schema (batches, stock, history, PO/TO/RO)

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BigIntPK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

LOCATION_KIND = sa.Enum("production", "hub", "store", name="location_kind")
REASON_KIND = sa.Enum(
    "production", "transfer_out", "receive_in", "manual_adjustment", "legacy_migration",
    name="reason_kind",
)
REFERENCE_TYPE = sa.Enum("batch", "transfer_order", "receive_order", "legacy_stock", name="reference_type")
PO_STATUS = sa.Enum("created", "in_transit", "fulfilled", "deactivated", name="po_status")
TO_STATUS = sa.Enum("created", "fulfilled", name="to_status")


def _ts(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    # ---------- MASTER DATA ----------
    op.create_table(
        "items",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("uom", sa.String(32), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
    )
    op.create_table(
        "locations",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("kind", LOCATION_KIND, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
    )
    op.create_table(
        "employees",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
    )

    # ---------- PRODUCTION ----------
    op.create_table(
        "batches",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("label", sa.String(64), nullable=False),
        sa.Column("location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("production_date", sa.Date(), nullable=False),
        sa.Column("created_by", sa.String(128)),
        _ts("created_at"),
        sa.UniqueConstraint("location_id", "label", name="uq_batch_location_label"),
    )
    op.create_table(
        "batch_lines",
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("batches.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_batch_line_qty_pos"),
    )

    # ---------- INVENTORY ----------
    op.create_table(
        "stock",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        _ts("updated_at"),
        sa.UniqueConstraint("location_id", "item_id", "batch_id", name="uq_stock_location_item_batch"),
        sa.CheckConstraint("quantity >= 0", name="ck_stock_quantity_nonneg"),
    )
    op.create_table(
        "stock_history",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("previous_quantity", sa.Integer(), nullable=False),
        sa.Column("resulting_quantity", sa.Integer(), nullable=False),
        sa.Column("reason", REASON_KIND, nullable=False),
        sa.Column("actor_id", sa.String(128), nullable=False),
        sa.Column("reference_type", REFERENCE_TYPE),
        sa.Column("reference_id", sa.BigInteger()),
        sa.Column("note", sa.Text()),
        _ts("created_at"),
        sa.CheckConstraint("delta <> 0", name="ck_stock_history_delta_nonzero"),
        sa.CheckConstraint("resulting_quantity >= 0", name="ck_stock_history_result_nonneg"),
        sa.CheckConstraint("previous_quantity + delta = resulting_quantity", name="ck_stock_history_arithmetic"),
    )
    op.create_index("ix_stock_history_key", "stock_history", ["location_id", "item_id", "batch_id", "id"])
    op.create_index("ix_stock_history_created", "stock_history", ["created_at"])

    # ---------- ORDERS ----------
    op.create_table(
        "purchase_orders",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column(
            "source_location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column(
            "destination_location_id",
            sa.BigInteger(),
            sa.ForeignKey("locations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", PO_STATUS, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("source_location_id <> destination_location_id", name="ck_po_locations_differ"),
    )
    op.create_index("ix_purchase_orders_source", "purchase_orders", ["source_location_id"])
    op.create_index("ix_purchase_orders_destination", "purchase_orders", ["destination_location_id"])

    op.create_table(
        "purchase_order_lines",
        sa.Column("po_id", sa.BigInteger(), sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("requested_quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("requested_quantity > 0", name="ck_po_line_qty_pos"),
    )

    op.create_table(
        "transfer_orders",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.BigInteger(),
            sa.ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("employee_id", sa.BigInteger(), sa.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", TO_STATUS, nullable=False),
        sa.Column("created_by", sa.String(128), nullable=False),
        _ts("created_at"),
    )
    op.create_index("ix_transfer_orders_purchase_order_id", "transfer_orders", ["purchase_order_id"])

    op.create_table(
        "transfer_order_lines",
        sa.Column(
            "transfer_order_id",
            sa.BigInteger(),
            sa.ForeignKey("transfer_orders.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("batches.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("shipped_quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("shipped_quantity > 0", name="ck_to_line_qty_pos"),
    )

    op.create_table(
        "receive_orders",
        sa.Column("id", BigIntPK, primary_key=True),
        # une seule réception par TO
        sa.Column(
            "transfer_order_id",
            sa.BigInteger(),
            sa.ForeignKey("transfer_orders.id", ondelete="RESTRICT"),
            nullable=False,
            unique=True,
        ),
        sa.Column("created_by", sa.String(128), nullable=False),
        _ts("created_at"),
    )

    op.create_table(
        "receive_order_lines",
        sa.Column(
            "receive_order_id",
            sa.BigInteger(),
            sa.ForeignKey("receive_orders.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("batch_id", sa.BigInteger(), sa.ForeignKey("batches.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("shipped_quantity", sa.Integer(), nullable=False),
        sa.Column("received_quantity", sa.Integer(), nullable=False),
        sa.Column("discrepancy", sa.Integer(), nullable=False),
        sa.CheckConstraint("received_quantity >= 0", name="ck_ro_line_received_nonneg"),
        sa.CheckConstraint("received_quantity <= shipped_quantity", name="ck_ro_line_received_le_shipped"),
        sa.CheckConstraint("discrepancy = shipped_quantity - received_quantity", name="ck_ro_line_discrepancy"),
    )

    # ---------- LEGACY / MIGRATION ----------
    op.create_table(
        "legacy_stock_levels",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("location_id", sa.BigInteger(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("item_id", sa.BigInteger(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("quantity >= 0", name="ck_legacy_stock_qty_nonneg"),
    )
    op.create_table(
        "migration_checkpoints",
        sa.Column("name", sa.String(64), primary_key=True),
        sa.Column("last_source_id", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("rows_migrated", sa.Integer(), nullable=False, server_default="0"),
        _ts("updated_at"),
    )

    # ---------- AUDIT ----------
    op.create_table(
        "audit_log",
        sa.Column("id", BigIntPK, primary_key=True),
        sa.Column("actor_id", sa.String(128)),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("meta", sa.Text()),
        _ts("created_at"),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_entity", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("migration_checkpoints")
    op.drop_table("legacy_stock_levels")
    op.drop_table("receive_order_lines")
    op.drop_table("receive_orders")
    op.drop_table("transfer_order_lines")
    op.drop_index("ix_transfer_orders_purchase_order_id", table_name="transfer_orders")
    op.drop_table("transfer_orders")
    op.drop_table("purchase_order_lines")
    op.drop_index("ix_purchase_orders_destination", table_name="purchase_orders")
    op.drop_index("ix_purchase_orders_source", table_name="purchase_orders")
    op.drop_table("purchase_orders")
    op.drop_index("ix_stock_history_created", table_name="stock_history")
    op.drop_index("ix_stock_history_key", table_name="stock_history")
    op.drop_table("stock_history")
    op.drop_table("stock")
    op.drop_table("batch_lines")
    op.drop_table("batches")
    op.drop_table("employees")
    op.drop_table("locations")
    op.drop_table("items")

    bind = op.get_bind()
    for enum in (TO_STATUS, PO_STATUS, REFERENCE_TYPE, REASON_KIND, LOCATION_KIND):
        enum.drop(bind, checkfirst=True)
