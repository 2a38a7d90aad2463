"""create inventory ledger, adjustment requests and transfers

Revision ID: 3f2a9c1d7b40
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TRANSACTION_TYPE = postgresql.ENUM(
    "receipt", "adjustment_in", "adjustment_out", "usage", "transfer_out",
    "transfer_in", "return", "damage", "expired",
    name="inventory_transaction_type", create_type=False,
)
TRANSACTION_STATUS = postgresql.ENUM(
    "pending", "completed", "cancelled",
    name="inventory_transaction_status", create_type=False,
)
REFERENCE_TYPE = postgresql.ENUM(
    "purchase_order", "transfer", "order", "adjustment_request", "manual",
    name="inventory_reference_type", create_type=False,
)
ADJUSTMENT_TYPE = postgresql.ENUM("increase", "decrease", name="adjustment_type", create_type=False)
REASON_CATEGORY = postgresql.ENUM(
    "damage", "theft", "count_correction", "expired", "other",
    name="adjustment_reason_category", create_type=False,
)
ADJUSTMENT_STATUS = postgresql.ENUM(
    "pending", "approved", "rejected",
    name="adjustment_status", create_type=False,
)
TRANSFER_STATUS = postgresql.ENUM(
    "draft", "requested", "approved", "in_transit", "received", "reconciled", "cancelled",
    name="inventory_transfer_status", create_type=False,
)

ENUMS = (
    TRANSACTION_TYPE,
    TRANSACTION_STATUS,
    REFERENCE_TYPE,
    ADJUSTMENT_TYPE,
    REASON_CATEGORY,
    ADJUSTMENT_STATUS,
    TRANSFER_STATUS,
)

ITEM_FK = (["branch_id", "inventory_item_id"], ["inventory_items.branch_id", "inventory_items.item_id"])


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    # ---------- STOCK ----------
    op.create_table(
        "inventory_items",
        sa.Column("branch_id", sa.String(64), primary_key=True),
        sa.Column("item_id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("category", sa.String(64)),
        sa.Column("on_hand", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pending_transfer_out", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reorder_level", sa.Integer, nullable=False, server_default="0"),
        sa.Column("cost_per_unit", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("expiry_date", sa.Date),
        sa.Column("last_transaction_id", sa.String(64)),
        sa.Column("last_transaction_date", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("on_hand >= 0", name="ck_item_on_hand_nonneg"),
        sa.CheckConstraint("pending_transfer_out >= 0", name="ck_item_pending_out_nonneg"),
        sa.CheckConstraint("reorder_level >= 0", name="ck_item_reorder_level_nonneg"),
        sa.CheckConstraint("cost_per_unit >= 0", name="ck_item_cost_nonneg"),
    )
    op.create_index("ix_inventory_items_item", "inventory_items", ["item_id"])

    # ---------- LEDGER ----------
    op.create_table(
        "inventory_transactions",
        sa.Column("transaction_id", sa.String(64), primary_key=True),
        sa.Column("inventory_item_id", sa.String(64), nullable=False),
        sa.Column("branch_id", sa.String(64), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("transaction_type", TRANSACTION_TYPE, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("stock_before", sa.Integer, nullable=False),
        sa.Column("stock_after", sa.Integer, nullable=False),
        sa.Column("status", TRANSACTION_STATUS, nullable=False),
        sa.Column("recorded_by", sa.String(64), nullable=False),
        sa.Column("recorded_by_name", sa.String(200)),
        sa.Column("reason", sa.Text),
        sa.Column("reference_id", sa.String(64)),
        sa.Column("reference_type", REFERENCE_TYPE),
        sa.Column("unit_cost", sa.Numeric(14, 2)),
        sa.Column("total_value", sa.Numeric(14, 2)),
        sa.Column("supplier_id", sa.String(64)),
        sa.Column("supplier_name", sa.String(255)),
        sa.Column("batch_number", sa.String(64)),
        sa.Column("expiry_date", sa.Date),
        sa.Column("approved_by", sa.String(64)),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(*ITEM_FK, ondelete="RESTRICT", name="fk_inventory_tx_item"),
        sa.CheckConstraint("quantity <> 0", name="ck_inventory_tx_qty_nonzero"),
        sa.CheckConstraint("stock_after = stock_before + quantity", name="ck_inventory_tx_balance"),
        sa.CheckConstraint("stock_after >= 0", name="ck_inventory_tx_after_nonneg"),
    )
    op.create_index("ix_inventory_transactions_reference_id", "inventory_transactions", ["reference_id"])
    op.create_index("ix_inventory_tx_item_time", "inventory_transactions", ["inventory_item_id", "created_at"])
    op.create_index("ix_inventory_tx_branch_time", "inventory_transactions", ["branch_id", "created_at"])

    # Append-only at the database level too
    op.execute(
        """
        CREATE OR REPLACE FUNCTION inventory_transactions_immutable() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'inventory_transactions rows are immutable (%)', TG_OP;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_inventory_transactions_immutable
        BEFORE UPDATE OR DELETE ON inventory_transactions
        FOR EACH ROW EXECUTE FUNCTION inventory_transactions_immutable();
        """
    )

    # ---------- ADJUSTMENTS ----------
    op.create_table(
        "stock_adjustment_requests",
        sa.Column("request_id", sa.String(64), primary_key=True),
        sa.Column("inventory_item_id", sa.String(64), nullable=False),
        sa.Column("branch_id", sa.String(64), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("adjustment_type", ADJUSTMENT_TYPE, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("current_stock", sa.Integer, nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("reason_category", REASON_CATEGORY, nullable=False),
        sa.Column("status", ADJUSTMENT_STATUS, nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("requested_by_name", sa.String(200)),
        sa.Column("reviewed_by", sa.String(64)),
        sa.Column("reviewed_by_name", sa.String(200)),
        sa.Column("reviewed_at", sa.DateTime(timezone=True)),
        sa.Column("review_notes", sa.Text),
        sa.Column(
            "transaction_id",
            sa.String(64),
            sa.ForeignKey("inventory_transactions.transaction_id", ondelete="RESTRICT"),
        ),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(*ITEM_FK, ondelete="RESTRICT", name="fk_adjustment_item"),
        sa.CheckConstraint("quantity > 0", name="ck_adjustment_qty_pos"),
    )
    op.create_index("ix_adjustment_status_time", "stock_adjustment_requests", ["status", "created_at"])

    # ---------- TRANSFERS ----------
    op.create_table(
        "inventory_transfers",
        sa.Column("transfer_id", sa.String(64), primary_key=True),
        sa.Column("from_branch_id", sa.String(64), nullable=False),
        sa.Column("to_branch_id", sa.String(64), nullable=False),
        sa.Column("status", TRANSFER_STATUS, nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("approved_by", sa.String(64)),
        sa.Column("notes", sa.Text),
        sa.Column("dispatched_at", sa.DateTime(timezone=True)),
        sa.Column("received_at", sa.DateTime(timezone=True)),
        sa.Column("reconciled_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("from_branch_id <> to_branch_id", name="ck_transfer_distinct_branches"),
    )
    op.create_index("ix_inventory_transfers_from_branch_id", "inventory_transfers", ["from_branch_id"])
    op.create_index("ix_inventory_transfers_to_branch_id", "inventory_transfers", ["to_branch_id"])

    op.create_table(
        "inventory_transfer_items",
        sa.Column(
            "transfer_id",
            sa.String(64),
            sa.ForeignKey("inventory_transfers.transfer_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("inventory_item_id", sa.String(64), primary_key=True),
        sa.Column("line_no", sa.Integer, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(32), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("cost_per_unit", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("received_quantity", sa.Integer),
        sa.CheckConstraint("quantity > 0", name="ck_transfer_item_qty_pos"),
        sa.CheckConstraint("received_quantity >= 0", name="ck_transfer_item_received_nonneg"),
    )

    op.create_table(
        "inventory_transfer_discrepancies",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column(
            "transfer_id",
            sa.String(64),
            sa.ForeignKey("inventory_transfers.transfer_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_id", sa.String(64), nullable=False),
        sa.Column("expected", sa.Integer, nullable=False),
        sa.Column("actual", sa.Integer, nullable=False),
        sa.Column("notes", sa.Text),
        sa.UniqueConstraint("transfer_id", "item_id", name="uq_transfer_discrepancy_item"),
    )
    op.create_index(
        "ix_inventory_transfer_discrepancies_transfer_id",
        "inventory_transfer_discrepancies",
        ["transfer_id"],
    )

    op.create_table(
        "inventory_transfer_audit_entries",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column(
            "transfer_id",
            sa.String(64),
            sa.ForeignKey("inventory_transfers.transfer_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", TRANSFER_STATUS, nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_name", sa.String(200)),
        sa.Column("notes", sa.Text),
    )
    op.create_index("ix_transfer_audit_transfer", "inventory_transfer_audit_entries", ["transfer_id", "id"])


def downgrade() -> None:
    op.drop_table("inventory_transfer_audit_entries")
    op.drop_table("inventory_transfer_discrepancies")
    op.drop_table("inventory_transfer_items")
    op.drop_table("inventory_transfers")
    op.drop_table("stock_adjustment_requests")
    op.execute("DROP TRIGGER IF EXISTS trg_inventory_transactions_immutable ON inventory_transactions;")
    op.execute("DROP FUNCTION IF EXISTS inventory_transactions_immutable();")
    op.drop_table("inventory_transactions")
    op.drop_table("inventory_items")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
