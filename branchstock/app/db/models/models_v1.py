from __future__ import annotations

from datetime import datetime, date, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    DateTime,
    Date,
    ForeignKey,
    ForeignKeyConstraint,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy import event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from branchstock.app.db import immutability
from branchstock.app.db.base import Base
from branchstock.app.db.models.core_types import (
    TransactionType,
    TransactionStatus,
    ReferenceType,
    AdjustmentType,
    ReasonCategory,
    AdjustmentStatus,
    TransferStatus,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls, name: str) -> Enum:
    # store the .value ("return"), not the member name ("return_")
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


# ---------- STOCK ----------
class InventoryItem(Base):
    __tablename__ = "inventory_items"
    branch_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), default="unit", nullable=False)
    category: Mapped[str | None] = mapped_column(String(64))

    on_hand: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_transfer_out: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reorder_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    expiry_date: Mapped[date | None] = mapped_column(Date)

    last_transaction_id: Mapped[str | None] = mapped_column(String(64))
    last_transaction_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # compare-and-set counter, every UPDATE is "... WHERE version = :read_version"
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="ck_item_on_hand_nonneg"),
        CheckConstraint("pending_transfer_out >= 0", name="ck_item_pending_out_nonneg"),
        CheckConstraint("reorder_level >= 0", name="ck_item_reorder_level_nonneg"),
        CheckConstraint("cost_per_unit >= 0", name="ck_item_cost_nonneg"),
        Index("ix_inventory_items_item", "item_id"),
    )


# ---------- LEDGER ----------
class InventoryTransaction(Base):
    """One immutable stock mutation. Rows are never updated nor deleted."""

    __tablename__ = "inventory_transactions"
    transaction_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    inventory_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum(TransactionType, "inventory_transaction_type"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_before: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_after: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum(TransactionStatus, "inventory_transaction_status"),
        default=TransactionStatus.completed,
        nullable=False,
    )

    recorded_by: Mapped[str] = mapped_column(String(64), nullable=False)
    recorded_by_name: Mapped[str | None] = mapped_column(String(200))
    reason: Mapped[str | None] = mapped_column(Text)
    reference_id: Mapped[str | None] = mapped_column(String(64), index=True)
    reference_type: Mapped[ReferenceType | None] = mapped_column(_enum(ReferenceType, "inventory_reference_type"))

    unit_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    total_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    supplier_id: Mapped[str | None] = mapped_column(String(64))
    supplier_name: Mapped[str | None] = mapped_column(String(255))
    batch_number: Mapped[str | None] = mapped_column(String(64))
    expiry_date: Mapped[date | None] = mapped_column(Date)

    approved_by: Mapped[str | None] = mapped_column(String(64))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    idempotency_key: Mapped[str | None] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["branch_id", "inventory_item_id"],
            ["inventory_items.branch_id", "inventory_items.item_id"],
            ondelete="RESTRICT",
            name="fk_inventory_tx_item",
        ),
        CheckConstraint("quantity <> 0", name="ck_inventory_tx_qty_nonzero"),
        CheckConstraint("stock_after = stock_before + quantity", name="ck_inventory_tx_balance"),
        CheckConstraint("stock_after >= 0", name="ck_inventory_tx_after_nonneg"),
        Index("ix_inventory_tx_item_time", "inventory_item_id", "created_at"),
        Index("ix_inventory_tx_branch_time", "branch_id", "created_at"),
    )


# ---------- ADJUSTMENTS ----------
class StockAdjustmentRequest(Base):
    __tablename__ = "stock_adjustment_requests"
    request_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    inventory_item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    branch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)

    adjustment_type: Mapped[AdjustmentType] = mapped_column(_enum(AdjustmentType, "adjustment_type"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    reason_category: Mapped[ReasonCategory] = mapped_column(_enum(ReasonCategory, "adjustment_reason_category"), nullable=False)

    status: Mapped[AdjustmentStatus] = mapped_column(
        _enum(AdjustmentStatus, "adjustment_status"),
        default=AdjustmentStatus.pending,
        nullable=False,
    )
    requested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    requested_by_name: Mapped[str | None] = mapped_column(String(200))
    reviewed_by: Mapped[str | None] = mapped_column(String(64))
    reviewed_by_name: Mapped[str | None] = mapped_column(String(200))
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    review_notes: Mapped[str | None] = mapped_column(Text)

    # ledger entry spawned by the approval
    transaction_id: Mapped[str | None] = mapped_column(
        ForeignKey("inventory_transactions.transaction_id", ondelete="RESTRICT")
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        ForeignKeyConstraint(
            ["branch_id", "inventory_item_id"],
            ["inventory_items.branch_id", "inventory_items.item_id"],
            ondelete="RESTRICT",
            name="fk_adjustment_item",
        ),
        CheckConstraint("quantity > 0", name="ck_adjustment_qty_pos"),
        Index("ix_adjustment_status_time", "status", "created_at"),
    )


# ---------- TRANSFERS ----------
class InventoryTransfer(Base):
    __tablename__ = "inventory_transfers"
    transfer_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    from_branch_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    to_branch_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[TransferStatus] = mapped_column(
        _enum(TransferStatus, "inventory_transfer_status"),
        default=TransferStatus.draft,
        nullable=False,
    )

    requested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    approved_by: Mapped[str | None] = mapped_column(String(64))
    notes: Mapped[str | None] = mapped_column(Text)

    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reconciled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    items: Mapped[list["InventoryTransferItem"]] = relationship(
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="InventoryTransferItem.line_no",
    )
    discrepancies: Mapped[list["InventoryTransferDiscrepancy"]] = relationship(
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="InventoryTransferDiscrepancy.id",
    )
    audit_trail: Mapped[list["TransferAuditEntry"]] = relationship(
        back_populates="transfer",
        cascade="all, delete-orphan",
        order_by="TransferAuditEntry.id",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("from_branch_id <> to_branch_id", name="ck_transfer_distinct_branches"),
    )


class InventoryTransferItem(Base):
    __tablename__ = "inventory_transfer_items"
    transfer_id: Mapped[str] = mapped_column(
        ForeignKey("inventory_transfers.transfer_id", ondelete="CASCADE"),
        primary_key=True,
    )
    inventory_item_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[str] = mapped_column(String(32), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    received_quantity: Mapped[int | None] = mapped_column(Integer)

    transfer: Mapped[InventoryTransfer] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transfer_item_qty_pos"),
        CheckConstraint("received_quantity >= 0", name="ck_transfer_item_received_nonneg"),
    )


class InventoryTransferDiscrepancy(Base):
    __tablename__ = "inventory_transfer_discrepancies"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    transfer_id: Mapped[str] = mapped_column(
        ForeignKey("inventory_transfers.transfer_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    expected: Mapped[int] = mapped_column(Integer, nullable=False)
    actual: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    transfer: Mapped[InventoryTransfer] = relationship(back_populates="discrepancies")

    __table_args__ = (UniqueConstraint("transfer_id", "item_id", name="uq_transfer_discrepancy_item"),)


class TransferAuditEntry(Base):
    __tablename__ = "inventory_transfer_audit_entries"
    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    transfer_id: Mapped[str] = mapped_column(
        ForeignKey("inventory_transfers.transfer_id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[TransferStatus] = mapped_column(_enum(TransferStatus, "inventory_transfer_status"), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_name: Mapped[str | None] = mapped_column(String(200))
    notes: Mapped[str | None] = mapped_column(Text)

    transfer: Mapped[InventoryTransfer] = relationship(back_populates="audit_trail")

    __table_args__ = (Index("ix_transfer_audit_transfer", "transfer_id", "id"),)


event.listen(InventoryTransaction, "before_update", immutability.block_ledger_update)
event.listen(InventoryTransaction, "before_delete", immutability.block_ledger_delete)
