from datetime import date, datetime

from pydantic import BaseModel

from branchstock.app.db.models.core_types import (
    AdjustmentStatus,
    AdjustmentType,
    ReasonCategory,
    ReferenceType,
    TransactionStatus,
    TransactionType,
    TransferStatus,
)


class InventoryItemRead(BaseModel):
    branch_id: str
    item_id: str
    name: str
    unit: str
    category: str | None = None

    on_hand: int
    pending_transfer_out: int  # reserved by approved / in-transit transfers
    reorder_level: int
    cost_per_unit: float
    expiry_date: date | None = None

    last_transaction_id: str | None = None
    last_transaction_date: datetime | None = None

    class Config:
        from_attributes = True


class InventoryTransactionRead(BaseModel):
    transaction_id: str
    inventory_item_id: str
    branch_id: str
    item_name: str
    unit: str
    transaction_type: TransactionType
    quantity: int
    stock_before: int
    stock_after: int
    status: TransactionStatus
    recorded_by: str
    recorded_by_name: str | None = None
    reason: str | None = None
    reference_id: str | None = None
    reference_type: ReferenceType | None = None
    unit_cost: float | None = None
    total_value: float | None = None
    supplier_id: str | None = None
    supplier_name: str | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class AdjustmentRequestRead(BaseModel):
    request_id: str
    inventory_item_id: str
    branch_id: str
    item_name: str
    unit: str
    adjustment_type: AdjustmentType
    quantity: int
    current_stock: int
    reason: str
    reason_category: ReasonCategory
    status: AdjustmentStatus
    requested_by: str
    requested_by_name: str | None = None
    reviewed_by: str | None = None
    reviewed_by_name: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    transaction_id: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class TransferItemRead(BaseModel):
    inventory_item_id: str
    name: str
    unit: str
    quantity: int
    cost_per_unit: float
    received_quantity: int | None = None

    class Config:
        from_attributes = True


class TransferDiscrepancyRead(BaseModel):
    item_id: str
    expected: int
    actual: int
    notes: str | None = None

    class Config:
        from_attributes = True


class TransferAuditEntryRead(BaseModel):
    status: TransferStatus
    timestamp: datetime
    user_id: str
    user_name: str | None = None
    notes: str | None = None

    class Config:
        from_attributes = True


class InventoryTransferRead(BaseModel):
    transfer_id: str
    from_branch_id: str
    to_branch_id: str
    status: TransferStatus
    requested_by: str
    approved_by: str | None = None
    notes: str | None = None
    dispatched_at: datetime | None = None
    received_at: datetime | None = None
    reconciled_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    items: list[TransferItemRead]
    discrepancies: list[TransferDiscrepancyRead] = []
    audit_trail: list[TransferAuditEntryRead] = []

    class Config:
        from_attributes = True
