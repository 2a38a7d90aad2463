"""
Stock ledger.

``record_transaction`` is the single writer of ``InventoryItem.on_hand``
outside the transfer reservation logic. Each call appends exactly one
immutable ``InventoryTransaction`` carrying the before/after quantities and
moves the item snapshot to ``stock_after`` in the same commit.

Invariants:
    stock_after == stock_before + quantity
    stock_after >= 0
    item.on_hand == stock_after right after commit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchstock.app.db.models.core_types import (
    INBOUND_TRANSACTION_TYPES,
    OUTBOUND_TRANSACTION_TYPES,
    ReferenceType,
    TransactionStatus,
    TransactionType,
)
from branchstock.app.db.models.models_v1 import InventoryItem, InventoryTransaction, utcnow
from branchstock.services.errors import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    coerce_enum,
    require_actor,
)
from branchstock.services.ids import generate_transaction_id
from branchstock.services.unit_of_work import run_in_transaction

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class TransactionMetadata:
    """Optional attributes carried by a ledger entry."""

    recorded_by_name: str | None = None
    reason: str | None = None
    reference_id: str | None = None
    reference_type: ReferenceType | None = None
    unit_cost: Decimal | None = None
    total_value: Decimal | None = None
    supplier_id: str | None = None
    supplier_name: str | None = None
    batch_number: str | None = None
    expiry_date: date | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None


def _check_direction(transaction_type: TransactionType, quantity: int) -> None:
    if quantity == 0:
        raise ValidationError("Transaction quantity must be non-zero")
    if transaction_type in INBOUND_TRANSACTION_TYPES:
        if quantity < 0:
            raise ValidationError(f"{transaction_type.value} transactions must have a positive quantity")
    elif transaction_type in OUTBOUND_TRANSACTION_TYPES:
        if quantity > 0:
            raise ValidationError(f"{transaction_type.value} transactions must have a negative quantity")
    else:
        raise ValidationError(f"Unsupported transaction type {transaction_type!r}")


def find_by_idempotency_key(db: Session, key: str) -> InventoryTransaction | None:
    return db.execute(
        select(InventoryTransaction).where(InventoryTransaction.idempotency_key == key)
    ).scalar_one_or_none()


def apply_transaction(
    db: Session,
    *,
    item_id: str,
    branch_id: str,
    transaction_type: TransactionType,
    quantity: int,
    recorded_by: str,
    metadata: TransactionMetadata | None = None,
    idempotency_key: str | None = None,
) -> InventoryTransaction:
    """
    Read-validate-write body of ``record_transaction``, without commit.

    Callers that must bundle the ledger write with their own document (the
    adjustment approval) run this inside their own ``run_in_transaction``.
    """
    meta = metadata or TransactionMetadata()

    item = db.get(InventoryItem, (branch_id, item_id))
    if item is None:
        raise NotFoundError("Inventory item", f"{item_id}@{branch_id}")

    stock_before = item.on_hand
    stock_after = stock_before + quantity
    if stock_after < 0:
        raise InsufficientStockError(
            branch_id=branch_id,
            item_id=item_id,
            item_name=item.name,
            available=stock_before,
            requested=abs(quantity),
        )

    total_value = meta.total_value
    if total_value is None and meta.unit_cost is not None:
        total_value = Decimal(str(meta.unit_cost)) * abs(quantity)

    now = utcnow()
    entry = InventoryTransaction(
        transaction_id=generate_transaction_id(),
        inventory_item_id=item_id,
        branch_id=branch_id,
        item_name=item.name,
        unit=item.unit,
        transaction_type=transaction_type,
        quantity=quantity,
        stock_before=stock_before,
        stock_after=stock_after,
        status=TransactionStatus.completed,
        recorded_by=recorded_by,
        recorded_by_name=meta.recorded_by_name,
        reason=meta.reason,
        reference_id=meta.reference_id,
        reference_type=meta.reference_type,
        unit_cost=meta.unit_cost,
        total_value=total_value,
        supplier_id=meta.supplier_id,
        supplier_name=meta.supplier_name,
        batch_number=meta.batch_number,
        expiry_date=meta.expiry_date,
        approved_by=meta.approved_by,
        approved_at=meta.approved_at,
        idempotency_key=idempotency_key,
        created_at=now,
    )
    db.add(entry)

    item.on_hand = stock_after
    item.last_transaction_id = entry.transaction_id
    item.last_transaction_date = now
    return entry


def record_transaction(
    db: Session,
    *,
    item_id: str,
    branch_id: str,
    transaction_type: TransactionType,
    quantity: int,
    recorded_by: str,
    metadata: TransactionMetadata | None = None,
    idempotency_key: str | None = None,
) -> InventoryTransaction:
    transaction_type = coerce_enum(TransactionType, transaction_type, "transaction type")
    recorded_by = require_actor(recorded_by, "recorder")
    _check_direction(transaction_type, quantity)

    def _work(session: Session) -> InventoryTransaction:
        if idempotency_key:
            existing = find_by_idempotency_key(session, idempotency_key)
            if existing is not None:
                return existing
        return apply_transaction(
            session,
            item_id=item_id,
            branch_id=branch_id,
            transaction_type=transaction_type,
            quantity=quantity,
            recorded_by=recorded_by,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )

    entry = run_in_transaction(db, _work, label="record_transaction")
    logger.info(
        "ledger_entry txn=%s branch=%s item=%s type=%s qty=%d before=%d after=%d",
        entry.transaction_id,
        entry.branch_id,
        entry.inventory_item_id,
        entry.transaction_type.value,
        entry.quantity,
        entry.stock_before,
        entry.stock_after,
    )
    return entry


def record_stock_receipt(
    db: Session,
    *,
    item_id: str,
    branch_id: str,
    quantity: int,
    recorded_by: str,
    recorded_by_name: str | None = None,
    supplier_id: str | None = None,
    supplier_name: str | None = None,
    purchase_order_id: str | None = None,
    unit_cost: Decimal | float | None = None,
    batch_number: str | None = None,
    expiry_date: date | None = None,
    notes: str | None = None,
    idempotency_key: str | None = None,
) -> InventoryTransaction:
    """Stock received from a supplier. The quantity is always booked positive."""
    metadata = TransactionMetadata(
        recorded_by_name=recorded_by_name,
        reason=notes,
        reference_id=purchase_order_id,
        reference_type=ReferenceType.purchase_order if purchase_order_id else ReferenceType.manual,
        unit_cost=Decimal(str(unit_cost)) if unit_cost is not None else None,
        supplier_id=supplier_id,
        supplier_name=supplier_name,
        batch_number=batch_number,
        expiry_date=expiry_date,
    )
    return record_transaction(
        db,
        item_id=item_id,
        branch_id=branch_id,
        transaction_type=TransactionType.receipt,
        quantity=abs(quantity),
        recorded_by=recorded_by,
        metadata=metadata,
        idempotency_key=idempotency_key,
    )


def record_stock_usage(
    db: Session,
    *,
    item_id: str,
    branch_id: str,
    quantity: int,
    recorded_by: str,
    recorded_by_name: str | None = None,
    order_id: str | None = None,
    reason: str | None = None,
    idempotency_key: str | None = None,
) -> InventoryTransaction:
    """Stock consumed by operations. The quantity is always booked negative."""
    metadata = TransactionMetadata(
        recorded_by_name=recorded_by_name,
        reason=reason,
        reference_id=order_id,
        reference_type=ReferenceType.order if order_id else ReferenceType.manual,
    )
    return record_transaction(
        db,
        item_id=item_id,
        branch_id=branch_id,
        transaction_type=TransactionType.usage,
        quantity=-abs(quantity),
        recorded_by=recorded_by,
        metadata=metadata,
        idempotency_key=idempotency_key,
    )


def get_item_transactions(
    db: Session,
    item_id: str,
    *,
    branch_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    transaction_type: TransactionType | None = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[InventoryTransaction]:
    stmt = (
        select(InventoryTransaction)
        .where(InventoryTransaction.inventory_item_id == item_id)
        .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.transaction_id.desc())
        .limit(limit or DEFAULT_HISTORY_LIMIT)
    )
    if branch_id is not None:
        stmt = stmt.where(InventoryTransaction.branch_id == branch_id)
    if transaction_type is not None:
        ttype = coerce_enum(TransactionType, transaction_type, "transaction type")
        stmt = stmt.where(InventoryTransaction.transaction_type == ttype)
    if start is not None:
        stmt = stmt.where(InventoryTransaction.created_at >= start)
    if end is not None:
        stmt = stmt.where(InventoryTransaction.created_at <= end)
    return list(db.execute(stmt).scalars().all())
