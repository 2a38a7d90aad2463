"""
Human-gated stock corrections (damage, theft, count corrections...).

A request is created ``pending`` with a snapshot of the stock it was raised
against. Approval books exactly one ``adjustment_in``/``adjustment_out``
ledger entry and flips the request in the same commit; rejection only
records the review.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchstock.app.db.models.core_types import (
    AdjustmentStatus,
    AdjustmentType,
    ReasonCategory,
    ReferenceType,
    TransactionType,
)
from branchstock.app.db.models.models_v1 import (
    InventoryItem,
    InventoryTransaction,
    StockAdjustmentRequest,
    utcnow,
)
from branchstock.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    coerce_enum,
    require_actor,
)
from branchstock.services.ids import generate_adjustment_request_id
from branchstock.services.ledger import TransactionMetadata, apply_transaction
from branchstock.services.unit_of_work import run_in_transaction

logger = logging.getLogger(__name__)


def signed_quantity(adjustment_type: AdjustmentType, quantity: int) -> tuple[TransactionType, int]:
    if adjustment_type is AdjustmentType.increase:
        return TransactionType.adjustment_in, quantity
    if adjustment_type is AdjustmentType.decrease:
        return TransactionType.adjustment_out, -quantity
    raise ValidationError(f"Unsupported adjustment type {adjustment_type!r}")


def _load_request(db: Session, request_id: str) -> StockAdjustmentRequest:
    request = db.get(StockAdjustmentRequest, request_id)
    if request is None:
        raise NotFoundError("Adjustment request", request_id)
    return request


def _ensure_pending(request: StockAdjustmentRequest) -> None:
    if request.status is not AdjustmentStatus.pending:
        raise InvalidStateError(
            f"Adjustment request {request.request_id} has already been processed "
            f"(status={request.status.value})"
        )


def get_adjustment_request(db: Session, request_id: str) -> StockAdjustmentRequest:
    return _load_request(db, request_id)


def create_adjustment_request(
    db: Session,
    *,
    item_id: str,
    branch_id: str,
    adjustment_type: AdjustmentType,
    quantity: int,
    reason: str,
    reason_category: ReasonCategory,
    requested_by: str,
    requested_by_name: str | None = None,
) -> StockAdjustmentRequest:
    adjustment_type = coerce_enum(AdjustmentType, adjustment_type, "adjustment type")
    reason_category = coerce_enum(ReasonCategory, reason_category, "reason category")
    requested_by = require_actor(requested_by, "requester")
    if quantity <= 0:
        raise ValidationError("Adjustment quantity must be greater than zero")
    if not reason or not reason.strip():
        raise ValidationError("Adjustment reason is required")

    def _work(session: Session) -> StockAdjustmentRequest:
        item = session.get(InventoryItem, (branch_id, item_id))
        if item is None:
            raise NotFoundError("Inventory item", f"{item_id}@{branch_id}")

        request = StockAdjustmentRequest(
            request_id=generate_adjustment_request_id(),
            inventory_item_id=item_id,
            branch_id=branch_id,
            item_name=item.name,
            unit=item.unit,
            adjustment_type=adjustment_type,
            quantity=quantity,
            current_stock=item.on_hand,
            reason=reason.strip(),
            reason_category=reason_category,
            status=AdjustmentStatus.pending,
            requested_by=requested_by,
            requested_by_name=requested_by_name,
        )
        session.add(request)
        return request

    request = run_in_transaction(db, _work, label="create_adjustment_request")
    logger.info(
        "adjustment_requested request=%s branch=%s item=%s type=%s qty=%d",
        request.request_id,
        branch_id,
        item_id,
        adjustment_type.value,
        quantity,
    )
    return request


def approve_adjustment_request(
    db: Session,
    request_id: str,
    *,
    reviewed_by: str,
    reviewed_by_name: str | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    """
    Approve a pending request and book its ledger entry.

    The request stays ``pending`` when the decrease no longer fits the stock
    on hand (``InsufficientStockError``), so it can be re-reviewed.
    """
    reviewed_by = require_actor(reviewed_by, "reviewer")

    def _work(session: Session) -> InventoryTransaction:
        request = _load_request(session, request_id)
        _ensure_pending(request)

        transaction_type, quantity = signed_quantity(request.adjustment_type, request.quantity)
        now = utcnow()
        entry = apply_transaction(
            session,
            item_id=request.inventory_item_id,
            branch_id=request.branch_id,
            transaction_type=transaction_type,
            quantity=quantity,
            recorded_by=request.requested_by,
            metadata=TransactionMetadata(
                recorded_by_name=request.requested_by_name,
                reason=f"{request.reason_category.value}: {request.reason}",
                reference_id=request.request_id,
                reference_type=ReferenceType.adjustment_request,
                approved_by=reviewed_by,
                approved_at=now,
            ),
        )

        request.status = AdjustmentStatus.approved
        request.reviewed_by = reviewed_by
        request.reviewed_by_name = reviewed_by_name
        request.reviewed_at = now
        request.review_notes = notes
        request.transaction_id = entry.transaction_id
        return entry

    entry = run_in_transaction(db, _work, label="approve_adjustment_request")
    logger.info(
        "adjustment_approved request=%s txn=%s reviewer=%s",
        request_id,
        entry.transaction_id,
        reviewed_by,
    )
    return entry


def reject_adjustment_request(
    db: Session,
    request_id: str,
    *,
    reviewed_by: str,
    reviewed_by_name: str | None = None,
    notes: str,
) -> StockAdjustmentRequest:
    reviewed_by = require_actor(reviewed_by, "reviewer")
    if notes is None or not notes.strip():
        raise ValidationError("A rejection reason is required")

    def _work(session: Session) -> StockAdjustmentRequest:
        request = _load_request(session, request_id)
        _ensure_pending(request)
        request.status = AdjustmentStatus.rejected
        request.reviewed_by = reviewed_by
        request.reviewed_by_name = reviewed_by_name
        request.reviewed_at = utcnow()
        request.review_notes = notes.strip()
        return request

    request = run_in_transaction(db, _work, label="reject_adjustment_request")
    logger.info("adjustment_rejected request=%s reviewer=%s", request_id, reviewed_by)
    return request


def get_pending_adjustments(db: Session, branch_id: str | None = None) -> list[StockAdjustmentRequest]:
    stmt = (
        select(StockAdjustmentRequest)
        .where(StockAdjustmentRequest.status == AdjustmentStatus.pending)
        .order_by(StockAdjustmentRequest.created_at.asc(), StockAdjustmentRequest.request_id.asc())
    )
    if branch_id is not None:
        stmt = stmt.where(StockAdjustmentRequest.branch_id == branch_id)
    return list(db.execute(stmt).scalars().all())
