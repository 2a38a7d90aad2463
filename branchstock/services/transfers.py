"""
Cross-branch transfer orchestrator.

    draft -> requested -> approved -> in_transit -> received -> reconciled
    draft | requested | approved -> cancelled

Quantity effects:
    approve  : source on_hand -= q, source pending_transfer_out += q
    receive  : destination on_hand += received, source pending_transfer_out -= q
    cancel   : (from approved only) source on_hand += q, pending_transfer_out -= q

Every line of a transfer is reserved or released in the same commit; a
partially reserved transfer is never visible. Each transition appends one
audit entry. ``reconciled`` and ``cancelled`` are terminal.

Partial receipt: the source reservation is released by the requested
quantity. The shortfall is not re-credited anywhere, the discrepancy row is
its only record.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from branchstock.app.db.models.core_types import TERMINAL_TRANSFER_STATUSES, TransferStatus
from branchstock.app.db.models.models_v1 import (
    InventoryItem,
    InventoryTransfer,
    InventoryTransferDiscrepancy,
    InventoryTransferItem,
    TransferAuditEntry,
    utcnow,
)
from branchstock.services.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    coerce_enum,
    require_actor,
)
from branchstock.services.ids import generate_transfer_id
from branchstock.services.unit_of_work import run_in_transaction

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = frozenset({
    TransferStatus.draft,
    TransferStatus.requested,
    TransferStatus.approved,
})


@dataclass(frozen=True)
class TransferLine:
    inventory_item_id: str
    quantity: int


# ---------- Helpers ----------
def _load_transfer(db: Session, transfer_id: str) -> InventoryTransfer:
    transfer = db.execute(
        select(InventoryTransfer)
        .where(InventoryTransfer.transfer_id == transfer_id)
        .options(
            selectinload(InventoryTransfer.items),
            selectinload(InventoryTransfer.discrepancies),
            selectinload(InventoryTransfer.audit_trail),
        )
    ).scalar_one_or_none()
    if transfer is None:
        raise NotFoundError("Transfer", transfer_id)
    return transfer


def _require_status(transfer: InventoryTransfer, expected: TransferStatus, action: str) -> None:
    if transfer.status in TERMINAL_TRANSFER_STATUSES:
        raise InvalidStateError(
            f"Transfer {transfer.transfer_id} is {transfer.status.value}; no further transitions allowed"
        )
    if transfer.status is not expected:
        raise InvalidStateError(
            f"Transfer {transfer.transfer_id} must be in {expected.value} status to {action} "
            f"(current: {transfer.status.value})"
        )


def _source_item(db: Session, transfer: InventoryTransfer, line: InventoryTransferItem) -> InventoryItem:
    item = db.get(InventoryItem, (transfer.from_branch_id, line.inventory_item_id))
    if item is None:
        raise NotFoundError("Inventory item", f"{line.inventory_item_id}@{transfer.from_branch_id}")
    return item


def _append_audit(
    transfer: InventoryTransfer,
    status: TransferStatus,
    user_id: str,
    user_name: str | None,
    notes: str | None,
) -> TransferAuditEntry:
    entry = TransferAuditEntry(
        status=status,
        timestamp=utcnow(),
        user_id=user_id,
        user_name=user_name,
        notes=notes,
    )
    transfer.audit_trail.append(entry)
    return entry


def _transition(
    db: Session,
    transfer_id: str,
    *,
    expected: TransferStatus,
    target: TransferStatus,
    action: str,
    user_id: str,
    user_name: str | None,
    notes: str | None,
) -> InventoryTransfer:
    """Status-only transitions (no stock effect)."""
    user_id = require_actor(user_id)

    def _work(session: Session) -> InventoryTransfer:
        transfer = _load_transfer(session, transfer_id)
        _require_status(transfer, expected, action)
        now = utcnow()
        transfer.status = target
        if target is TransferStatus.in_transit:
            transfer.dispatched_at = now
        elif target is TransferStatus.reconciled:
            transfer.reconciled_at = now
        _append_audit(transfer, target, user_id, user_name, notes)
        return transfer

    transfer = run_in_transaction(db, _work, label=f"{action}_transfer")
    logger.info("transfer_%s transfer=%s user=%s", target.value, transfer_id, user_id)
    return transfer


# ---------- Operations ----------
def create_transfer(
    db: Session,
    *,
    from_branch_id: str,
    to_branch_id: str,
    items: Sequence[TransferLine],
    requested_by: str,
    user_name: str | None = None,
    notes: str | None = None,
    submit: bool = False,
) -> InventoryTransfer:
    """
    Open a transfer in ``draft``.

    With ``submit=True`` the transfer is opened directly in ``requested`` and
    the creation audit entry records both steps.
    """
    requested_by = require_actor(requested_by, "requester")
    if not from_branch_id or not to_branch_id:
        raise ValidationError("Source and destination branches are required")
    if from_branch_id == to_branch_id:
        raise ValidationError("Source and destination branches must differ")
    if not items:
        raise ValidationError("A transfer needs at least one item")

    seen: set[str] = set()
    for line in items:
        if line.quantity <= 0:
            raise ValidationError(f"Quantity for item {line.inventory_item_id} must be greater than zero")
        if line.inventory_item_id in seen:
            raise ValidationError(f"Item {line.inventory_item_id} appears more than once")
        seen.add(line.inventory_item_id)

    initial = TransferStatus.requested if submit else TransferStatus.draft

    def _work(session: Session) -> InventoryTransfer:
        transfer = InventoryTransfer(
            transfer_id=generate_transfer_id(),
            from_branch_id=from_branch_id,
            to_branch_id=to_branch_id,
            status=initial,
            requested_by=requested_by,
            notes=notes,
        )
        for line_no, line in enumerate(items, start=1):
            source = session.get(InventoryItem, (from_branch_id, line.inventory_item_id))
            if source is None:
                raise NotFoundError("Inventory item", f"{line.inventory_item_id}@{from_branch_id}")
            transfer.items.append(
                InventoryTransferItem(
                    inventory_item_id=line.inventory_item_id,
                    line_no=line_no,
                    name=source.name,
                    unit=source.unit,
                    quantity=line.quantity,
                    cost_per_unit=source.cost_per_unit,
                )
            )
        default_note = "Transfer created and submitted for approval" if submit else "Transfer created"
        _append_audit(transfer, initial, requested_by, user_name, notes or default_note)
        session.add(transfer)
        return transfer

    transfer = run_in_transaction(db, _work, label="create_transfer")
    logger.info(
        "transfer_created transfer=%s from=%s to=%s lines=%d",
        transfer.transfer_id,
        from_branch_id,
        to_branch_id,
        len(items),
    )
    return transfer


def submit_transfer(
    db: Session,
    transfer_id: str,
    *,
    user_id: str,
    user_name: str | None = None,
    notes: str | None = None,
) -> InventoryTransfer:
    return _transition(
        db,
        transfer_id,
        expected=TransferStatus.draft,
        target=TransferStatus.requested,
        action="submit",
        user_id=user_id,
        user_name=user_name,
        notes=notes or "Submitted for approval",
    )


def approve_transfer(
    db: Session,
    transfer_id: str,
    *,
    user_id: str,
    user_name: str | None = None,
    notes: str | None = None,
) -> InventoryTransfer:
    """Reserve every line at the source branch, all or nothing."""
    user_id = require_actor(user_id, "approver")

    def _work(session: Session) -> InventoryTransfer:
        transfer = _load_transfer(session, transfer_id)
        _require_status(transfer, TransferStatus.requested, "approve")

        # validate every line before touching any of them
        reservations: list[tuple[InventoryItem, InventoryTransferItem]] = []
        for line in transfer.items:
            item = _source_item(session, transfer, line)
            if item.on_hand - line.quantity < 0:
                raise InsufficientStockError(
                    branch_id=transfer.from_branch_id,
                    item_id=line.inventory_item_id,
                    item_name=line.name,
                    available=item.on_hand,
                    requested=line.quantity,
                )
            reservations.append((item, line))

        for item, line in reservations:
            item.on_hand -= line.quantity
            item.pending_transfer_out += line.quantity

        transfer.status = TransferStatus.approved
        transfer.approved_by = user_id
        _append_audit(
            transfer,
            TransferStatus.approved,
            user_id,
            user_name,
            notes or "Transfer approved and inventory reserved",
        )
        return transfer

    transfer = run_in_transaction(db, _work, label="approve_transfer")
    logger.info("transfer_approved transfer=%s user=%s", transfer_id, user_id)
    return transfer


def dispatch_transfer(
    db: Session,
    transfer_id: str,
    *,
    user_id: str,
    user_name: str | None = None,
    notes: str | None = None,
) -> InventoryTransfer:
    return _transition(
        db,
        transfer_id,
        expected=TransferStatus.approved,
        target=TransferStatus.in_transit,
        action="dispatch",
        user_id=user_id,
        user_name=user_name,
        notes=notes or "Dispatched",
    )


def receive_transfer(
    db: Session,
    transfer_id: str,
    *,
    user_id: str,
    user_name: str | None = None,
    received_quantities: Mapping[str, int] | None = None,
    notes: str | None = None,
) -> InventoryTransfer:
    """
    Land the goods at the destination.

    ``received_quantities`` maps item id to the counted quantity. Items left
    out were received in full; an explicit 0 means nothing arrived.
    """
    user_id = require_actor(user_id, "receiver")
    received_quantities = dict(received_quantities or {})
    for item_id, qty in received_quantities.items():
        if qty is None or qty < 0:
            raise ValidationError(f"Received quantity for item {item_id} must be >= 0")

    def _work(session: Session) -> InventoryTransfer:
        transfer = _load_transfer(session, transfer_id)
        _require_status(transfer, TransferStatus.in_transit, "receive")

        line_ids = {line.inventory_item_id for line in transfer.items}
        unknown = sorted(set(received_quantities) - line_ids)
        if unknown:
            raise ValidationError(f"Items not part of transfer {transfer_id}: {', '.join(unknown)}")

        discrepancies = 0
        for line in transfer.items:
            received = received_quantities.get(line.inventory_item_id, line.quantity)
            line.received_quantity = received

            dest = session.get(InventoryItem, (transfer.to_branch_id, line.inventory_item_id))
            if dest is None:
                # first time this item is stocked at the destination
                dest = InventoryItem(
                    branch_id=transfer.to_branch_id,
                    item_id=line.inventory_item_id,
                    name=line.name,
                    unit=line.unit,
                    on_hand=0,
                    pending_transfer_out=0,
                    reorder_level=0,
                    cost_per_unit=line.cost_per_unit,
                )
                session.add(dest)
            dest.on_hand += received

            source = _source_item(session, transfer, line)
            if source.pending_transfer_out < line.quantity:
                raise InvalidStateError(
                    f"Source reservation for item {line.inventory_item_id} at branch "
                    f"{transfer.from_branch_id} is {source.pending_transfer_out}, "
                    f"expected at least {line.quantity}"
                )
            source.pending_transfer_out -= line.quantity

            if received != line.quantity:
                discrepancies += 1
                transfer.discrepancies.append(
                    InventoryTransferDiscrepancy(
                        item_id=line.inventory_item_id,
                        expected=line.quantity,
                        actual=received,
                        notes=f"Discrepancy: Expected {line.quantity}, Received {received}",
                    )
                )

        transfer.status = TransferStatus.received
        transfer.received_at = utcnow()
        default_note = (
            f"Received with {discrepancies} discrepancies" if discrepancies else "Received successfully"
        )
        _append_audit(transfer, TransferStatus.received, user_id, user_name, notes or default_note)
        return transfer

    transfer = run_in_transaction(db, _work, label="receive_transfer")
    logger.info(
        "transfer_received transfer=%s user=%s discrepancies=%d",
        transfer_id,
        user_id,
        len(transfer.discrepancies),
    )
    if transfer.discrepancies:
        logger.warning("transfer %s received with discrepancies", transfer_id)
    return transfer


def reconcile_transfer(
    db: Session,
    transfer_id: str,
    *,
    user_id: str,
    user_name: str | None = None,
    notes: str | None = None,
) -> InventoryTransfer:
    return _transition(
        db,
        transfer_id,
        expected=TransferStatus.received,
        target=TransferStatus.reconciled,
        action="reconcile",
        user_id=user_id,
        user_name=user_name,
        notes=notes or "Reconciled",
    )


def cancel_transfer(
    db: Session,
    transfer_id: str,
    *,
    user_id: str,
    user_name: str | None = None,
    reason: str | None = None,
) -> InventoryTransfer:
    """Cancel before dispatch, releasing the reservation of an approved transfer."""
    user_id = require_actor(user_id)

    def _work(session: Session) -> InventoryTransfer:
        transfer = _load_transfer(session, transfer_id)
        if transfer.status in TERMINAL_TRANSFER_STATUSES:
            raise InvalidStateError(
                f"Transfer {transfer_id} is {transfer.status.value}; no further transitions allowed"
            )
        if transfer.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot cancel transfer {transfer_id} in {transfer.status.value} status"
            )

        if transfer.status is TransferStatus.approved:
            for line in transfer.items:
                item = _source_item(session, transfer, line)
                if item.pending_transfer_out < line.quantity:
                    raise InvalidStateError(
                        f"Source reservation for item {line.inventory_item_id} at branch "
                        f"{transfer.from_branch_id} is {item.pending_transfer_out}, "
                        f"expected at least {line.quantity}"
                    )
                item.on_hand += line.quantity
                item.pending_transfer_out -= line.quantity

        transfer.status = TransferStatus.cancelled
        transfer.cancelled_at = utcnow()
        _append_audit(transfer, TransferStatus.cancelled, user_id, user_name, reason or "Transfer cancelled")
        return transfer

    transfer = run_in_transaction(db, _work, label="cancel_transfer")
    logger.info("transfer_cancelled transfer=%s user=%s", transfer_id, user_id)
    return transfer


# ---------- Reads ----------
def get_transfer(db: Session, transfer_id: str) -> InventoryTransfer:
    return _load_transfer(db, transfer_id)


def list_transfers_by_branch(
    db: Session,
    branch_id: str,
    *,
    direction: str = "both",
    status: TransferStatus | None = None,
) -> list[InventoryTransfer]:
    if direction == "from":
        cond = InventoryTransfer.from_branch_id == branch_id
    elif direction == "to":
        cond = InventoryTransfer.to_branch_id == branch_id
    elif direction == "both":
        cond = or_(
            InventoryTransfer.from_branch_id == branch_id,
            InventoryTransfer.to_branch_id == branch_id,
        )
    else:
        raise ValidationError("direction must be one of: from, to, both")

    stmt = (
        select(InventoryTransfer)
        .where(cond)
        .options(selectinload(InventoryTransfer.items))
        .order_by(InventoryTransfer.created_at.desc(), InventoryTransfer.transfer_id.desc())
    )
    if status is not None:
        status = coerce_enum(TransferStatus, status, "transfer status")
        stmt = stmt.where(InventoryTransfer.status == status)
    return list(db.execute(stmt).scalars().all())
