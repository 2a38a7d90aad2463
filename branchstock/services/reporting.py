"""
Read-only views over the item store and the ledger.

Nothing here writes. A row with missing or malformed values is logged and
skipped so one bad record never takes a whole report down.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import String, cast, select
from sqlalchemy.orm import Session

from branchstock.app.db.models.core_types import RESERVING_TRANSFER_STATUSES, TransactionType
from branchstock.app.db.models.models_v1 import (
    InventoryItem,
    InventoryTransaction,
    InventoryTransfer,
    InventoryTransferItem,
)

logger = logging.getLogger(__name__)

_ROW_ERRORS = (TypeError, ValueError, InvalidOperation, AttributeError)


def _items(db: Session, branch_id: str | None) -> list[InventoryItem]:
    stmt = select(InventoryItem).order_by(InventoryItem.branch_id, InventoryItem.item_id)
    if branch_id is not None:
        stmt = stmt.where(InventoryItem.branch_id == branch_id)
    return list(db.execute(stmt).scalars().all())


def _skip(report: str, key: str, exc: Exception) -> None:
    logger.warning("%s: skipping malformed row %s (%s)", report, key, exc)


def get_inventory_valuation(db: Session, branch_id: str | None = None) -> dict:
    rows = []
    total_value = Decimal("0")
    for item in _items(db, branch_id):
        try:
            quantity = int(item.on_hand)
            unit_cost = Decimal(item.cost_per_unit if item.cost_per_unit is not None else 0)
            value = unit_cost * quantity
        except _ROW_ERRORS as exc:
            _skip("valuation", f"{item.item_id}@{item.branch_id}", exc)
            continue
        total_value += value
        rows.append(
            {
                "branch_id": item.branch_id,
                "item_id": item.item_id,
                "name": item.name,
                "quantity": quantity,
                "unit": item.unit,
                "unit_cost": unit_cost,
                "total_value": value,
            }
        )
    return {"total_items": len(rows), "total_value": total_value, "items": rows}


def get_low_stock_items(db: Session, branch_id: str | None = None) -> list[dict]:
    """Items at or below their reorder level, biggest deficit first."""
    out = []
    for item in _items(db, branch_id):
        try:
            current = int(item.on_hand)
            reorder_level = int(item.reorder_level or 0)
        except _ROW_ERRORS as exc:
            _skip("low_stock", f"{item.item_id}@{item.branch_id}", exc)
            continue
        if current <= reorder_level:
            out.append(
                {
                    "item": item,
                    "current_stock": current,
                    "reorder_level": reorder_level,
                    "deficit": reorder_level - current,
                }
            )
    out.sort(key=lambda r: r["deficit"], reverse=True)
    return out


def get_expiring_items(
    db: Session,
    branch_id: str | None = None,
    days_before_expiry: int = 30,
    today: date | None = None,
) -> list[dict]:
    """Items expiring within ``days_before_expiry`` days, already expired ones included."""
    today = today or date.today()
    threshold = today + timedelta(days=days_before_expiry)
    out = []
    for item in _items(db, branch_id):
        if item.expiry_date is None:
            continue
        try:
            expiry = item.expiry_date if isinstance(item.expiry_date, date) else date.fromisoformat(item.expiry_date)
        except _ROW_ERRORS as exc:
            _skip("expiring", f"{item.item_id}@{item.branch_id}", exc)
            continue
        if expiry <= threshold:
            out.append(
                {
                    "item": item,
                    "expiry_date": expiry,
                    "days_until_expiry": (expiry - today).days,
                }
            )
    out.sort(key=lambda r: r["days_until_expiry"])
    return out


def get_transaction_summary(db: Session, branch_id: str, start: datetime, end: datetime) -> dict:
    # transaction_type is read as text so an unknown value skips one row instead of failing the query
    rows = db.execute(
        select(
            InventoryTransaction.transaction_id,
            cast(InventoryTransaction.transaction_type, String),
            InventoryTransaction.quantity,
            InventoryTransaction.total_value,
        )
        .where(InventoryTransaction.branch_id == branch_id)
        .where(InventoryTransaction.created_at >= start)
        .where(InventoryTransaction.created_at <= end)
    ).all()

    summary = {
        "receipts": {"count": 0, "total_quantity": 0, "total_value": Decimal("0")},
        "usage": {"count": 0, "total_quantity": 0},
        "adjustments": {"count": 0, "net_quantity": 0},
        "transfers": {"incoming": 0, "outgoing": 0},
        "by_type": {t.value: {"count": 0, "net_quantity": 0} for t in TransactionType},
    }

    for transaction_id, raw_type, quantity, total_value in rows:
        try:
            ttype = TransactionType(raw_type)
            qty = int(quantity)
        except _ROW_ERRORS as exc:
            _skip("transaction_summary", transaction_id, exc)
            continue

        bucket = summary["by_type"][ttype.value]
        bucket["count"] += 1
        bucket["net_quantity"] += qty

        if ttype is TransactionType.receipt:
            summary["receipts"]["count"] += 1
            summary["receipts"]["total_quantity"] += qty
            summary["receipts"]["total_value"] += Decimal(total_value or 0)
        elif ttype is TransactionType.usage:
            summary["usage"]["count"] += 1
            summary["usage"]["total_quantity"] += abs(qty)
        elif ttype in (TransactionType.adjustment_in, TransactionType.adjustment_out):
            summary["adjustments"]["count"] += 1
            summary["adjustments"]["net_quantity"] += qty
        elif ttype is TransactionType.transfer_in:
            summary["transfers"]["incoming"] += qty
        elif ttype is TransactionType.transfer_out:
            summary["transfers"]["outgoing"] += abs(qty)
        # return, damage, expired only show up under by_type

    return summary


def find_pending_transfer_mismatches(db: Session, branch_id: str | None = None) -> list[dict]:
    """
    Items whose ``pending_transfer_out`` differs from the requested quantities
    of the approved/in-transit transfers leaving their branch.
    """
    stmt = (
        select(InventoryTransfer.from_branch_id, InventoryTransferItem.inventory_item_id, InventoryTransferItem.quantity)
        .join(InventoryTransferItem, InventoryTransferItem.transfer_id == InventoryTransfer.transfer_id)
        .where(InventoryTransfer.status.in_(RESERVING_TRANSFER_STATUSES))
    )
    if branch_id is not None:
        stmt = stmt.where(InventoryTransfer.from_branch_id == branch_id)

    expected: dict[tuple[str, str], int] = defaultdict(int)
    for from_branch, item_id, qty in db.execute(stmt).all():
        if qty is None:
            _skip("pending_transfer_audit", f"{item_id}@{from_branch}", ValueError("missing quantity"))
            continue
        expected[(from_branch, item_id)] += int(qty)

    out = []
    seen: set[tuple[str, str]] = set()
    for item in _items(db, branch_id):
        key = (item.branch_id, item.item_id)
        seen.add(key)
        want = expected.get(key, 0)
        if item.pending_transfer_out != want:
            out.append(
                {
                    "branch_id": item.branch_id,
                    "item_id": item.item_id,
                    "pending_transfer_out": item.pending_transfer_out,
                    "expected": want,
                }
            )

    for (from_branch, item_id), want in expected.items():
        if (from_branch, item_id) not in seen:
            logger.warning(
                "pending_transfer_audit: open transfers reference missing item %s@%s",
                item_id,
                from_branch,
            )
    return out
