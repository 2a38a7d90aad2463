"""
Inventory item store.

One row per (branch, item). Quantities on an existing row are only changed by
the ledger (``services.ledger``) and the transfer orchestrator
(``services.transfers``); this module creates rows and reads them.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from branchstock.app.db.models.models_v1 import InventoryItem
from branchstock.services.errors import InvalidStateError, NotFoundError, ValidationError
from branchstock.services.unit_of_work import run_in_transaction

logger = logging.getLogger(__name__)


def get_item(db: Session, branch_id: str, item_id: str) -> InventoryItem:
    item = db.get(InventoryItem, (branch_id, item_id))
    if item is None:
        raise NotFoundError("Inventory item", f"{item_id}@{branch_id}")
    return item


def list_items(db: Session, branch_id: str | None = None) -> list[InventoryItem]:
    stmt = select(InventoryItem).order_by(InventoryItem.branch_id, InventoryItem.name)
    if branch_id is not None:
        stmt = stmt.where(InventoryItem.branch_id == branch_id)
    return list(db.execute(stmt).scalars().all())


def create_item(
    db: Session,
    *,
    branch_id: str,
    item_id: str,
    name: str,
    unit: str = "unit",
    category: str | None = None,
    reorder_level: int = 0,
    cost_per_unit: Decimal | float | int = 0,
    expiry_date: date | None = None,
) -> InventoryItem:
    """
    Stock an item at a branch for the first time.

    The row starts at ``on_hand = 0``; opening stock is booked afterwards as a
    ledger receipt so the ledger explains every unit on hand.
    """
    if not branch_id or not item_id:
        raise ValidationError("branch_id and item_id are required")
    if not name or not name.strip():
        raise ValidationError("Item name is required")
    if reorder_level < 0:
        raise ValidationError("reorder_level must be >= 0")
    cost = Decimal(str(cost_per_unit))
    if cost < 0:
        raise ValidationError("cost_per_unit must be >= 0")

    def _work(session: Session) -> InventoryItem:
        if session.get(InventoryItem, (branch_id, item_id)) is not None:
            raise InvalidStateError(f"Item {item_id} is already stocked at branch {branch_id}")
        item = InventoryItem(
            branch_id=branch_id,
            item_id=item_id,
            name=name.strip(),
            unit=unit,
            category=category,
            on_hand=0,
            pending_transfer_out=0,
            reorder_level=reorder_level,
            cost_per_unit=cost,
            expiry_date=expiry_date,
        )
        session.add(item)
        return item

    item = run_in_transaction(db, _work, label="create_item")
    logger.info("item_stocked branch=%s item=%s", branch_id, item_id)
    return item
