from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from branchstock.app.api.deps import get_db
from branchstock.app.db.models.core_types import TransactionType
from branchstock.app.schemas.inventory import InventoryItemRead, InventoryTransactionRead
from branchstock.services import items as item_service
from branchstock.services import ledger

router = APIRouter(prefix="/items")


class ItemCreate(BaseModel):
    branch_id: str = Field(min_length=1, max_length=64)
    item_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    unit: str = Field(default="unit", min_length=1, max_length=32)
    category: str | None = Field(default=None, max_length=64)
    reorder_level: int = Field(default=0, ge=0)
    cost_per_unit: float = Field(default=0, ge=0)
    expiry_date: date | None = None


@router.get("", response_model=list[InventoryItemRead])
def list_items(branch_id: str | None = None, db: Session = Depends(get_db)):
    return item_service.list_items(db, branch_id)


@router.post("", response_model=InventoryItemRead, status_code=201)
def create_item(payload: ItemCreate, db: Session = Depends(get_db)):
    return item_service.create_item(db, **payload.model_dump())


@router.get("/{branch_id}/{item_id}", response_model=InventoryItemRead)
def get_item(branch_id: str, item_id: str, db: Session = Depends(get_db)):
    return item_service.get_item(db, branch_id, item_id)


@router.get("/{branch_id}/{item_id}/transactions", response_model=list[InventoryTransactionRead])
def get_item_transactions(
    branch_id: str,
    item_id: str,
    transaction_type: TransactionType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    item_service.get_item(db, branch_id, item_id)
    return ledger.get_item_transactions(
        db,
        item_id,
        branch_id=branch_id,
        start=start,
        end=end,
        transaction_type=transaction_type,
        limit=limit,
    )
