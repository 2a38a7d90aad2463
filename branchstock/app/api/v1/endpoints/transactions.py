from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from branchstock.app.api.deps import get_db
from branchstock.app.db.models.core_types import ReferenceType, TransactionType
from branchstock.app.schemas.inventory import InventoryTransactionRead
from branchstock.services import ledger
from branchstock.services.ledger import TransactionMetadata

router = APIRouter(prefix="/transactions")


# ---------- Schemas ----------
class TransactionCreate(BaseModel):
    item_id: str
    branch_id: str
    transaction_type: TransactionType
    quantity: int  # signed: positive in, negative out
    recorded_by: str
    recorded_by_name: str | None = None
    reason: str | None = None
    reference_id: str | None = None
    reference_type: ReferenceType | None = None
    unit_cost: float | None = Field(default=None, ge=0)
    batch_number: str | None = None
    expiry_date: date | None = None


class ReceiptCreate(BaseModel):
    item_id: str
    branch_id: str
    quantity: int = Field(gt=0)
    recorded_by: str
    recorded_by_name: str | None = None
    supplier_id: str | None = None
    supplier_name: str | None = None
    purchase_order_id: str | None = None
    unit_cost: float | None = Field(default=None, ge=0)
    batch_number: str | None = None
    expiry_date: date | None = None
    notes: str | None = None


class UsageCreate(BaseModel):
    item_id: str
    branch_id: str
    quantity: int = Field(gt=0)
    recorded_by: str
    recorded_by_name: str | None = None
    order_id: str | None = None
    reason: str | None = None


def _idem(idempotency_key: str | None) -> str | None:
    if idempotency_key is None or not idempotency_key.strip():
        return None
    return idempotency_key.strip()


# ---------- Endpoints ----------
@router.post("", response_model=InventoryTransactionRead, status_code=201)
def record_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    metadata = TransactionMetadata(
        recorded_by_name=payload.recorded_by_name,
        reason=payload.reason,
        reference_id=payload.reference_id,
        reference_type=payload.reference_type,
        unit_cost=None if payload.unit_cost is None else Decimal(str(payload.unit_cost)),
        batch_number=payload.batch_number,
        expiry_date=payload.expiry_date,
    )
    return ledger.record_transaction(
        db,
        item_id=payload.item_id,
        branch_id=payload.branch_id,
        transaction_type=payload.transaction_type,
        quantity=payload.quantity,
        recorded_by=payload.recorded_by,
        metadata=metadata,
        idempotency_key=_idem(idempotency_key),
    )


@router.post("/receipts", response_model=InventoryTransactionRead, status_code=201)
def record_receipt(
    payload: ReceiptCreate,
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    return ledger.record_stock_receipt(
        db,
        **payload.model_dump(),
        idempotency_key=_idem(idempotency_key),
    )


@router.post("/usage", response_model=InventoryTransactionRead, status_code=201)
def record_usage(
    payload: UsageCreate,
    db: Session = Depends(get_db),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    return ledger.record_stock_usage(
        db,
        **payload.model_dump(),
        idempotency_key=_idem(idempotency_key),
    )
