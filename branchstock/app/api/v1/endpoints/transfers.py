from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from branchstock.app.api.deps import get_db
from branchstock.app.db.models.core_types import TransferStatus
from branchstock.app.schemas.inventory import InventoryTransferRead
from branchstock.services import transfers
from branchstock.services.errors import ValidationError
from branchstock.services.transfers import TransferLine

router = APIRouter(prefix="/transfers")


# ---------- Schemas ----------
class TransferLineCreate(BaseModel):
    inventory_item_id: str
    quantity: int = Field(gt=0)


class TransferCreate(BaseModel):
    from_branch_id: str
    to_branch_id: str
    items: list[TransferLineCreate] = Field(default_factory=list)
    user_id: str
    user_name: str | None = None
    notes: str | None = None
    submit: bool = False


class TransferAction(BaseModel):
    user_id: str
    user_name: str | None = None
    notes: str | None = None


class ReceivedLine(BaseModel):
    inventory_item_id: str
    quantity: int = Field(ge=0)


class TransferReceive(TransferAction):
    received: list[ReceivedLine] = Field(default_factory=list)


# ---------- Endpoints ----------
@router.post("", response_model=InventoryTransferRead, status_code=201)
def create_transfer(payload: TransferCreate, db: Session = Depends(get_db)):
    transfer = transfers.create_transfer(
        db,
        from_branch_id=payload.from_branch_id,
        to_branch_id=payload.to_branch_id,
        items=[TransferLine(ln.inventory_item_id, ln.quantity) for ln in payload.items],
        requested_by=payload.user_id,
        user_name=payload.user_name,
        notes=payload.notes,
        submit=payload.submit,
    )
    return transfers.get_transfer(db, transfer.transfer_id)


@router.get("", response_model=list[InventoryTransferRead])
def list_transfers(
    branch_id: str,
    direction: Literal["from", "to", "both"] = "both",
    status: TransferStatus | None = None,
    db: Session = Depends(get_db),
):
    return transfers.list_transfers_by_branch(db, branch_id, direction=direction, status=status)


@router.get("/{transfer_id}", response_model=InventoryTransferRead)
def get_transfer(transfer_id: str, db: Session = Depends(get_db)):
    return transfers.get_transfer(db, transfer_id)


@router.post("/{transfer_id}/submit", response_model=InventoryTransferRead)
def submit_transfer(transfer_id: str, payload: TransferAction, db: Session = Depends(get_db)):
    transfers.submit_transfer(db, transfer_id, **payload.model_dump())
    return transfers.get_transfer(db, transfer_id)


@router.post("/{transfer_id}/approve", response_model=InventoryTransferRead)
def approve_transfer(transfer_id: str, payload: TransferAction, db: Session = Depends(get_db)):
    transfers.approve_transfer(db, transfer_id, **payload.model_dump())
    return transfers.get_transfer(db, transfer_id)


@router.post("/{transfer_id}/dispatch", response_model=InventoryTransferRead)
def dispatch_transfer(transfer_id: str, payload: TransferAction, db: Session = Depends(get_db)):
    transfers.dispatch_transfer(db, transfer_id, **payload.model_dump())
    return transfers.get_transfer(db, transfer_id)


@router.post("/{transfer_id}/receive", response_model=InventoryTransferRead)
def receive_transfer(transfer_id: str, payload: TransferReceive, db: Session = Depends(get_db)):
    received: dict[str, int] = {}
    for ln in payload.received:
        if ln.inventory_item_id in received:
            raise ValidationError(f"Item {ln.inventory_item_id} appears more than once in the receipt")
        received[ln.inventory_item_id] = ln.quantity

    transfers.receive_transfer(
        db,
        transfer_id,
        user_id=payload.user_id,
        user_name=payload.user_name,
        received_quantities=received,
        notes=payload.notes,
    )
    return transfers.get_transfer(db, transfer_id)


@router.post("/{transfer_id}/reconcile", response_model=InventoryTransferRead)
def reconcile_transfer(transfer_id: str, payload: TransferAction, db: Session = Depends(get_db)):
    transfers.reconcile_transfer(db, transfer_id, **payload.model_dump())
    return transfers.get_transfer(db, transfer_id)


@router.post("/{transfer_id}/cancel", response_model=InventoryTransferRead)
def cancel_transfer(transfer_id: str, payload: TransferAction, db: Session = Depends(get_db)):
    transfers.cancel_transfer(
        db,
        transfer_id,
        user_id=payload.user_id,
        user_name=payload.user_name,
        reason=payload.notes,
    )
    return transfers.get_transfer(db, transfer_id)
