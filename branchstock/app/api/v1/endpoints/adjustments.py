from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from branchstock.app.api.deps import get_db
from branchstock.app.db.models.core_types import AdjustmentType, ReasonCategory
from branchstock.app.schemas.inventory import AdjustmentRequestRead, InventoryTransactionRead
from branchstock.services import adjustments

router = APIRouter(prefix="/adjustments")


class AdjustmentCreate(BaseModel):
    item_id: str
    branch_id: str
    adjustment_type: AdjustmentType
    quantity: int = Field(gt=0)
    reason: str = Field(min_length=1)
    reason_category: ReasonCategory
    requested_by: str
    requested_by_name: str | None = None


class AdjustmentReview(BaseModel):
    reviewed_by: str
    reviewed_by_name: str | None = None
    notes: str | None = None


@router.post("", response_model=AdjustmentRequestRead, status_code=201)
def create_adjustment_request(payload: AdjustmentCreate, db: Session = Depends(get_db)):
    return adjustments.create_adjustment_request(db, **payload.model_dump())


@router.get("/pending", response_model=list[AdjustmentRequestRead])
def get_pending_adjustments(branch_id: str | None = None, db: Session = Depends(get_db)):
    return adjustments.get_pending_adjustments(db, branch_id)


@router.get("/{request_id}", response_model=AdjustmentRequestRead)
def get_adjustment_request(request_id: str, db: Session = Depends(get_db)):
    return adjustments.get_adjustment_request(db, request_id)


@router.post("/{request_id}/approve", response_model=InventoryTransactionRead)
def approve_adjustment_request(request_id: str, payload: AdjustmentReview, db: Session = Depends(get_db)):
    return adjustments.approve_adjustment_request(
        db,
        request_id,
        reviewed_by=payload.reviewed_by,
        reviewed_by_name=payload.reviewed_by_name,
        notes=payload.notes,
    )


@router.post("/{request_id}/reject", response_model=AdjustmentRequestRead)
def reject_adjustment_request(request_id: str, payload: AdjustmentReview, db: Session = Depends(get_db)):
    # empty notes are refused by the service (ValidationError -> 400)
    return adjustments.reject_adjustment_request(
        db,
        request_id,
        reviewed_by=payload.reviewed_by,
        reviewed_by_name=payload.reviewed_by_name,
        notes=payload.notes,
    )
