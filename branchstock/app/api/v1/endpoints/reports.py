from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from branchstock.app.api.deps import get_db
from branchstock.services import reporting

router = APIRouter(prefix="/reports")


@router.get("/valuation")
def inventory_valuation(branch_id: str | None = None, db: Session = Depends(get_db)):
    report = reporting.get_inventory_valuation(db, branch_id)
    return {
        "total_items": report["total_items"],
        "total_value": float(report["total_value"]),
        "items": [
            {**row, "unit_cost": float(row["unit_cost"]), "total_value": float(row["total_value"])}
            for row in report["items"]
        ],
    }


@router.get("/low-stock")
def low_stock(branch_id: str | None = None, db: Session = Depends(get_db)):
    return [
        {
            "branch_id": r["item"].branch_id,
            "item_id": r["item"].item_id,
            "name": r["item"].name,
            "unit": r["item"].unit,
            "current_stock": r["current_stock"],
            "reorder_level": r["reorder_level"],
            "deficit": r["deficit"],
        }
        for r in reporting.get_low_stock_items(db, branch_id)
    ]


@router.get("/expiring")
def expiring_items(branch_id: str | None = None, days: int = 30, db: Session = Depends(get_db)):
    return [
        {
            "branch_id": r["item"].branch_id,
            "item_id": r["item"].item_id,
            "name": r["item"].name,
            "expiry_date": r["expiry_date"],
            "days_until_expiry": r["days_until_expiry"],
        }
        for r in reporting.get_expiring_items(db, branch_id, days_before_expiry=days)
    ]


@router.get("/summary")
def transaction_summary(branch_id: str, start: datetime, end: datetime, db: Session = Depends(get_db)):
    summary = reporting.get_transaction_summary(db, branch_id, start, end)
    summary["receipts"]["total_value"] = float(summary["receipts"]["total_value"])
    return summary


@router.get("/pending-transfer-audit")
def pending_transfer_audit(branch_id: str | None = None, db: Session = Depends(get_db)):
    return reporting.find_pending_transfer_mismatches(db, branch_id)
