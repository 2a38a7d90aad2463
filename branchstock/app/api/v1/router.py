from fastapi import APIRouter

from branchstock.app.api.v1.endpoints.items import router as items_router
from branchstock.app.api.v1.endpoints.transactions import router as transactions_router
from branchstock.app.api.v1.endpoints.adjustments import router as adjustments_router
from branchstock.app.api.v1.endpoints.transfers import router as transfers_router
from branchstock.app.api.v1.endpoints.reports import router as reports_router

router = APIRouter()
router.include_router(items_router, tags=["items"])
router.include_router(transactions_router, tags=["transactions"])
router.include_router(adjustments_router, tags=["adjustments"])
router.include_router(transfers_router, tags=["transfers"])
router.include_router(reports_router, tags=["reports"])
