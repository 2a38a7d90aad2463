from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from branchstock.app.api.v1.router import router as v1_router
from branchstock.app.core.logging import configure_logging
from branchstock.services.errors import BranchStockError

STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "INVALID_STATE": 409,
    "INSUFFICIENT_STOCK": 409,
    "LEDGER_IMMUTABLE": 409,
    "VALIDATION_ERROR": 400,
    "INFRASTRUCTURE_ERROR": 503,
}

configure_logging()

app = FastAPI(title="BRANCHSTOCK", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(BranchStockError)
async def branchstock_error_handler(request: Request, exc: BranchStockError):
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(exc.code, 400),
        content={"detail": exc.message, "code": exc.code},
    )
