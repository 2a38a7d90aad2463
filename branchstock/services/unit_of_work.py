"""
Transaction primitive shared by every stock mutation path.

``run_in_transaction`` runs one read-validate-write cycle and commits it.
``InventoryItem.version`` turns each item UPDATE into a compare-and-set, so a
concurrent writer surfaces as ``StaleDataError`` at flush time (or as a
serialization failure from the database). In that case the session is rolled
back and the whole cycle runs again from fresh reads. Business errors are
rolled back and re-raised untouched, they are never retried.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from branchstock.app.core import config
from branchstock.services.errors import BranchStockError, InfrastructureError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_write_conflict(exc: BaseException) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in RETRYABLE_SQLSTATES:
            return True
        if isinstance(exc, OperationalError) and "database is locked" in str(orig):
            return True
    return False


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    *,
    max_attempts: int | None = None,
    label: str = "stock_mutation",
) -> T:
    attempts = max_attempts or config.TX_MAX_ATTEMPTS
    if attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except BranchStockError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            if not is_write_conflict(exc):
                logger.exception("%s failed on storage error", label)
                raise InfrastructureError(f"{label} failed: storage error ({exc.__class__.__name__})") from exc
            if attempt == attempts:
                logger.error("%s conflict persisted after %d attempts", label, attempts)
                raise InfrastructureError(
                    f"{label} failed: concurrent modification persisted after {attempts} attempts"
                ) from exc
            logger.warning("%s write conflict (attempt %d/%d), retrying", label, attempt, attempts)
        except Exception:
            db.rollback()
            raise

    # unreachable, the loop either returns or raises
    raise InfrastructureError(f"{label} failed")
