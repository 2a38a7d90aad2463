"""
Typed errors raised by the stock services.

Every mutating operation surfaces one of these to its caller; the HTTP layer
maps ``code`` to a status code and never parses messages.

    BranchStockError
    ├── NotFoundError
    ├── InvalidStateError
    ├── InsufficientStockError
    ├── ValidationError
    ├── LedgerImmutableError
    └── InfrastructureError
"""

from __future__ import annotations


class BranchStockError(Exception):
    code: str = "BRANCHSTOCK_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(BranchStockError):
    """Item, transfer or adjustment request does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class InvalidStateError(BranchStockError):
    """Operation attempted from a status that does not permit it."""

    code = "INVALID_STATE"


class InsufficientStockError(BranchStockError):
    """The mutation would drive on_hand below zero."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, branch_id: str, item_id: str, available: int, requested: int, item_name: str | None = None):
        self.branch_id = branch_id
        self.item_id = item_id
        self.available = available
        self.requested = requested
        label = f"{item_name} ({item_id})" if item_name else item_id
        super().__init__(
            f"Insufficient stock for item {label} at branch {branch_id}. "
            f"Available: {available}, Requested: {requested}"
        )


class ValidationError(BranchStockError):
    """Missing actor identity, empty item list, missing rejection reason..."""

    code = "VALIDATION_ERROR"


class LedgerImmutableError(BranchStockError):
    code = "LEDGER_IMMUTABLE"

    def __init__(self, transaction_id: str, operation: str):
        self.transaction_id = transaction_id
        self.operation = operation
        super().__init__(f"Ledger entry {transaction_id} is immutable ({operation} refused)")


class InfrastructureError(BranchStockError):
    """Storage unavailable or write conflicts exhausted the retry budget."""

    code = "INFRASTRUCTURE_ERROR"


def require_actor(user_id: str | None, role: str = "user") -> str:
    if user_id is None or not str(user_id).strip():
        raise ValidationError(f"Missing {role} identity")
    return str(user_id).strip()


def coerce_enum(enum_cls, value, label: str):
    """``enum_cls(value)``, with unknown values reported as ``ValidationError``."""
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {label} {value!r}") from exc
