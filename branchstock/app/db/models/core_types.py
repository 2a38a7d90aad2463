import enum


class TransactionType(str, enum.Enum):
    receipt = "receipt"
    adjustment_in = "adjustment_in"
    adjustment_out = "adjustment_out"
    usage = "usage"
    transfer_out = "transfer_out"
    transfer_in = "transfer_in"
    return_ = "return"
    damage = "damage"
    expired = "expired"


INBOUND_TRANSACTION_TYPES = frozenset({
    TransactionType.receipt,
    TransactionType.adjustment_in,
    TransactionType.transfer_in,
    TransactionType.return_,
})

OUTBOUND_TRANSACTION_TYPES = frozenset({
    TransactionType.adjustment_out,
    TransactionType.usage,
    TransactionType.transfer_out,
    TransactionType.damage,
    TransactionType.expired,
})

class TransactionStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"

class ReferenceType(str, enum.Enum):
    purchase_order = "purchase_order"
    transfer = "transfer"
    order = "order"
    adjustment_request = "adjustment_request"
    manual = "manual"

class AdjustmentType(str, enum.Enum):
    increase = "increase"
    decrease = "decrease"

class ReasonCategory(str, enum.Enum):
    damage = "damage"
    theft = "theft"
    count_correction = "count_correction"
    expired = "expired"
    other = "other"

class AdjustmentStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"

class TransferStatus(str, enum.Enum):
    draft = "draft"
    requested = "requested"
    approved = "approved"
    in_transit = "in_transit"
    received = "received"
    reconciled = "reconciled"
    cancelled = "cancelled"


# Transfers holding a reservation at the source branch
RESERVING_TRANSFER_STATUSES = frozenset({
    TransferStatus.approved,
    TransferStatus.in_transit,
})

TERMINAL_TRANSFER_STATUSES = frozenset({
    TransferStatus.reconciled,
    TransferStatus.cancelled,
})
