"""
ORM guard for the stock ledger.

Ledger entries are append-only: an UPDATE or DELETE reaching the flush is
refused before any SQL is emitted. Corrections are new entries.
"""

from __future__ import annotations

import logging

from branchstock.services.errors import LedgerImmutableError

logger = logging.getLogger(__name__)


def block_ledger_update(mapper, connection, target):
    logger.error("ledger_update_blocked transaction_id=%s", target.transaction_id)
    raise LedgerImmutableError(target.transaction_id, "UPDATE")


def block_ledger_delete(mapper, connection, target):
    logger.error("ledger_delete_blocked transaction_id=%s", target.transaction_id)
    raise LedgerImmutableError(target.transaction_id, "DELETE")
