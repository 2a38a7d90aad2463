from contextlib import contextmanager

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from branchstock.app.core import config
from branchstock.app.db.models.core_types import AdjustmentStatus, AdjustmentType, ReasonCategory, TransferStatus
from branchstock.app.db.models.models_v1 import InventoryItem
from branchstock.services import adjustments, items, ledger, transfers
from branchstock.services.errors import InfrastructureError, InsufficientStockError, ValidationError
from branchstock.services.transfers import TransferLine
from branchstock.services.unit_of_work import is_write_conflict, run_in_transaction


class _FakeSession:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def test_conflict_is_retried_then_committed():
    session = _FakeSession()
    calls = []

    def work(db):
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("row changed underneath")
        return "ok"

    assert run_in_transaction(session, work) == "ok"
    assert len(calls) == 2
    assert session.rollbacks == 1
    assert session.commits == 1


def test_persistent_conflict_surfaces_as_infrastructure_error(monkeypatch):
    monkeypatch.setattr(config, "TX_MAX_ATTEMPTS", 4)
    session = _FakeSession()
    calls = []

    def work(db):
        calls.append(1)
        raise StaleDataError("row changed underneath")

    with pytest.raises(InfrastructureError):
        run_in_transaction(session, work)
    assert len(calls) == 4
    assert session.commits == 0


def test_business_errors_are_not_retried():
    session = _FakeSession()
    calls = []

    def work(db):
        calls.append(1)
        raise ValidationError("nope")

    with pytest.raises(ValidationError):
        run_in_transaction(session, work)
    assert len(calls) == 1
    assert session.rollbacks == 1


def test_other_storage_errors_are_not_retried():
    session = _FakeSession()
    calls = []

    def work(db):
        calls.append(1)
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    with pytest.raises(InfrastructureError):
        run_in_transaction(session, work)
    assert len(calls) == 1


def test_write_conflict_detection():
    class _PgError(Exception):
        sqlstate = "40001"

    assert is_write_conflict(StaleDataError("x"))
    assert is_write_conflict(OperationalError("UPDATE", {}, _PgError()))
    assert is_write_conflict(OperationalError("UPDATE", {}, Exception("database is locked")))
    assert not is_write_conflict(OperationalError("UPDATE", {}, Exception("no such table")))
    assert not is_write_conflict(ValueError("x"))


def test_stale_item_snapshot_cannot_overwrite_newer_stock(db_session, session_factory, stock_item):
    """
    GIVEN two clerks who both read detergent at 100
    WHEN the second one books usage first
    THEN the first one's write, based on the stale read, is refused
    """
    stock_item("A", "det", "Detergent", on_hand=100)
    stale = db_session.get(InventoryItem, ("A", "det"))
    assert stale.on_hand == 100

    other = session_factory()
    try:
        ledger.record_stock_usage(other, item_id="det", branch_id="A", quantity=10, recorded_by="clerk-2")
    finally:
        other.close()

    stale.on_hand = 95
    with pytest.raises(StaleDataError):
        db_session.commit()
    db_session.rollback()

    assert items.get_item(db_session, "A", "det").on_hand == 90


def test_concurrent_writer_is_absorbed_by_retry(db_session, session_factory, stock_item):
    """
    GIVEN detergent at 100
    WHEN another session books usage of 10 between our read and our write
    THEN our cycle re-runs from the fresh value and both movements land
    """
    stock_item("A", "det", "Detergent", on_hand=100)
    seen = []

    def work(session):
        item = session.get(InventoryItem, ("A", "det"))
        seen.append(item.on_hand)
        if len(seen) == 1:
            other = session_factory()
            try:
                ledger.record_stock_usage(other, item_id="det", branch_id="A", quantity=10, recorded_by="clerk-2")
            finally:
                other.close()
        item.on_hand -= 5
        return item

    run_in_transaction(db_session, work)

    assert seen == [100, 90]
    assert items.get_item(db_session, "A", "det").on_hand == 85


# ---------- Writers racing the adjustment and transfer paths ----------
@contextmanager
def _usage_lands_mid_flush(db_session, session_factory, *, branch_id, item_id, quantity):
    """Commit a usage from another session the first time ``db_session`` flushes."""
    landed = []

    def _before_flush(session, flush_context, instances):
        if landed:
            return
        other = session_factory()
        try:
            ledger.record_stock_usage(
                other, item_id=item_id, branch_id=branch_id, quantity=quantity, recorded_by="clerk-2"
            )
        finally:
            other.close()
        landed.append(quantity)

    event.listen(db_session, "before_flush", _before_flush)
    try:
        yield landed
    finally:
        event.remove(db_session, "before_flush", _before_flush)


def _stock(db, branch_id, item_id):
    item = items.get_item(db, branch_id, item_id)
    return item.on_hand, item.pending_transfer_out


def _requested_transfer(db, item_id, quantity):
    return transfers.create_transfer(
        db,
        from_branch_id="A",
        to_branch_id="B",
        items=[TransferLine(item_id, quantity)],
        requested_by="clerk-a",
        submit=True,
    ).transfer_id


def test_transfer_approval_reserves_against_fresh_stock(db_session, session_factory, stock_item):
    stock_item("A", "hang", "Hangers", on_hand=50)
    transfer_id = _requested_transfer(db_session, "hang", 20)

    with _usage_lands_mid_flush(db_session, session_factory, branch_id="A", item_id="hang", quantity=10) as landed:
        transfers.approve_transfer(db_session, transfer_id, user_id="mgr-a")

    assert landed == [10]
    assert _stock(db_session, "A", "hang") == (20, 20)
    assert transfers.get_transfer(db_session, transfer_id).status is TransferStatus.approved


def test_transfer_approval_refused_when_racing_usage_drains_stock(db_session, session_factory, stock_item):
    """
    GIVEN hangers A=50 and a requested transfer of 40
    WHEN a usage of 20 commits while the approval is flushing
    THEN the retry sees 30, refuses the approval and reserves nothing
    """
    stock_item("A", "hang", "Hangers", on_hand=50)
    transfer_id = _requested_transfer(db_session, "hang", 40)

    with _usage_lands_mid_flush(db_session, session_factory, branch_id="A", item_id="hang", quantity=20):
        with pytest.raises(InsufficientStockError) as exc_info:
            transfers.approve_transfer(db_session, transfer_id, user_id="mgr-a")

    assert exc_info.value.available == 30
    assert _stock(db_session, "A", "hang") == (30, 0)
    transfer = transfers.get_transfer(db_session, transfer_id)
    assert transfer.status is TransferStatus.requested
    assert len(transfer.audit_trail) == 1


def test_transfer_cancel_releases_onto_fresh_stock(db_session, session_factory, stock_item):
    stock_item("A", "hang", "Hangers", on_hand=50)
    transfer_id = _requested_transfer(db_session, "hang", 20)
    transfers.approve_transfer(db_session, transfer_id, user_id="mgr-a")

    with _usage_lands_mid_flush(db_session, session_factory, branch_id="A", item_id="hang", quantity=10) as landed:
        transfers.cancel_transfer(db_session, transfer_id, user_id="mgr-a")

    assert landed == [10]
    assert _stock(db_session, "A", "hang") == (40, 0)


def test_transfer_receipt_credits_fresh_destination_stock(db_session, session_factory, stock_item):
    stock_item("A", "hang", "Hangers", on_hand=50)
    stock_item("B", "hang", "Hangers", on_hand=10)
    transfer_id = _requested_transfer(db_session, "hang", 20)
    transfers.approve_transfer(db_session, transfer_id, user_id="mgr-a")
    transfers.dispatch_transfer(db_session, transfer_id, user_id="driver")

    with _usage_lands_mid_flush(db_session, session_factory, branch_id="B", item_id="hang", quantity=5) as landed:
        transfers.receive_transfer(db_session, transfer_id, user_id="clerk-b")

    assert landed == [5]
    assert _stock(db_session, "B", "hang") == (25, 0)
    assert _stock(db_session, "A", "hang") == (30, 0)


def _pending_decrease(db, quantity):
    return adjustments.create_adjustment_request(
        db,
        item_id="fill",
        branch_id="A",
        adjustment_type=AdjustmentType.decrease,
        quantity=quantity,
        reason="Water leak",
        reason_category=ReasonCategory.damage,
        requested_by="clerk-1",
    ).request_id


def test_adjustment_approval_books_against_fresh_stock(db_session, session_factory, stock_item):
    stock_item("A", "fill", "Filler", on_hand=40)
    request_id = _pending_decrease(db_session, 15)

    with _usage_lands_mid_flush(db_session, session_factory, branch_id="A", item_id="fill", quantity=5):
        entry = adjustments.approve_adjustment_request(db_session, request_id, reviewed_by="mgr-1")

    assert (entry.stock_before, entry.stock_after) == (35, 20)
    assert items.get_item(db_session, "A", "fill").on_hand == 20
    assert adjustments.get_adjustment_request(db_session, request_id).status is AdjustmentStatus.approved


def test_adjustment_approval_refused_when_racing_usage_drains_stock(db_session, session_factory, stock_item):
    stock_item("A", "fill", "Filler", on_hand=40)
    request_id = _pending_decrease(db_session, 15)

    with _usage_lands_mid_flush(db_session, session_factory, branch_id="A", item_id="fill", quantity=30):
        with pytest.raises(InsufficientStockError):
            adjustments.approve_adjustment_request(db_session, request_id, reviewed_by="mgr-1")

    assert items.get_item(db_session, "A", "fill").on_hand == 10
    request = adjustments.get_adjustment_request(db_session, request_id)
    assert request.status is AdjustmentStatus.pending
    assert request.transaction_id is None
