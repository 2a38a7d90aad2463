import pytest

from branchstock.app.db.models.core_types import (
    AdjustmentStatus,
    AdjustmentType,
    ReasonCategory,
    ReferenceType,
    TransactionType,
)
from branchstock.services import adjustments, items, ledger
from branchstock.services.errors import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)


def _request(db, item_id="fill", branch_id="A", adjustment_type=AdjustmentType.decrease, quantity=15,
             category=ReasonCategory.damage, reason="Water leak in storeroom"):
    return adjustments.create_adjustment_request(
        db,
        item_id=item_id,
        branch_id=branch_id,
        adjustment_type=adjustment_type,
        quantity=quantity,
        reason=reason,
        reason_category=category,
        requested_by="clerk-1",
        requested_by_name="Clerk One",
    )


def _adjustment_entries(db, item_id="fill", branch_id="A"):
    entries = ledger.get_item_transactions(db, item_id, branch_id=branch_id, limit=1000)
    return [
        e for e in entries
        if e.transaction_type in (TransactionType.adjustment_in, TransactionType.adjustment_out)
    ]


def test_create_snapshots_stock_and_changes_nothing(db_session, stock_item):
    stock_item("A", "fill", "Filler", on_hand=40)

    req = _request(db_session)

    assert req.status is AdjustmentStatus.pending
    assert req.current_stock == 40
    assert req.item_name == "Filler"
    assert items.get_item(db_session, "A", "fill").on_hand == 40
    assert _adjustment_entries(db_session) == []


def test_approve_decrease_books_exactly_one_entry(db_session, stock_item):
    """
    GIVEN Filler at branch A with 40 on hand and a pending damage decrease of 15
    WHEN a manager approves it
    THEN one adjustment_out of -15 is booked, on_hand == 25, request approved
    """
    stock_item("A", "fill", "Filler", on_hand=40)
    req = _request(db_session)

    entry = adjustments.approve_adjustment_request(
        db_session, req.request_id, reviewed_by="mgr-1", reviewed_by_name="Manager", notes="ok"
    )

    assert entry.transaction_type is TransactionType.adjustment_out
    assert entry.quantity == -15
    assert entry.stock_before == 40
    assert entry.stock_after == 25
    assert entry.reference_type is ReferenceType.adjustment_request
    assert entry.reference_id == req.request_id
    assert entry.approved_by == "mgr-1"
    assert entry.approved_at is not None
    assert entry.reason == "damage: Water leak in storeroom"

    assert items.get_item(db_session, "A", "fill").on_hand == 25

    req = adjustments.get_adjustment_request(db_session, req.request_id)
    assert req.status is AdjustmentStatus.approved
    assert req.reviewed_by == "mgr-1"
    assert req.reviewed_at is not None
    assert req.transaction_id == entry.transaction_id

    assert len(_adjustment_entries(db_session)) == 1


def test_approve_increase_books_adjustment_in(db_session, stock_item):
    stock_item("A", "fill", "Filler", on_hand=4)
    req = _request(
        db_session,
        adjustment_type=AdjustmentType.increase,
        quantity=6,
        category=ReasonCategory.count_correction,
        reason="Recount found a missed box",
    )

    entry = adjustments.approve_adjustment_request(db_session, req.request_id, reviewed_by="mgr-1")

    assert entry.transaction_type is TransactionType.adjustment_in
    assert entry.quantity == 6
    assert items.get_item(db_session, "A", "fill").on_hand == 10


def test_second_approval_is_refused(db_session, stock_item):
    stock_item("A", "fill", "Filler", on_hand=40)
    req = _request(db_session)
    adjustments.approve_adjustment_request(db_session, req.request_id, reviewed_by="mgr-1")

    with pytest.raises(InvalidStateError):
        adjustments.approve_adjustment_request(db_session, req.request_id, reviewed_by="mgr-2")

    assert items.get_item(db_session, "A", "fill").on_hand == 25
    assert len(_adjustment_entries(db_session)) == 1


def test_reject_records_review_and_keeps_stock(db_session, stock_item):
    stock_item("A", "fill", "Filler", on_hand=40)
    req = _request(db_session)

    rejected = adjustments.reject_adjustment_request(
        db_session, req.request_id, reviewed_by="mgr-1", notes="No photo of the damage"
    )

    assert rejected.status is AdjustmentStatus.rejected
    assert rejected.review_notes == "No photo of the damage"
    assert rejected.transaction_id is None
    assert items.get_item(db_session, "A", "fill").on_hand == 40
    assert _adjustment_entries(db_session) == []

    with pytest.raises(InvalidStateError):
        adjustments.approve_adjustment_request(db_session, req.request_id, reviewed_by="mgr-1")
    with pytest.raises(InvalidStateError):
        adjustments.reject_adjustment_request(db_session, req.request_id, reviewed_by="mgr-1", notes="again")


@pytest.mark.parametrize("notes", [None, "", "   "])
def test_reject_requires_a_reason(db_session, stock_item, notes):
    stock_item("A", "fill", "Filler", on_hand=40)
    req = _request(db_session)

    with pytest.raises(ValidationError):
        adjustments.reject_adjustment_request(db_session, req.request_id, reviewed_by="mgr-1", notes=notes)

    assert adjustments.get_adjustment_request(db_session, req.request_id).status is AdjustmentStatus.pending


def test_approval_that_no_longer_fits_leaves_request_pending(db_session, stock_item):
    """
    The stock fell between request and review: approval fails and the
    request can still be reviewed.
    """
    stock_item("A", "fill", "Filler", on_hand=40)
    req = _request(db_session, quantity=30)
    ledger.record_stock_usage(db_session, item_id="fill", branch_id="A", quantity=20, recorded_by="clerk-2")

    with pytest.raises(InsufficientStockError):
        adjustments.approve_adjustment_request(db_session, req.request_id, reviewed_by="mgr-1")

    req = adjustments.get_adjustment_request(db_session, req.request_id)
    assert req.status is AdjustmentStatus.pending
    assert req.transaction_id is None
    assert items.get_item(db_session, "A", "fill").on_hand == 20
    assert _adjustment_entries(db_session) == []


def test_pending_list_is_oldest_first_and_filtered(db_session, stock_item):
    stock_item("A", "fill", "Filler", on_hand=40)
    stock_item("B", "fill", "Filler", on_hand=40)
    first = _request(db_session)
    second = _request(db_session, quantity=1)
    other_branch = _request(db_session, branch_id="B")
    done = _request(db_session, quantity=2)
    adjustments.approve_adjustment_request(db_session, done.request_id, reviewed_by="mgr-1")

    pending_a = adjustments.get_pending_adjustments(db_session, "A")
    pending_all = adjustments.get_pending_adjustments(db_session)

    assert [r.request_id for r in pending_a] == [first.request_id, second.request_id]
    assert {r.request_id for r in pending_all} == {first.request_id, second.request_id, other_branch.request_id}


def test_create_validation(db_session, stock_item):
    stock_item("A", "fill", "Filler", on_hand=40)

    with pytest.raises(ValidationError):
        _request(db_session, quantity=0)
    with pytest.raises(ValidationError):
        _request(db_session, reason="  ")
    with pytest.raises(NotFoundError):
        _request(db_session, item_id="ghost")


def test_unknown_request_is_not_found(db_session):
    with pytest.raises(NotFoundError):
        adjustments.approve_adjustment_request(db_session, "ADJ-NOPE", reviewed_by="mgr-1")


@pytest.mark.parametrize(
    "adjustment_type, category",
    [("sideways", ReasonCategory.damage), (AdjustmentType.decrease, "acts-of-gnomes")],
)
def test_unknown_adjustment_enums_are_validation_errors(db_session, stock_item, adjustment_type, category):
    stock_item("A", "fill", "Filler", on_hand=40)

    with pytest.raises(ValidationError):
        _request(db_session, adjustment_type=adjustment_type, category=category)
    assert adjustments.get_pending_adjustments(db_session) == []
