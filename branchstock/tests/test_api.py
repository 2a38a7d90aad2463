from datetime import datetime, timedelta, timezone


def _create_item(client, branch_id, item_id, name, **fields):
    r = client.post("/v1/items", json={"branch_id": branch_id, "item_id": item_id, "name": name, **fields})
    assert r.status_code == 201, r.text
    return r.json()


def _receive(client, branch_id, item_id, quantity, **fields):
    r = client.post(
        "/v1/transactions/receipts",
        json={"item_id": item_id, "branch_id": branch_id, "quantity": quantity, "recorded_by": "clerk", **fields},
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_item_and_ledger_endpoints(client):
    _create_item(client, "A", "det", "Detergent", cost_per_unit=2.5, reorder_level=80)
    receipt = _receive(client, "A", "det", 100, unit_cost=2.5, purchase_order_id="PO-1")
    assert receipt["stock_after"] == 100
    assert receipt["reference_type"] == "purchase_order"

    r = client.post(
        "/v1/transactions",
        json={"item_id": "det", "branch_id": "A", "transaction_type": "usage", "quantity": -30, "recorded_by": "clerk"},
    )
    assert r.status_code == 201, r.text
    assert (r.json()["stock_before"], r.json()["stock_after"]) == (100, 70)

    r = client.post(
        "/v1/transactions/usage",
        json={"item_id": "det", "branch_id": "A", "quantity": 80, "recorded_by": "clerk"},
    )
    assert r.status_code == 409
    assert r.json()["code"] == "INSUFFICIENT_STOCK"
    assert "Available: 70" in r.json()["detail"]

    item = client.get("/v1/items/A/det").json()
    assert item["on_hand"] == 70

    history = client.get("/v1/items/A/det/transactions").json()
    assert [h["transaction_type"] for h in history] == ["usage", "receipt"]

    low = client.get("/v1/reports/low-stock", params={"branch_id": "A"}).json()
    assert low[0]["item_id"] == "det"
    assert low[0]["deficit"] == 10

    valuation = client.get("/v1/reports/valuation", params={"branch_id": "A"}).json()
    assert valuation["total_value"] == 175.0


def test_idempotency_key_header(client):
    _create_item(client, "A", "det", "Detergent")
    body = {"item_id": "det", "branch_id": "A", "quantity": 5, "recorded_by": "clerk"}

    first = client.post("/v1/transactions/receipts", json=body, headers={"Idempotency-Key": "k-1"})
    second = client.post("/v1/transactions/receipts", json=body, headers={"Idempotency-Key": "k-1"})

    assert first.json()["transaction_id"] == second.json()["transaction_id"]
    assert client.get("/v1/items/A/det").json()["on_hand"] == 5


def test_error_codes(client):
    r = client.get("/v1/items/A/ghost")
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"

    _create_item(client, "A", "det", "Detergent")
    r = client.post(
        "/v1/transactions",
        json={"item_id": "det", "branch_id": "A", "transaction_type": "receipt", "quantity": -3, "recorded_by": "c"},
    )
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"

    r = client.post("/v1/items", json={"branch_id": "A", "item_id": "det", "name": "Detergent"})
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_STATE"


def test_adjustment_workflow(client):
    _create_item(client, "A", "fill", "Filler")
    _receive(client, "A", "fill", 40)

    r = client.post(
        "/v1/adjustments",
        json={
            "item_id": "fill",
            "branch_id": "A",
            "adjustment_type": "decrease",
            "quantity": 15,
            "reason": "Water damage",
            "reason_category": "damage",
            "requested_by": "clerk",
        },
    )
    assert r.status_code == 201, r.text
    request_id = r.json()["request_id"]
    assert r.json()["current_stock"] == 40

    pending = client.get("/v1/adjustments/pending", params={"branch_id": "A"}).json()
    assert [p["request_id"] for p in pending] == [request_id]

    r = client.post(f"/v1/adjustments/{request_id}/reject", json={"reviewed_by": "mgr", "notes": "  "})
    assert r.status_code == 400

    r = client.post(f"/v1/adjustments/{request_id}/approve", json={"reviewed_by": "mgr"})
    assert r.status_code == 200, r.text
    assert r.json()["transaction_type"] == "adjustment_out"
    assert r.json()["quantity"] == -15

    r = client.post(f"/v1/adjustments/{request_id}/approve", json={"reviewed_by": "mgr"})
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_STATE"

    assert client.get(f"/v1/adjustments/{request_id}").json()["status"] == "approved"
    assert client.get("/v1/items/A/fill").json()["on_hand"] == 25


def test_transfer_workflow(client):
    _create_item(client, "A", "hang", "Hangers")
    _create_item(client, "B", "hang", "Hangers")
    _receive(client, "A", "hang", 50)
    _receive(client, "B", "hang", 10)

    r = client.post(
        "/v1/transfers",
        json={
            "from_branch_id": "A",
            "to_branch_id": "B",
            "items": [{"inventory_item_id": "hang", "quantity": 20}],
            "user_id": "clerk-a",
        },
    )
    assert r.status_code == 201, r.text
    transfer_id = r.json()["transfer_id"]
    assert r.json()["status"] == "draft"

    for action in ("submit", "approve", "dispatch"):
        r = client.post(f"/v1/transfers/{transfer_id}/{action}", json={"user_id": "mgr"})
        assert r.status_code == 200, r.text

    r = client.post(f"/v1/transfers/{transfer_id}/cancel", json={"user_id": "mgr"})
    assert r.status_code == 409

    r = client.post(
        f"/v1/transfers/{transfer_id}/receive",
        json={"user_id": "clerk-b", "received": [{"inventory_item_id": "hang", "quantity": 18}]},
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "received"
    assert body["discrepancies"] == [
        {"item_id": "hang", "expected": 20, "actual": 18, "notes": "Discrepancy: Expected 20, Received 18"}
    ]
    assert [e["status"] for e in body["audit_trail"]] == ["draft", "requested", "approved", "in_transit", "received"]

    source = client.get("/v1/items/A/hang").json()
    assert (source["on_hand"], source["pending_transfer_out"]) == (30, 0)
    assert client.get("/v1/items/B/hang").json()["on_hand"] == 28

    listed = client.get("/v1/transfers", params={"branch_id": "B", "direction": "to"}).json()
    assert [t["transfer_id"] for t in listed] == [transfer_id]

    assert client.get("/v1/reports/pending-transfer-audit").json() == []


def test_transfer_approval_refused_for_missing_stock(client):
    _create_item(client, "A", "hang", "Hangers")
    _receive(client, "A", "hang", 5)

    r = client.post(
        "/v1/transfers",
        json={
            "from_branch_id": "A",
            "to_branch_id": "B",
            "items": [{"inventory_item_id": "hang", "quantity": 20}],
            "user_id": "clerk-a",
            "submit": True,
        },
    )
    transfer_id = r.json()["transfer_id"]
    assert r.json()["status"] == "requested"

    r = client.post(f"/v1/transfers/{transfer_id}/approve", json={"user_id": "mgr"})
    assert r.status_code == 409
    assert r.json()["code"] == "INSUFFICIENT_STOCK"
    assert client.get(f"/v1/transfers/{transfer_id}").json()["status"] == "requested"


def test_summary_report(client):
    start = datetime.now(timezone.utc) - timedelta(hours=1)
    _create_item(client, "A", "det", "Detergent")
    _receive(client, "A", "det", 12, unit_cost=1.5)
    end = datetime.now(timezone.utc) + timedelta(hours=1)

    r = client.get(
        "/v1/reports/summary",
        params={"branch_id": "A", "start": start.isoformat(), "end": end.isoformat()},
    )
    assert r.status_code == 200, r.text
    assert r.json()["receipts"] == {"count": 1, "total_quantity": 12, "total_value": 18.0}


def test_receipt_with_repeated_line_is_refused(client):
    _create_item(client, "A", "hang", "Hangers")
    _receive(client, "A", "hang", 50)
    r = client.post(
        "/v1/transfers",
        json={
            "from_branch_id": "A",
            "to_branch_id": "B",
            "items": [{"inventory_item_id": "hang", "quantity": 20}],
            "user_id": "clerk-a",
            "submit": True,
        },
    )
    transfer_id = r.json()["transfer_id"]
    for action in ("approve", "dispatch"):
        assert client.post(f"/v1/transfers/{transfer_id}/{action}", json={"user_id": "mgr"}).status_code == 200

    r = client.post(
        f"/v1/transfers/{transfer_id}/receive",
        json={
            "user_id": "clerk-b",
            "received": [
                {"inventory_item_id": "hang", "quantity": 5},
                {"inventory_item_id": "hang", "quantity": 20},
            ],
        },
    )
    assert r.status_code == 400
    assert r.json()["code"] == "VALIDATION_ERROR"
    assert client.get(f"/v1/transfers/{transfer_id}").json()["status"] == "in_transit"
    source = client.get("/v1/items/A/hang").json()
    assert (source["on_hand"], source["pending_transfer_out"]) == (30, 20)
