from sqlalchemy.exc import OperationalError

from stockflow.services.procurement import OrderWorkflow

HEADERS = {"X-Actor-Id": "api-user"}


def _produce(client, network, qty=10, label=None):
    r = client.post(
        "/v1/production/batches",
        json={"location_id": network["fab"], "label": label, "lines": [{"item_id": network["item_a"], "quantity": qty}]},
        headers=HEADERS,
    )
    assert r.status_code == 201, r.text
    return r.json()


def _po(client, network, qty=10):
    r = client.post(
        "/v1/purchase-orders",
        json={
            "source_location_id": network["fab"],
            "destination_location_id": network["hub"],
            "lines": [{"item_id": network["item_a"], "requested_quantity": qty}],
        },
        headers=HEADERS,
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "database": "sqlite"}


def test_missing_actor_header_is_400(client, network):
    r = client.post(
        "/v1/purchase-orders",
        json={
            "source_location_id": network["fab"],
            "destination_location_id": network["hub"],
            "lines": [{"item_id": network["item_a"], "requested_quantity": 1}],
        },
    )
    assert r.status_code == 400


def test_full_flow_over_http(client, network):
    batch = _produce(client, network, qty=10)
    po = _po(client, network)
    assert po["po_number"] == f"PO{po['id']:05d}"
    assert po["status"] == "CREATED"

    r = client.get(
        "/v1/transfer-orders/available-batches",
        params={"location_id": network["fab"], "item_id": network["item_a"]},
    )
    assert r.status_code == 200
    assert [(b["batch_id"], b["quantity"]) for b in r.json()] == [(batch["id"], 10)]

    r = client.post(
        "/v1/transfer-orders",
        json={"purchase_order_id": po["id"], "employee_id": network["employee"], "lines": [{"item_id": network["item_a"], "quantity": 7}]},
        headers=HEADERS,
    )
    assert r.status_code == 201, r.text
    to = r.json()
    assert to["lines"] == [{"item_id": network["item_a"], "batch_id": batch["id"], "shipped_quantity": 7}]

    r = client.get("/v1/transfer-orders/incoming", params={"location_id": network["hub"]})
    assert [t["id"] for t in r.json()] == [to["id"]]

    r = client.post(
        "/v1/receive-orders",
        json={
            "transfer_order_id": to["id"],
            "lines": [{"item_id": network["item_a"], "batch_id": batch["id"], "received_quantity": 5}],
        },
        headers=HEADERS,
    )
    assert r.status_code == 201, r.text
    ro = r.json()
    assert ro["total_discrepancy"] == 2

    r = client.get("/v1/stock", params={"location_id": network["hub"]})
    assert [(s["item_id"], s["total_quantity"]) for s in r.json()] == [(network["item_a"], 5)]

    r = client.get(f"/v1/purchase-orders/{po['id']}")
    assert r.json()["status"] == "FULFILLED"

    r = client.get("/v1/stock/history", params={"reason": ["TRANSFER_OUT", "RECEIVE_IN"]})
    body = r.json()
    assert body["total"] == 2
    assert body["total_pages"] == 1
    assert {h["actor_id"] for h in body["items"]} == {"api-user"}


def test_insufficient_stock_maps_to_409_with_line(client, network):
    _produce(client, network, qty=3)
    po = _po(client, network)

    r = client.post(
        "/v1/transfer-orders",
        json={"purchase_order_id": po["id"], "employee_id": network["employee"], "lines": [{"item_id": network["item_a"], "quantity": 5}]},
        headers=HEADERS,
    )

    assert r.status_code == 409
    error = r.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["line"] == 0
    assert error["details"]["available"] == 3
    assert error["details"]["requested"] == 5


def test_not_found_maps_to_404(client):
    r = client.get("/v1/purchase-orders/424242")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


def test_deactivate_conflict_maps_to_409(client, network):
    po = _po(client, network)

    r = client.post(f"/v1/purchase-orders/{po['id']}/deactivate", headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    r = client.post(f"/v1/purchase-orders/{po['id']}/deactivate", headers=HEADERS)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "conflict"


def test_validation_error_maps_to_400(client, network):
    r = client.post(
        "/v1/purchase-orders",
        json={
            "source_location_id": network["hub"],
            "destination_location_id": network["hub"],
            "lines": [{"item_id": network["item_a"], "requested_quantity": 1}],
        },
        headers=HEADERS,
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"


def test_request_body_validation_keeps_422(client, network):
    r = client.post(
        "/v1/purchase-orders",
        json={"source_location_id": network["fab"], "destination_location_id": network["hub"], "lines": []},
        headers=HEADERS,
    )
    assert r.status_code == 422


def test_legacy_batch_endpoint_is_idempotent(client, network):
    first = client.post("/v1/production/legacy-batch", json={"location_id": network["fab"]}, headers=HEADERS)
    second = client.post("/v1/production/legacy-batch", json={"location_id": network["fab"]}, headers=HEADERS)

    assert first.status_code == 200
    assert first.json()["id"] == second.json()["id"]
    assert first.json()["label"] == "LEGACY"


def test_put_stock_adjusts_quantity(client, network):
    batch = _produce(client, network, qty=10)

    r = client.put(
        "/v1/stock",
        json={
            "location_id": network["fab"],
            "item_id": network["item_a"],
            "batch_id": batch["id"],
            "new_quantity": 12,
            "note": "recomptage",
        },
        headers=HEADERS,
    )

    assert r.status_code == 200
    assert r.json()["quantity"] == 12


def test_history_bad_range_is_400(client):
    r = client.get(
        "/v1/stock/history",
        params={"created_from": "2026-02-01T00:00:00", "created_to": "2026-01-01T00:00:00"},
    )
    assert r.status_code == 400


def test_reports_endpoints(client, network):
    _produce(client, network, qty=4, label="LOT-1")

    r = client.get("/v1/reports/stock-levels")
    assert [(x["batch_label"], x["quantity"]) for x in r.json()] == [("LOT-1", 4)]

    r = client.get("/v1/reports/production-summary")
    assert r.json()[0]["item_id"] == network["item_a"]

    r = client.get("/v1/reports/transfer-history")
    assert r.json() == []


def test_storage_unavailable_maps_to_503_after_retries(client, network, monkeypatch):
    calls = []

    def locked(self, db, payload, actor_id):
        calls.append(payload)
        raise OperationalError("INSERT INTO purchase_orders", {}, Exception("database is locked"))

    monkeypatch.setattr(OrderWorkflow, "_create_purchase_order", locked)

    r = client.post(
        "/v1/purchase-orders",
        json={
            "source_location_id": network["fab"],
            "destination_location_id": network["hub"],
            "lines": [{"item_id": network["item_a"], "requested_quantity": 1}],
        },
        headers=HEADERS,
    )

    assert r.status_code == 503
    error = r.json()["error"]
    assert error["code"] == "storage_unavailable"
    assert error["details"]["attempts"] == 3
    assert len(calls) == 3
