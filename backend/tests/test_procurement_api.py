from datetime import timedelta

import pytest

from backend.app.db.base import utcnow


@pytest.fixture
def headers(manager, auth_headers):
    return auth_headers(manager)


def _future(days=7) -> str:
    return (utcnow() + timedelta(days=days)).isoformat()


def test_health_is_public(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert "timestamp" in body["data"]


def test_unknown_route(client):
    resp = client.get("/api/nowhere")

    assert resp.status_code == 404
    assert resp.json() == {"status": "error", "message": "Route /api/nowhere not found"}


def test_malformed_id_is_400(client, headers):
    resp = client.get("/api/purchase-orders/not-an-id", headers=headers)

    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid ID format"


def test_inventory_crud(client, headers, supplier, admin, auth_headers):
    resp = client.post(
        "/api/inventory",
        json={
            "itemName": "Copper wire",
            "sku": "cu-wire-2mm",
            "quantity": 12,
            "unitPrice": 3.25,
            "category": "Raw Material",
            "reorderLevel": 12,
            "supplier": supplier.id,
        },
        headers=headers,
    )
    assert resp.status_code == 201
    item = resp.json()["data"]["item"]
    assert item["sku"] == "CU-WIRE-2MM"
    assert item["isLowStock"] is True
    assert item["supplier"]["supplierName"] == "Acme Supplies"

    dup = client.post(
        "/api/inventory",
        json={"itemName": "Other", "sku": "CU-WIRE-2MM", "quantity": 0, "unitPrice": 1},
        headers=headers,
    )
    assert dup.status_code == 409

    resp = client.put(
        f"/api/inventory/{item['id']}",
        json={"itemName": "Copper wire", "sku": "CU-WIRE-2MM", "quantity": 40, "unitPrice": 3.5},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["item"]["quantity"] == 40
    assert resp.json()["data"]["item"]["isLowStock"] is False

    assert client.delete(f"/api/inventory/{item['id']}", headers=headers).status_code == 403
    assert client.delete(f"/api/inventory/{item['id']}", headers=auth_headers(admin)).status_code == 200
    listed = client.get("/api/inventory", headers=headers).json()["data"]
    assert listed["items"] == []


def test_low_stock_alerts(client, headers, make_item):
    make_item("LOW-1", quantity=2, reorder_level=5)
    make_item("FINE-1", quantity=20, reorder_level=5)

    data = client.get("/api/inventory/alerts/low-stock", headers=headers).json()["data"]

    assert data["count"] == 1
    assert data["items"][0]["sku"] == "LOW-1"


def test_supplier_crud(client, headers):
    payload = {
        "supplierName": "Globex",
        "contactPerson": "Hank Scorpio",
        "email": "hank@globex.example",
        "phone": "555-0100",
        "address": {"city": "Cypress Creek", "postalCode": "90210"},
        "taxId": "",
        "paymentTerms": "Net 45",
        "rating": 5,
    }
    resp = client.post("/api/suppliers", json=payload, headers=headers)
    assert resp.status_code == 201
    supplier = resp.json()["data"]["supplier"]
    assert supplier["taxId"] is None
    assert supplier["address"]["postalCode"] == "90210"

    # Deux fournisseurs sans numéro fiscal cohabitent
    second = client.post("/api/suppliers", json={**payload, "supplierName": "Initech"}, headers=headers)
    assert second.status_code == 201

    found = client.get("/api/suppliers", params={"search": "glob"}, headers=headers).json()["data"]
    assert [s["supplierName"] for s in found["suppliers"]] == ["Globex"]

    bad = client.post("/api/suppliers", json={**payload, "rating": 9}, headers=headers)
    assert bad.status_code == 400


def test_purchase_order_lifecycle(client, headers, supplier, make_item):
    bolt = make_item("BOLT-1", quantity=7, unit_price="10.00")
    nut = make_item("NUT-1", quantity=1, unit_price="20.00")

    resp = client.post(
        "/api/purchase-orders",
        json={
            "supplier": supplier.id,
            "items": [
                {"inventory": bolt.id, "quantity": 5},
                {"inventory": nut.id, "quantity": 3, "unitPrice": 7.5, "totalPrice": 1},
            ],
            "expectedDeliveryDate": _future(),
            "notes": "urgent",
        },
        headers=headers,
    )
    assert resp.status_code == 201
    po = resp.json()["data"]["purchaseOrder"]
    assert po["status"] == "Draft"
    assert po["poNumber"].startswith("PO-")
    assert [l["totalPrice"] for l in po["items"]] == [50.0, 22.5]
    assert po["totalAmount"] == 72.5

    fetched = client.get(f"/api/purchase-orders/{po['id']}", headers=headers).json()["data"]["purchaseOrder"]
    assert fetched["items"][1]["unitPrice"] == 7.5
    assert fetched["items"][1]["sku"] == "NUT-1"

    resp = client.patch(f"/api/purchase-orders/{po['id']}/status", json={"status": "Approved"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Purchase order status updated successfully"

    resp = client.patch(f"/api/purchase-orders/{po['id']}/status", json={"status": "Received"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Purchase order marked as received and inventory updated successfully"
    received = resp.json()["data"]["purchaseOrder"]
    assert received["actualDeliveryDate"] is not None
    assert received["receivedBy"]["id"] == received["approvedBy"]["id"]

    stock = client.get(f"/api/inventory/{bolt.id}", headers=headers).json()["data"]["item"]
    assert stock["quantity"] == 12

    again = client.patch(f"/api/purchase-orders/{po['id']}/status", json={"status": "Received"}, headers=headers)
    assert again.status_code == 400
    assert again.json()["message"] == "Cannot change status from Received"

    edit = client.put(f"/api/purchase-orders/{po['id']}", json={"notes": "late"}, headers=headers)
    assert edit.status_code == 400


def test_purchase_order_requires_items(client, headers, supplier):
    resp = client.post(
        "/api/purchase-orders",
        json={"supplier": supplier.id, "items": [], "expectedDeliveryDate": _future()},
        headers=headers,
    )
    assert resp.status_code == 400


def test_invalid_status_value(client, headers, supplier, make_item):
    item = make_item()
    po = client.post(
        "/api/purchase-orders",
        json={"supplier": supplier.id, "items": [{"inventory": item.id, "quantity": 1}], "expectedDeliveryDate": _future()},
        headers=headers,
    ).json()["data"]["purchaseOrder"]

    resp = client.patch(f"/api/purchase-orders/{po['id']}/status", json={"status": "Shipped"}, headers=headers)

    assert resp.status_code == 400
    assert resp.json()["message"].startswith("Invalid status. Must be one of:")


def test_purchase_order_listing(client, headers, supplier, make_item, make_supplier):
    item = make_item()
    other = make_supplier()
    for sup in (supplier, supplier, other):
        client.post(
            "/api/purchase-orders",
            json={"supplier": sup.id, "items": [{"inventory": item.id, "quantity": 2}], "expectedDeliveryDate": _future()},
            headers=headers,
        )

    data = client.get(
        "/api/purchase-orders", params={"supplier": supplier.id, "limit": 1}, headers=headers
    ).json()["data"]
    assert len(data["purchaseOrders"]) == 1
    assert data["pagination"] == {"total": 2, "page": 1, "pages": 2}

    bad = client.get("/api/purchase-orders", params={"limit": 500}, headers=headers)
    assert bad.status_code == 400
