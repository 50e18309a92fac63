from datetime import timedelta

import pytest
from bson import ObjectId

from database import create_document, utcnow
from orders import snapshot_image


@pytest.fixture
def boots(make_product):
    return make_product(
        name="Chelsea Boots",
        sku="CB-1",
        price=105.0,
        color_images={"Black": [{"url": "/img/black.jpg", "type": "image"}]},
    )


@pytest.fixture
def socks(make_product):
    return make_product(name="Socks", sku="SK-1", price=10.0)


def order_payload(address, *lines, method="cod"):
    return {"items": list(lines), "shipping_address": address, "payment": {"method": method}}


def place(client, user, address, *lines, method="cod"):
    return client.post("/api/orders", json=order_payload(address, *lines, method=method), headers=user["headers"])


def test_create_order_snapshots_and_totals(client, customer, address, boots, socks):
    res = place(
        client, customer, address,
        {"product": boots, "quantity": 2, "size": "42", "color": "Black"},
        {"product": socks, "quantity": 1},
    )
    assert res.status_code == 201
    order = res.json()["data"]["order"]

    assert order["order_number"].startswith("ORD")
    assert len(order["order_number"]) == 12
    assert order["user_id"] == customer["id"]
    assert order["subtotal"] == 220.0
    assert order["tax"] == 10.48
    assert order["shipping"] == 0
    assert order["total"] == 220.0
    assert order["status"] == "pending"
    assert order["payment"]["status"] == "pending"
    assert order["billing_address"] == order["shipping_address"]
    assert [h["note"] for h in order["status_history"]] == ["Order created"]

    first = order["items"][0]
    assert first["name"] == "Chelsea Boots"
    assert first["sku"] == "CB-1"
    assert first["image"] == "/img/black.jpg"
    assert first["subtotal"] == 210.0
    assert first["size"] == "42"


def test_snapshot_survives_product_changes(client, customer, address, boots, db, admin):
    order = place(client, customer, address, {"product": boots, "quantity": 1}).json()["data"]["order"]
    client.put(f"/api/products/{boots}", json={"name": "Renamed", "price": 1}, headers=admin["headers"])

    stored = db["order"].find_one({"_id": ObjectId(order["id"])})
    assert stored["items"][0]["name"] == "Chelsea Boots"
    assert stored["items"][0]["price"] == 105.0


def test_payu_orders_must_go_through_initiate(client, customer, address, socks):
    res = place(client, customer, address, {"product": socks, "quantity": 1}, method="payu")
    assert res.status_code == 400
    assert "payu/initiate" in res.json()["message"]


def test_missing_or_inactive_products_rejected(client, customer, address, make_product):
    hidden = make_product(name="Hidden", is_active=False)

    res = place(client, customer, address, {"product": hidden, "quantity": 1})
    assert res.status_code == 400
    assert res.json()["message"] == "Product is inactive: Hidden"

    ghost = str(ObjectId())
    res = place(client, customer, address, {"product": ghost, "quantity": 1})
    assert res.status_code == 400
    assert res.json()["message"] == f"Product not found: {ghost}"


def test_order_requires_items_and_auth(client, customer, address):
    assert client.post("/api/orders", json=order_payload(address)).status_code == 401
    res = client.post("/api/orders", json=order_payload(address), headers=customer["headers"])
    assert res.status_code == 400


def test_order_visibility(client, make_user, address, socks):
    owner = make_user("customer")
    other = make_user("customer")
    admin = make_user("admin")
    order = place(client, owner, address, {"product": socks, "quantity": 1}).json()["data"]["order"]

    assert client.get(f"/api/orders/{order['id']}", headers=owner["headers"]).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=admin["headers"]).status_code == 200
    res = client.get(f"/api/orders/{order['id']}", headers=other["headers"])
    assert res.status_code == 403

    mine = client.get("/api/orders/my", headers=owner["headers"]).json()["data"]["orders"]
    assert [o["id"] for o in mine] == [order["id"]]
    assert client.get("/api/orders/my", headers=other["headers"]).json()["data"]["orders"] == []


def test_lookup_by_number(client, customer, address, socks):
    order = place(client, customer, address, {"product": socks, "quantity": 1}).json()["data"]["order"]
    res = client.get(f"/api/orders/number/{order['order_number']}")
    assert res.status_code == 200
    assert res.json()["data"]["order"]["id"] == order["id"]
    assert client.get("/api/orders/number/ORD000").status_code == 404


def stored_order(address, **fields):
    doc = {
        "order_number": f"ORD{ObjectId()}",
        "user_id": str(ObjectId()),
        "items": [{"product_id": str(ObjectId()), "name": "Scarf", "price": 10, "quantity": 1, "subtotal": 10}],
        "subtotal": 10,
        "tax": 0.48,
        "shipping": 0,
        "total": 10,
        "status": "pending",
        "payment": {"method": "cod", "status": "pending"},
        "shipping_address": address,
        "status_history": [],
    }
    doc.update(fields)
    return create_document("order", doc)


def test_admin_order_listing_filters(client, admin, customer, address):
    now = utcnow()
    stored_order(address, total=50, status="pending", created_at=now - timedelta(days=10))
    stored_order(address, total=300, status="shipped", created_at=now - timedelta(days=1))
    stored_order({**address, "email": "bob@example.com", "first_name": "Bob"}, total=120, status="shipped",
                 created_at=now)

    assert client.get("/api/orders", headers=customer["headers"]).status_code == 403

    def totals(**params):
        res = client.get("/api/orders", params=params, headers=admin["headers"])
        assert res.status_code == 200
        return [o["total"] for o in res.json()["data"]["orders"]]

    assert totals() == [120, 300, 50]
    assert totals(status="shipped") == [120, 300]
    assert totals(status="all", sort="total_asc") == [50, 120, 300]
    assert totals(search="bob@") == [120]
    assert totals(min_total=100, max_total=200) == [120]
    day = (now - timedelta(days=10)).strftime("%Y-%m-%d")
    assert totals(date_from=day, date_to=day) == [50]


def test_admin_list_pagination(client, admin, address):
    for _ in range(3):
        stored_order(address)
    res = client.get("/api/orders", params={"limit": 2, "page": 2}, headers=admin["headers"])
    data = res.json()["data"]
    assert len(data["orders"]) == 1
    assert data["pagination"]["pages"] == 2


def test_status_transitions(client, admin, customer, address, socks):
    order = place(client, customer, address, {"product": socks, "quantity": 1}).json()["data"]["order"]
    url = f"/api/orders/{order['id']}/status"

    assert client.put(url, json={"status": "shipped"}, headers=customer["headers"]).status_code == 403

    res = client.put(url, json={"status": "shipped", "carrier": "DHL", "tracking_number": "T1"},
                     headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["message"] == "Order status updated"
    shipped = res.json()["data"]["order"]
    assert shipped["tracking"]["carrier"] == "DHL"
    assert shipped["tracking"]["shipped_at"] is not None
    assert shipped["status_history"][-1]["note"] == "Status changed to shipped"
    assert shipped["status_history"][-1]["updated_by"] == admin["id"]

    delivered = client.put(url, json={"status": "delivered", "note": "Left at door"},
                           headers=admin["headers"]).json()["data"]["order"]
    assert delivered["payment"]["status"] == "paid"
    assert delivered["payment"]["paid_at"] is not None
    assert delivered["tracking"]["delivered_at"] is not None
    assert delivered["tracking"]["shipped_at"] == shipped["tracking"]["shipped_at"]
    assert delivered["status_history"][-1]["note"] == "Left at door"

    refunded = client.put(url, json={"status": "refunded", "admin_notes": "Returned"},
                          headers=admin["headers"]).json()["data"]["order"]
    assert refunded["payment"]["status"] == "refunded"
    assert refunded["admin_notes"] == "Returned"
    assert len(refunded["status_history"]) == 4

    assert client.put(url, json={"status": "lost"}, headers=admin["headers"]).status_code == 400


def test_snapshot_image_fallbacks():
    product = {
        "images": [{"url": "/main.jpg"}],
        "color_images": {"Red": [{"url": "/red.mp4", "type": "video"}, {"url": "/red.jpg", "type": "image"}]},
    }
    assert snapshot_image(product, "Red") == "/red.jpg"
    assert snapshot_image(product, "Blue") == "/red.jpg"
    assert snapshot_image({"images": [{"url": "/main.jpg"}]}, "Red") == "/main.jpg"
    assert snapshot_image({}, "") == ""
