from bson import ObjectId

from products import compute_total_stock, discount_price


def new_product(**fields):
    payload = {
        "name": "Chelsea Boots",
        "description": "Leather boots",
        "price": 149,
        "category": "FOOTWEAR",
        "subcategory": "Boots",
        "sku": "CB-1",
        "inventory": [
            {"color": "Black", "size": "41", "quantity": 3},
            {"color": "Black", "size": "42", "quantity": 4},
        ],
    }
    payload.update(fields)
    return payload


def test_list_hides_inactive_and_paginates(client, make_product):
    for _ in range(3):
        make_product()
    make_product(is_active=False)

    res = client.get("/api/products", params={"limit": 2})
    assert res.status_code == 200
    data = res.json()["data"]
    assert len(data["products"]) == 2
    assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    res = client.get("/api/products", params={"limit": 2, "page": 2})
    assert len(res.json()["data"]["products"]) == 1


def test_include_inactive_only_for_admin(client, make_product, admin, customer):
    make_product()
    make_product(is_active=False)

    as_customer = client.get("/api/products", params={"include_inactive": True}, headers=customer["headers"])
    as_admin = client.get("/api/products", params={"include_inactive": True}, headers=admin["headers"])
    assert as_customer.json()["data"]["pagination"]["total"] == 1
    assert as_admin.json()["data"]["pagination"]["total"] == 2


def test_documents_without_is_active_count_as_active(client, db, make_product):
    product_id = make_product()
    db["product"].update_one({"_id": ObjectId(product_id)}, {"$unset": {"is_active": ""}})
    res = client.get("/api/products")
    assert res.json()["data"]["pagination"]["total"] == 1


def test_search_escapes_regex_and_filters_price(client, make_product):
    make_product(name="A+ Tee", price=20)
    make_product(name="Another Tee", price=80)
    make_product(name="Boot", brand="Trailforge", price=150)

    res = client.get("/api/products", params={"search": "a+"})
    assert [p["name"] for p in res.json()["data"]["products"]] == ["A+ Tee"]

    res = client.get("/api/products", params={"search": "trailforge"})
    assert [p["name"] for p in res.json()["data"]["products"]] == ["Boot"]

    res = client.get("/api/products", params={"min_price": 50, "max_price": 100})
    assert [p["name"] for p in res.json()["data"]["products"]] == ["Another Tee"]


def test_sort_by_price(client, make_product):
    make_product(name="mid", price=50)
    make_product(name="low", price=10)
    make_product(name="high", price=90)
    res = client.get("/api/products", params={"sort": "price_asc"})
    assert [p["name"] for p in res.json()["data"]["products"]] == ["low", "mid", "high"]

    res = client.get("/api/products", params={"sort": "sideways"})
    assert res.status_code == 400


def test_get_product_counts_views_and_hides_inactive(client, make_product, admin):
    active = make_product(price=100, discount=20)
    inactive = make_product(is_active=False)

    res = client.get(f"/api/products/{active}")
    product = res.json()["data"]["product"]
    assert product["view_count"] == 1
    assert product["discount_price"] == 80.0
    assert client.get(f"/api/products/{active}").json()["data"]["product"]["view_count"] == 2

    assert client.get(f"/api/products/{inactive}").status_code == 404
    assert client.get(f"/api/products/{inactive}", headers=admin["headers"]).status_code == 200


def test_invalid_product_id(client):
    res = client.get("/api/products/not-an-id")
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid id"


def test_featured_and_by_ids(client, make_product):
    a = make_product(is_featured=True)
    b = make_product()
    c = make_product(is_featured=True, is_active=False)

    featured = client.get("/api/products/featured").json()["data"]["products"]
    assert [p["id"] for p in featured] == [a]

    res = client.get("/api/products/by-ids", params={"ids": f"{b},junk,{a},{c}"})
    assert [p["id"] for p in res.json()["data"]["products"]] == [b, a]


def test_create_product_computes_stock_and_registers_category(client, admin):
    res = client.post("/api/products", json=new_product(), headers=admin["headers"])
    assert res.status_code == 201
    product = res.json()["data"]["product"]
    assert product["total_stock"] == 7
    assert product["sku"] == "CB-1"

    categories = client.get("/api/categories").json()["data"]["categories"]
    assert {"FOOTWEAR"} <= {c["name"] for c in categories}
    footwear = next(c for c in categories if c["name"] == "FOOTWEAR")
    assert footwear["subcategories"] == ["Boots"]


def test_create_product_requires_admin(client, customer):
    assert client.post("/api/products", json=new_product()).status_code == 401
    assert client.post("/api/products", json=new_product(), headers=customer["headers"]).status_code == 403


def test_duplicate_sku_conflicts(client, admin):
    assert client.post("/api/products", json=new_product(), headers=admin["headers"]).status_code == 201
    res = client.post("/api/products", json=new_product(name="Other"), headers=admin["headers"])
    assert res.status_code == 409
    assert res.json()["message"] == "SKU already exists"


def test_products_without_sku_do_not_store_null(client, admin, db):
    client.post("/api/products", json=new_product(sku=None), headers=admin["headers"])
    client.post("/api/products", json=new_product(sku=None, name="Second"), headers=admin["headers"])
    assert db["product"].count_documents({}) == 2
    assert db["product"].count_documents({"sku": {"$exists": True}}) == 0


def test_update_product(client, admin, make_product):
    make_product(sku="TAKEN")
    product_id = make_product(sku="MINE")

    res = client.put(f"/api/products/{product_id}", json={"sku": "TAKEN"}, headers=admin["headers"])
    assert res.status_code == 409

    res = client.put(
        f"/api/products/{product_id}",
        json={"price": 75, "inventory": [{"color": "Red", "size": "M", "quantity": 2}]},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    product = res.json()["data"]["product"]
    assert product["price"] == 75
    assert product["total_stock"] == 2


def test_update_ignores_null_for_required_fields(client, admin, customer, address, make_product, db):
    product_id = make_product(name="Loafers", price=90.0, sku="LF-1", brand="Acme")

    res = client.put(
        f"/api/products/{product_id}",
        json={"name": None, "price": None, "category": None, "images": None, "is_active": None,
              "sku": None, "brand": None},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    stored = db["product"].find_one({"_id": ObjectId(product_id)})
    assert stored["name"] == "Loafers"
    assert stored["price"] == 90.0
    assert stored["category"] == "FOOTWEAR"
    assert stored["is_active"] is True
    assert stored["images"]
    assert "sku" not in stored
    assert stored["brand"] is None

    res = client.post(
        "/api/orders",
        json={"items": [{"product": product_id, "quantity": 1}], "shipping_address": address,
              "payment": {"method": "cod"}},
        headers=customer["headers"],
    )
    assert res.status_code == 201
    assert res.json()["data"]["order"]["items"][0]["name"] == "Loafers"


def test_inventory_update_by_warehouse_user(client, make_user, make_product):
    warehouse = make_user("warehouse_user")
    customer = make_user("customer")
    product_id = make_product()
    payload = {"inventory": [{"color": "Red", "size": "M", "quantity": 5}, {"color": "Red", "size": "L", "quantity": 1}]}

    assert client.put(f"/api/products/{product_id}/inventory", json=payload,
                      headers=customer["headers"]).status_code == 403

    res = client.put(f"/api/products/{product_id}/inventory", json=payload, headers=warehouse["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["product"]["total_stock"] == 6

    res = client.put(f"/api/products/{product_id}/inventory", json={"inventory": []}, headers=warehouse["headers"])
    assert res.json()["data"]["product"]["total_stock"] == 0


def test_delete_is_soft(client, admin, make_product, db):
    product_id = make_product()
    res = client.delete(f"/api/products/{product_id}", headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["message"] == "Product deleted successfully"

    stored = db["product"].find_one({"_id": ObjectId(product_id)})
    assert stored["is_active"] is False
    assert client.get(f"/api/products/{product_id}").status_code == 404


def test_compute_total_stock_fallbacks():
    assert compute_total_stock({"inventory": [{"quantity": 2}, {"quantity": 3}]}) == 5
    assert compute_total_stock({"inventory": [], "variants": [{"stock": 4}, {"stock": 6}]}) == 10
    assert compute_total_stock({"inventory": [], "variants": [{"label": "S"}]}) is None
    assert compute_total_stock({}) is None


def test_discount_price():
    assert discount_price({"price": 200, "discount": 25}) == 150
    assert discount_price({"price": 200}) == 200
