import hashlib

import pytest

import config
import payu

FRONTEND = "http://shop.example.com"


@pytest.fixture
def merchant(monkeypatch):
    monkeypatch.setattr(config, "PAYU_MERCHANT_KEY", "testkey")
    monkeypatch.setattr(config, "PAYU_MERCHANT_SALT", "testsalt")
    monkeypatch.setattr(config, "PAYU_PAYMENT_URL", "https://test.payu.in/_payment")
    monkeypatch.setattr(config, "FRONTEND_URL", FRONTEND)


@pytest.fixture
def unconfigured(monkeypatch):
    monkeypatch.setattr(config, "PAYU_MERCHANT_KEY", None)
    monkeypatch.setattr(config, "PAYU_MERCHANT_SALT", None)


def initiate(client, user, address, product_id, quantity=2):
    return client.post(
        "/api/orders/payu/initiate",
        json={"items": [{"product": product_id, "quantity": quantity}], "shipping_address": address},
        headers=user["headers"],
    )


def callback_form(data, status="success", mihpayid="403993715523", **overrides):
    form = {
        "txnid": data["txnid"],
        "status": status,
        "amount": data["amount"],
        "productinfo": data["productinfo"],
        "firstname": data["firstname"],
        "email": data["email"],
        "mihpayid": mihpayid,
    }
    form["hash"] = payu.response_hash(status, form["txnid"], form["amount"], form["productinfo"],
                                      form["firstname"], form["email"])
    form.update(overrides)
    return form


def test_request_hash_layout(merchant):
    expected = hashlib.sha512(
        b"testkey|T1|10.00|Order Payment|Jane|jane@example.com|||||||||||testsalt"
    ).hexdigest()
    assert payu.request_hash("T1", "10.00", "Order Payment", "Jane", "jane@example.com") == expected


def test_response_hash_layout(merchant):
    expected = hashlib.sha512(
        b"testsalt|success|||||||||||jane@example.com|Jane|Order Payment|10.00|T1|testkey"
    ).hexdigest()
    assert payu.response_hash("success", "T1", "10.00", "Order Payment", "Jane", "jane@example.com") == expected


def test_config_hides_secrets(client, merchant):
    data = client.get("/api/orders/payu/config").json()["data"]
    assert data == {"configured": True, "is_live": False, "payment_url": "https://test.payu.in/_payment"}


def test_initiate_requires_configuration(client, unconfigured, customer, address, make_product):
    res = initiate(client, customer, address, make_product())
    assert res.status_code == 500
    assert res.json()["message"].startswith("PayU is not configured")


def test_initiate_stages_attempt(client, merchant, customer, address, make_product, db):
    res = initiate(client, customer, address, make_product(price=55.5))
    assert res.status_code == 200
    data = res.json()["data"]

    assert data["amount"] == "111.00"
    assert data["key"] == "testkey"
    assert data["productinfo"] == "Order Payment"
    assert data["hash"] == payu.request_hash(data["txnid"], "111.00", "Order Payment", "Jane", "jane@example.com")

    attempt = db["payupaymentattempt"].find_one({"txnid": data["txnid"]})
    assert attempt["user_id"] == customer["id"]
    assert attempt["total"] == 111.0
    assert attempt["expires_at"] > attempt["created_at"]
    assert db["order"].count_documents({}) == 0


def test_success_callback_creates_paid_order_once(client, merchant, customer, address, make_product, db):
    data = initiate(client, customer, address, make_product()).json()["data"]
    form = callback_form(data)

    res = client.post("/api/orders/payment/success", data=form, follow_redirects=False)
    assert res.status_code == 303
    assert res.headers["location"] == f"{FRONTEND}/order-confirmation/{data['txnid']}?success=true"

    order = db["order"].find_one({"order_number": data["txnid"]})
    assert order["user_id"] == customer["id"]
    assert order["payment"]["method"] == "payu"
    assert order["payment"]["status"] == "paid"
    assert order["payment"]["transaction_id"] == "403993715523"
    assert order["total"] == 200.0
    assert order["status_history"][0]["note"] == "Payment successful (PayU)"
    assert db["payupaymentattempt"].count_documents({}) == 0

    # PayU may post the same callback again
    res = client.post("/api/orders/payment/success", data=form, follow_redirects=False)
    assert res.status_code == 303
    assert "order-confirmation" in res.headers["location"]
    assert db["order"].count_documents({}) == 1


def test_hash_mismatch_redirects_to_failure(client, merchant, customer, address, make_product, db):
    data = initiate(client, customer, address, make_product()).json()["data"]
    form = callback_form(data, amount="1.00")

    res = client.post("/api/orders/payment/success", data=form, follow_redirects=False)
    assert res.status_code == 303
    assert res.headers["location"] == f"{FRONTEND}/payment-failed?txnid={data['txnid']}"
    assert db["order"].count_documents({}) == 0
    assert db["payupaymentattempt"].count_documents({}) == 0


def test_non_success_status_is_a_failure(client, merchant, customer, address, make_product, db):
    data = initiate(client, customer, address, make_product()).json()["data"]
    res = client.post("/api/orders/payment/success", data=callback_form(data, status="failure"),
                      follow_redirects=False)
    assert "payment-failed" in res.headers["location"]
    assert db["order"].count_documents({}) == 0


def test_unconfigured_callback_fails(client, unconfigured):
    res = client.post("/api/orders/payment/success", data={"txnid": "ORD1"}, follow_redirects=False)
    assert res.status_code == 303
    assert "payment-failed" in res.headers["location"]


def test_failure_callback_cancels_existing_order(client, merchant, customer, address, make_product, db):
    data = initiate(client, customer, address, make_product()).json()["data"]
    client.post("/api/orders/payment/success", data=callback_form(data), follow_redirects=False)

    res = client.post("/api/orders/payment/failure", data={"txnid": data["txnid"]}, follow_redirects=False)
    assert res.status_code == 303
    assert res.headers["location"] == f"{FRONTEND}/payment-failed?txnid={data['txnid']}"

    order = db["order"].find_one({"order_number": data["txnid"]})
    assert order["status"] == "cancelled"
    assert order["payment"]["status"] == "failed"
    assert order["status_history"][-1]["status"] == "cancelled"


def test_failure_callback_drops_pending_attempt(client, merchant, customer, address, make_product, db):
    data = initiate(client, customer, address, make_product()).json()["data"]
    client.post("/api/orders/payment/failure", data={"txnid": data["txnid"]}, follow_redirects=False)
    assert db["payupaymentattempt"].count_documents({}) == 0
    assert db["order"].count_documents({}) == 0


def test_payment_hash_endpoint(client, merchant, customer):
    fields = {"txnid": "T1", "amount": "10.00", "productinfo": "Order Payment",
              "firstname": "Jane", "email": "jane@example.com"}
    res = client.post("/api/orders/payment/hash", json=fields, headers=customer["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["hash"] == payu.request_hash(**fields)

    res = client.post("/api/orders/payment/hash", json={**fields, "email": ""}, headers=customer["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Missing required parameters"
