from datetime import timedelta

import mongomock
import pytest

import config
import database

# route modules bind `db` at import time, so swap it in before they load
database.db = mongomock.MongoClient()["storefront_test"]
config.BCRYPT_ROUNDS = 4

from fastapi.testclient import TestClient  # noqa: E402

import main  # noqa: E402
from auth import create_token, hash_password  # noqa: E402
from database import create_document, utcnow  # noqa: E402
from schemas import User  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture
def db():
    return database.db


@pytest.fixture(autouse=True)
def clean_db(db):
    for name in db.list_collection_names():
        db.drop_collection(name)
    yield


@pytest.fixture(autouse=True)
def quiet_mail(monkeypatch):
    monkeypatch.setattr(config, "EMAIL_PROVIDER", "disabled")
    monkeypatch.setattr(config, "EMAIL_STRICT", False)
    monkeypatch.setattr(config, "STORE_OWNER_EMAIL", "owner@example.com")
    monkeypatch.setattr(config, "CONTACT_TO_EMAIL", "support@example.com")


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(role="customer", email=None, password=PASSWORD, **extra):
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@example.com"
        user = User(name=f"{role.title()} {counter['n']}", email=email, role=role,
                    password_hash=hash_password(password), **extra)
        user_id = create_document("user", user)
        token = create_token(user_id)
        return {"id": user_id, "email": email, "token": token, "headers": {"Authorization": f"Bearer {token}"}}

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("customer")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def make_product():
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        doc = {
            "name": f"Product {counter['n']}",
            "description": "A product",
            "price": 100.0,
            "category": "FOOTWEAR",
            "images": [{"url": f"/img/{counter['n']}.jpg", "type": "image", "is_primary": True}],
            "is_active": True,
            "created_at": utcnow() + timedelta(seconds=counter["n"]),
        }
        doc.update(fields)
        return create_document("product", doc)

    return _make


@pytest.fixture
def address():
    return {
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane@example.com",
        "phone": "+971500000000",
        "street": "1 Market St",
        "city": "Dubai",
        "zip_code": "00000",
        "country": "AE",
    }
