"""Pytest fixtures for storefront tests."""

from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import ensure_indexes


@pytest.fixture
def db():
    """In-memory MongoDB database with the production indexes."""
    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    yield database


@pytest.fixture
def api_client(db, monkeypatch):
    """Test client whose routes talk to the in-memory database."""
    import main

    monkeypatch.setattr(main, "db", db)
    return TestClient(main.app)


@pytest.fixture
def make_user(db):
    def _make(email="jane@outlook.com", is_active=True, name="Jane Doe"):
        result = db["user"].insert_one({
            "name": name,
            "email": email,
            "password_hash": "secret",
            "is_active": is_active,
            "role": "user",
            "created_at": datetime.now(timezone.utc),
        })
        return str(result.inserted_id)

    return _make


@pytest.fixture
def make_product(db):
    def _make(name="Silk Blouse", final_price=1200.0, stock=10, is_active=True):
        result = db["product"].insert_one({
            "name": name,
            "price": final_price,
            "final_price": final_price,
            "stock": stock,
            "is_active": is_active,
            "category_id": "cat-1",
            "images": [],
            "created_at": datetime.now(timezone.utc),
        })
        return str(result.inserted_id)

    return _make


@pytest.fixture
def make_order(db):
    """Insert an order (and its items) directly, bypassing checkout."""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _make(user_id, order_number, total=1000.0, items=1, minutes=0, product_id="custom-blouse",
              payment_status="PENDING"):
        result = db["order"].insert_one({
            "order_number": order_number,
            "user_id": user_id,
            "status": "PENDING",
            "subtotal": total,
            "tax": 0,
            "shipping": 0,
            "total": total,
            "payment_method": "COD",
            "payment_status": payment_status,
            "address_id": None,
            "notes": "",
            "created_at": base + timedelta(minutes=minutes),
        })
        order_id = str(result.inserted_id)
        for _ in range(items):
            db["orderitem"].insert_one({
                "order_id": order_id,
                "product_id": product_id,
                "quantity": 1,
                "price": total,
            })
        return order_id

    return _make


@pytest.fixture
def checkout_payload():
    def _payload(user_id, items, **overrides):
        payload = {
            "user_id": user_id,
            "items": items,
            "shipping_info": {
                "first_name": "Jane",
                "last_name": "Doe",
                "email": "jane@outlook.com",
                "phone": "9876543210",
                "address": "12 MG Road",
                "city": "Bengaluru",
                "state": "Karnataka",
                "zip_code": "560001",
            },
            "payment_info": {"method": "cod", "notes": "Ring the bell"},
            "subtotal": 2500,
            "tax": 450,
            "shipping": 0,
            "total": 2950,
        }
        payload.update(overrides)
        return payload

    return _payload
