# tests/conftest.py
"""
Shared fixtures: a throwaway SQLite file database, seeded customers and
cylinder sizes, caller contexts, bearer tokens and an API client.
"""
import os
import tempfile

# Configure before the application modules read their environment
_DB_DIR = tempfile.mkdtemp(prefix="billing-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["BALANCE_RETRY_BACKOFF"] = "0"

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from database import SessionLocal, engine
from models import Base, Customer, CylinderCapacity
from services.context import RequestContext, Role


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def outbound():
    """Replace the SMS and receipt dispatch the billing facade calls."""
    with patch("services.billing.notify_status_change") as sms, \
            patch("services.billing.send_payment_receipt") as receipt:
        yield SimpleNamespace(sms=sms, receipt=receipt)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def staff_ctx():
    return RequestContext(principal_id="staff-1", role=Role.STAFF)


@pytest.fixture
def capacities(db):
    """Cylinder catalog, keyed by size in kg -> row id."""
    rows = {kg: CylinderCapacity(capacity_kg=Decimal(kg)) for kg in (6, 10, 13, 50)}
    db.add_all(rows.values())
    db.commit()
    return {kg: row.id for kg, row in rows.items()}


@pytest.fixture
def make_customer(db):
    counter = {"n": 0}

    def _make(price_per_kg="150", email=None, user_id=None, phone="+254700000001"):
        counter["n"] += 1
        customer = Customer(
            shop_name=f"Shop {counter['n']}",
            in_charge_name=f"Owner {counter['n']}",
            phone=phone,
            email=email,
            user_id=user_id,
            price_per_kg=Decimal(price_per_kg),
            balance=Decimal("0"),
        )
        db.add(customer)
        db.commit()
        return customer

    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def auth_headers():
    def _headers(role="staff", principal="staff-1", customer_id=None):
        claims = {"id": principal, "role": role}
        if customer_id is not None:
            claims["customer_id"] = customer_id
        token = jwt.encode(claims, "test-secret", algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def client():
    from main import app

    with TestClient(app) as test_client:
        yield test_client
