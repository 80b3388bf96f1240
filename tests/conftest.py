import os
import tempfile

os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="lt-uploads-")
os.environ["JWT_SECRET"] = "test-secret"

import mongomock
import pytest
from fastapi.testclient import TestClient

import accounts
import catalog
import database
from security import issue_token


@pytest.fixture(autouse=True)
def db(monkeypatch):
    mock_db = mongomock.MongoClient()["little_treasures_test"]
    monkeypatch.setattr(database, "db", mock_db)
    database.ensure_indexes()
    return mock_db


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    sent = []

    def fake_send(email, code, purpose):
        sent.append({"email": email, "otp": code, "type": purpose})

    monkeypatch.setattr(accounts, "send_otp_email", fake_send)
    return sent


@pytest.fixture
def client():
    from main import app
    return TestClient(app)


@pytest.fixture
def otp_for(outbox):
    def _latest(email, purpose):
        return [m["otp"] for m in outbox if m["email"] == email and m["type"] == purpose][-1]
    return _latest


@pytest.fixture
def register_customer(otp_for):
    def _register(email="kid@example.com", password="crayons1", name="Asha"):
        accounts.issue_otp(email, "registration")
        code = otp_for(email, "registration")
        accounts.verify_otp(email, code, "registration")
        return accounts.register_user({"name": name, "email": email, "password": password}, code)
    return _register


@pytest.fixture
def customer(register_customer):
    user = register_customer()
    return {"user": user, "token": issue_token(user["id"], "user")}


@pytest.fixture
def customer_headers(customer):
    return {"Authorization": f"Bearer {customer['token']}"}


@pytest.fixture
def admin():
    return accounts.create_admin("admin", "admin@example.com", "admin123")


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {issue_token(admin['id'], 'admin')}"}


@pytest.fixture
def make_product():
    def _make(**overrides):
        fields = {"name": "Rainbow Pencil Set", "price": 150, "category": "stationery", "stock": 10}
        fields.update(overrides)
        return catalog.create_product(fields)
    return _make
