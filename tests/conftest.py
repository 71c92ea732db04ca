from datetime import datetime, timedelta

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import catalog
import database
import inventory
import patients
from config import settings


@pytest.fixture(autouse=True)
def store(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_REQUIRED", False)
    monkeypatch.setattr(settings, "DEFAULT_CONSULTATION_FEE", 500.0)
    test_db = database.init_db(mongomock.MongoClient(), "clinic_test")
    yield test_db
    database.close_db()


@pytest.fixture
def client():
    from main import app

    return TestClient(app)


@pytest.fixture
def make_patient():
    def _make(name="Asha Patel", phone="9876543210", **extra):
        data = {"name": name, "phone": phone, "age": 34, "gender": "Female"}
        data.update(extra)
        return patients.create_patient(data)

    return _make


@pytest.fixture
def make_medicine():
    def _make(name="Paracetamol", stock=100, selling=50.0, buying=30.0, expires_in_days=365, **extra):
        data = {
            "name": name,
            "buyingPrice": buying,
            "sellingPrice": selling,
            "stock": stock,
            "expiryDate": datetime.utcnow() + timedelta(days=expires_in_days),
        }
        data.update(extra)
        return inventory.create_medicine(data)

    return _make


@pytest.fixture
def make_service():
    def _make(name="Dressing", price=300.0, **extra):
        data = {"name": name, "price": price, "duration": "15 min"}
        data.update(extra)
        return catalog.create_service(data)

    return _make


@pytest.fixture
def stock_of():
    def _read(medicine):
        doc = database.db()[database.MEDICINES].find_one({"_id": ObjectId(medicine["_id"])})
        return doc["stock"], doc["status"]

    return _read
