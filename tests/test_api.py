from datetime import date, timedelta

import pytest
from bson import ObjectId

import auth
from config import settings

PATIENT = {"name": "Asha Patel", "phone": "9876543210", "age": 34, "gender": "Female"}


def medicine_body(**overrides):
    body = {
        "name": "Paracetamol",
        "buyingPrice": 30,
        "sellingPrice": 50,
        "stock": 10,
        "expiryDate": (date.today() + timedelta(days=365)).isoformat(),
    }
    body.update(overrides)
    return body


@pytest.fixture
def seeded(client):
    patient = client.post("/api/patients", json=PATIENT).json()["data"]
    medicine = client.post("/api/medicines", json=medicine_body()).json()["data"]
    service = client.post("/api/services", json={"name": "Dressing", "price": 300}).json()["data"]
    return {"patient": patient, "medicine": medicine, "service": service}


def test_create_patient(client):
    res = client.post("/api/patients", json=PATIENT)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["data"]["patientId"] == "DOC001"
    assert body["data"]["status"] == "Active"


def test_request_validation_envelope(client):
    res = client.post("/api/patients", json={**PATIENT, "phone": "12"})
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["kind"] == "validation_error"
    assert body["errors"][0]["field"] == "phone"


def test_pagination_envelope(client):
    for i in range(3):
        client.post("/api/patients", json={**PATIENT, "phone": f"900000000{i}"})
    body = client.get("/api/patients", params={"page": 2, "limit": 2}).json()
    assert len(body["data"]) == 1
    assert body["pagination"] == {
        "currentPage": 2,
        "itemsPerPage": 2,
        "totalItems": 3,
        "totalPages": 2,
        "hasNextPage": False,
        "hasPrevPage": True,
    }


def test_not_found_and_bad_ids(client):
    res = client.get(f"/api/patients/{ObjectId()}")
    assert res.status_code == 404
    assert res.json()["kind"] == "not_found"

    res = client.get("/api/medicines/not-an-id")
    assert res.status_code == 400
    assert res.json()["kind"] == "validation_error"


def test_bill_flow(client, seeded):
    bill = {
        "patient": seeded["patient"]["_id"],
        "medicines": [{"medicine": seeded["medicine"]["_id"], "quantity": 2}],
        "services": [{"service": seeded["service"]["_id"]}],
    }
    res = client.post("/api/bills", json=bill)
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["billId"] == "BILL001"
    assert data["totalAmount"] == 900

    med = client.get(f"/api/medicines/{seeded['medicine']['_id']}").json()["data"]
    assert med["stock"] == 8
    assert med["status"] == "low-stock"

    res = client.put(f"/api/bills/{data['_id']}", json={"paymentStatus": "pending", "paymentMethod": "upi"})
    assert res.json()["data"]["paymentStatus"] == "pending"

    assert len(client.get(f"/api/patients/{seeded['patient']['_id']}/bills").json()["data"]) == 1
    assert client.get("/api/bills/today").json()["data"]["totalEarnings"] == 900

    assert client.delete(f"/api/bills/{data['_id']}").status_code == 200
    med = client.get(f"/api/medicines/{seeded['medicine']['_id']}").json()["data"]
    assert med["stock"] == 10
    assert client.delete(f"/api/bills/{data['_id']}").status_code == 404


def test_bill_insufficient_stock(client, seeded):
    bill = {
        "patient": seeded["patient"]["_id"],
        "medicines": [{"medicine": seeded["medicine"]["_id"], "quantity": 11}],
    }
    res = client.post("/api/bills", json=bill)
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["kind"] == "insufficient_stock"
    assert body["message"] == "Insufficient stock for Paracetamol. Available: 10"
    assert body["available"] == 10
    assert client.get(f"/api/medicines/{seeded['medicine']['_id']}").json()["data"]["stock"] == 10


def test_bill_lines_may_reference_by_id(client, seeded):
    bill = {
        "patient": seeded["patient"]["_id"],
        "medicines": [{"id": seeded["medicine"]["_id"], "quantity": 3}],
        "services": [{"id": seeded["service"]["_id"]}],
        "consultationFee": 0,
    }
    res = client.post("/api/bills", json=bill)
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["medicines"][0]["medicine"] == seeded["medicine"]["_id"]
    assert data["services"][0]["service"] == seeded["service"]["_id"]
    assert data["totalAmount"] == 450
    assert client.get(f"/api/medicines/{seeded['medicine']['_id']}").json()["data"]["stock"] == 7


def test_bill_line_without_reference_is_rejected(client, seeded):
    bill = {"patient": seeded["patient"]["_id"], "medicines": [{"name": "Paracetamol", "quantity": 1}]}
    res = client.post("/api/bills", json=bill)
    assert res.status_code == 400
    assert res.json()["kind"] == "validation_error"


def test_bill_zero_quantity_is_rejected(client, seeded):
    bill = {
        "patient": seeded["patient"]["_id"],
        "medicines": [{"medicine": seeded["medicine"]["_id"], "quantity": 0}],
    }
    res = client.post("/api/bills", json=bill)
    assert res.status_code == 400
    assert res.json()["kind"] == "validation_error"


def test_stock_endpoint(client, seeded):
    url = f"/api/medicines/{seeded['medicine']['_id']}/stock"
    res = client.put(url, json={"quantity": 40, "operation": "add"})
    assert res.json()["data"]["stock"] == 50
    assert res.json()["data"]["status"] == "in-stock"

    res = client.put(url, json={"quantity": 5, "operation": "divide"})
    assert res.status_code == 400


def test_services_soft_delete(client, seeded):
    svc_id = seeded["service"]["_id"]
    assert client.delete(f"/api/services/{svc_id}").status_code == 200
    assert client.get("/api/services").json()["pagination"]["totalItems"] == 0
    assert client.get(f"/api/services/{svc_id}").json()["data"]["isActive"] is False


def test_analytics_endpoints(client, seeded):
    client.post("/api/bills", json={"patient": seeded["patient"]["_id"], "consultationFee": 200})
    assert client.get("/api/analytics/summary").json()["data"]["earningsToday"] == 200
    assert len(client.get("/api/analytics/daily-earnings").json()["data"]) == 7
    assert len(client.get("/api/analytics/monthly-growth", params={"months": 6}).json()["data"]) == 6
    split = client.get("/api/analytics/revenue-split").json()["data"]
    assert split["breakdown"][0] == {"name": "Consultation", "value": 100, "amount": 200}


def test_identifier_endpoint(client):
    assert client.post("/api/identifiers/bill/next").json()["data"] == {"identifier": "BILL001"}
    assert client.post("/api/identifiers/nope/next").status_code == 400


def test_routes_require_token_when_auth_is_on(client, monkeypatch):
    monkeypatch.setattr(settings, "AUTH_REQUIRED", True)
    auth.register_user("Admin", "admin@clinicmail.com", "s3cret-pass", role="admin")

    res = client.get("/api/patients")
    assert res.status_code == 401
    assert res.json()["success"] is False

    bad = client.post("/api/auth/login", json={"email": "admin@clinicmail.com", "password": "wrong"})
    assert bad.status_code == 401

    login = client.post("/api/auth/login", json={"email": "Admin@ClinicMail.com", "password": "s3cret-pass"})
    assert login.status_code == 200
    assert "password" not in login.json()["data"]["user"]
    headers = {"Authorization": f"Bearer {login.json()['data']['token']}"}

    assert client.get("/api/patients", headers=headers).status_code == 200
    assert client.get("/api/auth/me", headers=headers).json()["data"]["role"] == "admin"

    created = client.post("/api/patients", json=PATIENT, headers=headers).json()["data"]
    assert isinstance(created["createdBy"], str)


def test_register_is_admin_only(client):
    auth.register_user("Admin", "admin@clinicmail.com", "s3cret-pass", role="admin")
    auth.register_user("Doc", "doc@clinicmail.com", "s3cret-pass", role="doctor")
    admin_token = auth.create_access_token(str(auth.authenticate("admin@clinicmail.com", "s3cret-pass")["_id"]))
    doc_token = auth.create_access_token(str(auth.authenticate("doc@clinicmail.com", "s3cret-pass")["_id"]))
    new_user = {"name": "Reception", "email": "front@clinicmail.com", "password": "desk-pass", "role": "receptionist"}

    res = client.post("/api/auth/register", json=new_user, headers={"Authorization": f"Bearer {doc_token}"})
    assert res.status_code == 403

    res = client.post("/api/auth/register", json=new_user, headers={"Authorization": f"Bearer {admin_token}"})
    assert res.status_code == 201
    assert res.json()["data"]["user"]["role"] == "receptionist"

    res = client.post("/api/auth/register", json=new_user, headers={"Authorization": f"Bearer {admin_token}"})
    assert res.status_code == 400
    assert res.json()["kind"] == "validation_error"


def test_tampered_token_is_rejected(client):
    res = client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.token"})
    assert res.status_code == 401
