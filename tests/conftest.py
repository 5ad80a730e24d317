import sys
from datetime import datetime, timedelta
from pathlib import Path

import mongomock
import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from auth import create_session_token, get_password_hash  # noqa: E402
from database import ensure_indexes, get_db  # noqa: E402
from main import app  # noqa: E402

PASSWORD = "Secret#123"


@pytest.fixture()
def db():
    database = mongomock.MongoClient()["waste_pickup_test"]
    ensure_indexes(database)
    return database


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        test_client.close()
        app.dependency_overrides.clear()


@pytest.fixture()
def make_lg(db):
    def _make(name="Ikeja", lat=6.6018, lng=3.3515, coverage=10, **extra):
        doc = {
            "name": name,
            "region": "Lagos",
            "address": "1 Obafemi Awolowo Way",
            "contactEmail": "info@%s.gov.ng" % name.lower(),
            "contactPhone": "+234-1-000-0000",
            "coordinates": {"lat": lat, "lng": lng},
            "admins": [],
            "coverageArea": coverage,
            "status": "active",
        }
        doc.update(extra)
        doc["_id"] = db["localgovernment"].insert_one(doc).inserted_id
        return doc
    return _make


@pytest.fixture()
def make_user(db):
    counter = iter(range(1, 10_000))

    def _make(role="user", lg=None, email=None, **extra):
        n = next(counter)
        doc = {
            "firstName": "First%d" % n,
            "lastName": "Last%d" % n,
            "email": email or "%s%d@example.com" % (role, n),
            "password": get_password_hash(PASSWORD),
            "role": role,
            "onboardingCompleted": True,
            "localGovernment": lg["_id"] if lg else None,
            "created_at": datetime.utcnow(),
        }
        doc.update(extra)
        doc["_id"] = db["user"].insert_one(doc).inserted_id
        return doc
    return _make


@pytest.fixture()
def make_vehicle(db):
    counter = iter(range(1, 10_000))

    def _make(lg, location=None, status="available", driver=None, **extra):
        doc = {
            "registrationNumber": "LAG-%03d" % next(counter),
            "type": "truck",
            "capacity": 5000,
            "driver": driver["_id"] if driver else None,
            "localGovernment": lg["_id"],
            "currentLocation": location,
            "status": status,
        }
        doc.update(extra)
        doc["_id"] = db["vehicle"].insert_one(doc).inserted_id
        if driver:
            db["user"].update_one({"_id": driver["_id"]}, {"$set": {"assignedTruck": doc["_id"]}})
        return doc
    return _make


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": "Bearer %s" % create_session_token(user)}
    return _headers


@pytest.fixture()
def pickup_payload():
    def _payload(lat=6.6050, lng=3.3500, **extra):
        body = {
            "pickupType": "regular",
            "wasteDescription": "Household bags",
            "estimatedWeight": 0,
            "location": {"address": "12 Allen Avenue", "city": "Ikeja", "coordinates": {"lat": lat, "lng": lng}},
            "scheduledDate": (datetime.utcnow() + timedelta(days=2)).isoformat(),
            "preferredTimeSlot": "morning",
        }
        body.update(extra)
        return body
    return _payload
