from datetime import datetime, timedelta

import pytest


@pytest.fixture()
def seeded(db, make_lg, make_user, make_vehicle):
    lg = make_lg()
    other_lg = make_lg("Surulere", lat=6.5, lng=3.35)
    admin = make_user("admin", lg)
    driver = make_user("driver", lg)
    citizen = make_user("user", lg)
    vehicle = make_vehicle(lg, driver=driver)
    make_user("user", other_lg)

    now = datetime.utcnow()
    soon = now + timedelta(days=3)

    def pickup(status, owner=citizen, local_government=lg, assigned=None, weight=None, when=soon):
        return db["pickup"].insert_one({
            "user": owner["_id"],
            "localGovernment": local_government["_id"],
            "assignedDriver": assigned["_id"] if assigned else None,
            "vehicle": vehicle["_id"] if assigned else None,
            "status": status,
            "actualWeight": weight,
            "scheduledDate": when,
            "pickupType": "regular",
            "wasteDescription": "bags",
            "location": {"address": "a", "city": "Ikeja", "coordinates": {"lat": 6.6, "lng": 3.35}},
        }).inserted_id

    pickup("requested")
    pickup("assigned", assigned=driver)
    pickup("in_progress", assigned=driver)
    pickup("completed", assigned=driver, weight=30, when=now - timedelta(days=1))
    pickup("completed", assigned=driver, weight=12.5, when=now - timedelta(days=2))
    pickup("requested", local_government=other_lg)
    return {"admin": admin, "driver": driver, "citizen": citizen, "vehicle": vehicle, "lg": lg}


def test_admin_stats_are_scoped_to_local_government(client, seeded, auth_headers):
    res = client.get("/api/dashboard/stats", headers=auth_headers(seeded["admin"]))
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["pickupCount"] == 5
    assert data["completedPickups"] == 2
    assert data["pendingPickups"] == 2
    assert data["vehicleCount"] == 1
    assert data["userCount"] == 1
    assert data["driverCount"] == 1
    assert data["totalWaste"] == pytest.approx(42.5)
    assert data["pickupStats"] == {"requested": 1, "assigned": 1, "in_progress": 1, "completed": 2}
    assert len(data["pickupsByMonth"]) == 12
    assert sum(m["count"] for m in data["pickupsByMonth"]) <= 5
    assert len(data["recentPickups"]) == 5


def test_admin_stats_for_other_local_government_forbidden(client, seeded, auth_headers):
    res = client.get("/api/dashboard/stats", params={"localGovernment": "0" * 24}, headers=auth_headers(seeded["admin"]))
    assert res.status_code == 403


def test_driver_stats(client, seeded, auth_headers):
    data = client.get("/api/dashboard/stats", headers=auth_headers(seeded["driver"])).json()["data"]
    assert data["vehicleInfo"]["registrationNumber"] == seeded["vehicle"]["registrationNumber"]
    assert data["assignedPickups"] == 4
    assert data["completedPickups"] == 2
    assert data["pendingPickups"] == 2
    assert data["totalWaste"] == pytest.approx(42.5)
    assert len(data["upcomingPickups"]) == 2
    assert data["upcomingPickups"][0]["user"]["_id"] == str(seeded["citizen"]["_id"])


def test_user_stats(client, seeded, auth_headers):
    data = client.get("/api/dashboard/stats", headers=auth_headers(seeded["citizen"])).json()["data"]
    assert data["userPickups"] == 6
    assert data["completedPickups"] == 2
    assert data["pendingPickups"] == 4
    assert data["totalWaste"] == pytest.approx(42.5)
    assert data["nextPickup"]["status"] in ("requested", "assigned")
    assert len(data["recentPickups"]) == 5


def test_driver_without_vehicle_still_gets_stats(client, make_user, auth_headers):
    data = client.get("/api/dashboard/stats", headers=auth_headers(make_user("driver"))).json()["data"]
    assert data["vehicleInfo"] is None
    assert data["assignedPickups"] == 0
