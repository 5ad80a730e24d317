import pytest


@pytest.fixture()
def admin(make_lg, make_user):
    return make_user("admin", make_lg())


NEW_DRIVER = {
    "firstName": "Tunde",
    "lastName": "Bello",
    "email": "tunde@example.com",
    "password": "driver1",
    "role": "driver",
    "drivingLicense": {"number": "LAG-DL-77"},
}


def test_create_user_in_admin_local_government(client, db, admin, auth_headers):
    res = client.post("/api/admin/users", json=NEW_DRIVER, headers=auth_headers(admin))
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["localGovernment"] == str(admin["localGovernment"])
    assert data["onboardingCompleted"] is True
    assert "password" not in data
    stored = db["user"].find_one({"email": "tunde@example.com"})
    assert stored["password"] != "driver1"

    login = client.post("/api/auth/login", json={"email": "tunde@example.com", "password": "driver1"})
    assert login.status_code == 200


def test_create_user_validation(client, admin, auth_headers):
    headers = auth_headers(admin)
    res = client.post("/api/admin/users", json={"firstName": "A", "email": "a@example.com"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Missing required fields: lastName, password, role"

    client.post("/api/admin/users", json=NEW_DRIVER, headers=headers)
    dup = client.post("/api/admin/users", json=NEW_DRIVER, headers=headers)
    assert dup.json()["message"] == "Email already in use"


def test_create_user_rejects_malformed_email(client, db, admin, auth_headers):
    res = client.post("/api/admin/users", json={**NEW_DRIVER, "email": "foo@@bar..com"}, headers=auth_headers(admin))
    assert res.status_code == 400
    assert res.json()["message"] == "Validation failed"
    assert res.json()["errors"][0]["field"] == "email"
    assert db["user"].count_documents({"role": "driver"}) == 0


def test_non_admins_are_forbidden(client, make_user, auth_headers):
    user = make_user("user")
    res = client.get("/api/admin/users", headers=auth_headers(user))
    assert res.status_code == 403
    assert res.json()["message"] == "Unauthorized - Admin access required"
    assert client.post("/api/admin/users", json=NEW_DRIVER, headers=auth_headers(user)).status_code == 403


def test_list_users_and_drivers(client, admin, make_lg, make_user, auth_headers):
    lg_id = admin["localGovernment"]
    lg = {"_id": lg_id}
    make_user("driver", lg)
    make_user("user", lg)
    make_user("driver", make_lg("Surulere", lat=6.5, lng=3.35))
    headers = auth_headers(admin)

    users = client.get("/api/admin/users", headers=headers).json()["data"]
    assert len(users) == 3
    assert all("password" not in u for u in users)
    assert len(client.get("/api/admin/users", params={"role": "driver"}, headers=headers).json()["data"]) == 1

    drivers = client.get("/api/admin/drivers", headers=headers).json()["data"]
    assert len(drivers) == 1
    assert set(drivers[0]) <= {"_id", "firstName", "lastName", "email", "assignedTruck"}

    other = client.get("/api/admin/users", params={"localGovernment": "0" * 24}, headers=headers)
    assert other.status_code == 403


def test_admin_without_local_government_cannot_list_users(client, make_lg, make_user, auth_headers):
    headers = auth_headers(make_user("admin"))
    res = client.get("/api/admin/users", headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Admin not assigned to a local government"

    lg = make_lg("Surulere", lat=6.5, lng=3.35)
    res = client.get("/api/admin/users", params={"localGovernment": str(lg["_id"])}, headers=headers)
    assert res.status_code == 400


def test_update_and_delete_user(client, db, admin, make_user, make_vehicle, auth_headers):
    lg = {"_id": admin["localGovernment"]}
    driver = make_user("driver", lg)
    vehicle = make_vehicle(lg, driver=driver)
    headers = auth_headers(admin)

    res = client.put(f"/api/admin/users/{driver['_id']}", json={"phone": "0803", "password": "fresh-pass"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["phone"] == "0803"
    assert client.post("/api/auth/login", json={"email": driver["email"], "password": "fresh-pass"}).status_code == 200

    assert client.get(f"/api/admin/users/{driver['_id']}", headers=headers).json()["data"]["_id"] == str(driver["_id"])

    res = client.delete(f"/api/admin/users/{driver['_id']}", headers=headers)
    assert res.json() == {"success": True, "message": "User deleted successfully"}
    assert db["vehicle"].find_one({"_id": vehicle["_id"]})["driver"] is None
    assert client.get(f"/api/admin/users/{driver['_id']}", headers=headers).status_code == 404


def test_cannot_manage_other_local_government_users(client, admin, make_lg, make_user, auth_headers):
    outsider = make_user("driver", make_lg("Surulere", lat=6.5, lng=3.35))
    headers = auth_headers(admin)
    assert client.get(f"/api/admin/users/{outsider['_id']}", headers=headers).status_code == 403
    assert client.delete(f"/api/admin/users/{outsider['_id']}", headers=headers).status_code == 403
