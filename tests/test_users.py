from conftest import PASSWORD


def test_profile_hides_secrets(client, make_user, auth_headers):
    user = make_user("driver", drivingLicense={"number": "DL-1", "verified": True})
    data = client.get("/api/users/profile", headers=auth_headers(user)).json()["data"]
    assert data["_id"] == str(user["_id"])
    assert "password" not in data
    assert "drivingLicense" not in data


def test_update_profile(client, db, make_user, auth_headers):
    user = make_user("user")
    headers = auth_headers(user)
    res = client.put("/api/users/profile", json={"firstName": "Ngozi", "lastName": "Eze", "city": "Yaba"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["firstName"] == "Ngozi"
    assert db["user"].find_one({"_id": user["_id"]})["location"]["city"] == "Yaba"

    res = client.put("/api/users/profile", json={"firstName": "Ngozi"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "First name and last name are required"


def test_change_password(client, make_user, auth_headers):
    user = make_user("user", email="pw@example.com")
    headers = auth_headers(user)

    assert client.put("/api/users/password", json={"currentPassword": PASSWORD}, headers=headers).status_code == 400
    short = client.put("/api/users/password", json={"currentPassword": PASSWORD, "newPassword": "abc"}, headers=headers)
    assert short.json()["message"] == "Password must be at least 6 characters"
    wrong = client.put("/api/users/password", json={"currentPassword": "wrong", "newPassword": "abcdef"}, headers=headers)
    assert wrong.json()["message"] == "Current password is incorrect"

    ok = client.put("/api/users/password", json={"currentPassword": PASSWORD, "newPassword": "n3w-Secret"}, headers=headers)
    assert ok.status_code == 200
    assert client.post("/api/auth/login", json={"email": "pw@example.com", "password": "n3w-Secret"}).status_code == 200
    assert client.post("/api/auth/login", json={"email": "pw@example.com", "password": PASSWORD}).status_code == 401


def test_user_local_government(client, make_lg, make_user, auth_headers):
    lg = make_lg()
    user = make_user("user", lg)
    other = make_user("user")
    admin = make_user("admin", lg)

    res = client.get(f"/api/users/{user['_id']}/local-government", headers=auth_headers(user))
    assert res.json()["data"]["name"] == lg["name"]
    assert client.get(f"/api/users/{user['_id']}/local-government", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/api/users/{user['_id']}/local-government", headers=auth_headers(other)).status_code == 403
    res = client.get(f"/api/users/{other['_id']}/local-government", headers=auth_headers(other))
    assert res.json() == {"success": True, "data": None}
