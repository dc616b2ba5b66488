from conftest import auth


def test_me_is_created_from_token_claims(client):
    r = client.get("/users/me", headers=auth("sub-123", name="Quiz Fan", email="fan@example.com"))
    assert r.status_code == 200
    me = r.json()
    assert (me["subject"], me["name"], me["email"], me["is_admin"]) == ("sub-123", "Quiz Fan", "fan@example.com", False)
    assert client.get("/users/me").status_code == 401
    assert client.get("/users/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_custom_name_survives_later_logins(client):
    client.put("/users/me", json={"name": "Chosen"}, headers=auth("alice"))
    me = client.get("/users/me", headers=auth("alice", name="Claim Name")).json()
    assert me["name"] == "Chosen"


def test_name_must_be_unique(client):
    client.get("/users/me", headers=auth("alice", name="Alice"))
    r = client.put("/users/me", json={"name": "ALICE"}, headers=auth("bob"))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "User.NameTaken"


def test_availability(client):
    client.get("/users/me", headers=auth("alice", name="Alice", email="alice@example.com"))
    r = client.get("/users/availability", params={"username": "alice", "email": "new@example.com"}).json()
    assert r["username_available"] is False
    assert r["email_available"] is True
    assert client.get("/users/availability").status_code == 400


def test_admin_gets_user_by_id(client):
    me = client.get("/users/me", headers=auth("alice", name="Alice", email="alice@example.com")).json()
    r = client.get(f"/admin/users/{me['id']}", headers=auth("admin", admin=True))
    assert r.status_code == 200
    body = r.json()
    assert (body["id"], body["name"], body["email"]) == (me["id"], "Alice", "alice@example.com")
    assert body["last_login"]
    assert client.get(f"/admin/users/{me['id']}", headers=auth("bob")).status_code == 403
    assert client.get(f"/admin/users/{me['id']}").status_code == 401
    missing = client.get("/admin/users/00000000-0000-0000-0000-000000000000", headers=auth("admin", admin=True))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "User.NotFound"
    assert client.get(f"/users/{me['id']}").status_code == 404


def test_settings_upsert(client):
    headers = auth("alice")
    assert client.get("/users/settings", headers=headers).json() == {"settings": {}}
    client.put("/users/settings", json={"key": "theme", "value": "dark"}, headers=headers)
    r = client.put("/users/settings", json={"key": "theme", "value": "light"}, headers=headers)
    assert r.json() == {"settings": {"theme": "light"}}
    assert client.get("/users/settings", headers=auth("bob")).json() == {"settings": {}}
    assert client.put("/users/settings", json={"key": "k" * 101, "value": "v"}, headers=headers).status_code == 422


def test_dev_token_logout_and_login_failed_are_audited(client):
    r = client.post("/auth/dev-token", json={"subject": "carol", "roles": []})
    assert r.status_code == 200
    headers = {"Authorization": f"Bearer {r.json()['access_token']}"}
    assert client.post("/auth/logout", headers=headers).status_code == 204
    assert client.post("/auth/login-failed", json={"email": "who@example.com"},
                       headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}).status_code == 204

    logs = client.get("/admin/audit-logs", headers=auth("admin", admin=True)).json()["logs"]
    by_action = {}
    for entry in logs:
        by_action.setdefault(entry["action"], []).append(entry)
    assert {"UserCreated", "LoginSuccess", "Logout", "LoginFailed"} <= set(by_action)
    failed = by_action["LoginFailed"][0]
    assert failed["ip_address"] == "203.0.113.9"
    assert failed["metadata"] == {"email": "who@example.com"}
    assert failed["user_id"] is None


def test_admin_group_claim_grants_admin(client):
    from quizvault.core.auth import create_token
    token = create_token("grp", groups=["Admins"])
    me = client.get("/users/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["is_admin"] is True


def test_roles_claim_must_match_admin_exactly():
    from quizvault.core.auth import is_admin_claims
    assert is_admin_claims({"roles": "admin"}) is True
    assert is_admin_claims({"roles": ["Admin"]}) is True
    assert is_admin_claims({"roles": "sysadmins"}) is False
    assert is_admin_claims({"roles": ["administrators"]}) is False
    assert is_admin_claims({}) is False
