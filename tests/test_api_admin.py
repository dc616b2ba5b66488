from conftest import auth


def test_audit_logs_paging_and_filter_validation(client):
    for name in ("a", "b", "c"):
        client.get("/users/me", headers=auth(name))
    admin = auth("admin", admin=True)
    page = client.get("/admin/audit-logs", params={"action_types": "usercreated", "page_size": 2}, headers=admin).json()
    assert page["total_count"] == 4
    assert page["page_size"] == 2
    assert page["total_pages"] == 2
    assert len(page["logs"]) == 2
    clamped = client.get("/admin/audit-logs", params={"page_size": 500}, headers=admin).json()
    assert clamped["page_size"] == 100
    bad = client.get("/admin/audit-logs", params={"action_types": "Nope"}, headers=admin)
    assert bad.status_code == 400
    assert client.get("/admin/audit-logs", headers=auth("a")).status_code == 403


def test_database_size(client):
    r = client.get("/admin/database-size", headers=auth("admin", admin=True))
    assert r.status_code == 200
    body = r.json()
    assert body["size_bytes"] > 0
    assert body["size_megabytes"] >= 0


def test_seed_job_is_enqueued(client, monkeypatch):
    from quizvault.api import admin as admin_api

    class _Job:
        def get_id(self):
            return "job-1"

    calls = []
    monkeypatch.setattr(admin_api.queue, "enqueue", lambda fn, *a, **kw: calls.append((fn, a)) or _Job())
    r = client.post("/admin/seed", json={"seed_path": "data/seed"}, headers=auth("admin", admin=True))
    assert r.status_code == 202
    assert r.json() == {"job_id": "job-1"}
    assert calls[0][0] is admin_api.seed_job
    assert calls[0][1] == ("data/seed",)
