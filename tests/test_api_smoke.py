from conftest import auth


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_robots(client):
    r = client.get("/robots.txt")
    assert r.status_code == 200
    assert r.text == "User-agent: *\nAllow: /"


def test_sitemap_lists_only_public_content(client):
    admin = auth("admin", admin=True)
    pub = client.post("/items", json={"category": "history", "question": "Year of the moon landing?", "correct_answer": "1969",
                                       "is_private": False}, headers=admin).json()
    priv = client.post("/items", json={"category": "mine", "question": "Secret?", "correct_answer": "yes"},
                       headers=auth("alice")).json()
    r = client.get("/sitemap.xml")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/xml")
    assert f"/items/{pub['id']}</loc>" in r.text
    assert "/categories/history</loc>" in r.text
    assert priv["id"] not in r.text
    assert "/categories/mine" not in r.text


def test_unknown_route_uses_error_envelope(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json()["error"]["type"] == "http_error"
