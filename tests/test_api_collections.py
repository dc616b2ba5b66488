from conftest import auth, item_payload


def make_item(client, headers, question="What is the capital of France?"):
    r = client.post("/items", json=item_payload(question=question, is_private=True), headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_collection_crud_is_owner_only(client):
    r = client.post("/collections", json={"name": "Study set"}, headers=auth("alice"))
    assert r.status_code == 201
    coll = r.json()
    assert coll["item_count"] == 0

    assert client.get(f"/collections/{coll['id']}", headers=auth("bob")).status_code == 403
    assert client.put(f"/collections/{coll['id']}", json={"name": "x"}, headers=auth("bob")).status_code == 403
    assert client.get(f"/collections/{coll['id']}", headers=auth("admin", admin=True)).status_code == 200

    renamed = client.put(f"/collections/{coll['id']}", json={"name": "Renamed"}, headers=auth("alice")).json()
    assert renamed["name"] == "Renamed"
    assert renamed["updated_at"] is not None
    assert [c["name"] for c in client.get("/collections", headers=auth("alice")).json()] == ["Renamed"]
    assert client.get("/collections", headers=auth("bob")).json() == []

    assert client.delete(f"/collections/{coll['id']}", headers=auth("alice")).status_code == 204
    assert client.get(f"/collections/{coll['id']}", headers=auth("alice")).status_code == 404


def test_add_and_remove_items(client):
    headers = auth("alice")
    coll = client.post("/collections", json={"name": "Set"}, headers=headers).json()
    item_id = make_item(client, headers)

    assert client.post(f"/collections/{coll['id']}/items", json={"item_id": item_id}, headers=headers).status_code == 201
    dup = client.post(f"/collections/{coll['id']}/items", json={"item_id": item_id}, headers=headers)
    assert dup.status_code == 409
    assert dup.json()["error"]["code"] == "Collection.AlreadyContainsItem"
    missing = client.post(f"/collections/{coll['id']}/items", json={"item_id": "00000000-0000-0000-0000-000000000000"}, headers=headers)
    assert missing.status_code == 404

    listed = client.get(f"/collections/{coll['id']}/items", headers=headers).json()
    assert [i["id"] for i in listed] == [item_id]
    assert listed[0]["collections"] == [{"id": coll["id"], "name": "Set"}]
    assert client.get(f"/items/{item_id}/collections", headers=headers).json() == [{"id": coll["id"], "name": "Set"}]

    page = client.get("/items", params={"collection_id": coll["id"]}, headers=headers).json()
    assert page["total_count"] == 1
    assert client.get("/items", params={"collection_id": coll["id"]}, headers=auth("bob")).status_code == 403

    assert client.delete(f"/collections/{coll['id']}/items/{item_id}", headers=headers).status_code == 204
    assert client.delete(f"/collections/{coll['id']}/items/{item_id}", headers=headers).status_code == 404
    assert client.get(f"/collections/{coll['id']}", headers=headers).json()["item_count"] == 0


def test_bulk_add_skips_present_and_unknown(client):
    headers = auth("alice")
    coll = client.post("/collections", json={"name": "Set"}, headers=headers).json()
    a = make_item(client, headers)
    b = make_item(client, headers, question="Largest ocean on Earth?")
    client.post(f"/collections/{coll['id']}/items", json={"item_id": a}, headers=headers)

    r = client.post(f"/collections/{coll['id']}/items/bulk",
                    json={"item_ids": [a, b, "00000000-0000-0000-0000-000000000000"]}, headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert body["added_count"] == 1
    assert body["skipped_count"] == 2
    assert body["added_item_ids"] == [b]


def test_admin_lists_all_collections(client):
    client.post("/collections", json={"name": "Alice set"}, headers=auth("alice"))
    client.post("/collections", json={"name": "Bob set"}, headers=auth("bob"))
    assert client.get("/collections/all", headers=auth("alice")).status_code == 403
    r = client.get("/collections/all", headers=auth("admin", admin=True))
    assert r.status_code == 200
    names = [c["name"] for c in r.json()["collections"]]
    assert sorted(names) == ["Alice set", "Bob set"]
    assert all(c["created_by"] and c["created_at"] for c in r.json()["collections"])
