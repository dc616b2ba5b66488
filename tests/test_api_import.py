from conftest import auth


def json_items(*questions):
    return [{"question": q, "correct_answer": f"Answer to {q}", "incorrect_answers": ["No", "Maybe"], "explanation": ""}
            for q in questions]


def test_import_private_items_with_subcategory(client, cache):
    body = {"category": "History", "subcategory": "Rome", "visibility": "private",
            "items": json_items("Who founded Rome?", "When did Rome fall?", "Who founded Rome?")}
    r = client.post("/import/json", json=body, headers=auth("alice"))
    assert r.status_code == 200, r.text
    assert r.json() == {"imported_count": 2, "duplicate_count": 1, "duplicate_questions": ["Who founded Rome?"]}
    assert cache.store.get("categories:version") == 1

    items = client.get("/items", params={"category": "history", "is_private": True}, headers=auth("alice")).json()["items"]
    assert len(items) == 2
    assert all(i["is_private"] and [k["name"] for k in i["keywords"]] == ["rome"] for i in items)

    again = client.post("/import/json", json=body, headers=auth("alice")).json()
    assert again["imported_count"] == 0
    assert again["duplicate_count"] == 3


def test_global_import_requires_admin(client):
    body = {"category": "History", "visibility": "global", "items": json_items("Who built the pyramids?")}
    r = client.post("/import/json", json=body, headers=auth("alice"))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "Category.AdminOnly"

    r = client.post("/import/json", json=body, headers=auth("admin", admin=True))
    assert r.json()["imported_count"] == 1
    assert client.get("/items", params={"category": "History"}).json()["total_count"] == 1


def test_import_validation(client):
    headers = auth("alice")
    assert client.post("/import/json", json={"category": "History", "visibility": "private", "items": []},
                       headers=headers).status_code == 422
    assert client.post("/import/json", json={"category": "History", "visibility": "public", "items": json_items("Q?")},
                       headers=headers).status_code == 422
    five_wrong = [{"question": "Q?", "correct_answer": "A", "incorrect_answers": ["1", "2", "3", "4", "5"]}]
    assert client.post("/import/json", json={"category": "History", "visibility": "private", "items": five_wrong},
                       headers=headers).status_code == 422
    assert client.post("/import/json", json={"category": "History", "visibility": "private", "items": json_items("Q?")}).status_code == 401


def test_import_item_limit(client):
    body = {"category": "History", "visibility": "global", "items": json_items(*[f"Question {i}?" for i in range(1001)])}
    r = client.post("/import/json", json=body, headers=auth("admin", admin=True))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "Items.TooMany"
