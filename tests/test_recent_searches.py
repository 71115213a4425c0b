from backend import config


def test_recording_a_visit_twice_updates_instead_of_duplicating(client):
    first = client.post("/api/recent-searches", json={"url": "foo.com"})

    assert first.status_code == 201
    record = first.json()
    assert record["url"] == "https://foo.com"
    assert record["title"] == "foo.com"
    assert record["favicon"] == config.FAVICON_SERVICE + "foo.com"

    second = client.post("/api/recent-searches", json={"url": "foo.com"})

    assert second.status_code == 200
    assert second.json()["id"] == record["id"]
    assert second.json()["visited_at"] >= record["visited_at"]
    assert len(client.get("/api/recent-searches").json()) == 1


def test_explicit_title_and_favicon_are_kept(client):
    response = client.post(
        "/api/recent-searches",
        json={"url": "https://news.example.org/today", "title": "News", "favicon": "https://x/icon.png"},
    )

    assert response.status_code == 201
    assert response.json()["title"] == "News"
    assert response.json()["favicon"] == "https://x/icon.png"


def test_list_is_newest_first_and_limited(client, monkeypatch):
    monkeypatch.setattr(config, "RECENT_SEARCHES_LIMIT", 3)
    for n in range(5):
        client.post("/api/recent-searches", json={"url": f"site{n}.com"})
    client.post("/api/recent-searches", json={"url": "site1.com"})

    urls = [r["url"] for r in client.get("/api/recent-searches").json()]

    assert urls == ["https://site1.com", "https://site4.com", "https://site3.com"]


def test_default_limit_is_ten(client):
    for n in range(12):
        client.post("/api/recent-searches", json={"url": f"site{n}.com"})

    assert len(client.get("/api/recent-searches").json()) == 10


def test_missing_url_is_rejected(client):
    response = client.post("/api/recent-searches", json={})

    assert response.status_code == 400
    assert response.json() == {"message": "URL is required"}


def test_missing_body_is_rejected(client):
    response = client.post("/api/recent-searches")
    assert response.status_code == 400


def test_invalid_url_is_rejected(client):
    response = client.post("/api/recent-searches", json={"url": "http://bad host"})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid URL provided"
    assert client.get("/api/recent-searches").json() == []


def test_delete_flow(client):
    created = client.post("/api/recent-searches", json={"url": "foo.com"}).json()

    assert client.delete("/api/recent-searches/abc").status_code == 400
    assert client.delete("/api/recent-searches/abc").json() == {"message": "Invalid ID"}

    response = client.delete(f"/api/recent-searches/{created['id']}")
    assert response.status_code == 200
    assert response.json() == {"success": True, "deleted": created["id"]}

    again = client.delete(f"/api/recent-searches/{created['id']}")
    assert again.status_code == 404
    assert again.json() == {"message": "Recent search not found"}


def test_delete_rejects_non_ascii_digits(client):
    response = client.delete("/api/recent-searches/²")

    assert response.status_code == 400
    assert response.json() == {"message": "Invalid ID"}


def test_delete_of_id_beyond_storage_range_is_not_found(client):
    response = client.delete("/api/recent-searches/99999999999999999999")

    assert response.status_code == 404
    assert response.json() == {"message": "Recent search not found"}
