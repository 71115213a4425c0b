import sqlite3

from fastapi.testclient import TestClient

from backend.main import app
from backend.routers import recent_searches


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "hide-my-search-backend"}


def test_root_serves_frame_host(client):
    response = client.get("/")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "iframe:loaded" in response.text
    assert 'sandbox="allow-same-origin allow-scripts allow-popups allow-forms"' in response.text
    assert "/api/proxy?url=" in response.text


def test_unexpected_errors_are_reported_as_json(monkeypatch):
    def broken_list(limit):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(recent_searches, "list_recent", broken_list)
    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.get("/api/recent-searches")

    assert response.status_code == 500
    assert response.json() == {"message": "Internal server error", "error": "disk I/O error"}
