import httpx
import pytest
from fastapi.testclient import TestClient

from backend import config
from backend.database import recent_searches_db
from backend.main import app
from backend.services.upstream_fetcher import get_http_client


class StubUpstream:
    """Records outbound requests and answers them with `handler`."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler = lambda request: httpx.Response(200, html="<html><head></head><body>ok</body></html>")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "recent_searches.db"))
    recent_searches_db.init_db()
    yield


@pytest.fixture
def upstream():
    stub = StubUpstream()

    async def _client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(stub), follow_redirects=True) as client:
            yield client

    app.dependency_overrides[get_http_client] = _client
    yield stub
    app.dependency_overrides.pop(get_http_client, None)


@pytest.fixture
def client(upstream):
    with TestClient(app) as test_client:
        yield test_client
