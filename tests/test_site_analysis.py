import httpx

from backend.services.site_analysis import connection_info, script_sources

PAGE = """<html><head>
<script async src="https://www.googletagmanager.com/gtag/js?id=G-1"></script>
<script src='https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js'></script>
<script src="/static/app.js"></script>
</head><body></body></html>"""


def test_script_sources_are_extracted():
    assert script_sources(PAGE) == [
        "https://www.googletagmanager.com/gtag/js?id=G-1",
        "https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js",
        "/static/app.js",
    ]


def test_connection_info():
    info = connection_info("https://example.com/a/b?q=1")
    assert info == {
        "protocol": "https:",
        "is_secure": True,
        "host": "example.com",
        "pathname": "/a/b",
        "has_query": True,
        "is_localhost": False,
    }


def test_analyze_reports_trackers_ads_and_headers(client, upstream):
    upstream.handler = lambda request: httpx.Response(
        200,
        html=PAGE,
        headers={"strict-transport-security": "max-age=63072000", "x-frame-options": "DENY"},
    )

    response = client.get("/api/analyze-site", params={"url": "example.com"})

    assert response.status_code == 200
    report = response.json()
    assert report["url"] == "https://example.com"
    assert report["is_secure"] is True
    assert report["trackers"] == ["googletagmanager.com"]
    assert report["ads"] == ["googlesyndication.com"]
    assert report["tracker_count"] == 1
    assert report["ad_count"] == 1
    assert report["security_headers"]["strict-transport-security"] == "max-age=63072000"
    assert report["security_headers"]["x-frame-options"] == "DENY"
    assert report["security_headers"]["content-security-policy"] is None


def test_upstream_error_status_is_passed_through(client, upstream):
    upstream.handler = lambda request: httpx.Response(404, text="nope")

    response = client.get("/api/analyze-site", params={"url": "https://example.com/gone"})

    assert response.status_code == 404
    assert response.json() == {"message": "Upstream responded with status 404", "status": 404}


def test_missing_url_is_rejected(client, upstream):
    response = client.get("/api/analyze-site")

    assert response.status_code == 400
    assert upstream.requests == []


def test_non_html_pages_have_no_scripts(client, upstream):
    upstream.handler = lambda request: httpx.Response(200, json={"src": "googletagmanager.com"})

    report = client.get("/api/analyze-site", params={"url": "https://api.example.com/"}).json()

    assert report["trackers"] == []
    assert report["ads"] == []
