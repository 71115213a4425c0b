"""
Site analysis — connection facts, security header snapshot and known tracker / ad
scripts for a page fetched through the upstream fetcher.
"""

import re
from typing import Optional
from urllib.parse import urlsplit

from backend.services.upstream_fetcher import UpstreamResponse

SECURITY_HEADERS = (
    "strict-transport-security",
    "content-security-policy",
    "x-frame-options",
    "x-content-type-options",
    "referrer-policy",
    "permissions-policy",
    "cross-origin-opener-policy",
)

TRACKER_DOMAINS = (
    "google-analytics.com",
    "googletagmanager.com",
    "facebook.net",
    "doubleclick.net",
    "hotjar.com",
    "clicktale.net",
    "quantserve.com",
    "scorecardresearch.com",
)

AD_DOMAINS = (
    "googleadservices.com",
    "googlesyndication.com",
    "adnxs.com",
    "rubiconproject.com",
    "advertising.com",
    "adroll.com",
    "moatads.com",
    "amazon-adsystem.com",
)

_SCRIPT_SRC_RE = re.compile(r"<script\b[^>]*?\bsrc\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


def connection_info(url: str) -> dict:
    parts = urlsplit(url)
    return {
        "protocol": f"{parts.scheme}:",
        "is_secure": parts.scheme == "https",
        "host": parts.netloc,
        "pathname": parts.path or "/",
        "has_query": bool(parts.query),
        "is_localhost": parts.hostname in _LOCAL_HOSTS,
    }


def security_header_snapshot(upstream: UpstreamResponse) -> dict[str, Optional[str]]:
    return {name: upstream.headers.get(name) for name in SECURITY_HEADERS}


def script_sources(html: str) -> list[str]:
    return _SCRIPT_SRC_RE.findall(html)


def _matching_domains(sources: list[str], domains) -> list[str]:
    return [d for d in domains if any(d in src for src in sources)]


def analyze(requested_url: str, upstream: UpstreamResponse) -> dict:
    sources = []
    if "text/html" in upstream.content_type.lower():
        sources = script_sources(upstream.text)
    trackers = _matching_domains(sources, TRACKER_DOMAINS)
    ads = _matching_domains(sources, AD_DOMAINS)
    return {
        "url": requested_url,
        "final_url": upstream.url,
        "status": upstream.status_code,
        **connection_info(upstream.url),
        "security_headers": security_header_snapshot(upstream),
        "trackers": trackers,
        "ads": ads,
        "tracker_count": len(trackers),
        "ad_count": len(ads),
    }
