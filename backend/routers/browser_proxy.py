"""
Browser Proxy Router — fetches external pages for the sandboxed browser frame.
Relays a safe subset of upstream headers, replaces framing/CSP/CORS headers with
permissive ones, rewrites HTML so sub-resources come back through this endpoint
and injects the event bridge script.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request

from backend.services.errors import InvalidUrl
from backend.services.response_relay import preflight, relay
from backend.services.upstream_fetcher import (
    build_proxy_request,
    fetch_unless_disconnected,
    fetch_upstream,
    get_http_client,
)
from backend.services.url_normalizer import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["browser_proxy"])

PROXIED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD"]


@router.api_route("/proxy", methods=PROXIED_METHODS)
async def proxy_browser_page(
    request: Request,
    url: Optional[str] = Query(None, description="URL to proxy"),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    if not url:
        raise InvalidUrl("URL parameter is required")
    target_url = normalize_url(url)

    proxy_request = await build_proxy_request(request, target_url)
    upstream = await fetch_unless_disconnected(request, fetch_upstream(client, proxy_request))
    return relay(upstream)


@router.options("/proxy")
async def proxy_preflight():
    return preflight()
