"""
Site Analysis Router — reports protocol and security-header facts about a target site.
Non-2xx upstream statuses are passed through to the caller.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from backend.services.errors import InvalidUrl
from backend.services.site_analysis import analyze
from backend.services.upstream_fetcher import (
    ProxyRequest,
    fetch_unless_disconnected,
    fetch_upstream,
    get_http_client,
)
from backend.services.url_normalizer import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["site_analysis"])


@router.get("/analyze-site")
async def analyze_site(
    request: Request,
    url: Optional[str] = Query(None, description="Site to analyze"),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    if not url:
        raise InvalidUrl("URL parameter is required")
    target_url = normalize_url(url)

    upstream = await fetch_unless_disconnected(
        request, fetch_upstream(client, ProxyRequest(url=target_url))
    )
    if not 200 <= upstream.status_code < 300:
        logger.warning(f"Analysis of {target_url} got upstream status {upstream.status_code}")
        return JSONResponse(
            status_code=upstream.status_code,
            content={
                "message": f"Upstream responded with status {upstream.status_code}",
                "status": upstream.status_code,
            },
        )
    return analyze(target_url, upstream)
