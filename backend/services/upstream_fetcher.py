"""
Upstream Fetcher — performs the outbound request on behalf of the proxied frame.

The request is dressed up as a regular desktop browser navigation so that basic
bot protections let it through. Cookies, Authorization and request bodies from
the inbound request are forwarded verbatim. Redirects are followed by httpx and
the full body is buffered before it is handed to the relay.
"""

import asyncio
import codecs
import logging
from typing import Awaitable, Optional

import httpx
from fastapi import Request
from pydantic import BaseModel, Field

from backend.config import DISCONNECT_POLL_INTERVAL, UPSTREAM_TIMEOUT
from backend.services.errors import ClientDisconnected, FetchFailed, InvalidUrl

logger = logging.getLogger(__name__)

BODYLESS_METHODS = {"GET", "HEAD"}
FORWARDED_HEADERS = ("cookie", "authorization")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


# ─── Models ───

class ProxyRequest(BaseModel):
    """One outbound request, built once per inbound call and never mutated."""
    model_config = {"frozen": True}

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Optional[bytes] = None


class UpstreamResponse(BaseModel):
    """Fully buffered upstream response, after redirects."""
    model_config = {"arbitrary_types_allowed": True}

    url: str
    status_code: int
    headers: httpx.Headers
    content: bytes
    encoding: Optional[str] = None

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def charset(self) -> str:
        encoding = self.encoding or "utf-8"
        try:
            codecs.lookup(encoding)
        except LookupError:
            logger.warning(f"Unknown charset {encoding!r} from {self.url}, falling back to utf-8")
            return "utf-8"
        return encoding

    @property
    def text(self) -> str:
        return self.content.decode(self.charset, errors="replace")


# ─── Request building ───

def browser_headers(target_url: str) -> dict[str, str]:
    """Header set of a top-level Chrome navigation issued from a sandboxed frame."""
    return {
        "User-Agent": USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
        # Only encodings httpx can always decode; the relay hands out decoded bytes
        "Accept-Encoding": "gzip, deflate",
        "Accept-Language": "en-US,en;q=0.9",
        "Sec-Ch-Ua": '"Chromium";v="124", "Google Chrome";v="124", "Not-A.Brand";v="99"',
        "Sec-Ch-Ua-Mobile": "?0",
        "Sec-Ch-Ua-Platform": '"Windows"',
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
        "Referer": target_url,
        # Sandboxed iframes report an opaque origin
        "Origin": "null",
    }


async def build_proxy_request(request: Request, target_url: str) -> ProxyRequest:
    method = request.method.upper()
    # Starlette yields lower-cased names; later duplicates overwrite earlier ones
    headers = {name.lower(): value for name, value in request.headers.items()}
    body = None
    if method not in BODYLESS_METHODS:
        body = await request.body()
    return ProxyRequest(url=target_url, method=method, headers=headers, body=body)


# ─── Fetching ───

async def get_http_client():
    """FastAPI dependency: one client per inbound request, closed afterwards."""
    async with httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT, follow_redirects=True) as client:
        yield client


async def fetch_upstream(client: httpx.AsyncClient, proxy_request: ProxyRequest) -> UpstreamResponse:
    headers = browser_headers(proxy_request.url)
    for name in FORWARDED_HEADERS:
        if name in proxy_request.headers:
            headers[name.title()] = proxy_request.headers[name]

    content = None
    if proxy_request.method not in BODYLESS_METHODS and proxy_request.body is not None:
        content = proxy_request.body
        if "content-type" in proxy_request.headers:
            headers["Content-Type"] = proxy_request.headers["content-type"]

    logger.debug(f"→ {proxy_request.method} {proxy_request.url}")
    try:
        response = await client.request(
            proxy_request.method,
            proxy_request.url,
            headers=headers,
            content=content,
        )
    except httpx.InvalidURL as exc:
        # Passed normalization but httpx still refuses it (e.g. control characters)
        logger.warning(f"Upstream URL rejected by client: {proxy_request.url!r}: {exc}")
        raise InvalidUrl("Invalid URL provided", exc) from exc
    except (httpx.HTTPError, OSError) as exc:
        logger.error(f"Upstream fetch failed for {proxy_request.url}: {exc!r}")
        raise FetchFailed(exc) from exc

    logger.info(f"← {response.status_code} {response.url} ({len(response.content)} bytes)")
    return UpstreamResponse(
        url=str(response.url),
        status_code=response.status_code,
        headers=response.headers,
        content=response.content,
        encoding=response.charset_encoding,
    )


async def fetch_unless_disconnected(
    request: Request,
    fetch: Awaitable[UpstreamResponse],
    poll_interval: float = DISCONNECT_POLL_INTERVAL,
) -> UpstreamResponse:
    """
    Awaits `fetch`, cancelling it if the inbound client disconnects first.
    Raises ClientDisconnected in that case.
    """
    task = asyncio.ensure_future(fetch)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info(f"Client disconnected, aborting upstream fetch for {request.url}")
                raise ClientDisconnected("Client disconnected before the upstream responded")
    finally:
        if not task.done():
            task.cancel()
