"""
Response Relay — turns a buffered upstream response into the response sent to the frame.

Only an allow-list of upstream headers survives; everything else (restrictive CSP,
X-Frame-Options, HSTS, ...) is dropped and replaced by permissive framing, CORS
and caching headers. HTML bodies go through the rewriter, anything else is
relayed byte-for-byte.
"""

import logging

from fastapi.responses import Response
from httpx._decoders import SUPPORTED_DECODERS

from backend.services.html_rewriter import RewriteContext, rewrite_html
from backend.services.upstream_fetcher import UpstreamResponse

logger = logging.getLogger(__name__)

ALLOWED_RESPONSE_HEADERS = {
    "content-type",
    "content-length",
    "date",
    "connection",
    "last-modified",
    "etag",
    "vary",
    "content-encoding",
    "content-language",
    "expires",
    "pragma",
    "cache-control",
    "accept-ranges",
    "content-range",
    "set-cookie",
}

# httpx decodes exactly these (br / zstd only when their codec packages are installed),
# so a buffered body carrying them is no longer encoded
DECODED_ENCODINGS = frozenset(SUPPORTED_DECODERS)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS,HEAD,PATCH",
    "Access-Control-Allow-Headers": (
        "Origin, X-Requested-With, Content-Type, Accept, Authorization, Cookie, "
        "Range, Cache-Control, If-None-Match, If-Modified-Since"
    ),
    "Access-Control-Allow-Credentials": "true",
}

CONTENT_SECURITY_POLICY = (
    "default-src * 'unsafe-inline' 'unsafe-eval' data: blob:; "
    "script-src * 'unsafe-inline' 'unsafe-eval' data: blob:; "
    "style-src * 'unsafe-inline' data: blob:; "
    "img-src * data: blob:; "
    "media-src * data: blob:; "
    "font-src * data: blob:; "
    "connect-src * data: blob:; "
    "frame-src * data: blob:"
)

SECURITY_OVERRIDES = {
    "X-Frame-Options": "ALLOWALL",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Cache-Control": "no-cache, no-store, must-revalidate",
}


def cors_headers() -> dict[str, str]:
    return dict(CORS_HEADERS)


def security_overrides() -> dict[str, str]:
    return dict(SECURITY_OVERRIDES)


def _still_encoded(content_encoding: str) -> bool:
    encodings = [e.strip().lower() for e in content_encoding.split(",") if e.strip()]
    return any(e not in DECODED_ENCODINGS for e in encodings)


def _copy_allowed_headers(upstream: UpstreamResponse, response: Response) -> None:
    dropped = []
    for name, value in upstream.headers.multi_items():
        key = name.lower()
        if key not in ALLOWED_RESPONSE_HEADERS:
            dropped.append(key)
            continue
        # Starlette computes content-length from the body actually relayed
        if key == "content-length":
            continue
        if key == "content-encoding" and not _still_encoded(value):
            continue
        if key == "set-cookie":
            response.headers.append(name, value)
        else:
            response.headers[name] = value
    if dropped:
        logger.debug(f"Dropped upstream headers: {', '.join(sorted(set(dropped)))}")


def is_html(content_type: str) -> bool:
    return "text/html" in content_type.lower()


def relay_body(upstream: UpstreamResponse) -> bytes:
    if not is_html(upstream.content_type):
        return upstream.content
    rewritten = rewrite_html(upstream.text, RewriteContext(base_url=upstream.url))
    return rewritten.encode(upstream.charset, errors="xmlcharrefreplace")


def relay(upstream: UpstreamResponse) -> Response:
    logger.debug(f"Relaying {upstream.status_code} {upstream.url} as {upstream.content_type or 'unknown type'}")
    response = Response(content=relay_body(upstream), status_code=upstream.status_code)
    _copy_allowed_headers(upstream, response)
    for name, value in {**cors_headers(), **security_overrides()}.items():
        response.headers[name] = value
    return response


def preflight() -> Response:
    return Response(status_code=200, headers=cors_headers())
