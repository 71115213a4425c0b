"""
URL helpers shared by the proxy pipeline: normalization of user-typed addresses,
origin resolution for root-relative references and proxy endpoint encoding.
"""

import re
from urllib.parse import quote, urlsplit

from backend.config import PROXY_ENDPOINT
from backend.services.errors import InvalidUrl

PROXY_PREFIX = f"{PROXY_ENDPOINT}?url="

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_BAD_HOST_CHARS_RE = re.compile(r"[\s<>\"'`{}|\\^]")


def has_http_scheme(url: str) -> bool:
    return bool(_SCHEME_RE.match(url))


def normalize_url(raw: str) -> str:
    """
    Turns a user-supplied address into an absolute http(s) URL.
    Missing schemes default to https://; anything that still does not parse
    as an absolute URL with a host raises InvalidUrl.
    """
    if raw is None or not raw.strip():
        raise InvalidUrl("URL parameter is required")

    url = raw.strip()
    if not has_http_scheme(url):
        url = "https://" + url

    try:
        parts = urlsplit(url)
        parts.port  # raises ValueError on out-of-range ports
    except ValueError as exc:
        raise InvalidUrl("Invalid URL provided", exc) from exc

    if not parts.hostname or _BAD_HOST_CHARS_RE.search(parts.netloc):
        raise InvalidUrl("Invalid URL provided")
    return url


def is_root_relative(url: str) -> bool:
    """`/path` but not the protocol-relative `//host/path`."""
    return url.startswith("/") and not url.startswith("//")


def is_protocol_relative(url: str) -> bool:
    return url.startswith("//")


def is_proxied(url: str) -> bool:
    return url.startswith(PROXY_PREFIX)


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def resolve_root_relative(base_url: str, path: str) -> str:
    # Plain concatenation keeps the original path byte-for-byte
    return origin_of(base_url) + path


def resolve_protocol_relative(base_url: str, url: str) -> str:
    return f"{urlsplit(base_url).scheme}:{url}"


def proxy_url(url: str) -> str:
    """Builds the proxy endpoint URL for `url`, percent-encoding every reserved character."""
    return PROXY_PREFIX + quote(url, safe="")
