"""
HTML Rewriter — routes every resource reference of a proxied page back through /api/proxy.

Passes run in a fixed order over the raw markup:
  1. absolute URLs in URL-bearing attributes
  2. srcset candidate lists
  3. root-relative URLs in URL-bearing attributes
  4. CSS url(...) in <style> blocks and inline style attributes
  5. window.location references (host gets a navigate: notification)
  6. <base href> + navigation hook right after <head>
  7. event bridge script right before </head>

Later passes never touch values already pointing at the proxy endpoint, so
running the rewriter twice does not double-encode anything. Text a pattern
does not recognise is left untouched.
"""

import html
import logging
import re
from typing import Callable, Optional

from pydantic import BaseModel

from backend.services.event_bridge import (
    location_patch_expression,
    render_bridge_script,
    render_navigation_prelude,
)
from backend.services.url_normalizer import (
    has_http_scheme,
    is_protocol_relative,
    is_proxied,
    is_root_relative,
    proxy_url,
    resolve_protocol_relative,
    resolve_root_relative,
)

logger = logging.getLogger(__name__)

URL_ATTRIBUTES = (
    "href", "src", "action", "data-src", "srcset", "data-srcset", "poster",
    "background", "formaction", "cite", "longdesc", "usemap",
)
SRCSET_ATTRIBUTES = ("srcset", "data-srcset")


class RewriteContext(BaseModel):
    """Page being rewritten; root-relative references resolve against its origin."""
    model_config = {"frozen": True}

    base_url: str


# ─── Patterns ───

def _attribute_pattern(names, value_prefix: str = "") -> re.Pattern:
    # Longest names first so "data-srcset" wins over "src"; the lookbehind keeps
    # "src" from matching the tail of "data-src"
    alternation = "|".join(re.escape(n) for n in sorted(names, key=len, reverse=True))
    return re.compile(
        rf"(?P<lead>(?<![\w-])(?P<name>{alternation})\s*=\s*)"
        rf"(?:\"(?P<dq>{value_prefix}[^\"]*)\"|'(?P<sq>{value_prefix}[^']*)')",
        re.IGNORECASE,
    )


_ABSOLUTE_ATTR_RE = _attribute_pattern(URL_ATTRIBUTES, r"(?:https?:)?//")
_ROOT_RELATIVE_ATTR_RE = _attribute_pattern(URL_ATTRIBUTES, r"/(?!/)")
_SRCSET_ATTR_RE = _attribute_pattern(SRCSET_ATTRIBUTES)
_STYLE_ATTR_RE = _attribute_pattern(("style",))

_STYLE_BLOCK_RE = re.compile(r"(<style\b[^>]*>)(.*?)(</style\s*>)", re.IGNORECASE | re.DOTALL)
# Quotes may be literal or entity-encoded when the url() sits inside an attribute
_CSS_URL_RE = re.compile(
    r"url\(\s*(?P<quote>\"|'|&quot;|&#34;|&#39;|)(?P<url>[^)\"']*?)\s*(?P=quote)\s*\)",
    re.IGNORECASE,
)
_WINDOW_LOCATION_RE = re.compile(r"(?<![\w$.])window\.location\b")
_HEAD_OPEN_RE = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.IGNORECASE)
# Only terminated references; browsers keep "&copy=1" in attribute values literal
_CHAR_REF_RE = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")


# ─── URL mapping ───

def rewrite_reference(value: str, context: RewriteContext) -> Optional[str]:
    """
    Maps one reference to its proxy URL, or None when it should stay as is
    (relative paths, data: URIs, fragments, already proxied targets).
    """
    url = _CHAR_REF_RE.sub(lambda m: html.unescape(m.group(0)), value.strip())
    if not url or is_proxied(url):
        return None
    if has_http_scheme(url):
        return proxy_url(url)
    if is_protocol_relative(url):
        return proxy_url(resolve_protocol_relative(context.base_url, url))
    if is_root_relative(url):
        return proxy_url(resolve_root_relative(context.base_url, url))
    return None


def _sub_attribute(pattern: re.Pattern, text: str, rewrite: Callable[[str, str], Optional[str]]) -> tuple[str, int]:
    """Applies `rewrite(name, value)` to every attribute `pattern` matches, keeping quotes."""
    def _replace(match: re.Match) -> str:
        quote = '"' if match.group("dq") is not None else "'"
        value = match.group("dq") if match.group("dq") is not None else match.group("sq")
        rewritten = rewrite(match.group("name").lower(), value)
        if rewritten is None:
            return match.group(0)
        return f"{match.group('lead')}{quote}{rewritten}{quote}"

    return pattern.subn(_replace, text)


# ─── srcset ───

def parse_srcset(value: str) -> list[tuple[str, str]]:
    """
    Splits a srcset value into (url, descriptor) candidates following the HTML
    candidate-string rules: URLs may contain commas, a trailing comma ends one.
    """
    candidates = []
    pos, length = 0, len(value)
    while pos < length:
        while pos < length and (value[pos].isspace() or value[pos] == ","):
            pos += 1
        if pos >= length:
            break
        start = pos
        while pos < length and not value[pos].isspace():
            pos += 1
        url = value[start:pos]
        if url.endswith(","):
            candidates.append((url.rstrip(","), ""))
            continue
        start = pos
        depth = 0
        while pos < length and (value[pos] != "," or depth):
            if value[pos] == "(":
                depth += 1
            elif value[pos] == ")":
                depth = max(depth - 1, 0)
            pos += 1
        candidates.append((url, value[start:pos].strip()))
    return candidates


def rewrite_srcset(value: str, context: RewriteContext) -> Optional[str]:
    candidates = parse_srcset(value)
    if not candidates:
        return None
    changed = False
    parts = []
    for url, descriptor in candidates:
        rewritten = rewrite_reference(url, context)
        if rewritten is not None:
            changed = True
            url = rewritten
        parts.append(f"{url} {descriptor}" if descriptor else url)
    return ", ".join(parts) if changed else None


# ─── CSS ───

def rewrite_css(css: str, context: RewriteContext) -> tuple[str, int]:
    def _replace(match: re.Match) -> str:
        rewritten = rewrite_reference(match.group("url"), context)
        if rewritten is None:
            return match.group(0)
        quote = match.group("quote")
        return f"url({quote}{rewritten}{quote})"

    return _CSS_URL_RE.subn(_replace, css)


# ─── Passes ───

def _rewrite_url_attributes(pattern: re.Pattern, text: str, context: RewriteContext) -> tuple[str, int]:
    def _rewrite(name: str, value: str) -> Optional[str]:
        # srcset values are candidate lists, handled by their own pass
        if name in SRCSET_ATTRIBUTES:
            return None
        return rewrite_reference(value, context)

    return _sub_attribute(pattern, text, _rewrite)


def _rewrite_srcset_attributes(text: str, context: RewriteContext) -> tuple[str, int]:
    return _sub_attribute(_SRCSET_ATTR_RE, text, lambda name, value: rewrite_srcset(value, context))


def _rewrite_css_urls(text: str, context: RewriteContext) -> tuple[str, int]:
    count = 0

    def _style_block(match: re.Match) -> str:
        nonlocal count
        css, n = rewrite_css(match.group(2), context)
        count += n
        return match.group(1) + css + match.group(3)

    text = _STYLE_BLOCK_RE.sub(_style_block, text)

    def _inline_style(name: str, value: str) -> Optional[str]:
        nonlocal count
        css, n = rewrite_css(value, context)
        count += n
        return css if n else None

    text, _ = _sub_attribute(_STYLE_ATTR_RE, text, _inline_style)
    return text, count


def _patch_window_location(text: str) -> tuple[str, int]:
    return _WINDOW_LOCATION_RE.subn(location_patch_expression(), text)


def _inject_base(text: str, context: RewriteContext) -> str:
    match = _HEAD_OPEN_RE.search(text)
    if match is None:
        return text
    base_tag = f'<base href="{html.escape(context.base_url, quote=True)}">'
    injection = base_tag + render_navigation_prelude(context.base_url)
    return text[:match.end()] + injection + text[match.end():]


def _inject_bridge(text: str, context: RewriteContext) -> str:
    match = _HEAD_CLOSE_RE.search(text)
    if match is None:
        return text
    return text[:match.start()] + render_bridge_script(context.base_url) + text[match.start():]


def rewrite_html(text: str, context: RewriteContext) -> str:
    text, absolute = _rewrite_url_attributes(_ABSOLUTE_ATTR_RE, text, context)
    text, srcsets = _rewrite_srcset_attributes(text, context)
    text, relative = _rewrite_url_attributes(_ROOT_RELATIVE_ATTR_RE, text, context)
    text, css = _rewrite_css_urls(text, context)
    text, locations = _patch_window_location(text)
    text = _inject_base(text, context)
    text = _inject_bridge(text, context)
    logger.debug(
        f"Rewrote {context.base_url}: absolute={absolute} srcset={srcsets} "
        f"root_relative={relative} css={css} location={locations}"
    )
    return text
