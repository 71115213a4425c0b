"""
Client Event Bridge — the cross-frame protocol between a proxied page and its host.

Messages are plain strings posted with a wildcard target origin:
    "iframe:loaded"      frame finished loading
    "error:<message>"    unhandled script error inside the frame
    "navigate:<url>"     the page is about to navigate
The browser half lives in static/bridge.js; this module renders it and owns
the message vocabulary so both halves stay in sync.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel

from backend.config import PROXY_ENDPOINT
from backend.services.url_normalizer import PROXY_PREFIX

LOADED_MESSAGE = "iframe:loaded"
ERROR_PREFIX = "error:"
NAVIGATE_PREFIX = "navigate:"

NAVIGATION_HOOK = "__proxyNotifyNavigate"

_STATIC_DIR = Path(__file__).resolve().parents[1] / "static"


class BridgeEvent(BaseModel):
    """One bridge message: Loaded, Error(message) or Navigate(url)."""
    model_config = {"frozen": True}

    kind: Literal["loaded", "error", "navigate"]
    payload: str = ""

    @classmethod
    def loaded(cls) -> "BridgeEvent":
        return cls(kind="loaded")

    @classmethod
    def error(cls, message: str) -> "BridgeEvent":
        return cls(kind="error", payload=message)

    @classmethod
    def navigate(cls, url: str) -> "BridgeEvent":
        return cls(kind="navigate", payload=url)

    def encode(self) -> str:
        if self.kind == "loaded":
            return LOADED_MESSAGE
        if self.kind == "error":
            return ERROR_PREFIX + self.payload
        return NAVIGATE_PREFIX + self.payload

    @classmethod
    def decode(cls, message) -> Optional["BridgeEvent"]:
        """Parses a posted message; anything that is not a bridge message yields None."""
        if not isinstance(message, str):
            return None
        # The sentinel is matched exactly, so it cannot collide with the prefixes
        if message == LOADED_MESSAGE:
            return cls.loaded()
        if message.startswith(ERROR_PREFIX):
            return cls.error(message[len(ERROR_PREFIX):])
        if message.startswith(NAVIGATE_PREFIX):
            return cls.navigate(message[len(NAVIGATE_PREFIX):])
        return None


def _js_string(value: str) -> str:
    # JSON is valid JS; "</" must not terminate the surrounding <script> element
    return json.dumps(value).replace("</", "<\\/")


@lru_cache(maxsize=1)
def _bridge_template() -> str:
    return (_STATIC_DIR / "bridge.js").read_text(encoding="utf-8")


def render_bridge_script(base_url: str) -> str:
    """The <script> element injected before </head>."""
    replacements = {
        "__PROXY_PATH__": _js_string(PROXY_ENDPOINT),
        "__PROXY_PREFIX__": _js_string(PROXY_PREFIX),
        "__BASE_URL__": _js_string(base_url),
        "__LOADED_MESSAGE__": _js_string(LOADED_MESSAGE),
        "__ERROR_PREFIX__": _js_string(ERROR_PREFIX),
        "__NAVIGATE_PREFIX__": _js_string(NAVIGATE_PREFIX),
    }
    script = _bridge_template()
    for placeholder, value in replacements.items():
        script = script.replace(placeholder, value)
    return f"<script>{script}</script>"


def render_navigation_prelude(base_url: str) -> str:
    """
    Tiny script placed right after <head> so that patched `window.location`
    expressions in early inline scripts already have their hook.
    """
    message = _js_string(NAVIGATE_PREFIX + base_url)
    return (
        "<script>"
        f"window.{NAVIGATION_HOOK}=function(){{"
        f"if(window.parent&&window.parent!==window){{window.parent.postMessage({message},'*');}}"
        "};"
        "</script>"
    )


def location_patch_expression() -> str:
    """Drop-in replacement for `window.location` that notifies the host first."""
    return f"(window.{NAVIGATION_HOOK}&&window.{NAVIGATION_HOOK}(),window).location"
