"""
Runtime configuration for the proxy backend.
Values come from the environment, optionally seeded from a `.env` file at the repo root.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

_env_path = Path(__file__).resolve().parents[1] / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


PROXY_ENDPOINT = "/api/proxy"
FAVICON_SERVICE = "https://www.google.com/s2/favicons?domain="

# Outbound fetch is bounded so a stalled upstream cannot pin a request forever
UPSTREAM_TIMEOUT = float(os.getenv("PROXY_UPSTREAM_TIMEOUT", "20.0"))
DISCONNECT_POLL_INTERVAL = float(os.getenv("PROXY_DISCONNECT_POLL", "0.5"))

DB_PATH = os.getenv(
    "PROXY_DB_PATH",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "recent_searches.db"),
)
RECENT_SEARCHES_LIMIT = int(os.getenv("PROXY_RECENT_LIMIT", "10"))

LOG_LEVEL = os.getenv("PROXY_LOG_LEVEL", "INFO").upper()
