"""
Recent Searches API — the list of sites recently opened in the proxy frame.
Upserts by URL so revisiting a site moves it to the top instead of duplicating it.
"""

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend import config
from backend.database.recent_searches_db import delete_recent, list_recent, upsert_recent
from backend.services.errors import InvalidUrl
from backend.services.url_normalizer import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recent-searches", tags=["recent_searches"])

_ID_RE = re.compile(r"[0-9]+")
SQLITE_MAX_INTEGER = 2**63 - 1


class RecentSearchCreate(BaseModel):
    url: Optional[str] = Field(None, description="Visited address, scheme optional")
    title: Optional[str] = Field(None, description="Defaults to the hostname")
    favicon: Optional[str] = Field(None, description="Defaults to the favicon service for the domain")


def default_favicon(hostname: str) -> str:
    return f"{config.FAVICON_SERVICE}{hostname}"


@router.get("")
async def get_recent_searches() -> List[Dict[str, Any]]:
    return list_recent(config.RECENT_SEARCHES_LIMIT)


@router.post("")
async def record_recent_search(payload: Optional[RecentSearchCreate] = None):
    if payload is None or not payload.url:
        raise InvalidUrl("URL is required")
    url = normalize_url(payload.url)
    hostname = urlsplit(url).hostname

    record, created = upsert_recent(
        url,
        title=payload.title or hostname,
        favicon=payload.favicon or default_favicon(hostname),
    )
    logger.info(f"{'Recorded' if created else 'Revisited'} {url}")
    return JSONResponse(status_code=201 if created else 200, content=record)


@router.delete("/{search_id}")
async def remove_recent_search(search_id: str):
    if not _ID_RE.fullmatch(search_id):
        return JSONResponse(status_code=400, content={"message": "Invalid ID"})
    # Ids past SQLite's INTEGER range cannot be stored, so they cannot exist
    if int(search_id) > SQLITE_MAX_INTEGER or not delete_recent(int(search_id)):
        return JSONResponse(status_code=404, content={"message": "Recent search not found"})
    return {"success": True, "deleted": int(search_id)}
