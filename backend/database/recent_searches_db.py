"""
Recent searches store — SQLite persistence for the addresses a user opened in the frame.
One row per URL; revisiting a URL bumps its visited_at instead of inserting a duplicate.
"""

import sqlite3
import threading
from datetime import datetime, timezone
from typing import Optional

from backend import config

# Thread-local storage to prevent sqlite3 multi-thread errors
_local = threading.local()
_lock = threading.Lock()


def get_db_connection() -> sqlite3.Connection:
    db_path = config.DB_PATH
    # Reconnect when the configured path changed (tests point it at a temp file)
    if getattr(_local, "path", None) != db_path:
        if getattr(_local, "conn", None) is not None:
            _local.conn.close()
        _local.conn = sqlite3.connect(db_path, timeout=5.0)
        _local.conn.row_factory = sqlite3.Row
        # WAL mode: concurrent reads while writing
        _local.conn.execute("PRAGMA journal_mode=WAL;")
        _local.conn.execute("PRAGMA busy_timeout=5000;")
        _local.path = db_path
    return _local.conn


def init_db():
    """Creates the recent_searches table if it doesn't exist. Called on startup."""
    conn = get_db_connection()
    conn.execute("""
        CREATE TABLE IF NOT EXISTS recent_searches (
            id         INTEGER PRIMARY KEY AUTOINCREMENT,
            url        TEXT NOT NULL UNIQUE,
            title      TEXT,
            favicon    TEXT,
            visited_at TIMESTAMP NOT NULL,
            user_id    INTEGER
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_recent_visited ON recent_searches(visited_at)")
    conn.commit()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_dict(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "url": row["url"],
        "title": row["title"],
        "favicon": row["favicon"],
        "visited_at": row["visited_at"],
        "user_id": row["user_id"],
    }


def get_recent(search_id: int) -> Optional[dict]:
    conn = get_db_connection()
    row = conn.execute("SELECT * FROM recent_searches WHERE id = ?", (search_id,)).fetchone()
    return _row_to_dict(row) if row else None


def list_recent(limit: int = 10) -> list[dict]:
    """Newest first."""
    conn = get_db_connection()
    rows = conn.execute(
        "SELECT * FROM recent_searches ORDER BY visited_at DESC, id DESC LIMIT ?",
        (limit,),
    ).fetchall()
    return [_row_to_dict(r) for r in rows]


def upsert_recent(url: str, title: str, favicon: str, user_id: Optional[int] = None) -> tuple[dict, bool]:
    """
    Inserts the URL or, if it is already stored, only bumps its visited_at.
    Returns (record, created).
    """
    conn = get_db_connection()
    with _lock:
        existing = conn.execute("SELECT id FROM recent_searches WHERE url = ?", (url,)).fetchone()
        if existing:
            conn.execute(
                "UPDATE recent_searches SET visited_at = ? WHERE id = ?",
                (_now(), existing["id"]),
            )
            search_id, created = existing["id"], False
        else:
            cursor = conn.execute(
                "INSERT INTO recent_searches (url, title, favicon, visited_at, user_id) VALUES (?, ?, ?, ?, ?)",
                (url, title, favicon, _now(), user_id),
            )
            search_id, created = cursor.lastrowid, True
        conn.commit()
    return get_recent(search_id), created


def delete_recent(search_id: int) -> bool:
    conn = get_db_connection()
    with _lock:
        cursor = conn.execute("DELETE FROM recent_searches WHERE id = ?", (search_id,))
        conn.commit()
    return cursor.rowcount > 0
