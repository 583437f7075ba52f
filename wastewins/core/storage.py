from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Optional, Tuple

import orjson


# ──────────────────────────────────────────────────────────────
# Connections
# ──────────────────────────────────────────────────────────────

def connect_sqlite(path: str) -> sqlite3.Connection:
    """
    Open a RW SQLite connection with sane pragmas.

    IMPORTANT:
    - SQLite will NOT create parent directories.
    - WAL mode requires the directory to be writable (creates -wal/-shm).
    """
    if path != ":memory:":
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


# ──────────────────────────────────────────────────────────────
# Schema
# ──────────────────────────────────────────────────────────────

def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS cache_entries (
            cache_key TEXT PRIMARY KEY,
            stored_at REAL NOT NULL,      -- unix epoch seconds
            ttl_s REAL NOT NULL,
            value_json BLOB NOT NULL
        );
        """
    )
    conn.commit()


# ──────────────────────────────────────────────────────────────
# Cache entries
# ──────────────────────────────────────────────────────────────

def put_cache_entry(
    conn: sqlite3.Connection,
    *,
    cache_key: str,
    stored_at: float,
    ttl_s: float,
    value: Any,
) -> int:
    blob = orjson.dumps(value)
    conn.execute(
        """
        INSERT OR REPLACE INTO cache_entries (cache_key, stored_at, ttl_s, value_json)
        VALUES (?, ?, ?, ?);
        """,
        (cache_key, float(stored_at), float(ttl_s), blob),
    )
    conn.commit()
    return len(blob)


def get_cache_entry(conn: sqlite3.Connection, cache_key: str) -> Optional[Tuple[Any, float, float]]:
    """Return (value, stored_at, ttl_s) or None. Expiry is the caller's call."""
    cur = conn.execute(
        "SELECT value_json, stored_at, ttl_s FROM cache_entries WHERE cache_key=?;",
        (cache_key,),
    )
    row = cur.fetchone()
    if not row:
        return None
    return orjson.loads(row[0]), float(row[1]), float(row[2])
