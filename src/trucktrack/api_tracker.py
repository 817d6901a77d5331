"""SQLite call tracker for the external collaborators (GPS, Gemini, Drive).

Also provides a persistent response cache so a stale GPS feed can be served
when the provider is slow or unreachable.
"""

from __future__ import annotations

import json
import os
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

_DB_PATH = Path(
    os.getenv(
        "TRUCKTRACK_TRACKER_DB",
        str(Path(__file__).resolve().parent.parent.parent / "api_tracker.db"),
    )
)


def _get_db() -> sqlite3.Connection:
    conn = sqlite3.connect(str(_DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_db() -> None:
    """Create the api_calls and api_response_cache tables if they don't exist."""
    conn = _get_db()
    conn.execute("""
        CREATE TABLE IF NOT EXISTS api_calls (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp   TEXT NOT NULL,
            service     TEXT NOT NULL,
            method      TEXT NOT NULL,
            status      TEXT NOT NULL,
            response_ms INTEGER NOT NULL,
            error       TEXT,
            cached      INTEGER NOT NULL DEFAULT 0
        )
    """)
    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_api_calls_ts ON api_calls (timestamp)
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS api_response_cache (
            cache_key   TEXT PRIMARY KEY,
            response    TEXT NOT NULL,
            cached_at   REAL NOT NULL,
            ttl_seconds INTEGER NOT NULL
        )
    """)
    conn.commit()
    conn.close()


def log_call(
    service: str,
    method: str,
    status: str = "success",
    response_ms: int = 0,
    error: str | None = None,
    cached: bool = False,
) -> None:
    """Insert a single call record."""
    conn = _get_db()
    conn.execute(
        "INSERT INTO api_calls (timestamp, service, method, status, response_ms, error, cached) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (
            datetime.now(timezone.utc).isoformat(),
            service,
            method,
            status,
            response_ms,
            error,
            1 if cached else 0,
        ),
    )
    conn.commit()
    conn.close()


@contextmanager
def track(service: str, method: str):
    """Context manager that times a call and logs the result."""
    t0 = time.monotonic()
    try:
        yield
        ms = int((time.monotonic() - t0) * 1000)
        log_call(service, method, "success", ms)
    except Exception as exc:
        ms = int((time.monotonic() - t0) * 1000)
        log_call(service, method, "error", ms, error=str(exc))
        raise


def get_summary(hours: int = 24) -> list[dict]:
    """Counts grouped by service + status for the last N hours."""
    cutoff = (datetime.now(timezone.utc) - timedelta(hours=hours)).isoformat()
    conn = _get_db()
    rows = conn.execute(
        "SELECT service, status, cached, COUNT(*) as cnt, "
        "AVG(response_ms) as avg_ms, MAX(response_ms) as max_ms "
        "FROM api_calls WHERE timestamp >= ? "
        "GROUP BY service, status, cached ORDER BY cnt DESC",
        (cutoff,),
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_recent(limit: int = 50) -> list[dict]:
    """Last N calls for debugging."""
    conn = _get_db()
    rows = conn.execute(
        "SELECT * FROM api_calls ORDER BY id DESC LIMIT ?", (limit,)
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


# ── Persistent Response Cache ────────────────────────────────────────────

def cache_response(key: str, data: object, ttl: int = 60) -> None:
    """Persist a provider response for stale-serve fallback."""
    try:
        conn = _get_db()
        conn.execute(
            "INSERT OR REPLACE INTO api_response_cache "
            "(cache_key, response, cached_at, ttl_seconds) VALUES (?, ?, ?, ?)",
            (key, json.dumps(data, default=str), time.time(), ttl),
        )
        conn.commit()
        conn.close()
    except sqlite3.Error as exc:
        print(f"[cache] Could not persist {key}: {exc}", flush=True)


def get_cached_response(key: str, max_age: int = 0) -> object | None:
    """Retrieve a cached response.

    Args:
        key: The cache key to look up.
        max_age: Maximum age in seconds. 0 = any age (stale OK).
    Returns:
        Deserialized response data, or None if not found / too old.
    """
    try:
        conn = _get_db()
        row = conn.execute(
            "SELECT response, cached_at FROM api_response_cache WHERE cache_key = ?",
            (key,),
        ).fetchone()
        conn.close()
    except sqlite3.Error:
        return None
    if row is None:
        return None
    if max_age > 0 and (time.time() - row["cached_at"]) > max_age:
        return None
    return json.loads(row["response"])


def delete_cached_response(key: str) -> None:
    conn = _get_db()
    conn.execute("DELETE FROM api_response_cache WHERE cache_key = ?", (key,))
    conn.commit()
    conn.close()
