"""
SQLite database operations for request logs and dead-lettered notifications.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from core.config import DB_PATH

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS api_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id TEXT UNIQUE NOT NULL,
        timestamp TEXT NOT NULL,
        endpoint TEXT NOT NULL,
        method TEXT NOT NULL,
        client_ip TEXT,
        status_code INTEGER NOT NULL,
        error_code TEXT,
        error_message TEXT,
        processing_time_ms INTEGER NOT NULL,
        report_id TEXT,
        conversation_id TEXT,
        employees_processed INTEGER,
        total_hours REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS api_request_details (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id TEXT NOT NULL,
        detail_type TEXT NOT NULL CHECK(detail_type IN ('validation_error', 'warning', 'correlation')),
        message TEXT NOT NULL,
        FOREIGN KEY (request_id) REFERENCES api_requests(request_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dead_letters (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created_at TEXT NOT NULL,
        conversation_id TEXT,
        payload TEXT NOT NULL,
        error TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending', 'replayed')),
        attempts INTEGER NOT NULL DEFAULT 0,
        replayed_at TEXT,
        last_error TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_api_requests_timestamp ON api_requests(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_api_requests_status ON api_requests(status_code)",
    "CREATE INDEX IF NOT EXISTS idx_api_request_details_request ON api_request_details(request_id)",
    "CREATE INDEX IF NOT EXISTS idx_dead_letters_status ON dead_letters(status)",
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Path = DB_PATH) -> sqlite3.Connection:
    """Get a database connection."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def ensure_schema(db_path: Path = DB_PATH):
    """Create the database file and tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    try:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


# =============================================================================
# DEAD LETTERS
# =============================================================================


def record_dead_letter(
    db_path: Path, payload: dict[str, Any], error: str, conversation_id: str | None = None
) -> int:
    """Store a notification that could not be processed and return its id."""
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            """
            INSERT INTO dead_letters (created_at, conversation_id, payload, error)
            VALUES (?, ?, ?, ?)
            """,
            (_now(), conversation_id, json.dumps(payload), error),
        )
        conn.commit()
        return cursor.lastrowid
    finally:
        conn.close()


def list_pending_dead_letters(db_path: Path, limit: int | None = None) -> list[dict[str, Any]]:
    """Pending dead letters, oldest first, with the payload decoded."""
    query = "SELECT * FROM dead_letters WHERE status = 'pending' ORDER BY id"
    params: tuple = ()
    if limit is not None:
        query += " LIMIT ?"
        params = (limit,)

    conn = get_connection(db_path)
    try:
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()
    return [dict(row, payload=json.loads(row["payload"])) for row in rows]


def mark_replayed(db_path: Path, dead_letter_id: int):
    conn = get_connection(db_path)
    try:
        conn.execute(
            """
            UPDATE dead_letters
            SET status = 'replayed', attempts = attempts + 1, replayed_at = ?
            WHERE id = ?
            """,
            (_now(), dead_letter_id),
        )
        conn.commit()
    finally:
        conn.close()


def mark_replay_failed(db_path: Path, dead_letter_id: int, error: str):
    """Keep the entry pending and record the latest failure."""
    conn = get_connection(db_path)
    try:
        conn.execute(
            "UPDATE dead_letters SET attempts = attempts + 1, last_error = ? WHERE id = ?",
            (error, dead_letter_id),
        )
        conn.commit()
    finally:
        conn.close()
