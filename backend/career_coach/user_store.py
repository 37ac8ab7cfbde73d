from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from .db import connect

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS users (
    uid TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    phone TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(CREATE_TABLE_SQL)


def _row_to_item(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "uid": str(row["uid"]),
        "name": str(row["name"]),
        "email": str(row["email"]),
        "phone": str(row["phone"]) if row["phone"] is not None else None,
        "created_at": str(row["created_at"]),
    }


def create_user(
    *,
    db_path: Path,
    uid: str,
    name: str,
    email: str,
    phone: str | None = None,
) -> dict[str, Any] | None:
    """Insert a user profile. Returns None when the uid is already taken."""
    with connect(db_path) as conn:
        _ensure_schema(conn)
        try:
            conn.execute(
                "INSERT INTO users (uid, name, email, phone) VALUES (?, ?, ?, ?)",
                (uid, name, email, phone),
            )
        except sqlite3.IntegrityError:
            return None
        conn.commit()

    return fetch_user(db_path=db_path, uid=uid)


def fetch_user(*, db_path: Path, uid: str) -> dict[str, Any] | None:
    with connect(db_path) as conn:
        _ensure_schema(conn)
        row = conn.execute(
            "SELECT uid, name, email, phone, created_at FROM users WHERE uid = ? LIMIT 1",
            (uid,),
        ).fetchone()

    if row is None:
        return None
    return _row_to_item(row)
