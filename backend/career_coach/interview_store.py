from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from .db import connect, json_dumps, json_loads, new_document_id

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS interview_sessions (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    resume_id TEXT NOT NULL,
    domain TEXT NOT NULL DEFAULT '',
    questions_json TEXT NOT NULL DEFAULT '[]',
    answers_json TEXT NOT NULL DEFAULT '[]',
    feedback TEXT,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

CREATE_INDEX_SQLS = [
    """
    CREATE INDEX IF NOT EXISTS idx_interview_sessions_owner
    ON interview_sessions (owner_id, created_at DESC);
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_interview_sessions_resume
    ON interview_sessions (resume_id);
    """,
]

SELECT_COLUMNS = """
    id,
    owner_id,
    resume_id,
    domain,
    questions_json,
    answers_json,
    feedback,
    version,
    created_at,
    updated_at
"""


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(CREATE_TABLE_SQL)
    for sql in CREATE_INDEX_SQLS:
        conn.execute(sql)


def _row_to_item(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": str(row["id"]),
        "owner_id": str(row["owner_id"]),
        "resume_id": str(row["resume_id"]),
        "domain": str(row["domain"]),
        "questions": json_loads(row["questions_json"], fallback=[]),
        "answers": json_loads(row["answers_json"], fallback=[]),
        "feedback": str(row["feedback"]) if row["feedback"] is not None else None,
        "version": int(row["version"]),
        "created_at": str(row["created_at"]),
        "updated_at": str(row["updated_at"]),
    }


def create_interview_session(
    *,
    db_path: Path,
    owner_id: str,
    resume_id: str,
    domain: str,
    first_question: str,
) -> str:
    session_id = new_document_id()
    with connect(db_path) as conn:
        _ensure_schema(conn)
        conn.execute(
            """
            INSERT INTO interview_sessions (
                id,
                owner_id,
                resume_id,
                domain,
                questions_json,
                answers_json,
                feedback,
                version
            )
            VALUES (?, ?, ?, ?, ?, '[]', NULL, 0)
            """,
            (
                session_id,
                owner_id,
                resume_id,
                domain,
                json_dumps([first_question]),
            ),
        )
        conn.commit()
    return session_id


def fetch_interview_session(*, db_path: Path, session_id: str) -> dict[str, Any] | None:
    """Fetch a session by id regardless of owner; callers enforce ownership."""
    with connect(db_path) as conn:
        _ensure_schema(conn)
        row = conn.execute(
            f"SELECT {SELECT_COLUMNS} FROM interview_sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()

    if row is None:
        return None
    return _row_to_item(row)


def list_interview_sessions(*, db_path: Path, owner_id: str, limit: int = 100) -> list[dict[str, Any]]:
    safe_limit = max(1, min(500, int(limit)))
    with connect(db_path) as conn:
        _ensure_schema(conn)
        rows = conn.execute(
            f"""
            SELECT {SELECT_COLUMNS}
            FROM interview_sessions
            WHERE owner_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (owner_id, safe_limit),
        ).fetchall()

    return [_row_to_item(row) for row in rows]


def update_interview_session(
    *,
    db_path: Path,
    session_id: str,
    expected_version: int,
    questions: list[str],
    answers: list[str],
    feedback: str | None = None,
) -> dict[str, Any] | None:
    """Write a new transcript state if nobody else wrote since `expected_version`.

    Returns the updated row, or None when the version check fails (concurrent
    writer, concluded session or missing row). A concluded session is never
    rewritten because the WHERE clause also requires `feedback IS NULL`.
    """
    with connect(db_path) as conn:
        _ensure_schema(conn)
        cursor = conn.execute(
            """
            UPDATE interview_sessions
            SET questions_json = ?,
                answers_json = ?,
                feedback = ?,
                version = version + 1,
                updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
            WHERE id = ?
              AND version = ?
              AND feedback IS NULL
            """,
            (
                json_dumps(questions),
                json_dumps(answers),
                feedback,
                session_id,
                int(expected_version),
            ),
        )
        conn.commit()
        if cursor.rowcount != 1:
            return None

    return fetch_interview_session(db_path=db_path, session_id=session_id)
