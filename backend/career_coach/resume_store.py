from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from .db import connect, json_dumps, json_loads, new_document_id

CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS resumes (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    email TEXT NOT NULL DEFAULT '',
    skills_json TEXT NOT NULL DEFAULT '[]',
    projects_json TEXT NOT NULL DEFAULT '[]',
    education_json TEXT NOT NULL DEFAULT '[]',
    experience_json TEXT NOT NULL DEFAULT '[]',
    ats_score INTEGER NOT NULL DEFAULT 0,
    missing_json TEXT NOT NULL DEFAULT '[]',
    suggestions_json TEXT NOT NULL DEFAULT '[]',
    raw_text TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

CREATE_INDEX_SQLS = [
    """
    CREATE INDEX IF NOT EXISTS idx_resumes_owner
    ON resumes (owner_id, created_at DESC);
    """,
]

SELECT_COLUMNS = """
    id,
    owner_id,
    name,
    email,
    skills_json,
    projects_json,
    education_json,
    experience_json,
    ats_score,
    missing_json,
    suggestions_json,
    raw_text,
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
        "name": str(row["name"]),
        "email": str(row["email"]),
        "skills": json_loads(row["skills_json"], fallback=[]),
        "projects": json_loads(row["projects_json"], fallback=[]),
        "education": json_loads(row["education_json"], fallback=[]),
        "experience": json_loads(row["experience_json"], fallback=[]),
        "ats_score": int(row["ats_score"]),
        "missing": json_loads(row["missing_json"], fallback=[]),
        "suggestions": json_loads(row["suggestions_json"], fallback=[]),
        "raw_text": str(row["raw_text"]),
        "created_at": str(row["created_at"]),
        "updated_at": str(row["updated_at"]),
    }


def create_resume(
    *,
    db_path: Path,
    owner_id: str,
    name: str,
    email: str,
    skills: list[str],
    projects: list[dict[str, Any]],
    education: list[dict[str, Any]],
    experience: list[dict[str, Any]],
    ats_score: int,
    missing: list[str],
    suggestions: list[str],
    raw_text: str,
) -> str:
    resume_id = new_document_id()
    with connect(db_path) as conn:
        _ensure_schema(conn)
        conn.execute(
            """
            INSERT INTO resumes (
                id,
                owner_id,
                name,
                email,
                skills_json,
                projects_json,
                education_json,
                experience_json,
                ats_score,
                missing_json,
                suggestions_json,
                raw_text
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                resume_id,
                owner_id,
                name,
                email,
                json_dumps(skills),
                json_dumps(projects),
                json_dumps(education),
                json_dumps(experience),
                int(ats_score),
                json_dumps(missing),
                json_dumps(suggestions),
                raw_text,
            ),
        )
        conn.commit()
    return resume_id


def fetch_resume(*, db_path: Path, resume_id: str) -> dict[str, Any] | None:
    """Fetch a resume by id regardless of owner; callers enforce ownership."""
    with connect(db_path) as conn:
        _ensure_schema(conn)
        row = conn.execute(
            f"SELECT {SELECT_COLUMNS} FROM resumes WHERE id = ? LIMIT 1",
            (resume_id,),
        ).fetchone()

    if row is None:
        return None
    return _row_to_item(row)


def list_resumes(*, db_path: Path, owner_id: str, limit: int = 100) -> list[dict[str, Any]]:
    safe_limit = max(1, min(500, int(limit)))
    with connect(db_path) as conn:
        _ensure_schema(conn)
        rows = conn.execute(
            f"""
            SELECT {SELECT_COLUMNS}
            FROM resumes
            WHERE owner_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (owner_id, safe_limit),
        ).fetchall()

    return [_row_to_item(row) for row in rows]
