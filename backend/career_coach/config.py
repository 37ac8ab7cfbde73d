from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / "career_coach.sqlite3"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_MAX_QUESTIONS = 8
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class ConfigError(RuntimeError):
    pass


def get_env_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw) if raw else int(default)
    except (TypeError, ValueError):
        value = int(default)

    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def get_env_float(name: str, default: float, *, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = os.getenv(name, "").strip()
    try:
        value = float(raw) if raw else float(default)
    except (TypeError, ValueError):
        value = float(default)

    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def get_db_path() -> Path:
    configured_path = os.getenv("CAREER_COACH_DB_PATH", "").strip()
    if configured_path:
        path = Path(configured_path)
        if not path.is_absolute():
            path = (Path(__file__).resolve().parents[1] / path).resolve()
        return path
    return DEFAULT_DB_PATH


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str
    gemini_model: str
    firebase_credentials_json: str
    firebase_credentials_path: str
    db_path: Path
    max_questions: int = DEFAULT_MAX_QUESTIONS
    ai_timeout_seconds: float = 30.0
    ai_max_retries: int = 1
    ai_backoff_seconds: float = 0.5
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    upload_dir: str | None = None


def load_settings() -> Settings:
    """Read the process configuration from the environment.

    A `.env` file in the working directory is honoured. Missing AI provider
    or identity provider credentials raise ConfigError so the process refuses
    to start instead of failing on the first request.
    """
    load_dotenv()

    api_key = os.getenv("GEMINI_API_KEY", "").strip()
    if not api_key:
        raise ConfigError("GEMINI_API_KEY is not configured")

    firebase_json = os.getenv("FIREBASE_ADMIN_SDK", "").strip()
    firebase_path = os.getenv("FIREBASE_CREDENTIALS_PATH", "").strip()
    if not firebase_json and not firebase_path:
        raise ConfigError("FIREBASE_ADMIN_SDK or FIREBASE_CREDENTIALS_PATH must be configured")
    if firebase_path and not Path(firebase_path).is_file():
        raise ConfigError(f"FIREBASE_CREDENTIALS_PATH does not exist: {firebase_path}")

    upload_dir = os.getenv("CAREER_COACH_UPLOAD_DIR", "").strip() or None

    return Settings(
        gemini_api_key=api_key,
        gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL).strip() or DEFAULT_GEMINI_MODEL,
        firebase_credentials_json=firebase_json,
        firebase_credentials_path=firebase_path,
        db_path=get_db_path(),
        max_questions=get_env_int("CAREER_COACH_MAX_QUESTIONS", DEFAULT_MAX_QUESTIONS, min_value=1, max_value=50),
        ai_timeout_seconds=get_env_float("CAREER_COACH_AI_TIMEOUT_SECONDS", 30.0, min_value=1.0, max_value=300.0),
        ai_max_retries=get_env_int("CAREER_COACH_AI_MAX_RETRIES", 1, min_value=0, max_value=5),
        ai_backoff_seconds=get_env_float("CAREER_COACH_AI_BACKOFF_SECONDS", 0.5, min_value=0.0, max_value=30.0),
        max_upload_bytes=get_env_int(
            "CAREER_COACH_MAX_UPLOAD_BYTES",
            DEFAULT_MAX_UPLOAD_BYTES,
            min_value=1024,
            max_value=50 * 1024 * 1024,
        ),
        upload_dir=upload_dir,
    )
