from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastapi import Request

from .auth import FirebaseTokenVerifier
from .completion_client import GeminiCompletionClient
from .config import DEFAULT_MAX_QUESTIONS, DEFAULT_MAX_UPLOAD_BYTES, Settings
from .errors import InternalError


@dataclass
class AppContext:
    """Process-wide collaborators, built once at startup and shared by handlers."""

    db_path: Path
    completion_client: Any
    token_verifier: Any
    max_questions: int = DEFAULT_MAX_QUESTIONS
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    upload_dir: str | None = None


def build_app_context(settings: Settings) -> AppContext:
    return AppContext(
        db_path=settings.db_path,
        completion_client=GeminiCompletionClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_seconds=settings.ai_timeout_seconds,
            max_retries=settings.ai_max_retries,
            backoff_seconds=settings.ai_backoff_seconds,
        ),
        token_verifier=FirebaseTokenVerifier(
            credentials_json=settings.firebase_credentials_json,
            credentials_path=settings.firebase_credentials_path,
        ),
        max_questions=settings.max_questions,
        max_upload_bytes=settings.max_upload_bytes,
        upload_dir=settings.upload_dir,
    )


def get_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if not isinstance(context, AppContext):
        raise InternalError("application context is not initialised")
    return context
