from __future__ import annotations

from collections import deque
from typing import Any, Callable

import fitz
import pytest

from career_coach.context import AppContext
from career_coach.errors import InternalError, Unauthorized
from career_coach.main import app


class FakeTokenVerifier:
    """Accepts tokens of the form `token-<uid>`."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    def verify(self, token: str) -> dict[str, Any]:
        self.calls.append(token)
        if token == "verifier-down":
            raise InternalError("Authentication error")
        if not token.startswith("token-"):
            raise Unauthorized("Invalid or expired token")
        uid = token[len("token-") :]
        return {"uid": uid, "email": f"{uid}@example.com"}


class FakeCompletionClient:
    def __init__(self) -> None:
        self.responses: deque[str | Exception | Callable[[str], str]] = deque()
        self.prompts: list[str] = []
        self.json_flags: list[bool] = []
        self.default_response = "Tell me about a project you are proud of."

    def queue(self, *responses: str | Exception | Callable[[str], str]) -> None:
        self.responses.extend(responses)

    def complete(self, prompt: str, *, json_output: bool = False) -> str:
        self.prompts.append(prompt)
        self.json_flags.append(json_output)
        if not self.responses:
            return self.default_response
        item = self.responses.popleft()
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(prompt)
        return item


@pytest.fixture
def completion() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture
def verifier() -> FakeTokenVerifier:
    return FakeTokenVerifier()


@pytest.fixture
def context(tmp_path, completion, verifier):
    ctx = AppContext(
        db_path=tmp_path / "career_coach_test.sqlite3",
        completion_client=completion,
        token_verifier=verifier,
        max_questions=8,
        upload_dir=str(tmp_path / "uploads"),
    )
    app.state.context = ctx
    yield ctx
    del app.state.context


def auth_headers(uid: str, *, request_id: str | None = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer token-{uid}"}
    if request_id:
        headers["x-request-id"] = request_id
    return headers


def make_pdf_bytes(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


def assert_error_shape(data: dict, *, expected_code: str) -> None:
    assert data["code"] == expected_code
    assert isinstance(data["message"], str)
    assert data["message"]
    assert isinstance(data["requestId"], str)
    assert data["requestId"]
