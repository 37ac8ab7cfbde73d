from __future__ import annotations

import json
import sqlite3

import pytest
from fastapi.testclient import TestClient

from career_coach.errors import InvalidState, SessionConflict, UpstreamFailure
from career_coach.interview_controller import InterviewController
from career_coach.interview_store import fetch_interview_session, list_interview_sessions
from career_coach.main import app
from career_coach.resume_store import create_resume
from conftest import assert_error_shape, auth_headers

client = TestClient(app, raise_server_exceptions=False)

REPORT = (
    "Result: PASS\n"
    "Strengths: clear answer on Q2 about caching.\n"
    "Weaknesses: Q5 was vague.\n"
    "Score: 7/10\n"
    "Improvement Tips: practice system design."
)


def seed_resume(context, owner_id: str = "alice") -> str:
    return create_resume(
        db_path=context.db_path,
        owner_id=owner_id,
        name="Jane Doe",
        email="jane@example.com",
        skills=["Python", "React"],
        projects=[{"name": "Job Board", "technologies": ["Python"], "description": ["Built it"], "link": ""}],
        education=[{"institution": "State University", "degree": "BSc", "dates": "", "details": "", "location": ""}],
        experience=[],
        ats_score=70,
        missing=[],
        suggestions=[],
        raw_text="Jane Doe Python React",
    )


def stored_sessions(context) -> list[dict]:
    return [
        row
        for owner_id in ("alice", "bob")
        for row in list_interview_sessions(db_path=context.db_path, owner_id=owner_id)
    ]


def start(resume_id: str | None, uid: str = "alice", domain: str = "Web Development"):
    body: dict[str, str] = {"domain": domain}
    if resume_id is not None:
        body["resumeId"] = resume_id
    return client.post("/api/interview/start", json=body, headers=auth_headers(uid))


def answer(interview_id: str, text: str, uid: str = "alice"):
    return client.post(
        "/api/interview/answer",
        json={"interviewId": interview_id, "answer": text},
        headers=auth_headers(uid),
    )


def test_start_creates_open_session_with_first_question(context, completion) -> None:
    resume_id = seed_resume(context)
    completion.queue("What is the virtual DOM?")

    resp = start(resume_id)
    assert resp.status_code == 200
    data = resp.json()
    assert data["question"] == "What is the virtual DOM?"

    prompt = completion.prompts[0]
    assert "Jane Doe" in prompt
    assert "Python, React" in prompt
    assert "Web Development" in prompt

    row = fetch_interview_session(db_path=context.db_path, session_id=data["interviewId"])
    assert row["questions"] == ["What is the virtual DOM?"]
    assert row["answers"] == []
    assert row["feedback"] is None
    assert row["owner_id"] == "alice"


def test_start_requires_resume_id(context, completion) -> None:
    resp = start(None)
    assert resp.status_code == 400
    assert_error_shape(resp.json(), expected_code="INVALID_INPUT")
    assert completion.prompts == []


def test_start_with_unknown_resume_is_not_found_and_creates_nothing(context, completion) -> None:
    resp = start("0" * 32)
    assert resp.status_code == 404
    assert_error_shape(resp.json(), expected_code="NOT_FOUND")
    assert stored_sessions(context) == []
    assert completion.prompts == []


def test_start_on_foreign_resume_is_denied_and_creates_nothing(context, completion) -> None:
    resume_id = seed_resume(context, owner_id="bob")

    resp = start(resume_id, uid="alice")
    assert resp.status_code == 403
    assert_error_shape(resp.json(), expected_code="ACCESS_DENIED")
    assert stored_sessions(context) == []
    assert completion.prompts == []


def test_start_upstream_failure_creates_nothing(context, completion) -> None:
    resume_id = seed_resume(context)
    completion.queue(UpstreamFailure("AI service is unavailable, please try again later"))

    resp = start(resume_id)
    assert resp.status_code == 500
    assert_error_shape(resp.json(), expected_code="UPSTREAM_FAILURE")
    assert stored_sessions(context) == []


def test_eight_answers_conclude_the_interview(context, completion) -> None:
    resume_id = seed_resume(context)
    completion.queue("Q1")
    interview_id = start(resume_id).json()["interviewId"]

    completion.queue(*[f"Q{i}" for i in range(2, 9)], REPORT)

    for i in range(1, 8):
        resp = answer(interview_id, f"answer {i}")
        assert resp.status_code == 200
        assert resp.json() == {"done": False, "question": f"Q{i + 1}"}

    final = answer(interview_id, "answer 8")
    assert final.status_code == 200
    data = final.json()
    assert data["done"] is True
    assert data["feedback"] == REPORT
    assert data["feedbackDisplay"] == {"score": 7, "passed": True}
    assert "question" not in data

    row = fetch_interview_session(db_path=context.db_path, session_id=interview_id)
    assert row["questions"] == [f"Q{i}" for i in range(1, 9)]
    assert row["answers"] == [f"answer {i}" for i in range(1, 9)]
    assert row["feedback"] == REPORT

    evaluation_prompt = completion.prompts[-1]
    assert "Q8: Q8\nA8: answer 8" in evaluation_prompt
    assert "Score:" in evaluation_prompt


def test_next_question_prompt_contains_transcript_and_calibration(context, completion) -> None:
    resume_id = seed_resume(context)
    completion.queue("Explain closures.")
    interview_id = start(resume_id).json()["interviewId"]

    completion.queue("Explain event loop phases.")
    resp = answer(interview_id, "A closure captures variables from its scope.")
    assert resp.status_code == 200

    prompt = completion.prompts[-1]
    assert "Q1: Explain closures.\nA1: A closure captures variables from its scope." in prompt
    assert "harder follow-up" in prompt
    assert "simpler question" in prompt
    assert "question 2 of 8" in prompt


def test_answer_after_conclusion_is_rejected_without_mutation(context, completion) -> None:
    context.max_questions = 2
    resume_id = seed_resume(context)
    completion.queue("Q1")
    interview_id = start(resume_id).json()["interviewId"]
    completion.queue("Q2", REPORT)
    assert answer(interview_id, "a1").json()["done"] is False
    assert answer(interview_id, "a2").json()["done"] is True

    before = fetch_interview_session(db_path=context.db_path, session_id=interview_id)
    prompts_before = len(completion.prompts)

    resp = answer(interview_id, "one more")
    assert resp.status_code == 409
    assert_error_shape(resp.json(), expected_code="INVALID_STATE")

    after = fetch_interview_session(db_path=context.db_path, session_id=interview_id)
    assert after == before
    assert len(completion.prompts) == prompts_before


def test_answer_ownership_and_not_found(context, completion) -> None:
    resume_id = seed_resume(context)
    interview_id = start(resume_id).json()["interviewId"]

    denied = answer(interview_id, "hijack", uid="bob")
    assert denied.status_code == 403
    assert_error_shape(denied.json(), expected_code="ACCESS_DENIED")

    missing = answer("f" * 32, "hello")
    assert missing.status_code == 404

    row = fetch_interview_session(db_path=context.db_path, session_id=interview_id)
    assert row["answers"] == []


def test_answer_when_resume_was_removed_is_not_found(context, completion) -> None:
    resume_id = seed_resume(context)
    interview_id = start(resume_id).json()["interviewId"]

    with sqlite3.connect(context.db_path) as conn:
        conn.execute("DELETE FROM resumes WHERE id = ?", (resume_id,))
        conn.commit()

    resp = answer(interview_id, "still here")
    assert resp.status_code == 404
    assert_error_shape(resp.json(), expected_code="NOT_FOUND")


def test_answer_upstream_failure_leaves_session_untouched(context, completion) -> None:
    resume_id = seed_resume(context)
    interview_id = start(resume_id).json()["interviewId"]
    before = fetch_interview_session(db_path=context.db_path, session_id=interview_id)

    completion.queue(UpstreamFailure("AI service is unavailable, please try again later"))
    resp = answer(interview_id, "my answer")
    assert resp.status_code == 500
    assert_error_shape(resp.json(), expected_code="UPSTREAM_FAILURE")

    after = fetch_interview_session(db_path=context.db_path, session_id=interview_id)
    assert after == before


def test_interview_list_and_detail(context, completion) -> None:
    context.max_questions = 1
    resume_id = seed_resume(context)
    completion.queue("Q1")
    interview_id = start(resume_id).json()["interviewId"]
    completion.queue("Result: FAIL\nScore: 3/10")
    assert answer(interview_id, "idk").json()["done"] is True

    listed = client.get("/api/interview/user", headers=auth_headers("alice"))
    assert listed.status_code == 200
    items = listed.json()
    assert len(items) == 1
    item = items[0]
    assert item["_id"] == interview_id
    assert item["status"] == "concluded"
    assert item["feedbackDisplay"] == {"score": 3, "passed": False}

    assert client.get("/api/interview/user", headers=auth_headers("bob")).json() == []

    first = client.get(f"/api/interview/{interview_id}", headers=auth_headers("alice"))
    second = client.get(f"/api/interview/{interview_id}", headers=auth_headers("alice"))
    assert first.status_code == 200
    assert first.content == second.content

    denied = client.get(f"/api/interview/{interview_id}", headers=auth_headers("bob"))
    assert denied.status_code == 403


def test_open_session_has_no_feedback_display(context, completion) -> None:
    resume_id = seed_resume(context)
    interview_id = start(resume_id).json()["interviewId"]

    detail = client.get(f"/api/interview/{interview_id}", headers=auth_headers("alice")).json()
    assert detail["status"] == "open"
    assert detail["feedback"] is None
    assert detail["feedbackDisplay"] is None


def test_concurrent_answers_never_share_a_question_slot(context, completion) -> None:
    resume_id = seed_resume(context)
    controller = InterviewController(db_path=context.db_path, completion_client=completion, max_questions=8)
    session_id = controller.start(resume_id=resume_id, domain="Backend", caller_id="alice").session_id

    inner_results = []

    def interleave(_prompt: str) -> str:
        # A second answer() lands while the first one is waiting on the AI call.
        inner_results.append(controller.answer(session_id=session_id, text="second", caller_id="alice"))
        return "Q-from-first"

    completion.queue(interleave, "Q-from-second")

    with pytest.raises(SessionConflict):
        controller.answer(session_id=session_id, text="first", caller_id="alice")

    assert inner_results[0].question == "Q-from-second"
    row = fetch_interview_session(db_path=context.db_path, session_id=session_id)
    assert row["answers"] == ["second"]
    assert len(row["questions"]) == 2
    assert row["version"] == 1

    retry = controller.answer(session_id=session_id, text="first", caller_id="alice")
    assert retry.done is False
    row = fetch_interview_session(db_path=context.db_path, session_id=session_id)
    assert row["answers"] == ["second", "first"]
    assert len(row["questions"]) == 3


def test_controller_invariants_hold_through_a_full_run(context, completion) -> None:
    resume_id = seed_resume(context)
    controller = InterviewController(db_path=context.db_path, completion_client=completion, max_questions=3)
    session_id = controller.start(resume_id=resume_id, domain="", caller_id="alice").session_id

    row = fetch_interview_session(db_path=context.db_path, session_id=session_id)
    assert row["domain"] == "General"

    completion.queue("Q2", "Q3", REPORT)
    for i in range(3):
        row = fetch_interview_session(db_path=context.db_path, session_id=session_id)
        assert len(row["answers"]) <= len(row["questions"]) <= 3
        assert row["feedback"] is None
        outcome = controller.answer(session_id=session_id, text=f"a{i}", caller_id="alice")
        assert outcome.done is (i == 2)

    row = fetch_interview_session(db_path=context.db_path, session_id=session_id)
    assert len(row["questions"]) == len(row["answers"]) == 3
    assert row["feedback"] == REPORT

    with pytest.raises(InvalidState):
        controller.answer(session_id=session_id, text="late", caller_id="alice")


def test_interview_log_events_record_transitions(context, completion, caplog) -> None:
    resume_id = seed_resume(context)
    with caplog.at_level("INFO", logger="career_coach.interview"):
        interview_id = start(resume_id).json()["interviewId"]
        answer(interview_id, "hello")

    events = []
    for record in caplog.records:
        if record.name != "career_coach.interview":
            continue
        events.append(json.loads(record.getMessage()))

    assert [event["event"] for event in events] == ["interview_state_transition", "interview_state_persisted"]
    assert events[0]["to"] == "open"
    assert events[1]["questionCount"] == 2
