from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import AccessDenied, InvalidInput, InvalidState, NotFound, SessionConflict
from .interview_store import create_interview_session, fetch_interview_session, update_interview_session
from .prompts import build_evaluation_prompt, build_first_question_prompt, build_next_question_prompt
from .resume_store import fetch_resume

DEFAULT_DOMAIN = "General"

logger = logging.getLogger("career_coach.interview")


@dataclass
class InterviewStart:
    session_id: str
    question: str


@dataclass
class AnswerOutcome:
    done: bool
    question: str | None = None
    feedback: str | None = None


def session_status(row: dict[str, Any]) -> str:
    return "concluded" if row.get("feedback") is not None else "open"


class InterviewController:
    """Drives the fixed-length question/answer loop of a mock interview.

    A session is open until the answer to question number `max_questions` is
    recorded; that answer triggers the evaluation and seals the session.
    Each write is conditional on the version read at the start of the call,
    so at most one concurrent answer() per session can land.
    """

    def __init__(self, *, db_path: Path, completion_client: Any, max_questions: int) -> None:
        if max_questions < 1:
            raise ValueError("max_questions must be positive")
        self.db_path = db_path
        self.completion_client = completion_client
        self.max_questions = max_questions

    def _load_owned_resume(self, resume_id: str, caller_id: str) -> dict[str, Any]:
        resume = fetch_resume(db_path=self.db_path, resume_id=resume_id)
        if resume is None:
            raise NotFound("Resume not found")
        if resume["owner_id"] != caller_id:
            raise AccessDenied("You do not own this resume")
        return resume

    def start(self, *, resume_id: str | None, domain: str | None, caller_id: str) -> InterviewStart:
        safe_resume_id = (resume_id or "").strip()
        if not safe_resume_id:
            raise InvalidInput("resumeId is required")
        safe_domain = (domain or "").strip() or DEFAULT_DOMAIN

        resume = self._load_owned_resume(safe_resume_id, caller_id)

        prompt = build_first_question_prompt(resume=resume, domain=safe_domain)
        question = self.completion_client.complete(prompt)

        session_id = create_interview_session(
            db_path=self.db_path,
            owner_id=caller_id,
            resume_id=safe_resume_id,
            domain=safe_domain,
            first_question=question,
        )

        logger.info(
            json.dumps(
                {
                    "event": "interview_state_transition",
                    "sessionId": session_id,
                    "resumeId": safe_resume_id,
                    "ownerId": caller_id,
                    "from": "not_started",
                    "to": "open",
                },
                ensure_ascii=False,
            )
        )
        return InterviewStart(session_id=session_id, question=question)

    def answer(self, *, session_id: str | None, text: str, caller_id: str) -> AnswerOutcome:
        safe_session_id = (session_id or "").strip()
        if not safe_session_id:
            raise InvalidInput("interviewId is required")

        row = fetch_interview_session(db_path=self.db_path, session_id=safe_session_id)
        if row is None:
            raise NotFound("Interview not found")
        if row["owner_id"] != caller_id:
            raise AccessDenied("You do not own this interview")
        if row["feedback"] is not None:
            raise InvalidState("Interview already concluded")

        questions: list[str] = list(row["questions"])
        answers: list[str] = list(row["answers"])
        if len(answers) >= len(questions):
            raise InvalidState("No pending question for this interview")

        resume = fetch_resume(db_path=self.db_path, resume_id=row["resume_id"])
        if resume is None:
            raise NotFound("Resume not found")

        answers.append(text)
        concluding = len(questions) >= self.max_questions

        feedback: str | None = None
        next_question: str | None = None
        if concluding:
            prompt = build_evaluation_prompt(
                resume=resume,
                domain=row["domain"],
                questions=questions,
                answers=answers,
            )
            feedback = self.completion_client.complete(prompt)
        else:
            prompt = build_next_question_prompt(
                resume=resume,
                domain=row["domain"],
                questions=questions,
                answers=answers,
                max_questions=self.max_questions,
            )
            next_question = self.completion_client.complete(prompt)
            questions.append(next_question)

        updated = update_interview_session(
            db_path=self.db_path,
            session_id=safe_session_id,
            expected_version=row["version"],
            questions=questions,
            answers=answers,
            feedback=feedback,
        )
        if updated is None:
            logger.warning(
                json.dumps(
                    {
                        "event": "interview_write_conflict",
                        "sessionId": safe_session_id,
                        "expectedVersion": row["version"],
                    },
                    ensure_ascii=False,
                )
            )
            raise SessionConflict()

        logger.info(
            json.dumps(
                {
                    "event": "interview_state_persisted",
                    "sessionId": safe_session_id,
                    "action": "answer",
                    "from": "open",
                    "to": session_status(updated),
                    "questionCount": len(updated["questions"]),
                    "answerCount": len(updated["answers"]),
                    "version": updated["version"],
                },
                ensure_ascii=False,
            )
        )

        if concluding:
            return AnswerOutcome(done=True, feedback=feedback)
        return AnswerOutcome(done=False, question=next_question)
