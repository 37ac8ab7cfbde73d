from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from typing import Any

import uvicorn
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import authenticate_request, is_protected_path, require_identity
from .config import load_settings
from .context import build_app_context, get_context
from .errors import AccessDenied, AlreadyExists, CoachError, InvalidInput, NotFound
from .feedback import build_feedback_display
from .ingestion import ingest_resume
from .interview_controller import InterviewController, session_status
from .interview_store import fetch_interview_session, list_interview_sessions
from .resume_store import fetch_resume, list_resumes
from .user_store import create_user, fetch_user

MAX_ANSWER_LENGTH = 10_000
MAX_DOMAIN_LENGTH = 120

ERROR_CODE_BY_STATUS = {
    400: "INVALID_INPUT",
    401: "UNAUTHORIZED",
    403: "ACCESS_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("career_coach.api")


class UserCreateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uid: str = Field(min_length=1, max_length=128)
    name: str = Field(default="", max_length=200)
    email: str = Field(default="", max_length=320)
    phone: str | None = Field(default=None, max_length=40)


class UserRecord(BaseModel):
    uid: str
    name: str
    email: str
    phone: str | None = None
    createdAt: str


class ProjectEntry(BaseModel):
    name: str = ""
    technologies: list[str] = Field(default_factory=list)
    description: list[str] = Field(default_factory=list)
    link: str = ""


class EducationEntry(BaseModel):
    institution: str = ""
    degree: str = ""
    dates: str = ""
    details: str = ""
    location: str = ""


class ExperienceEntry(BaseModel):
    company: str = ""
    title: str = ""
    dates: str = ""
    location: str = ""
    description: list[str] = Field(default_factory=list)
    link: str = ""


class ResumeDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    ownerId: str
    name: str
    email: str
    skills: list[str]
    projects: list[ProjectEntry]
    education: list[EducationEntry]
    experience: list[ExperienceEntry]
    atsScore: int
    missing: list[str]
    suggestions: list[str]
    rawText: str
    createdAt: str
    updatedAt: str


class FeedbackDisplay(BaseModel):
    score: int
    passed: bool


class InterviewDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    ownerId: str
    resumeId: str
    domain: str
    questions: list[str]
    answers: list[str]
    feedback: str | None = None
    feedbackDisplay: FeedbackDisplay | None = None
    status: str
    version: int
    createdAt: str
    updatedAt: str


class InterviewStartRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    resumeId: str | None = Field(default=None, max_length=64)
    domain: str | None = Field(default=None, max_length=MAX_DOMAIN_LENGTH)


class InterviewStartResponse(BaseModel):
    interviewId: str
    question: str


class InterviewAnswerRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    interviewId: str | None = Field(default=None, max_length=64)
    answer: str = Field(default="", max_length=MAX_ANSWER_LENGTH)


class InterviewAnswerResponse(BaseModel):
    done: bool
    question: str | None = None
    feedback: str | None = None
    feedbackDisplay: FeedbackDisplay | None = None


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", str(uuid.uuid4()))


def get_caller_uid(request: Request) -> str:
    return str(require_identity(request)["uid"])


def set_error_context(request: Request, *, error_code: str, exception_type: str) -> None:
    request.state.error_code = error_code
    request.state.exception_type = exception_type


def build_error_payload(*, code: str, message: str, request_id: str) -> dict[str, str]:
    return {
        "code": code,
        "message": message,
        "requestId": request_id,
    }


def error_response(request: Request, exc: CoachError) -> JSONResponse:
    set_error_context(request, error_code=exc.code, exception_type=type(exc).__name__)
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_payload(code=exc.code, message=exc.message, request_id=get_request_id(request)),
    )


def format_user(row: dict[str, Any]) -> UserRecord:
    return UserRecord(
        uid=row["uid"],
        name=row["name"],
        email=row["email"],
        phone=row.get("phone"),
        createdAt=row["created_at"],
    )


def format_resume(row: dict[str, Any]) -> ResumeDocument:
    return ResumeDocument(
        id=row["id"],
        ownerId=row["owner_id"],
        name=row["name"],
        email=row["email"],
        skills=row["skills"],
        projects=[ProjectEntry(**item) for item in row["projects"] if isinstance(item, dict)],
        education=[EducationEntry(**item) for item in row["education"] if isinstance(item, dict)],
        experience=[ExperienceEntry(**item) for item in row["experience"] if isinstance(item, dict)],
        atsScore=row["ats_score"],
        missing=row["missing"],
        suggestions=row["suggestions"],
        rawText=row["raw_text"],
        createdAt=row["created_at"],
        updatedAt=row["updated_at"],
    )


def format_interview(row: dict[str, Any]) -> InterviewDocument:
    display = build_feedback_display(row.get("feedback"))
    return InterviewDocument(
        id=row["id"],
        ownerId=row["owner_id"],
        resumeId=row["resume_id"],
        domain=row["domain"],
        questions=row["questions"],
        answers=row["answers"],
        feedback=row.get("feedback"),
        feedbackDisplay=FeedbackDisplay(**display) if display else None,
        status=session_status(row),
        version=row["version"],
        createdAt=row["created_at"],
        updatedAt=row["updated_at"],
    )


def build_interview_controller(request: Request) -> InterviewController:
    context = get_context(request)
    return InterviewController(
        db_path=context.db_path,
        completion_client=context.completion_client,
        max_questions=context.max_questions,
    )


def log_request_event(
    *,
    path: str,
    method: str,
    status: int,
    duration_ms: int,
    request_id: str,
    uid: str | None,
    error_code: str | None,
    exception_type: str | None,
) -> None:
    logger.info(
        json.dumps(
            {
                "path": path,
                "method": method,
                "status": status,
                "duration_ms": duration_ms,
                "requestId": request_id,
                "uid": uid,
                "error_code": error_code,
                "exception_type": exception_type,
            },
            ensure_ascii=False,
        )
    )


app = FastAPI(title="Career Coach API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def bootstrap_context() -> None:
    app.state.context = build_app_context(load_settings())


@app.middleware("http")
async def access_gate_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.error_code = None
    request.state.exception_type = None
    request.state.identity = None

    started_at = time.perf_counter()
    is_preflight_request = request.method.upper() == "OPTIONS"

    def finalize(response: Response) -> Response:
        duration_ms = int((time.perf_counter() - started_at) * 1000)
        response.headers["x-request-id"] = request_id

        identity = getattr(request.state, "identity", None)
        log_request_event(
            path=request.url.path,
            method=request.method,
            status=response.status_code,
            duration_ms=duration_ms,
            request_id=request_id,
            uid=identity.get("uid") if isinstance(identity, dict) else None,
            error_code=getattr(request.state, "error_code", None),
            exception_type=getattr(request.state, "exception_type", None),
        )
        return response

    if not is_preflight_request and is_protected_path(request.url.path):
        try:
            context = get_context(request)
            await run_in_threadpool(authenticate_request, request, context.token_verifier)
        except CoachError as exc:
            return finalize(error_response(request, exc))

    response = await call_next(request)
    return finalize(response)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/users/create", response_model=UserRecord, status_code=201)
def create_user_endpoint(payload: UserCreateRequest, request: Request) -> UserRecord:
    caller_uid = get_caller_uid(request)
    if payload.uid != caller_uid:
        raise AccessDenied("UID mismatch")

    context = get_context(request)
    row = create_user(
        db_path=context.db_path,
        uid=payload.uid,
        name=payload.name.strip(),
        email=payload.email.strip(),
        phone=(payload.phone or "").strip() or None,
    )
    if row is None:
        raise AlreadyExists("User already exists")
    return format_user(row)


@app.get("/api/users/{uid}", response_model=UserRecord)
def get_user_endpoint(uid: str, request: Request) -> UserRecord:
    if uid != get_caller_uid(request):
        raise AccessDenied("UID mismatch")

    row = fetch_user(db_path=get_context(request).db_path, uid=uid)
    if row is None:
        raise NotFound("User not found")
    return format_user(row)


@app.post("/api/resume/upload", response_model=ResumeDocument)
def upload_resume_endpoint(request: Request, resume: UploadFile | None = File(default=None)) -> ResumeDocument:
    caller_uid = get_caller_uid(request)
    if resume is None or not (resume.filename or "").strip():
        raise InvalidInput("No file uploaded")

    context = get_context(request)
    try:
        row = ingest_resume(
            db_path=context.db_path,
            completion_client=context.completion_client,
            owner_id=caller_uid,
            source=resume.file,
            filename=resume.filename,
            content_type=resume.content_type,
            max_bytes=context.max_upload_bytes,
            upload_dir=context.upload_dir,
        )
    finally:
        resume.file.close()

    return format_resume(row)


@app.get("/api/resume/user", response_model=list[ResumeDocument])
def list_user_resumes_endpoint(request: Request) -> list[ResumeDocument]:
    rows = list_resumes(db_path=get_context(request).db_path, owner_id=get_caller_uid(request))
    return [format_resume(row) for row in rows]


@app.get("/api/resume/{resume_id}", response_model=ResumeDocument)
def get_resume_endpoint(resume_id: str, request: Request) -> ResumeDocument:
    row = fetch_resume(db_path=get_context(request).db_path, resume_id=resume_id)
    if row is None:
        raise NotFound("Resume not found")
    if row["owner_id"] != get_caller_uid(request):
        raise AccessDenied("You do not own this resume")
    return format_resume(row)


@app.post("/api/interview/start", response_model=InterviewStartResponse)
def start_interview_endpoint(payload: InterviewStartRequest, request: Request) -> InterviewStartResponse:
    caller_uid = get_caller_uid(request)
    started = build_interview_controller(request).start(
        resume_id=payload.resumeId,
        domain=payload.domain,
        caller_id=caller_uid,
    )
    return InterviewStartResponse(interviewId=started.session_id, question=started.question)


@app.post(
    "/api/interview/answer",
    response_model=InterviewAnswerResponse,
    response_model_exclude_none=True,
)
def answer_interview_endpoint(payload: InterviewAnswerRequest, request: Request) -> InterviewAnswerResponse:
    caller_uid = get_caller_uid(request)
    outcome = build_interview_controller(request).answer(
        session_id=payload.interviewId,
        text=payload.answer,
        caller_id=caller_uid,
    )
    if outcome.done:
        display = build_feedback_display(outcome.feedback)
        return InterviewAnswerResponse(
            done=True,
            feedback=outcome.feedback,
            feedbackDisplay=FeedbackDisplay(**display) if display else None,
        )
    return InterviewAnswerResponse(done=False, question=outcome.question)


@app.get("/api/interview/user", response_model=list[InterviewDocument])
def list_user_interviews_endpoint(request: Request) -> list[InterviewDocument]:
    rows = list_interview_sessions(db_path=get_context(request).db_path, owner_id=get_caller_uid(request))
    return [format_interview(row) for row in rows]


@app.get("/api/interview/{interview_id}", response_model=InterviewDocument)
def get_interview_endpoint(interview_id: str, request: Request) -> InterviewDocument:
    row = fetch_interview_session(db_path=get_context(request).db_path, session_id=interview_id)
    if row is None:
        raise NotFound("Interview not found")
    if row["owner_id"] != get_caller_uid(request):
        raise AccessDenied("You do not own this interview")
    return format_interview(row)


@app.exception_handler(CoachError)
async def coach_error_handler(request: Request, exc: CoachError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(
            json.dumps(
                {
                    "event": "request_failed",
                    "code": exc.code,
                    "reason": exc.message,
                    "requestId": get_request_id(request),
                },
                ensure_ascii=False,
            )
        )
    return error_response(request, exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = ERROR_CODE_BY_STATUS.get(exc.status_code, "REQUEST_ERROR")
    message = exc.detail if isinstance(exc.detail, str) and exc.detail else "Request failed"
    set_error_context(request, error_code=code, exception_type="HTTPException")
    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_payload(code=code, message=message, request_id=get_request_id(request)),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    request_id = get_request_id(request)
    first_error = exc.errors()[0] if exc.errors() else None
    message = first_error.get("msg", "Request validation failed") if first_error else "Request validation failed"
    set_error_context(request, error_code="VALIDATION_ERROR", exception_type="RequestValidationError")
    return JSONResponse(
        status_code=422,
        content=build_error_payload(code="VALIDATION_ERROR", message=message, request_id=request_id),
    )


@app.exception_handler(sqlite3.Error)
async def database_exception_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
    logger.error(
        json.dumps(
            {
                "event": "database_error",
                "exception_type": type(exc).__name__,
                "requestId": get_request_id(request),
            },
            ensure_ascii=False,
        )
    )
    set_error_context(request, error_code="INTERNAL_ERROR", exception_type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content=build_error_payload(
            code="INTERNAL_ERROR",
            message="Database error",
            request_id=get_request_id(request),
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        json.dumps(
            {
                "event": "unhandled_exception",
                "exception_type": type(exc).__name__,
                "requestId": get_request_id(request),
            },
            ensure_ascii=False,
        )
    )
    set_error_context(request, error_code="INTERNAL_ERROR", exception_type="UnhandledException")
    return JSONResponse(
        status_code=500,
        content=build_error_payload(
            code="INTERNAL_ERROR",
            message="Unexpected server error",
            request_id=get_request_id(request),
        ),
    )


def run() -> None:
    uvicorn.run("career_coach.main:app", host="0.0.0.0", port=8000)
