from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, BinaryIO

from .errors import InvalidInput
from .prompts import build_resume_extraction_prompt
from .resume_parser import extract_json_from_text, extract_pdf_text, normalize_resume_payload
from .resume_store import create_resume, fetch_resume

PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}
PDF_MAGIC = b"%PDF"
COPY_CHUNK_BYTES = 64 * 1024

logger = logging.getLogger("career_coach.ingestion")


def is_pdf_upload(*, filename: str | None, content_type: str | None) -> bool:
    safe_name = (filename or "").strip().lower()
    safe_type = (content_type or "").split(";", 1)[0].strip().lower()
    return safe_name.endswith(".pdf") or safe_type in PDF_CONTENT_TYPES


def save_upload_to_temp(source: BinaryIO, *, max_bytes: int, upload_dir: str | None = None) -> Path:
    """Copy an upload stream to a temporary .pdf file and return its path.

    The caller owns the returned file and must remove it.
    """
    if upload_dir:
        Path(upload_dir).mkdir(parents=True, exist_ok=True)

    handle = tempfile.NamedTemporaryFile(prefix="resume-", suffix=".pdf", dir=upload_dir, delete=False)
    path = Path(handle.name)
    try:
        with handle:
            written = 0
            head = b""
            while True:
                chunk = source.read(COPY_CHUNK_BYTES)
                if not chunk:
                    break
                if not head:
                    head = chunk[: len(PDF_MAGIC)]
                written += len(chunk)
                if written > max_bytes:
                    raise InvalidInput(f"Resume file is too large, max {max_bytes} bytes")
                handle.write(chunk)

        if written == 0:
            raise InvalidInput("Uploaded file is empty")
        if head != PDF_MAGIC:
            raise InvalidInput("Only PDF resumes are supported")
    except BaseException:
        remove_temp_file(path)
        raise
    return path


def remove_temp_file(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning(
            json.dumps(
                {"event": "temp_file_cleanup_failed", "path": str(path), "reason": str(exc)},
                ensure_ascii=False,
            )
        )


def ingest_resume(
    *,
    db_path: Path,
    completion_client: Any,
    owner_id: str,
    source: BinaryIO,
    filename: str | None,
    content_type: str | None,
    max_bytes: int,
    upload_dir: str | None = None,
) -> dict[str, Any]:
    if not is_pdf_upload(filename=filename, content_type=content_type):
        raise InvalidInput("Only PDF resumes are supported")

    temp_path = save_upload_to_temp(source, max_bytes=max_bytes, upload_dir=upload_dir)
    try:
        text = extract_pdf_text(temp_path)
        if not text:
            raise InvalidInput("No text could be extracted from the PDF")

        completion = completion_client.complete(build_resume_extraction_prompt(resume_text=text), json_output=True)
        parsed = normalize_resume_payload(extract_json_from_text(completion))

        resume_id = create_resume(
            db_path=db_path,
            owner_id=owner_id,
            name=parsed.name,
            email=parsed.email,
            skills=parsed.skills,
            projects=parsed.projects,
            education=parsed.education,
            experience=parsed.experience,
            ats_score=parsed.ats_score,
            missing=parsed.missing,
            suggestions=parsed.suggestions,
            raw_text=text,
        )
    finally:
        remove_temp_file(temp_path)

    logger.info(
        json.dumps(
            {
                "event": "resume_ingested",
                "resumeId": resume_id,
                "ownerId": owner_id,
                "atsScore": parsed.ats_score,
                "textLength": len(text),
            },
            ensure_ascii=False,
        )
    )

    row = fetch_resume(db_path=db_path, resume_id=resume_id)
    if row is None:
        raise RuntimeError("resume disappeared right after insert")
    return row
