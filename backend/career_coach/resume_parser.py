from __future__ import annotations

import json
import re
from dataclasses import dataclass, field as dataclass_field
from pathlib import Path
from typing import Any

import fitz  # PyMuPDF

from .errors import InvalidInput, UpstreamFormatError

MAX_LIST_ITEMS = 50

FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "institution": ("institution", "school", "university", "college"),
    "degree": ("degree", "qualification", "program", "course"),
    "dates": ("dates", "date", "duration", "period", "years"),
    "details": ("details", "gpa", "grade", "cgpa", "notes"),
    "location": ("location", "city", "place"),
    "company": ("company", "organization", "organisation", "employer"),
    "title": ("title", "role", "position", "designation"),
    "description": ("description", "responsibilities", "highlights", "bullets", "summary", "achievements"),
    "link": ("link", "url", "github", "website", "repo"),
    "name": ("name", "title", "project"),
    "technologies": ("technologies", "tech", "techStack", "tech_stack", "stack", "tools"),
}


@dataclass
class ParsedResume:
    name: str = ""
    email: str = ""
    skills: list[str] = dataclass_field(default_factory=list)
    projects: list[dict[str, Any]] = dataclass_field(default_factory=list)
    education: list[dict[str, Any]] = dataclass_field(default_factory=list)
    experience: list[dict[str, Any]] = dataclass_field(default_factory=list)
    ats_score: int = 0
    missing: list[str] = dataclass_field(default_factory=list)
    suggestions: list[str] = dataclass_field(default_factory=list)


def extract_pdf_text(path: Path) -> str:
    """Extract plain text from a PDF, one block per page joined by newlines."""
    try:
        doc = fitz.open(path)
    except (RuntimeError, ValueError) as exc:
        raise InvalidInput("uploaded file is not a readable PDF") from exc

    try:
        if doc.page_count == 0:
            raise InvalidInput("uploaded PDF has no pages")
        pages = [page.get_text("text") for page in doc]
    finally:
        doc.close()

    return "\n".join(page.strip() for page in pages).strip()


def extract_json_from_text(raw: str) -> dict[str, Any]:
    content = raw.strip()
    if content.startswith("```"):
        content = re.sub(r"^```(?:json)?", "", content).strip()
        content = re.sub(r"```$", "", content).strip()

    start = content.find("{")
    end = content.rfind("}")
    if start >= 0 and end > start:
        content = content[start : end + 1]

    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise UpstreamFormatError("AI response was not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise UpstreamFormatError("AI response is not a JSON object")
    return parsed


def to_text(raw: object) -> str:
    if raw is None:
        return ""
    if isinstance(raw, (list, tuple)):
        return " - ".join(part for part in (to_text(item) for item in raw) if part)
    if isinstance(raw, dict):
        start = to_text(raw.get("start") or raw.get("from"))
        end = to_text(raw.get("end") or raw.get("to"))
        if start or end:
            return " - ".join(part for part in (start, end) if part)
        return ", ".join(part for part in (to_text(value) for value in raw.values()) if part)
    return str(raw).strip()


def to_lines(raw: object) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        text = raw.strip()
        return [text] if text else []
    if isinstance(raw, (list, tuple)):
        result: list[str] = []
        for item in raw:
            result.extend(to_lines(item))
        return result[:MAX_LIST_ITEMS]
    text = to_text(raw)
    return [text] if text else []


def to_string_list(raw: object, *, split_commas: bool = False) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        parts = raw.split(",") if split_commas else [raw]
        items = [part.strip() for part in parts]
    elif isinstance(raw, dict):
        items = []
        for value in raw.values():
            items.extend(to_string_list(value, split_commas=split_commas))
    elif isinstance(raw, (list, tuple)):
        items = []
        for value in raw:
            items.extend(to_string_list(value, split_commas=split_commas))
    else:
        items = [to_text(raw)]

    result: list[str] = []
    seen: set[str] = set()
    for item in items:
        if not item:
            continue
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
        if len(result) >= MAX_LIST_ITEMS:
            break
    return result


def _pick(raw: dict[str, Any], field: str) -> object:
    for key in FIELD_SYNONYMS.get(field, (field,)):
        if key in raw and raw[key] not in (None, "", []):
            return raw[key]
    return None


def _with_date_range(raw: dict[str, Any]) -> object:
    dates = _pick(raw, "dates")
    if dates is not None:
        return dates
    start = raw.get("startDate") or raw.get("start_date") or raw.get("start")
    end = raw.get("endDate") or raw.get("end_date") or raw.get("end")
    if start or end:
        return [start, end]
    return None


def normalize_education_entry(raw: object) -> dict[str, Any] | None:
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        return {"institution": text, "degree": "", "dates": "", "details": "", "location": ""}
    if not isinstance(raw, dict):
        return None

    entry = {
        "institution": to_text(_pick(raw, "institution")),
        "degree": to_text(_pick(raw, "degree")),
        "dates": to_text(_with_date_range(raw)),
        "details": to_text(_pick(raw, "details")),
        "location": to_text(_pick(raw, "location")),
    }
    if not any(entry.values()):
        return None
    return entry


def normalize_experience_entry(raw: object) -> dict[str, Any] | None:
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        return {"company": text, "title": "", "dates": "", "location": "", "description": [], "link": ""}
    if not isinstance(raw, dict):
        return None

    entry = {
        "company": to_text(_pick(raw, "company")),
        "title": to_text(_pick(raw, "title")),
        "dates": to_text(_with_date_range(raw)),
        "location": to_text(_pick(raw, "location")),
        "description": to_lines(_pick(raw, "description")),
        "link": to_text(_pick(raw, "link")),
    }
    if not any(entry.values()):
        return None
    return entry


def normalize_project_entry(raw: object) -> dict[str, Any] | None:
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        return {"name": text, "technologies": [], "description": [], "link": ""}
    if not isinstance(raw, dict):
        return None

    entry = {
        "name": to_text(_pick(raw, "name")),
        "technologies": to_string_list(_pick(raw, "technologies"), split_commas=True),
        "description": to_lines(_pick(raw, "description")),
        "link": to_text(_pick(raw, "link")),
    }
    if not any(entry.values()):
        return None
    return entry


def _normalize_entries(raw: object, normalizer) -> list[dict[str, Any]]:
    if raw is None:
        return []
    items = raw if isinstance(raw, list) else [raw]
    result: list[dict[str, Any]] = []
    for item in items:
        entry = normalizer(item)
        if entry is not None:
            result.append(entry)
        if len(result) >= MAX_LIST_ITEMS:
            break
    return result


def clamp_score(value: object, *, low: int = 0, high: int = 100) -> int:
    try:
        score = int(round(float(str(value).strip())))
    except (TypeError, ValueError):
        return low
    return max(low, min(high, score))


def normalize_resume_payload(parsed: dict[str, Any]) -> ParsedResume:
    """Coerce a model-produced resume object into the stored shape.

    Every entry keeps all schema fields even when the model returned a bare
    string or used a synonym for a key.
    """
    return ParsedResume(
        name=to_text(parsed.get("name")),
        email=to_text(parsed.get("email")),
        skills=to_string_list(parsed.get("skills"), split_commas=True),
        projects=_normalize_entries(parsed.get("projects"), normalize_project_entry),
        education=_normalize_entries(parsed.get("education"), normalize_education_entry),
        experience=_normalize_entries(parsed.get("experience"), normalize_experience_entry),
        ats_score=clamp_score(parsed.get("atsScore", parsed.get("ats_score", 0))),
        missing=to_string_list(parsed.get("missing")),
        suggestions=to_string_list(parsed.get("suggestions")),
    )
