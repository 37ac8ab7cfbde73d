from __future__ import annotations

import json

import pytest

from career_coach.errors import InvalidInput, UpstreamFormatError
from career_coach.resume_parser import (
    clamp_score,
    extract_json_from_text,
    extract_pdf_text,
    normalize_education_entry,
    normalize_experience_entry,
    normalize_project_entry,
    normalize_resume_payload,
)
from conftest import make_pdf_bytes


def test_extract_json_from_fenced_and_wrapped_text() -> None:
    fenced = "```json\n{\"name\": \"Jane\"}\n```"
    assert extract_json_from_text(fenced) == {"name": "Jane"}

    wrapped = "Here is the result: {\"atsScore\": 80} hope it helps"
    assert extract_json_from_text(wrapped) == {"atsScore": 80}


@pytest.mark.parametrize("raw", ["not json at all", "[1, 2, 3]", "{\"name\": }"])
def test_extract_json_rejects_non_objects(raw: str) -> None:
    with pytest.raises(UpstreamFormatError):
        extract_json_from_text(raw)


def test_bare_string_entries_become_objects() -> None:
    assert normalize_education_entry("MIT") == {
        "institution": "MIT",
        "degree": "",
        "dates": "",
        "details": "",
        "location": "",
    }
    assert normalize_experience_entry("Acme")["company"] == "Acme"
    assert normalize_project_entry("Chat App") == {"name": "Chat App", "technologies": [], "description": [], "link": ""}
    assert normalize_education_entry("   ") is None
    assert normalize_project_entry(42) is None


def test_synonyms_and_date_shapes_are_folded_into_schema_fields() -> None:
    education = normalize_education_entry(
        {"school": "State University", "degree": "BSc", "startDate": "2018", "endDate": "2022", "gpa": "3.8"}
    )
    assert education == {
        "institution": "State University",
        "degree": "BSc",
        "dates": "2018 - 2022",
        "details": "3.8",
        "location": "",
    }

    experience = normalize_experience_entry(
        {
            "organization": "Acme",
            "role": "Engineer",
            "dates": ["Jan 2020", "Present"],
            "responsibilities": "Built APIs",
            "url": "https://acme.example",
        }
    )
    assert experience == {
        "company": "Acme",
        "title": "Engineer",
        "dates": "Jan 2020 - Present",
        "location": "",
        "description": ["Built APIs"],
        "link": "https://acme.example",
    }

    project = normalize_project_entry({"title": "Tracker", "techStack": "Python, Redis , ", "github": "gh/tracker"})
    assert project == {"name": "Tracker", "technologies": ["Python", "Redis"], "description": [], "link": "gh/tracker"}


def test_normalized_entries_survive_reserialization_without_dropping_fields() -> None:
    payload = {
        "education": ["College A", {"institution": "College B", "details": "Honours"}],
        "experience": [{"company": "X", "title": "Dev", "description": ["a", "b"], "link": "l"}],
        "projects": [{"name": "P", "technologies": ["Go"], "description": "one line", "link": "p"}],
    }
    parsed = normalize_resume_payload(payload)
    restored = json.loads(json.dumps({"education": parsed.education, "experience": parsed.experience, "projects": parsed.projects}))

    assert [entry["institution"] for entry in restored["education"]] == ["College A", "College B"]
    assert restored["education"][1]["details"] == "Honours"
    assert set(restored["education"][0]) == {"institution", "degree", "dates", "details", "location"}
    assert restored["experience"][0]["description"] == ["a", "b"]
    assert restored["experience"][0]["link"] == "l"
    assert restored["projects"][0] == {"name": "P", "technologies": ["Go"], "description": ["one line"], "link": "p"}


def test_skills_accept_strings_lists_and_categories() -> None:
    assert normalize_resume_payload({"skills": "Python, SQL, python"}).skills == ["Python", "SQL"]
    assert normalize_resume_payload({"skills": {"languages": ["Go"], "tools": ["Docker", "Go"]}}).skills == [
        "Go",
        "Docker",
    ]


def test_scalar_fields_and_score_clamping() -> None:
    parsed = normalize_resume_payload({"name": " Jane ", "email": None, "atsScore": "130", "missing": "Summary"})
    assert parsed.name == "Jane"
    assert parsed.email == ""
    assert parsed.ats_score == 100
    assert parsed.missing == ["Summary"]

    assert clamp_score(-4) == 0
    assert clamp_score("72.6") == 73
    assert clamp_score("n/a") == 0


def test_extract_pdf_text_joins_pages(tmp_path) -> None:
    path = tmp_path / "two_pages.pdf"
    path.write_bytes(make_pdf_bytes("First page text", "Second page text"))

    text = extract_pdf_text(path)
    assert text.splitlines()[0] == "First page text"
    assert "Second page text" in text
    assert text.index("First page text") < text.index("Second page text")


def test_extract_pdf_text_rejects_garbage(tmp_path) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"%PDF-1.4 definitely broken")

    with pytest.raises(InvalidInput):
        extract_pdf_text(path)
