from __future__ import annotations

import json
from typing import Any

PROMPT_VERSION = "v1-interview-2026-10"

RESUME_JSON_TEMPLATE = {
    "name": "",
    "email": "",
    "skills": [],
    "projects": [{"name": "", "technologies": [], "description": [], "link": ""}],
    "education": [{"institution": "", "degree": "", "dates": "", "details": "", "location": ""}],
    "experience": [{"company": "", "title": "", "dates": "", "location": "", "description": [], "link": ""}],
    "atsScore": 0,
    "missing": [],
    "suggestions": [],
}


def build_resume_extraction_prompt(*, resume_text: str) -> str:
    return (
        "You are an ATS (applicant tracking system) resume analyzer.\n"
        "From the resume text below extract: name, email, skills (array of strings), "
        "projects, education and experience.\n"
        "Then give an ATS compatibility score (integer 0-100), list the standard resume sections "
        "that are genuinely absent from the text (for example Summary, Projects, Education, "
        "Experience, Skills, Certifications) and give exactly 3 concrete improvement suggestions.\n"
        "Rules:\n"
        "- Use only information present in the text. Do not invent names, emails, dates or links.\n"
        "- Leave a field empty (\"\" or []) when the text does not contain it.\n"
        "- Only list a section as missing when it is really absent. Never claim the resume has no content.\n"
        "- Return ONLY valid JSON with exactly this shape and no commentary:\n"
        f"{json.dumps(RESUME_JSON_TEMPLATE, ensure_ascii=False)}\n"
        f"promptVersion={PROMPT_VERSION}\n\n"
        "[Resume Text]\n"
        f"{resume_text}\n"
    )


def format_resume_context(resume: dict[str, Any]) -> str:
    lines = [f"Name: {resume.get('name') or 'Unknown'}"]

    skills = [str(item) for item in resume.get("skills", []) if str(item).strip()]
    lines.append(f"Skills: {', '.join(skills) if skills else 'not listed'}")

    projects = resume.get("projects", [])
    if projects:
        lines.append("Projects:")
        for project in projects:
            techs = ", ".join(project.get("technologies", []))
            summary = " ".join(project.get("description", []))
            label = project.get("name") or "Untitled project"
            lines.append(f"- {label}" + (f" ({techs})" if techs else "") + (f": {summary}" if summary else ""))

    experience = resume.get("experience", [])
    if experience:
        lines.append("Experience:")
        for item in experience:
            role = " at ".join(part for part in (item.get("title", ""), item.get("company", "")) if part)
            dates = item.get("dates", "")
            lines.append(f"- {role or 'Role'}" + (f" [{dates}]" if dates else ""))

    education = resume.get("education", [])
    if education:
        lines.append("Education:")
        for item in education:
            entry = ", ".join(part for part in (item.get("degree", ""), item.get("institution", "")) if part)
            lines.append(f"- {entry or 'Education entry'}")

    return "\n".join(lines)


def format_transcript(questions: list[str], answers: list[str]) -> str:
    blocks: list[str] = []
    for index, question in enumerate(questions):
        answer = answers[index] if index < len(answers) else ""
        blocks.append(f"Q{index + 1}: {question}\nA{index + 1}: {answer}")
    return "\n\n".join(blocks)


def build_first_question_prompt(*, resume: dict[str, Any], domain: str) -> str:
    return (
        "You are a professional technical interviewer running a mock interview.\n\n"
        "Candidate details:\n"
        f"{format_resume_context(resume)}\n\n"
        f"Interview domain: {domain}\n\n"
        "Ask the FIRST interview question. Make it suitable for this domain and anchored in the "
        "candidate's background, starting at a moderate difficulty.\n"
        "Return only the question text."
    )


def build_next_question_prompt(
    *,
    resume: dict[str, Any],
    domain: str,
    questions: list[str],
    answers: list[str],
    max_questions: int,
) -> str:
    return (
        "You are a professional technical interviewer running a mock interview.\n\n"
        "Candidate details:\n"
        f"{format_resume_context(resume)}\n\n"
        f"Interview domain: {domain}\n"
        f"This will be question {len(questions) + 1} of {max_questions}.\n\n"
        "Conversation so far:\n"
        f"{format_transcript(questions, answers)}\n\n"
        "Judge the quality of the most recent answer before choosing the next question:\n"
        "- If it was strong and specific, ask a harder follow-up that goes deeper.\n"
        "- If it was weak, vague or wrong, ask a simpler question that guides the candidate.\n"
        "- Do not repeat a question that was already asked.\n"
        "Ask the NEXT interview question. Return only the question text."
    )


def build_evaluation_prompt(
    *,
    resume: dict[str, Any],
    domain: str,
    questions: list[str],
    answers: list[str],
) -> str:
    return (
        "You are a strict senior interviewer evaluating a completed mock interview.\n\n"
        "Candidate details:\n"
        f"{format_resume_context(resume)}\n\n"
        f"Interview domain: {domain}\n\n"
        "Full transcript:\n"
        f"{format_transcript(questions, answers)}\n\n"
        "Evaluate strictly:\n"
        "- Cite specific answers (by question number) as evidence.\n"
        "- Treat empty answers, non-answers and repeated or copied text as failures for that question.\n"
        "- Do not reward confident tone without substance.\n\n"
        "Write the report with these sections:\n"
        "Result: PASS or FAIL\n"
        "Strengths:\n"
        "Weaknesses:\n"
        "Score: <integer from 0 to 10>/10\n"
        "Improvement Tips:\n"
    )
