from __future__ import annotations

import re

DEFAULT_DISPLAY_SCORE = 5

SCORE_PATTERN = re.compile(r"score.*?(\d+)", re.IGNORECASE | re.DOTALL)


# Display-only heuristics over free-text evaluation. Never persist these or
# use them for decisions.


def parse_feedback_score(feedback_text: str | None) -> int:
    if not feedback_text:
        return DEFAULT_DISPLAY_SCORE
    match = SCORE_PATTERN.search(feedback_text)
    if match is None:
        return DEFAULT_DISPLAY_SCORE
    return int(match.group(1))


def is_feedback_passed(feedback_text: str | None) -> bool:
    text = (feedback_text or "").lower()
    return "pass" in text and "fail" not in text


def build_feedback_display(feedback_text: str | None) -> dict[str, int | bool] | None:
    if feedback_text is None:
        return None
    return {
        "score": parse_feedback_score(feedback_text),
        "passed": is_feedback_passed(feedback_text),
    }
