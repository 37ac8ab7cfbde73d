from __future__ import annotations

import pytest

from career_coach.feedback import build_feedback_display, is_feedback_passed, parse_feedback_score


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Result: PASS\nScore: 8/10", 8),
        ("overall score - 6 out of 10", 6),
        ("SCORE:\n9", 9),
        ("No numeric rating was given.", 5),
        ("", 5),
    ],
)
def test_parse_feedback_score(text: str, expected: int) -> None:
    assert parse_feedback_score(text) == expected


def test_pass_requires_pass_without_fail() -> None:
    assert is_feedback_passed("Result: PASS") is True
    assert is_feedback_passed("Result: FAIL") is False
    assert is_feedback_passed("Passed the basics but failed system design") is False
    assert is_feedback_passed("Needs improvement") is False


def test_display_is_absent_without_feedback() -> None:
    assert build_feedback_display(None) is None
    assert build_feedback_display("Result: pass. Score: 10/10") == {"score": 10, "passed": True}
