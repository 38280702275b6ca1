"""
Required-answer validation for a submitted response.

Branching can end a survey early, which legitimately leaves later required
questions unanswered. Required is therefore only enforced up to the
high-water mark: the position of the last question the submission carries
an answer entry for, blank or not. Layout elements never set the mark since
nothing is stored for them. A required question before that mark that is
missing or blank is a violation, whether or not the respondent was routed
past it.
"""
from typing import Any, List, Mapping, Optional, Sequence

from ..models import LAYOUT_QUESTION_TYPES, QuestionType


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def _is_layout(question: Any) -> bool:
    try:
        return QuestionType(question.question_type) in LAYOUT_QUESTION_TYPES
    except ValueError:
        return False


def high_water_mark(
    ordered_questions: Sequence[Any], answers: Mapping[Any, Optional[str]]
) -> int:
    """Index of the last reached answerable question, -1 when none was reached."""
    for index in range(len(ordered_questions) - 1, -1, -1):
        question = ordered_questions[index]
        if question.id in answers and not _is_layout(question):
            return index
    return -1


def validate_required_answers(
    ordered_questions: Sequence[Any], answers: Mapping[Any, Optional[str]]
) -> List[str]:
    last_answered = high_water_mark(ordered_questions, answers)
    violations = []
    for question in ordered_questions[: last_answered + 1]:
        if not question.is_required or _is_layout(question):
            continue
        if _is_blank(answers.get(question.id)):
            violations.append(f"Question '{question.text}' is required.")
    return violations
