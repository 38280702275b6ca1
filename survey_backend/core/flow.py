"""
Per-question navigation through a survey.

``next_step`` is pure: the same (question, answer, questions, rules) input
always produces the same ``NextStep``, so the respondent client and the
server can run it independently and agree on the path.
"""
import enum
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import TargetAction
from .conditions import Answer, evaluate_condition, parse_condition


class StepKind(str, enum.Enum):
    GO_TO = "GoToQuestion"
    END_SURVEY = "EndSurvey"
    ADVANCE = "Advance"


@dataclass(frozen=True)
class NextStep:
    kind: StepKind
    question_id: Optional[uuid.UUID] = None

    @classmethod
    def advance(cls) -> "NextStep":
        return cls(StepKind.ADVANCE)

    @classmethod
    def end_survey(cls) -> "NextStep":
        return cls(StepKind.END_SURVEY)

    @classmethod
    def go_to(cls, question_id: uuid.UUID) -> "NextStep":
        return cls(StepKind.GO_TO, question_id)


@dataclass(frozen=True)
class RuntimeRule:
    """A branch rule as the resolver sees it, with its condition already parsed."""

    id: int
    source_question_id: uuid.UUID
    condition: Any  # parsed Condition or None when the stored blob was malformed
    target_action: TargetAction
    target_question_id: Optional[uuid.UUID]
    priority: int

    @classmethod
    def from_model(cls, rule) -> "RuntimeRule":
        return cls(
            id=rule.id,
            source_question_id=rule.source_question_id,
            condition=parse_condition(rule.condition),
            target_action=TargetAction(rule.target_action),
            target_question_id=rule.target_question_id,
            priority=rule.priority,
        )


def group_rules_by_source(
    rules: Iterable[RuntimeRule],
) -> Dict[uuid.UUID, List[RuntimeRule]]:
    grouped: Dict[uuid.UUID, List[RuntimeRule]] = {}
    for rule in rules:
        grouped.setdefault(rule.source_question_id, []).append(rule)
    return grouped


def _find_position(question_id: Any, ordered_questions: Sequence[Any]) -> int:
    wanted = str(question_id).lower()
    for index, question in enumerate(ordered_questions):
        if str(question.id).lower() == wanted:
            return index
    return -1


def next_step(
    current_question_id: uuid.UUID,
    answer: Answer,
    ordered_questions: Sequence[Any],
    rules_by_source: Mapping[uuid.UUID, Sequence[RuntimeRule]],
) -> NextStep:
    rules = rules_by_source.get(current_question_id)
    if not rules:
        return NextStep.advance()

    # sorted() is stable: equal priorities keep their insertion order.
    for rule in sorted(rules, key=lambda r: r.priority):
        if not evaluate_condition(rule.condition, answer):
            continue

        if rule.target_action == TargetAction.END_SURVEY:
            return NextStep.end_survey()

        # SkipTo and ShowQuestion navigate the same way.
        if rule.target_question_id is None:
            return NextStep.advance()
        position = _find_position(rule.target_question_id, ordered_questions)
        if position < 0:
            return NextStep.advance()
        return NextStep.go_to(ordered_questions[position].id)

    return NextStep.advance()


def resolve_next_question_id(
    step: NextStep, current_question_id: uuid.UUID, ordered_questions: Sequence[Any]
) -> Optional[uuid.UUID]:
    """Turn a step into the id of the question to show next; None ends the survey."""
    if step.kind == StepKind.END_SURVEY:
        return None
    if step.kind == StepKind.GO_TO:
        return step.question_id
    position = _find_position(current_question_id, ordered_questions)
    if position < 0 or position + 1 >= len(ordered_questions):
        return None
    return ordered_questions[position + 1].id
