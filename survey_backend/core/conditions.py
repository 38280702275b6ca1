"""
Branch condition evaluation.

Conditions come out of the database as loosely-typed JSON blobs. They are
parsed once into the closed ``Condition`` union from ``schemas``; anything
that does not parse becomes ``None`` and never matches. Evaluation is pure
and total: it never raises, whatever the answer or literal looks like.
"""
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Iterable, Optional

from pydantic import TypeAdapter, ValidationError

from ..schemas import (
    ComparisonCondition,
    Condition,
    OptionSelectedCondition,
    PresenceCondition,
)

logger = logging.getLogger(__name__)

_condition_adapter = TypeAdapter(Condition)

# Operator names are matched case-insensitively when read from storage.
_CANONICAL_OPERATORS = {
    name.lower(): name
    for name in (
        "equals",
        "notEquals",
        "contains",
        "greaterThan",
        "lessThan",
        "optionSelected",
        "answered",
        "notAnswered",
    )
}


@dataclass(frozen=True)
class Answer:
    """What a respondent gave for one question: raw text plus selected option ids."""

    text: Optional[str] = None
    option_ids: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, text: Optional[str] = None, option_ids: Iterable[Any] = ()) -> "Answer":
        return cls(
            text=text,
            option_ids=frozenset(str(o) for o in option_ids if o is not None and str(o)),
        )

    @property
    def normalized_text(self) -> str:
        return (self.text or "").strip()


def parse_condition(raw: Any) -> Optional[Condition]:
    """
    Parse a stored condition blob (dict or JSON string) into a Condition.

    Returns None for malformed input. A blob without an operator is an
    ``equals`` test, matching how the authoring UI stored early rules.
    """
    if isinstance(
        raw, (ComparisonCondition, OptionSelectedCondition, PresenceCondition)
    ):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug("Unparseable condition JSON: %r", raw)
            return None
    if not isinstance(raw, dict):
        return None

    data = dict(raw)
    if "optionId" in data and "option_id" not in data:
        data["option_id"] = data.pop("optionId")

    operator = data.get("operator")
    if operator is None:
        operator = "equals"
    if not isinstance(operator, str):
        return None
    canonical = _CANONICAL_OPERATORS.get(operator.strip().lower())
    if canonical is None:
        logger.debug("Unknown condition operator: %r", operator)
        return None
    data["operator"] = canonical

    # Presence operators ignore any literal that came along.
    if canonical in ("answered", "notAnswered"):
        data = {"operator": canonical}
    elif canonical == "optionSelected":
        data = {"operator": canonical, "option_id": data.get("option_id")}
    else:
        data = {"operator": canonical, "value": data.get("value")}

    try:
        return _condition_adapter.validate_python(data)
    except ValidationError:
        logger.debug("Invalid condition payload: %r", raw)
        return None


def _to_number(text: str) -> Optional[float]:
    if not text:
        return None
    try:
        number = float(text)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def evaluate_condition(condition: Optional[Condition], answer: Answer) -> bool:
    if condition is None:
        return False

    answer_text = answer.normalized_text

    if isinstance(condition, PresenceCondition):
        if condition.operator == "answered":
            return len(answer_text) > 0
        return len(answer_text) == 0

    if isinstance(condition, OptionSelectedCondition):
        if not condition.option_id:
            return False
        wanted = condition.option_id.strip().lower()
        return any(option_id.strip().lower() == wanted for option_id in answer.option_ids)

    if isinstance(condition, ComparisonCondition):
        literal = (condition.value or "").strip()
        operator = condition.operator
        if operator == "equals":
            return answer_text == literal
        if operator == "notEquals":
            return answer_text != literal
        if operator == "contains":
            return literal in answer_text

        # greaterThan / lessThan: a non-numeric side never satisfies the test.
        left = _to_number(answer_text)
        right = _to_number(literal)
        if left is None or right is None:
            return False
        if operator == "greaterThan":
            return left > right
        return left < right

    return False
