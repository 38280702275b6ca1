import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..core.conditions import parse_condition
from ..core.flow import RuntimeRule
from ..database import UnitOfWork
from ..exceptions import NotFoundError, PersistenceError, ValidationFailedError
from ..models import BranchRule, Question, QuestionOption, TargetAction
from ..schemas import (
    BranchRuleBase,
    BranchRuleCreate,
    BranchRuleRead,
    BranchRuleUpdate,
    ComparisonCondition,
    OptionSelectedCondition,
    PresenceCondition,
)
from .audit import record_activity
from .permissions import require_permission

logger = logging.getLogger(__name__)

_OPERATOR_LABELS = {
    "equals": "equals",
    "notEquals": "does not equal",
    "contains": "contains",
    "greaterThan": "is greater than",
    "lessThan": "is less than",
}


def describe_condition(raw, option_text: Optional[str] = None) -> str:
    """Short human-readable summary of a stored condition, for rule listings."""
    condition = parse_condition(raw)
    if condition is None:
        return "Invalid condition"
    if isinstance(condition, PresenceCondition):
        return "Answer is given" if condition.operator == "answered" else "Answer is empty"
    if isinstance(condition, OptionSelectedCondition):
        label = option_text or condition.option_id or "?"
        return f"Option '{label}' is selected"
    if isinstance(condition, ComparisonCondition):
        return f"Answer {_OPERATOR_LABELS[condition.operator]} '{condition.value}'"
    return "Invalid condition"


async def _option_texts(db: AsyncSession, rules: List[BranchRule]) -> dict:
    wanted = set()
    for rule in rules:
        condition = parse_condition(rule.condition)
        if isinstance(condition, OptionSelectedCondition) and condition.option_id:
            try:
                wanted.add(uuid.UUID(condition.option_id))
            except ValueError:
                continue
    if not wanted:
        return {}
    result = await db.execute(select(QuestionOption).where(QuestionOption.id.in_(wanted)))
    return {str(option.id).lower(): option.text for option in result.scalars().all()}


async def build_rule_reads(db: AsyncSession, rules: List[BranchRule]) -> List[BranchRuleRead]:
    option_texts = await _option_texts(db, rules)
    reads = []
    for rule in rules:
        condition = parse_condition(rule.condition)
        option_text = None
        if isinstance(condition, OptionSelectedCondition) and condition.option_id:
            option_text = option_texts.get(condition.option_id.lower())
        read = BranchRuleRead.model_validate(rule)
        read.condition_description = describe_condition(rule.condition, option_text)
        reads.append(read)
    return reads


async def get_rule(db: AsyncSession, rule_id: int) -> BranchRule:
    rule = await db.get(BranchRule, rule_id)
    if rule is None:
        raise NotFoundError("Branch rule not found.")
    return rule


async def list_rules_for_survey(db: AsyncSession, survey_id: uuid.UUID) -> List[BranchRule]:
    result = await db.execute(
        select(BranchRule)
        .where(BranchRule.survey_id == survey_id)
        .order_by(BranchRule.source_question_id, BranchRule.priority, BranchRule.id)
    )
    return list(result.scalars().all())


async def list_runtime_rules(db: AsyncSession, survey_id: uuid.UUID) -> List[RuntimeRule]:
    return [RuntimeRule.from_model(rule) for rule in await list_rules_for_survey(db, survey_id)]


async def list_rules_for_question(
    db: AsyncSession, question_id: uuid.UUID
) -> List[BranchRule]:
    result = await db.execute(
        select(BranchRule)
        .where(BranchRule.source_question_id == question_id)
        .order_by(BranchRule.priority, BranchRule.id)
    )
    return list(result.scalars().all())


async def _validate_rule(
    db: AsyncSession, source: Question, rule_in: BranchRuleBase
) -> Optional[uuid.UUID]:
    """Returns the target question id to store (None for EndSurvey)."""
    errors = []
    target_id = rule_in.target_question_id

    if rule_in.target_action == TargetAction.END_SURVEY:
        target_id = None
    elif target_id is None:
        errors.append("A target question is required for this action.")
    else:
        target = await db.get(Question, target_id)
        if target is None or target.survey_id != source.survey_id:
            errors.append("Target question must belong to the same survey.")
        elif target.id == source.id:
            errors.append("A rule cannot target its own source question.")

    condition = rule_in.condition
    if isinstance(condition, OptionSelectedCondition):
        option = None
        if condition.option_id:
            try:
                option = await db.get(QuestionOption, uuid.UUID(condition.option_id))
            except ValueError:
                option = None
        if option is None or option.question_id != source.id:
            errors.append("Selected option must belong to the source question.")

    if errors:
        raise ValidationFailedError(errors)
    return target_id


async def create_rule(
    db: AsyncSession, acting_user_id: uuid.UUID, rule_in: BranchRuleCreate
) -> BranchRule:
    source = await db.get(Question, rule_in.source_question_id)
    if source is None:
        raise NotFoundError("Question not found.")
    await require_permission(db, acting_user_id, source.survey_id, "EditQuestion")
    target_id = await _validate_rule(db, source, rule_in)

    rule = BranchRule(
        survey_id=source.survey_id,
        source_question_id=source.id,
        condition=rule_in.condition.model_dump(),
        target_action=rule_in.target_action,
        target_question_id=target_id,
        priority=rule_in.priority,
    )
    try:
        async with UnitOfWork(db):
            db.add(rule)
            record_activity(
                db,
                "BranchRuleCreated",
                f"Rule on question {source.ordering}: {describe_condition(rule.condition)} "
                f"-> {rule.target_action.value}",
                user_id=acting_user_id,
                survey_id=source.survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Creating branch rule on question %s failed", source.id)
        raise PersistenceError("Save branch rule failed. Please try again later.")
    return rule


async def update_rule(
    db: AsyncSession, rule_id: int, acting_user_id: uuid.UUID, rule_in: BranchRuleUpdate
) -> BranchRule:
    rule = await get_rule(db, rule_id)
    await require_permission(db, acting_user_id, rule.survey_id, "EditQuestion")
    source = await db.get(Question, rule.source_question_id)
    if source is None:
        raise NotFoundError("Question not found.")
    target_id = await _validate_rule(db, source, rule_in)

    try:
        async with UnitOfWork(db):
            rule.condition = rule_in.condition.model_dump()
            rule.target_action = rule_in.target_action
            rule.target_question_id = target_id
            rule.priority = rule_in.priority
            record_activity(
                db,
                "BranchRuleUpdated",
                f"Rule {rule.id}: {describe_condition(rule.condition)} "
                f"-> {rule.target_action.value}",
                user_id=acting_user_id,
                survey_id=rule.survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Updating branch rule %s failed", rule_id)
        raise PersistenceError("Save branch rule failed. Please try again later.")
    return rule


async def delete_rule(db: AsyncSession, rule_id: int, acting_user_id: uuid.UUID) -> None:
    rule = await get_rule(db, rule_id)
    await require_permission(db, acting_user_id, rule.survey_id, "EditQuestion")

    try:
        async with UnitOfWork(db):
            await db.execute(delete(BranchRule).where(BranchRule.id == rule_id))
            db.expunge(rule)
            record_activity(
                db,
                "BranchRuleDeleted",
                f"Rule {rule_id} deleted.",
                user_id=acting_user_id,
                survey_id=rule.survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Deleting branch rule %s failed", rule_id)
        raise PersistenceError("Delete branch rule failed. Please try again later.")
