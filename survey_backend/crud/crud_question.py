import logging
import uuid
from typing import Dict, Iterable, List, Sequence

from pydantic import ValidationError
from sqlalchemy import delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func

from ..database import UnitOfWork
from ..exceptions import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationFailedError,
)
from ..models import (
    CHOICE_QUESTION_TYPES,
    BranchRule,
    Question,
    QuestionOption,
    ResponseAnswer,
)
from ..schemas import (
    QuestionCreate,
    QuestionOptionIn,
    QuestionOptionRead,
    QuestionRead,
    QuestionUpdate,
    build_question_config,
)
from .audit import record_activity
from .permissions import require_permission

logger = logging.getLogger(__name__)


async def get_question(db: AsyncSession, question_id: uuid.UUID) -> Question:
    question = await db.get(Question, question_id)
    if question is None:
        raise NotFoundError("Question not found.")
    return question


async def get_ordered_questions(db: AsyncSession, survey_id: uuid.UUID) -> List[Question]:
    result = await db.execute(
        select(Question)
        .where(Question.survey_id == survey_id)
        .order_by(Question.ordering, Question.created_at)
    )
    return list(result.scalars().all())


async def get_options_for_questions(
    db: AsyncSession,
    question_ids: Iterable[uuid.UUID],
    include_inactive: bool = False,
) -> Dict[uuid.UUID, List[QuestionOption]]:
    """Options grouped by question id, each list in display order."""
    question_ids = list(question_ids)
    grouped: Dict[uuid.UUID, List[QuestionOption]] = {qid: [] for qid in question_ids}
    if not question_ids:
        return grouped

    query = select(QuestionOption).where(QuestionOption.question_id.in_(question_ids))
    if not include_inactive:
        query = query.where(QuestionOption.is_active.is_(True))
    result = await db.execute(
        query.order_by(QuestionOption.question_id, QuestionOption.ordering)
    )
    for option in result.scalars().all():
        grouped.setdefault(option.question_id, []).append(option)
    return grouped


def build_question_read(
    question: Question, options: Sequence[QuestionOption]
) -> QuestionRead:
    return QuestionRead(
        id=question.id,
        survey_id=question.survey_id,
        ordering=question.ordering,
        text=question.text,
        question_type=question.question_type,
        is_required=question.is_required,
        help_text=question.help_text,
        default_value=question.default_value,
        config=question.config,
        options=[QuestionOptionRead.model_validate(option) for option in options],
    )


async def list_question_reads(
    db: AsyncSession, survey_id: uuid.UUID, include_inactive: bool = False
) -> List[QuestionRead]:
    questions = await get_ordered_questions(db, survey_id)
    options = await get_options_for_questions(
        db, [q.id for q in questions], include_inactive=include_inactive
    )
    return [build_question_read(q, options.get(q.id, [])) for q in questions]


def _validate_question_input(question_in: QuestionCreate) -> Dict:
    """Collect every problem with the payload; returns the normalised config."""
    errors = []
    if not question_in.text.strip():
        errors.append("Question text is required.")

    config = None
    try:
        config = build_question_config(question_in.question_type, question_in.config)
    except ValidationError as exc:
        errors.extend(f"Invalid configuration: {err['msg']}" for err in exc.errors())

    if question_in.question_type in CHOICE_QUESTION_TYPES:
        active = [o for o in question_in.options if o.is_active and o.text.strip()]
        if not active:
            errors.append("At least one active option is required for this question type.")

    if errors:
        raise ValidationFailedError(errors)
    return config.model_dump(exclude_none=True)


def _ordered_option_input(options: Sequence[QuestionOptionIn]) -> List[QuestionOptionIn]:
    # Client ordering decides the position; ties keep payload order.
    return [o for o in sorted(options, key=lambda o: o.ordering) if o.text.strip()]


async def create_question(
    db: AsyncSession,
    survey_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    question_in: QuestionCreate,
) -> QuestionRead:
    await require_permission(db, acting_user_id, survey_id, "EditQuestion")
    config = _validate_question_input(question_in)

    max_result = await db.execute(
        select(func.max(Question.ordering)).where(Question.survey_id == survey_id)
    )
    next_ordering = (max_result.scalar_one_or_none() or 0) + 1

    question = Question(
        id=uuid.uuid4(),
        survey_id=survey_id,
        ordering=next_ordering,
        text=question_in.text.strip(),
        question_type=question_in.question_type,
        is_required=question_in.is_required,
        help_text=question_in.help_text,
        default_value=question_in.default_value,
        config=config,
    )
    options = []
    if question_in.question_type in CHOICE_QUESTION_TYPES:
        for position, option_in in enumerate(_ordered_option_input(question_in.options), 1):
            options.append(
                QuestionOption(
                    id=uuid.uuid4(),
                    question_id=question.id,
                    ordering=position,
                    text=option_in.text.strip(),
                    value=option_in.value,
                    is_active=option_in.is_active,
                )
            )

    try:
        async with UnitOfWork(db):
            db.add(question)
            db.add_all(options)
            record_activity(
                db,
                "QuestionCreated",
                f"Question added at position {next_ordering}. "
                f"Type={question.question_type.value}, Required={question.is_required}",
                user_id=acting_user_id,
                survey_id=survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Creating question in survey %s failed", survey_id)
        raise PersistenceError("Save question failed. Please try again later.")
    return build_question_read(question, [o for o in options if o.is_active])


async def update_question(
    db: AsyncSession,
    question_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    question_in: QuestionUpdate,
) -> QuestionRead:
    question = await get_question(db, question_id)
    await require_permission(db, acting_user_id, question.survey_id, "EditQuestion")
    config = _validate_question_input(question_in)

    existing = (
        await get_options_for_questions(db, [question.id], include_inactive=True)
    )[question.id]
    existing_by_id = {option.id: option for option in existing}

    try:
        async with UnitOfWork(db):
            question.text = question_in.text.strip()
            question.question_type = question_in.question_type
            question.is_required = question_in.is_required
            question.help_text = question_in.help_text
            question.default_value = question_in.default_value
            question.config = config

            kept_ids = set()
            position = 0
            if question_in.question_type in CHOICE_QUESTION_TYPES:
                for option_in in _ordered_option_input(question_in.options):
                    position += 1
                    option = existing_by_id.get(option_in.id) if option_in.id else None
                    if option is None:
                        option = QuestionOption(id=uuid.uuid4(), question_id=question.id)
                        db.add(option)
                    option.ordering = position
                    option.text = option_in.text.strip()
                    option.value = option_in.value
                    option.is_active = option_in.is_active
                    kept_ids.add(option.id)

            # Dropped options are deactivated so stored answers and rules keep resolving.
            for option in existing:
                if option.id in kept_ids:
                    continue
                position += 1
                option.ordering = position
                option.is_active = False

            record_activity(
                db,
                "QuestionUpdated",
                f"Question {question.ordering} updated. "
                f"Type={question.question_type.value}, Required={question.is_required}",
                user_id=acting_user_id,
                survey_id=question.survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Updating question %s failed", question_id)
        raise PersistenceError("Save question failed. Please try again later.")

    options = (await get_options_for_questions(db, [question.id]))[question.id]
    return build_question_read(question, options)


async def _renumber(db: AsyncSession, survey_id: uuid.UUID) -> None:
    for position, question in enumerate(await get_ordered_questions(db, survey_id), 1):
        if question.ordering != position:
            question.ordering = position


async def delete_question(
    db: AsyncSession, question_id: uuid.UUID, acting_user_id: uuid.UUID
) -> None:
    question = await get_question(db, question_id)
    survey_id = question.survey_id
    await require_permission(db, acting_user_id, survey_id, "EditQuestion")

    try:
        async with UnitOfWork(db):
            # Reference checks run in the same transaction as the delete.
            rule_count = (
                await db.execute(
                    select(func.count(BranchRule.id)).where(
                        or_(
                            BranchRule.source_question_id == question_id,
                            BranchRule.target_question_id == question_id,
                        )
                    )
                )
            ).scalar_one()
            if rule_count:
                raise ConflictError(
                    "Cannot delete this question because it is used by branching rules. "
                    "Remove those rules first."
                )
            answer_count = (
                await db.execute(
                    select(func.count()).select_from(ResponseAnswer).where(
                        ResponseAnswer.question_id == question_id
                    )
                )
            ).scalar_one()
            if answer_count:
                raise ConflictError("Cannot delete a question that already has answers.")

            await db.execute(
                delete(QuestionOption).where(QuestionOption.question_id == question_id)
            )
            await db.execute(delete(Question).where(Question.id == question_id))
            db.expunge(question)
            await _renumber(db, survey_id)
            record_activity(
                db,
                "QuestionDeleted",
                f"Question '{question.text}' deleted.",
                user_id=acting_user_id,
                survey_id=survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Deleting question %s failed", question_id)
        raise PersistenceError("Delete question failed. Please try again later.")


async def reorder_questions(
    db: AsyncSession,
    survey_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    question_ids: Sequence[uuid.UUID],
) -> List[Question]:
    await require_permission(db, acting_user_id, survey_id, "EditQuestion")
    questions = await get_ordered_questions(db, survey_id)
    by_id = {q.id: q for q in questions}

    if len(question_ids) != len(questions) or set(question_ids) != set(by_id):
        raise ValidationFailedError(
            "The new order must list every question of the survey exactly once."
        )

    try:
        async with UnitOfWork(db):
            for position, question_id in enumerate(question_ids, 1):
                by_id[question_id].ordering = position
            record_activity(
                db,
                "QuestionsReordered",
                f"Questions reordered ({len(question_ids)} items).",
                user_id=acting_user_id,
                survey_id=survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Reordering questions of survey %s failed", survey_id)
        raise PersistenceError("Reorder questions failed. Please try again later.")
    return [by_id[question_id] for question_id in question_ids]
