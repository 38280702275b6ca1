"""
Respondent side: loading a survey for answering, per-question navigation and
the submission pipeline.

Submission runs a fixed sequence of gates and stops at the first failure:
token format, survey status, schedule, quota, channel, question presence,
required answers, idempotent replay. Only then is anything written, and all
writes for one response share a single unit of work.
"""
import logging
import secrets
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func

from ..core import config
from ..core.conditions import Answer
from ..core.flow import group_rules_by_source, next_step, resolve_next_question_id
from ..core.timeutils import ensure_utc, utcnow
from ..core.validation import validate_required_answers
from ..database import UnitOfWork
from ..exceptions import (
    EligibilityError,
    NotFoundError,
    PersistenceError,
    ValidationFailedError,
)
from ..models import (
    DATE_QUESTION_TYPES,
    LAYOUT_QUESTION_TYPES,
    NUMERIC_QUESTION_TYPES,
    Question,
    QuotaBehavior,
    ResponseAnswer,
    ResponseStatus,
    Survey,
    SurveyResponse,
    SurveyStatus,
)
from ..schemas import (
    FlowStepRequest,
    FlowStepResponse,
    RespondSurveyRead,
    ResponseSubmission,
    RuntimeRuleRead,
)
from .audit import record_activity
from .crud_branch_rule import list_runtime_rules
from .crud_channel import resolve_channel
from .crud_question import (
    build_question_read,
    get_options_for_questions,
    get_ordered_questions,
)

logger = logging.getLogger(__name__)

SUBMIT_FAILED_MESSAGE = "Failed to submit response. Please try again."

# Numeric(18, 4) leaves 14 integer digits.
_MAX_NUMERIC = Decimal(10) ** 14


async def count_completed_responses(db: AsyncSession, survey_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(SurveyResponse.id)).where(
            SurveyResponse.survey_id == survey_id,
            SurveyResponse.status == ResponseStatus.COMPLETED,
        )
    )
    return result.scalar_one()


async def find_response_by_token(
    db: AsyncSession, survey_id: uuid.UUID, token: str
) -> Optional[uuid.UUID]:
    result = await db.execute(
        select(SurveyResponse.id).where(
            SurveyResponse.survey_id == survey_id,
            SurveyResponse.idempotency_token == token,
        )
    )
    return result.scalars().first()


async def _check_eligibility(
    db: AsyncSession,
    survey_id: uuid.UUID,
    channel_id: Optional[uuid.UUID],
    now: datetime,
) -> Tuple[Survey, List[Question]]:
    survey = await db.get(Survey, survey_id)
    if survey is None:
        raise NotFoundError("Survey not found.")

    if survey.status != SurveyStatus.PUBLISHED:
        raise EligibilityError("This survey is not currently accepting responses.")

    open_at = ensure_utc(survey.open_at)
    close_at = ensure_utc(survey.close_at)
    if open_at is not None and now < open_at:
        raise EligibilityError("This survey is not yet open.")
    if close_at is not None and now > close_at:
        raise EligibilityError("This survey has been closed.")

    if survey.response_quota is not None:
        if await count_completed_responses(db, survey_id) >= survey.response_quota:
            raise EligibilityError("This survey has reached its response limit.")

    if channel_id is not None:
        channel = await resolve_channel(db, channel_id=channel_id)
        if channel is None or channel.survey_id != survey_id or not channel.is_active:
            raise EligibilityError("Invalid or inactive survey link.")

    questions = await get_ordered_questions(db, survey_id)
    if not questions:
        raise EligibilityError("Survey has no questions.")
    return survey, questions


async def load_survey_for_response(
    db: AsyncSession,
    survey_id: uuid.UUID,
    channel_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> RespondSurveyRead:
    now = ensure_utc(now) or utcnow()
    survey, questions = await _check_eligibility(db, survey_id, channel_id, now)

    options = await get_options_for_questions(db, [q.id for q in questions])
    rules = await list_runtime_rules(db, survey_id)

    return RespondSurveyRead(
        survey_id=survey.id,
        title=survey.title,
        description=survey.description,
        is_anonymous=survey.is_anonymous,
        channel_id=channel_id,
        questions=[build_question_read(q, options.get(q.id, [])) for q in questions],
        branch_rules=[
            RuntimeRuleRead(
                id=rule.id,
                source_question_id=rule.source_question_id,
                condition=rule.condition.model_dump() if rule.condition is not None else None,
                target_action=rule.target_action,
                target_question_id=rule.target_question_id,
                priority=rule.priority,
            )
            for rule in rules
        ],
    )


async def resolve_flow_step(
    db: AsyncSession,
    survey_id: uuid.UUID,
    question_id: uuid.UUID,
    step_in: FlowStepRequest,
) -> FlowStepResponse:
    """Server-side twin of the client's navigation after one answered question."""
    if await db.get(Survey, survey_id) is None:
        raise NotFoundError("Survey not found.")
    questions = await get_ordered_questions(db, survey_id)
    if not any(q.id == question_id for q in questions):
        raise NotFoundError("Question not found.")

    rules_by_source = group_rules_by_source(await list_runtime_rules(db, survey_id))
    step = next_step(
        question_id, Answer.of(step_in.value, step_in.option_ids), questions, rules_by_source
    )
    return FlowStepResponse(
        action=step.kind.value,
        target_question_id=step.question_id,
        next_question_id=resolve_next_question_id(step, question_id, questions),
    )


def _validate_token(token: Optional[str]) -> None:
    if token is None:
        return
    if not token.strip() or len(token) < config.MIN_IDEMPOTENCY_TOKEN_LENGTH:
        raise ValidationFailedError("Invalid security token. Please refresh and try again.")


def _coerce_numeric(text: str) -> Optional[Decimal]:
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite() or abs(value) >= _MAX_NUMERIC:
        return None
    return value


def _coerce_date(text: str) -> Optional[datetime]:
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _build_answer(response_id: uuid.UUID, question: Question, raw: str) -> ResponseAnswer:
    text = raw.strip()
    answer = ResponseAnswer(response_id=response_id, question_id=question.id, answer_text=text)
    if question.question_type in NUMERIC_QUESTION_TYPES:
        answer.numeric_value = _coerce_numeric(text)
        if answer.numeric_value is None:
            logger.debug("Answer to question %s is not numeric", question.id)
    elif question.question_type in DATE_QUESTION_TYPES:
        answer.date_value = _coerce_date(text)
        if answer.date_value is None:
            logger.debug("Answer to question %s is not a date", question.id)
    return answer


async def submit_response(
    db: AsyncSession,
    submission: ResponseSubmission,
    ip_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> uuid.UUID:
    """
    Validate and persist one completed response, returning its id.

    Resubmitting with an idempotency token that already produced a response
    returns that response's id without writing anything.
    """
    survey_id = submission.survey_id
    token = submission.idempotency_token
    _validate_token(token)

    now = ensure_utc(now) or utcnow()
    survey, questions = await _check_eligibility(db, survey_id, submission.channel_id, now)

    violations = validate_required_answers(questions, submission.answers)
    if violations:
        raise ValidationFailedError(violations)

    if token is not None:
        existing_id = await find_response_by_token(db, survey_id, token)
        if existing_id is not None:
            logger.info("Replayed submission for survey %s returns %s", survey_id, existing_id)
            return existing_id

    questions_by_id = {q.id: q for q in questions}
    response = SurveyResponse(
        id=uuid.uuid4(),
        survey_id=survey_id,
        channel_id=submission.channel_id,
        status=ResponseStatus.COMPLETED,
        submitted_at=now,
        idempotency_token=token,
        is_locked=False,
    )
    if survey.is_anonymous:
        response.anon_token = secrets.token_urlsafe(32)
    else:
        email = (submission.respondent_email or "").strip()
        response.respondent_email = email or None
        response.respondent_ip = ip_address[:64] if ip_address else None

    answers = []
    for question_id, raw in submission.answers.items():
        if raw is None or not raw.strip():
            continue
        question = questions_by_id.get(question_id)
        if question is None or question.question_type in LAYOUT_QUESTION_TYPES:
            continue
        answers.append(_build_answer(response.id, question, raw))

    try:
        async with UnitOfWork(db):
            # The response row goes first; answers and the audit entry reference it.
            db.add(response)
            await db.flush()
            db.add_all(answers)
            record_activity(
                db,
                "ResponseSubmitted",
                f"Response submitted. Anonymous={survey.is_anonymous}, Answers={len(answers)}",
                survey_id=survey_id,
                response_id=response.id,
            )
            await db.flush()

            if (
                survey.quota_behavior == QuotaBehavior.CLOSE_SURVEY
                and survey.response_quota is not None
                and await count_completed_responses(db, survey_id) >= survey.response_quota
            ):
                survey.status = SurveyStatus.CLOSED
                record_activity(
                    db,
                    "SurveyAutoClosed",
                    f"Survey closed after reaching its quota of {survey.response_quota}.",
                    survey_id=survey_id,
                    response_id=response.id,
                )
    except IntegrityError:
        # A concurrent submission with the same token won the race.
        if token is not None:
            winner_id = await find_response_by_token(db, survey_id, token)
            if winner_id is not None:
                logger.info("Concurrent duplicate for survey %s resolved to %s", survey_id, winner_id)
                return winner_id
        logger.exception("Submitting response to survey %s failed", survey_id)
        raise PersistenceError(SUBMIT_FAILED_MESSAGE)
    except SQLAlchemyError:
        logger.exception("Submitting response to survey %s failed", survey_id)
        raise PersistenceError(SUBMIT_FAILED_MESSAGE)

    logger.info("Response %s stored for survey %s", response.id, survey_id)
    return response.id
