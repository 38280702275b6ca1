import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func

from ..core.timeutils import ensure_utc, utcnow
from ..database import UnitOfWork
from ..exceptions import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationFailedError,
)
from ..models import Question, Survey, SurveyStatus
from ..schemas import SurveyCreate, SurveyScheduleUpdate, SurveySettingsUpdate
from .audit import record_activity
from .permissions import require_permission

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else "N/A"


async def get_survey(db: AsyncSession, survey_id: uuid.UUID) -> Survey:
    survey = await db.get(Survey, survey_id)
    if survey is None:
        raise NotFoundError("Survey not found.")
    return survey


async def list_surveys_for_owner(db: AsyncSession, owner_id: uuid.UUID) -> List[Survey]:
    result = await db.execute(
        select(Survey).where(Survey.owner_id == owner_id).order_by(Survey.updated_at.desc())
    )
    return list(result.scalars().all())


async def create_draft_survey(
    db: AsyncSession, owner_id: uuid.UUID, survey_in: SurveyCreate
) -> Survey:
    survey = Survey(
        id=uuid.uuid4(),
        owner_id=owner_id,
        title=survey_in.title.strip(),
        description=(survey_in.description or "").strip() or None,
        is_anonymous=survey_in.is_anonymous,
        status=SurveyStatus.DRAFT,
    )
    try:
        async with UnitOfWork(db):
            db.add(survey)
            await db.flush()
            record_activity(
                db,
                "SurveyCreated",
                f"Survey created. Title='{survey.title}', Status=Draft",
                user_id=owner_id,
                survey_id=survey.id,
            )
    except SQLAlchemyError:
        logger.exception("Creating survey failed")
        raise PersistenceError("Create survey failed. Please try again later.")
    return survey


async def update_survey_settings(
    db: AsyncSession,
    survey_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    settings_in: SurveySettingsUpdate,
) -> Survey:
    survey = await get_survey(db, survey_id)
    await require_permission(db, acting_user_id, survey_id, "ManageSettings")

    try:
        async with UnitOfWork(db):
            survey.title = settings_in.title.strip()
            survey.description = (settings_in.description or "").strip() or None
            survey.is_anonymous = settings_in.is_anonymous
            record_activity(
                db,
                "SurveySettingsUpdated",
                f"Settings updated. Title='{survey.title}', Anonymous={survey.is_anonymous}",
                user_id=acting_user_id,
                survey_id=survey.id,
            )
    except SQLAlchemyError:
        logger.exception("Updating settings of survey %s failed", survey_id)
        raise PersistenceError("Update settings failed. Please try again later.")
    return survey


async def update_schedule(
    db: AsyncSession,
    survey_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    schedule_in: SurveyScheduleUpdate,
) -> Survey:
    survey = await get_survey(db, survey_id)
    await require_permission(db, acting_user_id, survey_id, "ManageSettings")

    # Naive client values are taken to be UTC already.
    open_at = ensure_utc(schedule_in.open_at)
    close_at = ensure_utc(schedule_in.close_at)

    errors = []
    if open_at and close_at and close_at <= open_at:
        errors.append("Close date must be after open date.")
    if schedule_in.response_quota is not None and schedule_in.response_quota < 1:
        errors.append("Response quota must be at least 1.")
    if errors:
        raise ValidationFailedError(errors)

    try:
        async with UnitOfWork(db):
            survey.open_at = open_at
            survey.close_at = close_at
            survey.response_quota = schedule_in.response_quota
            survey.quota_behavior = schedule_in.quota_behavior
            record_activity(
                db,
                "SurveyScheduleUpdated",
                f"Schedule updated. Open={_iso(open_at)}, Close={_iso(close_at)}, "
                f"Quota={schedule_in.response_quota or 'N/A'}, "
                f"Behavior={schedule_in.quota_behavior.value}",
                user_id=acting_user_id,
                survey_id=survey.id,
            )
    except SQLAlchemyError:
        logger.exception("Updating schedule of survey %s failed", survey_id)
        raise PersistenceError("Update schedule failed. Please try again later.")
    return survey


async def publish_survey(
    db: AsyncSession, survey_id: uuid.UUID, acting_user_id: uuid.UUID
) -> Survey:
    survey = await get_survey(db, survey_id)
    await require_permission(db, acting_user_id, survey_id, "Publish")

    if survey.status == SurveyStatus.PUBLISHED:
        raise ConflictError("Survey is already published.")
    if survey.status == SurveyStatus.CLOSED:
        raise ConflictError("Cannot publish a closed survey. Reopen it instead.")

    count_result = await db.execute(
        select(func.count(Question.id)).where(Question.survey_id == survey_id)
    )
    if count_result.scalar_one() == 0:
        raise ConflictError("Cannot publish survey without questions.")

    try:
        async with UnitOfWork(db):
            survey.status = SurveyStatus.PUBLISHED
            record_activity(
                db,
                "SurveyPublished",
                f"Survey published. Title='{survey.title}', OpenAt={_iso(survey.open_at)}",
                user_id=acting_user_id,
                survey_id=survey.id,
            )
    except SQLAlchemyError:
        logger.exception("Publishing survey %s failed", survey_id)
        raise PersistenceError("Publish survey failed. Please try again later.")
    return survey


async def close_survey(
    db: AsyncSession,
    survey_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Survey:
    survey = await get_survey(db, survey_id)
    await require_permission(db, acting_user_id, survey_id, "Publish")

    if survey.status != SurveyStatus.PUBLISHED:
        raise ConflictError("Only published surveys can be closed.")

    try:
        async with UnitOfWork(db):
            survey.status = SurveyStatus.CLOSED
            if survey.close_at is None:
                survey.close_at = ensure_utc(now) or utcnow()
            record_activity(
                db,
                "SurveyClosed",
                f"Survey closed. Title='{survey.title}', ClosedAt={_iso(survey.close_at)}",
                user_id=acting_user_id,
                survey_id=survey.id,
            )
    except SQLAlchemyError:
        logger.exception("Closing survey %s failed", survey_id)
        raise PersistenceError("Close survey failed. Please try again later.")
    return survey


async def reopen_survey(
    db: AsyncSession, survey_id: uuid.UUID, acting_user_id: uuid.UUID
) -> Survey:
    survey = await get_survey(db, survey_id)
    await require_permission(db, acting_user_id, survey_id, "Publish")

    if survey.status != SurveyStatus.CLOSED:
        raise ConflictError("Only closed surveys can be reopened.")

    try:
        async with UnitOfWork(db):
            survey.status = SurveyStatus.PUBLISHED
            survey.close_at = None
            record_activity(
                db,
                "SurveyReopened",
                f"Survey reopened. Title='{survey.title}'",
                user_id=acting_user_id,
                survey_id=survey.id,
            )
    except SQLAlchemyError:
        logger.exception("Reopening survey %s failed", survey_id)
        raise PersistenceError("Reopen survey failed. Please try again later.")
    return survey
