import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...crud import crud_survey
from ...crud.permissions import require_permission
from ...database import get_db_session
from ...schemas import SurveyCreate, SurveyRead, SurveyScheduleUpdate, SurveySettingsUpdate
from ..deps import get_current_user_id

router = APIRouter()


@router.post("/surveys", response_model=SurveyRead, status_code=status.HTTP_201_CREATED)
async def create_survey_item(
    survey_in: SurveyCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_survey.create_draft_survey(db, user_id, survey_in)


@router.get("/surveys", response_model=List[SurveyRead])
async def read_own_surveys(
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_survey.list_surveys_for_owner(db, user_id)


@router.get("/surveys/{survey_id}", response_model=SurveyRead)
async def read_survey_item(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    survey = await crud_survey.get_survey(db, survey_id)
    await require_permission(db, user_id, survey_id, "ViewReport")
    return survey


@router.put("/surveys/{survey_id}/settings", response_model=SurveyRead)
async def update_survey_settings_item(
    survey_id: uuid.UUID,
    settings_in: SurveySettingsUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_survey.update_survey_settings(db, survey_id, user_id, settings_in)


@router.put("/surveys/{survey_id}/schedule", response_model=SurveyRead)
async def update_survey_schedule_item(
    survey_id: uuid.UUID,
    schedule_in: SurveyScheduleUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_survey.update_schedule(db, survey_id, user_id, schedule_in)


@router.post("/surveys/{survey_id}/publish", response_model=SurveyRead)
async def publish_survey_item(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_survey.publish_survey(db, survey_id, user_id)


@router.post("/surveys/{survey_id}/close", response_model=SurveyRead)
async def close_survey_item(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_survey.close_survey(db, survey_id, user_id)


@router.post("/surveys/{survey_id}/reopen", response_model=SurveyRead)
async def reopen_survey_item(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_survey.reopen_survey(db, survey_id, user_id)
