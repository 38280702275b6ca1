import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...crud import crud_response
from ...database import get_db_session
from ...schemas import (
    FlowStepRequest,
    FlowStepResponse,
    RespondSurveyRead,
    ResponseSubmission,
    ResponseSubmissionIn,
    ResponseSubmitResult,
)
from ..deps import get_client_ip

router = APIRouter()


@router.get("/respond/{survey_id}", response_model=RespondSurveyRead)
async def read_survey_for_response(
    survey_id: uuid.UUID,
    channel_id: Optional[uuid.UUID] = None,
    db: AsyncSession = Depends(get_db_session),
):
    return await crud_response.load_survey_for_response(db, survey_id, channel_id)


@router.post(
    "/respond/{survey_id}/questions/{question_id}/next", response_model=FlowStepResponse
)
async def resolve_next_question(
    survey_id: uuid.UUID,
    question_id: uuid.UUID,
    step_in: FlowStepRequest,
    db: AsyncSession = Depends(get_db_session),
):
    return await crud_response.resolve_flow_step(db, survey_id, question_id, step_in)


@router.post("/respond/{survey_id}/submit", response_model=ResponseSubmitResult)
async def submit_survey_response(
    survey_id: uuid.UUID,
    submission_in: ResponseSubmissionIn,
    request: Request,
    db: AsyncSession = Depends(get_db_session),
):
    submission = ResponseSubmission(survey_id=survey_id, **submission_in.model_dump())
    response_id = await crud_response.submit_response(
        db, submission, ip_address=get_client_ip(request)
    )
    return ResponseSubmitResult(response_id=response_id)
