import uuid
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...crud import crud_question
from ...crud.permissions import require_permission
from ...database import get_db_session
from ...schemas import QuestionCreate, QuestionRead, QuestionReorder, QuestionUpdate
from ..deps import get_current_user_id

router = APIRouter()


@router.get("/surveys/{survey_id}/questions", response_model=List[QuestionRead])
async def read_survey_questions(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    await require_permission(db, user_id, survey_id, "ViewReport")
    return await crud_question.list_question_reads(db, survey_id)


@router.post(
    "/surveys/{survey_id}/questions",
    response_model=QuestionRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_question_item(
    survey_id: uuid.UUID,
    question_in: QuestionCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_question.create_question(db, survey_id, user_id, question_in)


@router.put("/surveys/{survey_id}/questions/order", response_model=List[QuestionRead])
async def reorder_survey_questions(
    survey_id: uuid.UUID,
    reorder_in: QuestionReorder,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    await crud_question.reorder_questions(db, survey_id, user_id, reorder_in.question_ids)
    return await crud_question.list_question_reads(db, survey_id)


@router.put("/questions/{question_id}", response_model=QuestionRead)
async def update_question_item(
    question_id: uuid.UUID,
    question_in: QuestionUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_question.update_question(db, question_id, user_id, question_in)


@router.delete("/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question_item(
    question_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    await crud_question.delete_question(db, question_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
