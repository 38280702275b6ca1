import uuid
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...crud import crud_branch_rule, crud_question
from ...crud.permissions import require_permission
from ...database import get_db_session
from ...schemas import BranchRuleCreate, BranchRuleRead, BranchRuleUpdate
from ..deps import get_current_user_id

router = APIRouter()


@router.get("/surveys/{survey_id}/rules", response_model=List[BranchRuleRead])
async def read_survey_rules(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    await require_permission(db, user_id, survey_id, "ViewReport")
    rules = await crud_branch_rule.list_rules_for_survey(db, survey_id)
    return await crud_branch_rule.build_rule_reads(db, rules)


@router.get("/questions/{question_id}/rules", response_model=List[BranchRuleRead])
async def read_question_rules(
    question_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    question = await crud_question.get_question(db, question_id)
    await require_permission(db, user_id, question.survey_id, "ViewReport")
    rules = await crud_branch_rule.list_rules_for_question(db, question_id)
    return await crud_branch_rule.build_rule_reads(db, rules)


@router.post(
    "/branch-rules", response_model=BranchRuleRead, status_code=status.HTTP_201_CREATED
)
async def create_branch_rule_item(
    rule_in: BranchRuleCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    rule = await crud_branch_rule.create_rule(db, user_id, rule_in)
    return (await crud_branch_rule.build_rule_reads(db, [rule]))[0]


@router.put("/branch-rules/{rule_id}", response_model=BranchRuleRead)
async def update_branch_rule_item(
    rule_id: int,
    rule_in: BranchRuleUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    rule = await crud_branch_rule.update_rule(db, rule_id, user_id, rule_in)
    return (await crud_branch_rule.build_rule_reads(db, [rule]))[0]


@router.delete("/branch-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_branch_rule_item(
    rule_id: int,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    await crud_branch_rule.delete_rule(db, rule_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
