import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from ..exceptions import NotFoundError, PermissionDeniedError
from ..models import Survey, SurveyCollaborator

ROLE_RANK = {
    "viewer": 1,
    "editor": 2,
    "admin": 3,  # reserved, never granted through the API
    "owner": 4,
}

REQUIRED_RANK = {
    "EditQuestion": ROLE_RANK["editor"],
    "EditSurvey": ROLE_RANK["owner"],
    "Publish": ROLE_RANK["owner"],
    "ManageSettings": ROLE_RANK["owner"],
    "ViewReport": ROLE_RANK["viewer"],
}


@dataclass(frozen=True)
class PermissionResult:
    allowed: bool
    reason: Optional[str] = None
    role: Optional[str] = None


async def check_permission(
    db: AsyncSession, user_id: uuid.UUID, survey_id: uuid.UUID, action: str
) -> PermissionResult:
    survey = await db.get(Survey, survey_id)
    if survey is None:
        return PermissionResult(False, "Survey not found.")

    if survey.owner_id == user_id:
        role = "Owner"
    else:
        result = await db.execute(
            select(SurveyCollaborator).where(
                SurveyCollaborator.survey_id == survey_id,
                SurveyCollaborator.user_id == user_id,
            )
        )
        collaborator = result.scalar_one_or_none()
        if collaborator is None:
            return PermissionResult(False, "Access denied.")
        role = collaborator.role

    rank = ROLE_RANK.get(role.lower(), 0)
    required = REQUIRED_RANK.get(action, ROLE_RANK["viewer"])
    if rank >= required:
        return PermissionResult(True, None, role)
    return PermissionResult(False, f"Insufficient permission for action '{action}'.", role)


async def require_permission(
    db: AsyncSession, user_id: uuid.UUID, survey_id: uuid.UUID, action: str
) -> str:
    """Raise unless the user may perform the action; returns the effective role."""
    result = await check_permission(db, user_id, survey_id, action)
    if result.allowed:
        return result.role
    if result.reason == "Survey not found.":
        raise NotFoundError(result.reason)
    raise PermissionDeniedError(result.reason or "Access denied.")
