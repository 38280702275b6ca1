import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ActivityLog

logger = logging.getLogger(__name__)


def record_activity(
    db: AsyncSession,
    action_type: str,
    detail: Optional[str] = None,
    *,
    user_id: Optional[uuid.UUID] = None,
    survey_id: Optional[uuid.UUID] = None,
    response_id: Optional[uuid.UUID] = None,
) -> ActivityLog:
    """
    Add an audit entry to the caller's session. It is flushed and committed
    (or rolled back) together with the mutation it describes.
    """
    entry = ActivityLog(
        user_id=user_id,
        survey_id=survey_id,
        response_id=response_id,
        action_type=action_type,
        action_detail=detail,
    )
    db.add(entry)
    logger.info("Activity %s survey=%s response=%s", action_type, survey_id, response_id)
    return entry
