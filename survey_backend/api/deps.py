import logging
import uuid
from typing import Optional

from fastapi import Header, HTTPException, Request, status

logger = logging.getLogger(__name__)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> uuid.UUID:
    """
    Identity of the acting author. Authentication happens upstream; the
    gateway forwards the verified user id in the X-User-Id header.
    """
    if x_user_id is None:
        logger.info("Authoring request rejected: no X-User-Id header.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
        )
    try:
        return uuid.UUID(x_user_id.strip())
    except ValueError:
        logger.info("Authoring request rejected: malformed X-User-Id %r", x_user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id.",
        )


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None
