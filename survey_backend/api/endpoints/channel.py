import uuid
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...crud import crud_channel
from ...database import get_db_session
from ...exceptions import NotFoundError
from ...schemas import ChannelCreate, ChannelRead, ChannelStatusUpdate, ChannelSummary
from ..deps import get_current_user_id

router = APIRouter()


@router.get("/surveys/{survey_id}/channels", response_model=List[ChannelSummary])
async def read_survey_channels(
    survey_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_channel.list_channels_for_survey(db, survey_id, user_id)


@router.post(
    "/surveys/{survey_id}/channels",
    response_model=ChannelRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_channel_item(
    survey_id: uuid.UUID,
    channel_in: ChannelCreate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_channel.create_link_channel(
        db, survey_id, user_id, channel_in.channel_type
    )


@router.put("/channels/{channel_id}/status", response_model=ChannelRead)
async def update_channel_status(
    channel_id: uuid.UUID,
    status_in: ChannelStatusUpdate,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    return await crud_channel.set_channel_active(db, channel_id, user_id, status_in.is_active)


@router.delete("/channels/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_channel_item(
    channel_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    user_id: uuid.UUID = Depends(get_current_user_id),
):
    await crud_channel.delete_channel(db, channel_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/channels/{slug}", response_model=ChannelRead)
async def read_channel_by_slug(slug: str, db: AsyncSession = Depends(get_db_session)):
    """Public lookup behind a shared survey link."""
    channel = await crud_channel.resolve_channel(db, slug=slug)
    if channel is None or not channel.is_active:
        raise NotFoundError("Survey link not found or has been deactivated.")
    return ChannelRead(
        id=channel.id,
        survey_id=channel.survey_id,
        channel_type=channel.channel_type,
        slug=channel.slug,
        full_url=crud_channel.build_public_url(channel.slug),
        is_active=channel.is_active,
    )
