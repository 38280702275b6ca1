import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.sql import func

from ..core import config
from ..database import UnitOfWork
from ..exceptions import ConflictError, NotFoundError, PersistenceError
from ..models import ChannelType, SurveyChannel, SurveyResponse
from ..schemas import ChannelSummary
from .audit import record_activity
from .permissions import require_permission

logger = logging.getLogger(__name__)

SLUG_BYTES = 9
SLUG_ATTEMPTS = 3


@dataclass(frozen=True)
class ChannelInfo:
    id: uuid.UUID
    survey_id: uuid.UUID
    channel_type: ChannelType
    slug: Optional[str]
    is_active: bool


def _to_info(channel: SurveyChannel) -> ChannelInfo:
    return ChannelInfo(
        id=channel.id,
        survey_id=channel.survey_id,
        channel_type=channel.channel_type,
        slug=channel.slug,
        is_active=channel.is_active,
    )


async def resolve_channel(
    db: AsyncSession,
    channel_id: Optional[uuid.UUID] = None,
    slug: Optional[str] = None,
) -> Optional[ChannelInfo]:
    """Look a channel up by id or by public slug; None when there is no match."""
    if channel_id is not None:
        channel = await db.get(SurveyChannel, channel_id)
    elif slug:
        result = await db.execute(
            select(SurveyChannel).where(SurveyChannel.slug == slug.strip())
        )
        channel = result.scalar_one_or_none()
    else:
        return None
    return _to_info(channel) if channel is not None else None


def build_public_url(slug: str) -> str:
    return f"{config.PUBLIC_BASE_URL.rstrip('/')}/s/{slug}"


async def create_link_channel(
    db: AsyncSession,
    survey_id: uuid.UUID,
    acting_user_id: uuid.UUID,
    channel_type: ChannelType = ChannelType.LINK,
) -> SurveyChannel:
    await require_permission(db, acting_user_id, survey_id, "Publish")

    # Slugs are random; a collision on the unique index just means another draw.
    for attempt in range(1, SLUG_ATTEMPTS + 1):
        slug = secrets.token_urlsafe(SLUG_BYTES)
        channel = SurveyChannel(
            id=uuid.uuid4(),
            survey_id=survey_id,
            channel_type=channel_type,
            slug=slug,
            full_url=build_public_url(slug),
            is_active=True,
        )
        try:
            async with UnitOfWork(db):
                db.add(channel)
                record_activity(
                    db,
                    "ChannelCreated",
                    f"Channel created. Type={channel_type.value}, Slug={slug}",
                    user_id=acting_user_id,
                    survey_id=survey_id,
                )
            return channel
        except IntegrityError:
            logger.warning("Channel slug collision on attempt %s for survey %s", attempt, survey_id)
        except SQLAlchemyError:
            logger.exception("Creating channel for survey %s failed", survey_id)
            raise PersistenceError("Create channel failed. Please try again later.")
    raise PersistenceError("Create channel failed. Please try again later.")


async def set_channel_active(
    db: AsyncSession, channel_id: uuid.UUID, acting_user_id: uuid.UUID, is_active: bool
) -> SurveyChannel:
    channel = await db.get(SurveyChannel, channel_id)
    if channel is None:
        raise NotFoundError("Channel not found.")
    await require_permission(db, acting_user_id, channel.survey_id, "Publish")

    try:
        async with UnitOfWork(db):
            channel.is_active = is_active
            record_activity(
                db,
                "ChannelActivated" if is_active else "ChannelDeactivated",
                f"Channel {channel.slug} {'activated' if is_active else 'deactivated'}.",
                user_id=acting_user_id,
                survey_id=channel.survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Updating channel %s failed", channel_id)
        raise PersistenceError("Update channel failed. Please try again later.")
    return channel


async def list_channels_for_survey(
    db: AsyncSession, survey_id: uuid.UUID, acting_user_id: uuid.UUID
) -> List[ChannelSummary]:
    """Every channel of a survey, oldest first, with how many responses came through it."""
    await require_permission(db, acting_user_id, survey_id, "Publish")

    result = await db.execute(
        select(SurveyChannel)
        .where(SurveyChannel.survey_id == survey_id)
        .order_by(SurveyChannel.created_at, SurveyChannel.id)
    )
    channels = result.scalars().all()

    count_result = await db.execute(
        select(SurveyResponse.channel_id, func.count(SurveyResponse.id))
        .where(
            SurveyResponse.survey_id == survey_id,
            SurveyResponse.channel_id.is_not(None),
        )
        .group_by(SurveyResponse.channel_id)
    )
    counts = {channel_id: count for channel_id, count in count_result.all()}

    return [
        ChannelSummary(
            id=channel.id,
            survey_id=channel.survey_id,
            channel_type=channel.channel_type,
            slug=channel.slug,
            full_url=channel.full_url,
            is_active=channel.is_active,
            created_at=channel.created_at,
            response_count=counts.get(channel.id, 0),
        )
        for channel in channels
    ]


async def delete_channel(
    db: AsyncSession, channel_id: uuid.UUID, acting_user_id: uuid.UUID
) -> None:
    channel = await db.get(SurveyChannel, channel_id)
    if channel is None:
        raise NotFoundError("Channel not found.")
    survey_id, slug = channel.survey_id, channel.slug
    await require_permission(db, acting_user_id, survey_id, "Publish")

    used = await db.execute(
        select(SurveyResponse.id).where(SurveyResponse.channel_id == channel_id).limit(1)
    )
    if used.first() is not None:
        raise ConflictError(
            "Cannot delete channel with existing responses. Deactivate it instead."
        )

    try:
        async with UnitOfWork(db):
            await db.execute(delete(SurveyChannel).where(SurveyChannel.id == channel_id))
            db.expunge(channel)
            record_activity(
                db,
                "ChannelDeleted",
                f"Channel {channel_id} (slug: {slug}) deleted.",
                user_id=acting_user_id,
                survey_id=survey_id,
            )
    except SQLAlchemyError:
        logger.exception("Deleting channel %s failed", channel_id)
        raise PersistenceError("Delete channel failed. Please try again later.")
