import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.future import select

from survey_backend.crud import crud_channel
from survey_backend.crud.crud_survey import (
    close_survey,
    create_draft_survey,
    list_surveys_for_owner,
    publish_survey,
    reopen_survey,
    update_schedule,
    update_survey_settings,
)
from survey_backend.crud.permissions import check_permission
from survey_backend.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from survey_backend.models import (
    ActivityLog,
    ChannelType,
    QuestionType,
    QuotaBehavior,
    SurveyResponse,
    SurveyStatus,
)
from survey_backend.schemas import SurveyCreate, SurveyScheduleUpdate, SurveySettingsUpdate

ONE_QUESTION = [("Anything to add?", QuestionType.LONG_TEXT, False)]


async def activity_types(db, survey_id):
    result = await db.execute(
        select(ActivityLog.action_type)
        .where(ActivityLog.survey_id == survey_id)
        .order_by(ActivityLog.id)
    )
    return list(result.scalars().all())


async def test_create_draft(db, owner_id):
    survey = await create_draft_survey(
        db, owner_id, SurveyCreate(title="  Team pulse ", description="  ", is_anonymous=True)
    )

    assert survey.status == SurveyStatus.DRAFT
    assert survey.title == "Team pulse"
    assert survey.description is None
    assert survey.quota_behavior == QuotaBehavior.REJECT
    assert [s.id for s in await list_surveys_for_owner(db, owner_id)] == [survey.id]
    assert await activity_types(db, survey.id) == ["SurveyCreated"]


class TestPublishing:
    async def test_full_lifecycle(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION, status=SurveyStatus.DRAFT)
        now = datetime(2026, 4, 1, 9, 30, tzinfo=timezone.utc)

        await publish_survey(db, survey.id, owner_id)
        assert survey.status == SurveyStatus.PUBLISHED
        assert survey.open_at is None

        await close_survey(db, survey.id, owner_id, now=now)
        assert survey.status == SurveyStatus.CLOSED
        assert survey.close_at == now

        await reopen_survey(db, survey.id, owner_id)
        assert survey.status == SurveyStatus.PUBLISHED
        assert survey.close_at is None

        assert await activity_types(db, survey.id) == [
            "SurveyPublished",
            "SurveyClosed",
            "SurveyReopened",
        ]

    async def test_close_keeps_an_existing_close_date(self, db, survey_factory, owner_id):
        scheduled = datetime(2026, 5, 1, tzinfo=timezone.utc)
        survey, _ = await survey_factory(ONE_QUESTION, close_at=scheduled)

        await close_survey(db, survey.id, owner_id, now=datetime(2026, 4, 1, tzinfo=timezone.utc))
        assert survey.close_at == scheduled

    async def test_publish_requires_questions(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory([], status=SurveyStatus.DRAFT)
        with pytest.raises(ConflictError) as exc_info:
            await publish_survey(db, survey.id, owner_id)
        assert exc_info.value.errors == ["Cannot publish survey without questions."]

    @pytest.mark.parametrize("status", [SurveyStatus.PUBLISHED, SurveyStatus.CLOSED])
    async def test_publish_only_from_draft(self, db, survey_factory, owner_id, status):
        survey, _ = await survey_factory(ONE_QUESTION, status=status)
        with pytest.raises(ConflictError):
            await publish_survey(db, survey.id, owner_id)

    async def test_close_only_when_published(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION, status=SurveyStatus.DRAFT)
        with pytest.raises(ConflictError):
            await close_survey(db, survey.id, owner_id)

    async def test_reopen_only_when_closed(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION)
        with pytest.raises(ConflictError):
            await reopen_survey(db, survey.id, owner_id)

    async def test_editor_cannot_publish(self, db, survey_factory, collaborator_factory):
        survey, _ = await survey_factory(ONE_QUESTION, status=SurveyStatus.DRAFT)
        editor_id = await collaborator_factory(survey, "Editor")
        with pytest.raises(PermissionDeniedError):
            await publish_survey(db, survey.id, editor_id)

    async def test_unknown_survey(self, db, owner_id):
        with pytest.raises(NotFoundError):
            await publish_survey(db, uuid.uuid4(), owner_id)


class TestSettingsAndSchedule:
    async def test_settings_update(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION, status=SurveyStatus.DRAFT)

        await update_survey_settings(
            db,
            survey.id,
            owner_id,
            SurveySettingsUpdate(title="Renamed", description=" New text ", is_anonymous=True),
        )

        assert survey.title == "Renamed"
        assert survey.description == "New text"
        assert survey.is_anonymous is True

    async def test_naive_schedule_is_stored_as_utc(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION, status=SurveyStatus.DRAFT)

        await update_schedule(
            db,
            survey.id,
            owner_id,
            SurveyScheduleUpdate(
                open_at=datetime(2026, 6, 1, 8, 0),
                close_at=datetime(2026, 6, 30, 18, 0),
                response_quota=100,
                quota_behavior=QuotaBehavior.CLOSE_SURVEY,
            ),
        )

        assert survey.open_at == datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc)
        assert survey.close_at == datetime(2026, 6, 30, 18, 0, tzinfo=timezone.utc)
        assert survey.response_quota == 100
        assert survey.quota_behavior == QuotaBehavior.CLOSE_SURVEY

    async def test_close_must_follow_open(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION, status=SurveyStatus.DRAFT)
        with pytest.raises(ValidationFailedError) as exc_info:
            await update_schedule(
                db,
                survey.id,
                owner_id,
                SurveyScheduleUpdate(
                    open_at=datetime(2026, 6, 2, tzinfo=timezone.utc),
                    close_at=datetime(2026, 6, 1, tzinfo=timezone.utc),
                ),
            )
        assert exc_info.value.errors == ["Close date must be after open date."]


class TestPermissionChecker:
    async def test_owner_may_do_everything(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION)
        for action in ("EditQuestion", "EditSurvey", "Publish", "ManageSettings", "ViewReport"):
            result = await check_permission(db, owner_id, survey.id, action)
            assert result.allowed and result.role == "Owner"

    @pytest.mark.parametrize(
        "role, action, allowed",
        [
            ("Editor", "EditQuestion", True),
            ("Editor", "Publish", False),
            ("Editor", "ManageSettings", False),
            ("Viewer", "ViewReport", True),
            ("Viewer", "EditQuestion", False),
            ("Viewer", "SomethingElse", True),
        ],
    )
    async def test_collaborator_roles(
        self, db, survey_factory, collaborator_factory, role, action, allowed
    ):
        survey, _ = await survey_factory(ONE_QUESTION)
        user_id = await collaborator_factory(survey, role)
        result = await check_permission(db, user_id, survey.id, action)
        assert result.allowed is allowed

    async def test_stranger_and_missing_survey(self, db, survey_factory):
        survey, _ = await survey_factory(ONE_QUESTION)
        stranger = await check_permission(db, uuid.uuid4(), survey.id, "ViewReport")
        assert not stranger.allowed and stranger.reason == "Access denied."

        missing = await check_permission(db, uuid.uuid4(), uuid.uuid4(), "ViewReport")
        assert missing.reason == "Survey not found."


class TestChannels:
    async def test_link_channel_gets_a_random_slug(self, db, survey_factory, owner_id, mocker):
        mocker.patch.object(crud_channel.config, "PUBLIC_BASE_URL", "https://surveys.example.com/")
        survey, _ = await survey_factory(ONE_QUESTION)

        first = await crud_channel.create_link_channel(db, survey.id, owner_id)
        second = await crud_channel.create_link_channel(
            db, survey.id, owner_id, ChannelType.QR_CODE
        )

        assert first.slug and second.slug and first.slug != second.slug
        assert first.full_url == f"https://surveys.example.com/s/{first.slug}"
        assert second.channel_type == ChannelType.QR_CODE

        resolved = await crud_channel.resolve_channel(db, slug=first.slug)
        assert resolved.id == first.id and resolved.survey_id == survey.id

    async def test_deactivate_and_resolve(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION)
        channel = await crud_channel.create_link_channel(db, survey.id, owner_id)

        await crud_channel.set_channel_active(db, channel.id, owner_id, False)

        resolved = await crud_channel.resolve_channel(db, channel_id=channel.id)
        assert resolved.is_active is False

    async def test_resolve_nothing(self, db):
        assert await crud_channel.resolve_channel(db) is None
        assert await crud_channel.resolve_channel(db, slug="missing") is None
        assert await crud_channel.resolve_channel(db, channel_id=uuid.uuid4()) is None

    async def test_editor_cannot_create_channels(
        self, db, survey_factory, collaborator_factory
    ):
        survey, _ = await survey_factory(ONE_QUESTION)
        editor_id = await collaborator_factory(survey, "Editor")
        with pytest.raises(PermissionDeniedError):
            await crud_channel.create_link_channel(db, survey.id, editor_id)

    async def test_list_counts_responses_per_channel(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION)
        busy = await crud_channel.create_link_channel(db, survey.id, owner_id)
        quiet = await crud_channel.create_link_channel(db, survey.id, owner_id)
        for _ in range(2):
            db.add(SurveyResponse(id=uuid.uuid4(), survey_id=survey.id, channel_id=busy.id))
        db.add(SurveyResponse(id=uuid.uuid4(), survey_id=survey.id))
        await db.commit()

        summaries = await crud_channel.list_channels_for_survey(db, survey.id, owner_id)

        counts = {s.id: s.response_count for s in summaries}
        assert counts == {busy.id: 2, quiet.id: 0}

    async def test_viewer_cannot_list_channels(
        self, db, survey_factory, collaborator_factory
    ):
        survey, _ = await survey_factory(ONE_QUESTION)
        viewer_id = await collaborator_factory(survey, "Viewer")
        with pytest.raises(PermissionDeniedError):
            await crud_channel.list_channels_for_survey(db, survey.id, viewer_id)

    async def test_unused_channel_is_deleted(self, db, survey_factory, owner_id):
        survey, _ = await survey_factory(ONE_QUESTION)
        channel = await crud_channel.create_link_channel(db, survey.id, owner_id)
        survey_id, channel_id = survey.id, channel.id

        await crud_channel.delete_channel(db, channel_id, owner_id)

        assert await crud_channel.resolve_channel(db, channel_id=channel_id) is None
        assert (await activity_types(db, survey_id))[-1] == "ChannelDeleted"

    async def test_channel_with_responses_cannot_be_deleted(
        self, db, survey_factory, owner_id
    ):
        survey, _ = await survey_factory(ONE_QUESTION)
        channel = await crud_channel.create_link_channel(db, survey.id, owner_id)
        channel_id = channel.id
        db.add(SurveyResponse(id=uuid.uuid4(), survey_id=survey.id, channel_id=channel_id))
        await db.commit()

        with pytest.raises(ConflictError) as exc_info:
            await crud_channel.delete_channel(db, channel_id, owner_id)
        assert exc_info.value.errors == [
            "Cannot delete channel with existing responses. Deactivate it instead."
        ]
        assert await crud_channel.resolve_channel(db, channel_id=channel_id) is not None

    async def test_delete_unknown_channel(self, db, owner_id):
        with pytest.raises(NotFoundError):
            await crud_channel.delete_channel(db, uuid.uuid4(), owner_id)
