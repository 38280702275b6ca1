import uuid
from typing import Dict, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from survey_backend import models
from survey_backend.database import Base, get_db_session
from survey_backend.main import app


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'survey_flow_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def survey_factory(db, owner_id):
    """
    Insert a survey with questions given as (text, type, required) tuples.
    Returns (survey, questions) with questions in display order.
    """

    async def _create(
        questions=(),
        status=models.SurveyStatus.PUBLISHED,
        **fields,
    ):
        survey = models.Survey(
            id=uuid.uuid4(),
            owner_id=fields.pop("owner_id", owner_id),
            title=fields.pop("title", "Customer feedback"),
            status=status,
            **fields,
        )
        db.add(survey)
        await db.flush()

        created = []
        for ordering, (text, question_type, is_required) in enumerate(questions, 1):
            question = models.Question(
                id=uuid.uuid4(),
                survey_id=survey.id,
                ordering=ordering,
                text=text,
                question_type=question_type,
                is_required=is_required,
            )
            db.add(question)
            created.append(question)
        await db.commit()
        return survey, created

    return _create


@pytest.fixture
def option_factory(db):
    async def _create(question, *texts, active=True):
        options = []
        for ordering, text in enumerate(texts, 1):
            option = models.QuestionOption(
                id=uuid.uuid4(),
                question_id=question.id,
                ordering=ordering,
                text=text,
                is_active=active,
            )
            db.add(option)
            options.append(option)
        await db.commit()
        return options

    return _create


@pytest.fixture
def rule_factory(db):
    async def _create(
        source,
        condition: Dict,
        target_action=models.TargetAction.SKIP_TO,
        target=None,
        priority: int = 1,
        target_question_id: Optional[uuid.UUID] = None,
    ):
        rule = models.BranchRule(
            survey_id=source.survey_id,
            source_question_id=source.id,
            condition=condition,
            target_action=target_action,
            target_question_id=target.id if target is not None else target_question_id,
            priority=priority,
        )
        db.add(rule)
        await db.commit()
        return rule

    return _create


@pytest.fixture
def collaborator_factory(db):
    async def _create(survey, role: str, user_id: Optional[uuid.UUID] = None):
        collaborator = models.SurveyCollaborator(
            survey_id=survey.id, user_id=user_id or uuid.uuid4(), role=role
        )
        db.add(collaborator)
        await db.commit()
        return collaborator.user_id

    return _create
