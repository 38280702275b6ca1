# survey_backend/database.py
import logging
import os

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base

from .core import config

logger = logging.getLogger(__name__)


DATABASE_URL = config.DATABASE_URL

if DATABASE_URL is None:
    logger.warning(
        "DATABASE_URL not found in environment, falling back to a local SQLite database."
    )
    sqlite_db_path = os.path.join(os.path.dirname(__file__), "survey_flow_fallback.db")
    DATABASE_URL = f"sqlite+aiosqlite:///{sqlite_db_path}"


logger.debug("Using DATABASE_URL: %s", DATABASE_URL)

# SQL_ECHO=true logs every statement SQLAlchemy emits.
engine = create_async_engine(DATABASE_URL, echo=config.SQL_ECHO)

AsyncSessionFactory = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    class_=AsyncSession,
)

Base = declarative_base()


async def get_db_session() -> AsyncSession:
    async with AsyncSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


class UnitOfWork:
    """
    Explicit transactional boundary around one session.

    Everything added to the session inside ``async with UnitOfWork(session)``
    is committed together when the block exits normally and rolled back when
    it exits with any exception (cancellation included). Reads done before
    entering the block belong to the same transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def __aenter__(self) -> AsyncSession:
        return self.session

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            try:
                await self.session.commit()
            except BaseException:
                await self.session.rollback()
                raise
        else:
            await self.session.rollback()
        return False


async def create_db_and_tables():
    """
    Schema is managed by Alembic. Only a local SQLite fallback database is
    created here so a fresh checkout runs without a migration step.
    """
    if DATABASE_URL.startswith("sqlite"):
        from . import models  # noqa: F401  registers the tables on Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite tables ensured for %s", DATABASE_URL)
