# alembic/env.py
import logging
import os
import sys
from logging.config import fileConfig

from sqlalchemy import create_engine

from alembic import context

# The project root is one level above the alembic directory; put it on the
# path so the survey_backend package imports without being installed.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

# Importing the package loads .env through survey_backend.core.config.
from survey_backend.database import DATABASE_URL  # noqa: E402
from survey_backend.models import Base  # noqa: E402

target_metadata = Base.metadata


def sync_url(url: str) -> str:
    """Migrations run synchronously; drop the async driver suffix."""
    for driver in ("+asyncpg", "+aiosqlite"):
        if driver in url:
            return url.replace(driver, "")
    return url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    offline_url = sync_url(DATABASE_URL)
    logger.info("Offline migration against %s", offline_url)
    context.configure(
        url=offline_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode with a synchronous engine."""
    online_url = sync_url(DATABASE_URL)
    logger.info("Online migration against %s", online_url)
    connectable = create_engine(online_url)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
