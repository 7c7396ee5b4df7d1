"""Alembic environment for the lead marketplace schema.

The database URL comes from the same Settings the application uses, so
`alembic upgrade head` reads DATABASE_URL from the environment or .env.
"""
import asyncio
from logging.config import fileConfig

from alembic import context

from config import Settings
from db.connection import Database
from db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata
settings = Settings.from_env()


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        # SQLite cannot ALTER constraints in place
        render_as_batch=settings.database_url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit SQL for the migrations without connecting."""
    _configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection) -> None:
    _configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    db = Database.from_url(settings.database_url, pool_size=1, max_overflow=0)
    try:
        async with db.engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await db.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
