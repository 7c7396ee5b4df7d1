"""Helpers shared by the repository modules."""
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(session: AsyncSession, model):
    """Return an INSERT that supports ON CONFLICT for the session's dialect.

    Production runs on PostgreSQL; the test suite runs on SQLite. Both
    dialects expose the same on_conflict_do_update/do_nothing API.
    """
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert(model)
    return pg_insert(model)
