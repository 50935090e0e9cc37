"""Alembic environment: migrates the database named by REPODECK_DATABASE_URL."""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from repodeck.runtime.db.engine import normalize_url
from repodeck.runtime.db.tables import Base
from repodeck.runtime.settings import RepodeckSettings

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _database_url() -> str:
    url = RepodeckSettings().database_url
    if not url:
        msg = "REPODECK_DATABASE_URL is not set. Cannot run migrations."
        raise RuntimeError(msg)
    return normalize_url(url)


def run_migrations() -> None:
    """Apply migrations over a direct (unpooled) psycopg connection."""
    if context.is_offline_mode():
        msg = "Offline (--sql) migrations are not supported"
        raise RuntimeError(msg)

    engine = create_engine(_database_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=Base.metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


run_migrations()
